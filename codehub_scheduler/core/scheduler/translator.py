# codehub_scheduler/core/scheduler/translator.py
"""Schedule descriptor to cron trigger translation.

Turns stored schedule descriptors into 5-field crontab expressions
(minute hour day-of-month month day-of-week) and builds the APScheduler
trigger for them. The same trigger builder backs both job arming and
the next-run estimate shown to users, so the two can never disagree.

Day-of-week values follow crontab numbering (0 or 7 = Sunday).
"""

import re
from dataclasses import dataclass
from datetime import datetime, timedelta, tzinfo

from apscheduler.triggers.cron import CronTrigger

from codehub_scheduler.core.scheduler.errors import ScheduleTranslationError
from codehub_scheduler.core.scheduler.models import (
    NEXT_RUN_COMPLETED,
    NEXT_RUN_UNSCHEDULED,
    CustomSchedule,
    DailySchedule,
    OnceSchedule,
    Schedule,
    ScheduleSpec,
    ScheduleType,
    WeeklySchedule,
)

TIME_OF_DAY_PATTERN = re.compile(r"^\s*(\d{1,2}):(\d{2})\s*$")

# Index is the crontab weekday number; 7 wraps back to Sunday
WEEKDAY_NAMES = ("sun", "mon", "tue", "wed", "thu", "fri", "sat", "sun")


@dataclass(frozen=True)
class CronExpression:
    """A crontab expression, optionally pinned to one year.

    One-shot schedules pin the year so the trigger identifies a single
    wall-clock occurrence instead of recurring every year.
    """

    expression: str
    year: int | None = None

    @property
    def fields(self) -> list[str]:
        return self.expression.split()


def parse_time_of_day(text: str | None) -> tuple[int, int]:
    """Parse "hh:mm" into (hour, minute).

    Raises:
        ScheduleTranslationError: If the text is not a valid time of day.
    """
    match = TIME_OF_DAY_PATTERN.match(text or "")
    if not match:
        raise ScheduleTranslationError(f"Invalid time of day: {text!r}")

    hour, minute = int(match.group(1)), int(match.group(2))
    if not (0 <= hour < 24 and 0 <= minute < 60):
        raise ScheduleTranslationError(f"Time of day out of range: {text!r}")
    return hour, minute


def parse_run_at(value: str | None, tz: tzinfo) -> datetime:
    """Parse a one-shot timestamp.

    Naive timestamps (e.g. "2024-03-15T14:30" from a datetime-local input)
    are interpreted in the scheduler time zone; aware ones are converted
    to it.

    Schedules have minute resolution, so seconds round up to the next
    whole minute: "14:30:45" fires at 14:31, never before the given time.
    """
    if not value:
        raise ScheduleTranslationError("One-time schedule requires a timestamp")

    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        run_at = datetime.fromisoformat(text)
    except ValueError as e:
        raise ScheduleTranslationError(f"Invalid timestamp: {value!r}") from e

    if run_at.tzinfo is None:
        run_at = run_at.replace(tzinfo=tz)
    else:
        run_at = run_at.astimezone(tz)

    if run_at.second or run_at.microsecond:
        run_at = run_at.replace(second=0, microsecond=0) + timedelta(minutes=1)
    return run_at


def resolve_schedule(spec: ScheduleSpec, tz: tzinfo) -> Schedule:
    """Resolve a stored descriptor into its typed schedule variant.

    Raises:
        ScheduleTranslationError: For unknown types or malformed fields.
    """
    if spec.type == ScheduleType.ONCE:
        return OnceSchedule(run_at=parse_run_at(spec.value, tz))

    if spec.type == ScheduleType.DAILY:
        hour, minute = parse_time_of_day(spec.value)
        return DailySchedule(hour=hour, minute=minute)

    if spec.type == ScheduleType.WEEKLY:
        try:
            day = int(spec.day) if spec.day is not None else None
        except ValueError:
            day = None
        if day is None or not 0 <= day <= 6:
            raise ScheduleTranslationError(f"Invalid day of week: {spec.day!r}")
        hour, minute = parse_time_of_day(spec.time)
        return WeeklySchedule(day=day, hour=hour, minute=minute)

    if spec.type == ScheduleType.CUSTOM:
        if not spec.value or not spec.value.strip():
            raise ScheduleTranslationError("Custom schedule requires an expression")
        return CustomSchedule(expression=spec.value)

    raise ScheduleTranslationError(f"Unknown schedule type: {spec.type!r}")


def to_cron(schedule: Schedule) -> CronExpression:
    """Convert a schedule variant into a crontab expression."""
    if isinstance(schedule, OnceSchedule):
        run_at = schedule.run_at
        return CronExpression(
            f"{run_at.minute} {run_at.hour} {run_at.day} {run_at.month} *",
            year=run_at.year,
        )
    if isinstance(schedule, DailySchedule):
        return CronExpression(f"{schedule.minute} {schedule.hour} * * *")
    if isinstance(schedule, WeeklySchedule):
        return CronExpression(
            f"{schedule.minute} {schedule.hour} * * {schedule.day}"
        )
    # Custom expressions pass through verbatim
    return CronExpression(schedule.expression)


def translate(spec: ScheduleSpec, tz: tzinfo) -> CronExpression:
    """Translate a stored schedule descriptor into a crontab expression.

    Args:
        spec: Schedule descriptor.
        tz: Scheduler time zone, used for naive one-shot timestamps.

    Returns:
        The crontab expression.

    Raises:
        ScheduleTranslationError: If the descriptor is unknown or malformed.

    Examples:
        >>> translate(ScheduleSpec(type="daily", value="09:00"), UTC).expression
        '0 9 * * *'
        >>> weekly = ScheduleSpec(type="weekly", day="1", time="10:30")
        >>> translate(weekly, UTC).expression
        '30 10 * * 1'
    """
    return to_cron(resolve_schedule(spec, tz))


def _weekday_index(token: str) -> int:
    if token.isdigit():
        number = int(token)
        if not 0 <= number <= 7:
            raise ValueError(f"day of week out of range: {token}")
        return number
    if token in WEEKDAY_NAMES:
        return WEEKDAY_NAMES.index(token)
    raise ValueError(f"invalid day of week: {token}")


def convert_day_of_week(field: str) -> str:
    """Rewrite a crontab day-of-week field for APScheduler.

    APScheduler numbers weekdays from Monday, crontab from Sunday, so
    numeric values, ranges and steps are expanded into weekday names.

    Raises:
        ValueError: If the field is not a valid day-of-week field.
    """
    field = field.strip().lower()
    if field in ("*", "?"):
        return "*"

    days: list[str] = []
    for part in field.split(","):
        body, _, step_text = part.partition("/")
        step = int(step_text) if step_text else 1
        if step < 1:
            raise ValueError(f"invalid step: {part}")

        if body == "*":
            low, high = 0, 6
        elif "-" in body:
            first, last = body.split("-", 1)
            low, high = _weekday_index(first), _weekday_index(last)
            # "fri-sun" style ranges end on Sunday
            if high == 0 and low > 0:
                high = 7
            if high < low:
                raise ValueError(f"invalid range: {part}")
        else:
            low = _weekday_index(body)
            high = 6 if step_text else low

        for index in range(low, high + 1, step):
            days.append(WEEKDAY_NAMES[index])

    return ",".join(dict.fromkeys(days))


def build_trigger(cron: CronExpression, tz: tzinfo) -> CronTrigger:
    """Build the APScheduler trigger for a crontab expression.

    Raises:
        ScheduleTranslationError: If the expression is not valid crontab.
    """
    fields = cron.fields
    if len(fields) != 5:
        raise ScheduleTranslationError(
            f"Expected 5 cron fields, got {len(fields)}: {cron.expression!r}"
        )

    minute, hour, day, month, day_of_week = fields
    try:
        return CronTrigger(
            year=cron.year,
            month=month,
            day=day,
            day_of_week=convert_day_of_week(day_of_week),
            hour=hour,
            minute=minute,
            second=0,
            timezone=tz,
        )
    except ValueError as e:
        raise ScheduleTranslationError(
            f"Invalid cron expression {cron.expression!r}: {e}"
        ) from e


def next_fire_time(cron: CronExpression, tz: tzinfo, now: datetime) -> datetime | None:
    """First occurrence of the expression strictly after ``now``.

    Returns:
        The next fire time, or None if the expression never fires again.
    """
    after = now.replace(microsecond=0) + timedelta(seconds=1)
    return build_trigger(cron, tz).get_next_fire_time(None, after)


def next_occurrence(
    spec: ScheduleSpec, tz: tzinfo, now: datetime | None = None
) -> str:
    """Display value for a task's next run.

    Args:
        spec: Schedule descriptor.
        tz: Scheduler time zone.
        now: Reference time. Defaults to the current time.

    Returns:
        ISO timestamp of the next occurrence, NEXT_RUN_COMPLETED for a
        one-shot schedule whose time has passed, or NEXT_RUN_UNSCHEDULED
        when the descriptor cannot be translated.
    """
    if now is None:
        now = datetime.now(tz)
    elif now.tzinfo is None:
        now = now.replace(tzinfo=tz)

    try:
        fire_time = next_fire_time(translate(spec, tz), tz, now)
    except ScheduleTranslationError:
        return NEXT_RUN_UNSCHEDULED

    if fire_time is None:
        return NEXT_RUN_COMPLETED if spec.is_once else NEXT_RUN_UNSCHEDULED
    return fire_time.isoformat()
