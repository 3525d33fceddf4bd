# codehub_scheduler/core/lifecycle.py
"""Lifecycle management for long-lived components.

Provides a manager for startup and shutdown of the components the
application owns (the job registry, etc.).

Example:
    >>> lm = LifecycleManager()
    >>> lm.register("registry", registry)
    >>> await lm.startup()
    >>> # ... application runs ...
    >>> await lm.shutdown()
"""

import logging
from typing import Any, Protocol, runtime_checkable

logger = logging.getLogger(__name__)


@runtime_checkable
class LifecycleComponent(Protocol):
    """Protocol for components with lifecycle management."""

    def start(self) -> None:
        """Start the component."""
        ...

    def shutdown(self) -> None:
        """Shutdown the component and release resources."""
        ...


class LifecycleManager:
    """Starts components in registration order, stops them in reverse."""

    def __init__(self) -> None:
        self._components: list[tuple[str, Any]] = []
        self._started = False

    def register(self, name: str, component: Any) -> None:
        """Register a component. Must have start() and shutdown()."""
        self._components.append((name, component))
        logger.debug("Registered lifecycle component: %s", name)

    async def startup(self) -> None:
        """Start all registered components in order.

        Skips if already started.
        """
        if self._started:
            logger.debug("Lifecycle manager already started")
            return

        for name, component in self._components:
            logger.info("Starting %s", name)
            component.start()

        self._started = True
        logger.info(
            "All lifecycle components started (%d total)", len(self._components)
        )

    async def shutdown(self) -> None:
        """Shutdown all registered components in reverse order."""
        if not self._started:
            logger.debug("Lifecycle manager not started, skipping shutdown")
            return

        for name, component in reversed(self._components):
            logger.info("Stopping %s", name)
            try:
                component.shutdown()
            except Exception as e:
                logger.error("Error shutting down %s: %s", name, e)

        self._started = False
        logger.info("All lifecycle components stopped")

    @property
    def is_started(self) -> bool:
        """Check if the manager has started all components.

        Returns:
            True if startup() has been called and completed.
        """
        return self._started

    @property
    def component_count(self) -> int:
        """Get the number of registered components.

        Returns:
            Number of registered components.
        """
        return len(self._components)
