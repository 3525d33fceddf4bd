"""Codehub scheduler: timed invocations of the Codehub execution engine."""

__version__ = "1.0.0"
