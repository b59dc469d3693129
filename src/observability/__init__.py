"""
Observability for the guild timeline core.

Provides a structured log of rolls, table lookups, time advances, scheduled
events and callback failures.
"""

from src.observability.run_log import (
    RunLog,
    LogEvent,
    EventType,
    RollEvent,
    TableLookupEvent,
    TimeStepEvent,
    EventScheduledEvent,
    CallbackErrorEvent,
)

__all__ = [
    "RunLog",
    "LogEvent",
    "EventType",
    "RollEvent",
    "TableLookupEvent",
    "TimeStepEvent",
    "EventScheduledEvent",
    "CallbackErrorEvent",
]
