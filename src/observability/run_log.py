"""
Run Log for guild timeline observability.

Captures every deterministic step (dice rolls, table lookups, time advances,
scheduled events, callback failures) so a session can be audited and
compared against a replay.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Optional
import json
import logging

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    """Types of events that can be logged."""

    ROLL = "roll"  # Dice roll
    TABLE_LOOKUP = "table_lookup"  # Table resolution
    TIME_STEP = "time_step"  # Timeline advance
    EVENT_SCHEDULED = "event_scheduled"  # Event queued on a timeline
    CALLBACK_ERROR = "callback_error"  # Time-advance callback raised
    CUSTOM = "custom"


@dataclass
class LogEvent:
    """Base class for all logged events."""

    # Subclasses set the correct value in __post_init__
    event_type: EventType = EventType.CUSTOM
    timestamp: datetime = field(default_factory=datetime.now)
    sequence_number: int = 0
    context: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "event_type": self.event_type.value,
            "timestamp": self.timestamp.isoformat(),
            "sequence_number": self.sequence_number,
            "context": self.context,
        }

    @classmethod
    def _base_kwargs(cls, data: dict[str, Any]) -> dict[str, Any]:
        return {
            "timestamp": datetime.fromisoformat(data["timestamp"]),
            "sequence_number": data.get("sequence_number", 0),
            "context": data.get("context", {}),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LogEvent":
        """Create from dictionary."""
        return cls(event_type=EventType(data["event_type"]), **cls._base_kwargs(data))


@dataclass
class RollEvent(LogEvent):
    """A dice roll event."""

    notation: str = ""
    rolls: list[int] = field(default_factory=list)
    modifier: int = 0
    total: int = 0
    reason: str = ""

    def __post_init__(self):
        self.event_type = EventType.ROLL

    def to_dict(self) -> dict[str, Any]:
        base = super().to_dict()
        base.update(
            {
                "notation": self.notation,
                "rolls": self.rolls,
                "modifier": self.modifier,
                "total": self.total,
                "reason": self.reason,
            }
        )
        return base

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RollEvent":
        return cls(
            notation=data.get("notation", ""),
            rolls=data.get("rolls", []),
            modifier=data.get("modifier", 0),
            total=data.get("total", 0),
            reason=data.get("reason", ""),
            **cls._base_kwargs(data),
        )

    def __str__(self) -> str:
        if self.modifier > 0:
            return f"[{self.sequence_number}] ROLL {self.notation}: {self.rolls} + {self.modifier} = {self.total} ({self.reason})"
        elif self.modifier < 0:
            return f"[{self.sequence_number}] ROLL {self.notation}: {self.rolls} - {abs(self.modifier)} = {self.total} ({self.reason})"
        return f"[{self.sequence_number}] ROLL {self.notation}: {self.rolls} = {self.total} ({self.reason})"


@dataclass
class TableLookupEvent(LogEvent):
    """A table resolution event."""

    table_name: str = ""
    base_roll: int = 0
    adjusted_roll: int = 0
    modifier_applied: int = 0
    result_text: str = ""
    clamped: bool = False

    def __post_init__(self):
        self.event_type = EventType.TABLE_LOOKUP

    def to_dict(self) -> dict[str, Any]:
        base = super().to_dict()
        base.update(
            {
                "table_name": self.table_name,
                "base_roll": self.base_roll,
                "adjusted_roll": self.adjusted_roll,
                "modifier_applied": self.modifier_applied,
                "result_text": self.result_text,
                "clamped": self.clamped,
            }
        )
        return base

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TableLookupEvent":
        return cls(
            table_name=data.get("table_name", ""),
            base_roll=data.get("base_roll", 0),
            adjusted_roll=data.get("adjusted_roll", 0),
            modifier_applied=data.get("modifier_applied", 0),
            result_text=data.get("result_text", ""),
            clamped=data.get("clamped", False),
            **cls._base_kwargs(data),
        )

    def __str__(self) -> str:
        mod_str = f" (mod: {self.modifier_applied:+d})" if self.modifier_applied else ""
        clamp_str = " [clamped]" if self.clamped else ""
        return f"[{self.sequence_number}] TABLE {self.table_name} [{self.base_roll}{mod_str}]: {self.result_text}{clamp_str}"


@dataclass
class TimeStepEvent(LogEvent):
    """A timeline advance for one guild."""

    guild_id: str = ""
    old_date: str = ""
    new_date: str = ""
    days_advanced: int = 0
    triggered_count: int = 0

    def __post_init__(self):
        self.event_type = EventType.TIME_STEP

    def to_dict(self) -> dict[str, Any]:
        base = super().to_dict()
        base.update(
            {
                "guild_id": self.guild_id,
                "old_date": self.old_date,
                "new_date": self.new_date,
                "days_advanced": self.days_advanced,
                "triggered_count": self.triggered_count,
            }
        )
        return base

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TimeStepEvent":
        return cls(
            guild_id=data.get("guild_id", ""),
            old_date=data.get("old_date", ""),
            new_date=data.get("new_date", ""),
            days_advanced=data.get("days_advanced", 0),
            triggered_count=data.get("triggered_count", 0),
            **cls._base_kwargs(data),
        )

    def __str__(self) -> str:
        return (
            f"[{self.sequence_number}] TIME {self.guild_id}: {self.old_date} -> {self.new_date} "
            f"(+{self.days_advanced} days, {self.triggered_count} events)"
        )


@dataclass
class EventScheduledEvent(LogEvent):
    """An event queued on a guild timeline."""

    guild_id: str = ""
    scheduled_event_id: str = ""
    scheduled_type: str = ""
    scheduled_date: str = ""

    def __post_init__(self):
        self.event_type = EventType.EVENT_SCHEDULED

    def to_dict(self) -> dict[str, Any]:
        base = super().to_dict()
        base.update(
            {
                "guild_id": self.guild_id,
                "scheduled_event_id": self.scheduled_event_id,
                "scheduled_type": self.scheduled_type,
                "scheduled_date": self.scheduled_date,
            }
        )
        return base

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "EventScheduledEvent":
        return cls(
            guild_id=data.get("guild_id", ""),
            scheduled_event_id=data.get("scheduled_event_id", ""),
            scheduled_type=data.get("scheduled_type", ""),
            scheduled_date=data.get("scheduled_date", ""),
            **cls._base_kwargs(data),
        )

    def __str__(self) -> str:
        return f"[{self.sequence_number}] SCHEDULE {self.guild_id}: {self.scheduled_type} on {self.scheduled_date}"


@dataclass
class CallbackErrorEvent(LogEvent):
    """A time-advance callback that raised."""

    guild_id: str = ""
    callback_name: str = ""
    error: str = ""

    def __post_init__(self):
        self.event_type = EventType.CALLBACK_ERROR

    def to_dict(self) -> dict[str, Any]:
        base = super().to_dict()
        base.update(
            {
                "guild_id": self.guild_id,
                "callback_name": self.callback_name,
                "error": self.error,
            }
        )
        return base

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CallbackErrorEvent":
        return cls(
            guild_id=data.get("guild_id", ""),
            callback_name=data.get("callback_name", ""),
            error=data.get("error", ""),
            **cls._base_kwargs(data),
        )

    def __str__(self) -> str:
        return f"[{self.sequence_number}] CALLBACK ERROR {self.callback_name} ({self.guild_id}): {self.error}"


_EVENT_CLASSES: dict[EventType, type[LogEvent]] = {
    EventType.ROLL: RollEvent,
    EventType.TABLE_LOOKUP: TableLookupEvent,
    EventType.TIME_STEP: TimeStepEvent,
    EventType.EVENT_SCHEDULED: EventScheduledEvent,
    EventType.CALLBACK_ERROR: CallbackErrorEvent,
    EventType.CUSTOM: LogEvent,
}


class RunLog:
    """
    Run log for a session.

    Constructed explicitly and handed to the roller, resolver and
    scheduler that should report into it.
    """

    def __init__(self):
        self._events: list[LogEvent] = []
        self._sequence: int = 0
        self._seed: Optional[int] = None
        self._session_start: datetime = datetime.now()
        self._subscribers: list[Callable[[LogEvent], None]] = []
        self._paused: bool = False

    def reset(self) -> None:
        """Reset the log for a new session."""
        self._events = []
        self._sequence = 0
        self._seed = None
        self._session_start = datetime.now()
        logger.info("RunLog reset")

    def set_seed(self, seed: int) -> None:
        """Record the RNG seed used for this session."""
        self._seed = seed
        logger.info(f"RunLog seed set: {seed}")

    def get_seed(self) -> Optional[int]:
        return self._seed

    def pause(self) -> None:
        self._paused = True

    def resume(self) -> None:
        self._paused = False

    def is_paused(self) -> bool:
        return self._paused

    def subscribe(self, callback: Callable[[LogEvent], None]) -> None:
        """Subscribe to receive events as they are logged."""
        self._subscribers.append(callback)

    def unsubscribe(self, callback: Callable[[LogEvent], None]) -> None:
        if callback in self._subscribers:
            self._subscribers.remove(callback)

    def _log_event(self, event: LogEvent) -> None:
        if self._paused:
            return

        self._sequence += 1
        event.sequence_number = self._sequence
        self._events.append(event)

        for subscriber in self._subscribers:
            try:
                subscriber(event)
            except Exception as e:
                logger.warning(f"Subscriber error: {e}")

    def log_roll(
        self,
        notation: str,
        rolls: list[int],
        modifier: int,
        total: int,
        reason: str = "",
        context: Optional[dict[str, Any]] = None,
    ) -> RollEvent:
        """Log a dice roll."""
        event = RollEvent(
            notation=notation,
            rolls=list(rolls),
            modifier=modifier,
            total=total,
            reason=reason,
            context=context or {},
        )
        self._log_event(event)
        return event

    def log_table_lookup(
        self,
        table_name: str,
        base_roll: int,
        adjusted_roll: int,
        result_text: str,
        modifier_applied: int = 0,
        clamped: bool = False,
        context: Optional[dict[str, Any]] = None,
    ) -> TableLookupEvent:
        """Log a table resolution."""
        event = TableLookupEvent(
            table_name=table_name,
            base_roll=base_roll,
            adjusted_roll=adjusted_roll,
            modifier_applied=modifier_applied,
            result_text=result_text,
            clamped=clamped,
            context=context or {},
        )
        self._log_event(event)
        return event

    def log_time_step(
        self,
        guild_id: str,
        old_date: str,
        new_date: str,
        days_advanced: int,
        triggered_count: int = 0,
        context: Optional[dict[str, Any]] = None,
    ) -> TimeStepEvent:
        """Log a timeline advance."""
        event = TimeStepEvent(
            guild_id=guild_id,
            old_date=old_date,
            new_date=new_date,
            days_advanced=days_advanced,
            triggered_count=triggered_count,
            context=context or {},
        )
        self._log_event(event)
        return event

    def log_event_scheduled(
        self,
        guild_id: str,
        scheduled_event_id: str,
        scheduled_type: str,
        scheduled_date: str,
    ) -> EventScheduledEvent:
        event = EventScheduledEvent(
            guild_id=guild_id,
            scheduled_event_id=scheduled_event_id,
            scheduled_type=scheduled_type,
            scheduled_date=scheduled_date,
        )
        self._log_event(event)
        return event

    def log_callback_error(self, guild_id: str, callback_name: str, error: str) -> CallbackErrorEvent:
        event = CallbackErrorEvent(guild_id=guild_id, callback_name=callback_name, error=error)
        self._log_event(event)
        return event

    def log_custom(self, event_name: str, details: dict[str, Any]) -> LogEvent:
        """Log a custom event."""
        event = LogEvent(
            event_type=EventType.CUSTOM,
            context={"event_name": event_name, **details},
        )
        self._log_event(event)
        return event

    def get_events(
        self,
        event_type: Optional[EventType] = None,
        since_sequence: int = 0,
    ) -> list[LogEvent]:
        """
        Get logged events.

        Args:
            event_type: Filter by event type (None = all)
            since_sequence: Only events after this sequence number
        """
        events = [e for e in self._events if e.sequence_number > since_sequence]
        if event_type:
            events = [e for e in events if e.event_type == event_type]
        return events

    def get_rolls(self) -> list[RollEvent]:
        return [e for e in self._events if isinstance(e, RollEvent)]

    def get_table_lookups(self) -> list[TableLookupEvent]:
        return [e for e in self._events if isinstance(e, TableLookupEvent)]

    def get_time_steps(self) -> list[TimeStepEvent]:
        return [e for e in self._events if isinstance(e, TimeStepEvent)]

    def get_callback_errors(self) -> list[CallbackErrorEvent]:
        return [e for e in self._events if isinstance(e, CallbackErrorEvent)]

    def get_roll_stream(self) -> list[dict[str, Any]]:
        """
        Get the roll stream for replay.

        Returns a list of {notation, rolls, modifier, total, reason} for
        each roll, in order.
        """
        return [
            {
                "notation": e.notation,
                "rolls": e.rolls,
                "modifier": e.modifier,
                "total": e.total,
                "reason": e.reason,
            }
            for e in self.get_rolls()
        ]

    def get_event_count(self) -> int:
        return len(self._events)

    def get_summary(self) -> dict[str, Any]:
        """Get a summary of the run log."""
        return {
            "session_start": self._session_start.isoformat(),
            "seed": self._seed,
            "total_events": len(self._events),
            "rolls": len(self.get_rolls()),
            "table_lookups": len(self.get_table_lookups()),
            "time_steps": len(self.get_time_steps()),
            "callback_errors": len(self.get_callback_errors()),
            "last_sequence": self._sequence,
        }

    def to_dict(self) -> dict[str, Any]:
        """Serialize the entire log to a dictionary."""
        return {
            "session_start": self._session_start.isoformat(),
            "seed": self._seed,
            "sequence": self._sequence,
            "events": [e.to_dict() for e in self._events],
        }

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent, default=str)

    def save(self, filepath: str) -> None:
        """Save the log to a file."""
        with open(filepath, "w", encoding="utf-8") as f:
            f.write(self.to_json())
        logger.info(f"RunLog saved to {filepath}")

    @classmethod
    def load(cls, filepath: str) -> "RunLog":
        """Load a log from a file into a new RunLog."""
        with open(filepath, "r", encoding="utf-8") as f:
            data = json.load(f)

        log = cls()
        log._session_start = datetime.fromisoformat(data["session_start"])
        log._seed = data.get("seed")
        log._sequence = data.get("sequence", 0)

        for event_data in data.get("events", []):
            event_cls = _EVENT_CLASSES[EventType(event_data["event_type"])]
            log._events.append(event_cls.from_dict(event_data))

        logger.info(f"RunLog loaded from {filepath}: {len(log._events)} events")
        return log

    def format_log(
        self,
        event_types: Optional[list[EventType]] = None,
        max_events: Optional[int] = None,
    ) -> str:
        """Format the log as a human-readable string."""
        lines = [
            "=== Run Log ===",
            f"Session: {self._session_start.isoformat()}",
            f"Seed: {self._seed if self._seed is not None else 'not set'}",
            f"Total Events: {len(self._events)}",
            "",
        ]

        events = self._events
        if event_types:
            events = [e for e in events if e.event_type in event_types]
        if max_events:
            events = events[-max_events:]

        for event in events:
            lines.append(str(event))

        return "\n".join(lines)
