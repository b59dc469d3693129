"""
Timeline Scheduler for guild event lifecycles.

Each guild has its own current date and queue of dated events. Advancing a
guild's timeline moves the date forward, removes every event now due and
hands them, in date order, to every registered time-advance callback.

Callback failures are isolated: each callback runs in its own try/except,
failures are logged and recorded, and the date/queue update already applied
is never rolled back.
"""

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Optional, Union
import inspect
import logging
import uuid

from src.data_models import ScheduledEventType
from src.timeline.calendar import (
    GameDate,
    add_days,
    days_difference,
    default_start_date,
    format_game_date,
)

if TYPE_CHECKING:
    from src.observability.run_log import RunLog

logger = logging.getLogger(__name__)


class TimelineNotInitializedError(LookupError):
    """Raised when operating on a guild whose timeline was never initialized."""

    def __init__(self, guild_id: str):
        self.guild_id = guild_id
        super().__init__(f"Timeline not initialized for guild {guild_id!r}")


class CallbackError(Exception):
    """A time-advance callback raised. Recorded, never raised out of an advance."""

    def __init__(self, callback_name: str, guild_id: str, original: BaseException):
        self.callback_name = callback_name
        self.guild_id = guild_id
        self.original = original
        super().__init__(f"Callback {callback_name} failed for guild {guild_id}: {original}")


# =============================================================================
# DATA SHAPES
# =============================================================================


@dataclass
class ScheduledEvent:
    """
    A dated event queued on a guild timeline.

    The scheduler only reads type, date and guild_id; the data payload
    belongs to whichever module scheduled the event.
    """

    id: str
    type: ScheduledEventType
    date: GameDate
    description: str
    guild_id: str
    data: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "date": self.date.to_dict(),
            "description": self.description,
            "guild_id": self.guild_id,
            "data": dict(self.data),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ScheduledEvent":
        return cls(
            id=data["id"],
            type=ScheduledEventType(data["type"]),
            date=GameDate.from_dict(data["date"]),
            description=data.get("description", ""),
            guild_id=data["guild_id"],
            data=dict(data.get("data", {})),
        )


@dataclass
class TimeAdvanceResult:
    """Outcome of one advance, handed unchanged to every callback."""

    guild_id: str
    previous_date: GameDate
    new_date: GameDate
    triggered_events: list[ScheduledEvent] = field(default_factory=list)
    events_remaining: int = 0

    @property
    def days_advanced(self) -> int:
        return days_difference(self.previous_date, self.new_date)

    def to_dict(self) -> dict[str, Any]:
        return {
            "guild_id": self.guild_id,
            "previous_date": self.previous_date.to_dict(),
            "new_date": self.new_date.to_dict(),
            "triggered_events": [e.to_dict() for e in self.triggered_events],
            "events_remaining": self.events_remaining,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TimeAdvanceResult":
        return cls(
            guild_id=data["guild_id"],
            previous_date=GameDate.from_dict(data["previous_date"]),
            new_date=GameDate.from_dict(data["new_date"]),
            triggered_events=[ScheduledEvent.from_dict(e) for e in data.get("triggered_events", [])],
            events_remaining=data.get("events_remaining", 0),
        )


@dataclass
class TimelineState:
    """Current date and pending events for one guild."""

    guild_id: str
    current_date: GameDate
    # Kept in scheduling order; sorted views are built on read
    events: list[ScheduledEvent] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "guild_id": self.guild_id,
            "current_date": self.current_date.to_dict(),
            "events": [e.to_dict() for e in self.events],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TimelineState":
        return cls(
            guild_id=data["guild_id"],
            current_date=GameDate.from_dict(data["current_date"]),
            events=[ScheduledEvent.from_dict(e) for e in data.get("events", [])],
        )


TimeAdvanceCallback = Callable[[TimeAdvanceResult], None]


def _sorted_by_date(events: list[ScheduledEvent]) -> list[ScheduledEvent]:
    # sorted() is stable, so same-date events keep scheduling order
    return sorted(events, key=lambda e: e.date)


def _same_callback(a: Callable[..., Any], b: Callable[..., Any]) -> bool:
    if a is b:
        return True
    # Each attribute access creates a new bound method object
    if inspect.ismethod(a) and inspect.ismethod(b):
        return a.__self__ is b.__self__ and a.__func__ is b.__func__
    return False


def _callback_name(callback: Callable[..., Any]) -> str:
    return getattr(callback, "__qualname__", None) or getattr(callback, "__name__", None) or repr(callback)


# =============================================================================
# SCHEDULER
# =============================================================================


class TimelineScheduler:
    """
    Owns every guild timeline and the time-advance callback registry.

    Construct one per process (or per test) and pass it to the modules
    that schedule events or react to advances.
    """

    def __init__(self, run_log: Optional["RunLog"] = None):
        self._run_log = run_log
        self._timelines: dict[str, TimelineState] = {}
        self._callbacks: list[TimeAdvanceCallback] = []
        self._last_callback_errors: list[CallbackError] = []

    # -------------------------------------------------------------------------
    # Timeline lifecycle
    # -------------------------------------------------------------------------

    def initialize_timeline(self, guild_id: str, start_date: Optional[GameDate] = None) -> TimelineState:
        """
        Create the timeline for a guild.

        Idempotent: if the guild already has a timeline it is returned
        unchanged and start_date is ignored.
        """
        existing = self._timelines.get(guild_id)
        if existing is not None:
            return existing

        state = TimelineState(guild_id=guild_id, current_date=start_date or default_start_date())
        self._timelines[guild_id] = state
        logger.info(f"Initialized timeline for {guild_id} at {format_game_date(state.current_date)}")
        return state

    def has_timeline(self, guild_id: str) -> bool:
        return guild_id in self._timelines

    def get_timeline(self, guild_id: str) -> Optional[TimelineState]:
        """Get a guild's timeline, or None if it was never initialized."""
        return self._timelines.get(guild_id)

    def remove_timeline(self, guild_id: str) -> bool:
        if self._timelines.pop(guild_id, None) is None:
            return False
        logger.info(f"Removed timeline for {guild_id}")
        return True

    def list_timelines(self) -> list[str]:
        return list(self._timelines)

    def _require(self, guild_id: str) -> TimelineState:
        state = self._timelines.get(guild_id)
        if state is None:
            raise TimelineNotInitializedError(guild_id)
        return state

    def current_date(self, guild_id: str) -> GameDate:
        return self._require(guild_id).current_date

    # -------------------------------------------------------------------------
    # Event queue
    # -------------------------------------------------------------------------

    def schedule_event(
        self,
        guild_id: str,
        event_type: Union[ScheduledEventType, str],
        date: GameDate,
        description: str,
        data: Optional[dict[str, Any]] = None,
    ) -> ScheduledEvent:
        """
        Queue an event on a guild timeline.

        Duplicates are allowed. An event dated on or before the current
        date fires on the next advance.
        """
        state = self._require(guild_id)
        event = ScheduledEvent(
            id=f"evt_{uuid.uuid4().hex[:12]}",
            type=ScheduledEventType(event_type),
            date=date,
            description=description,
            guild_id=guild_id,
            data=dict(data or {}),
        )
        state.events.append(event)
        logger.debug(f"Scheduled {event.type.value} for {guild_id} on {format_game_date(date)}: {description}")

        if self._run_log is not None:
            self._run_log.log_event_scheduled(
                guild_id=guild_id,
                scheduled_event_id=event.id,
                scheduled_type=event.type.value,
                scheduled_date=format_game_date(date),
            )
        return event

    def remove_event(self, guild_id: str, event_id: str) -> bool:
        state = self._require(guild_id)
        for i, event in enumerate(state.events):
            if event.id == event_id:
                del state.events[i]
                logger.debug(f"Removed event {event_id} from {guild_id}")
                return True
        return False

    def get_events(
        self,
        guild_id: str,
        event_type: Optional[Union[ScheduledEventType, str]] = None,
    ) -> list[ScheduledEvent]:
        """Pending events, by date and then by scheduling order."""
        events = self._require(guild_id).events
        if event_type is not None:
            wanted = ScheduledEventType(event_type)
            events = [e for e in events if e.type == wanted]
        return _sorted_by_date(events)

    def clear_events(
        self,
        guild_id: str,
        event_type: Optional[Union[ScheduledEventType, str]] = None,
    ) -> int:
        """Drop pending events (all, or one type). Returns how many were removed."""
        state = self._require(guild_id)
        before = len(state.events)
        if event_type is None:
            state.events = []
        else:
            wanted = ScheduledEventType(event_type)
            state.events = [e for e in state.events if e.type != wanted]
        removed = before - len(state.events)
        if removed:
            logger.debug(f"Cleared {removed} events from {guild_id}")
        return removed

    def next_event(self, guild_id: str) -> Optional[ScheduledEvent]:
        events = self.get_events(guild_id)
        return events[0] if events else None

    def days_until_next_event(self, guild_id: str) -> Optional[int]:
        """Days from the current date to the next event; negative if overdue."""
        event = self.next_event(guild_id)
        if event is None:
            return None
        return days_difference(self.current_date(guild_id), event.date)

    def get_stats(self, guild_id: str) -> dict[str, Any]:
        state = self._require(guild_id)
        by_type: dict[str, int] = {}
        for event in state.events:
            by_type[event.type.value] = by_type.get(event.type.value, 0) + 1
        upcoming = self.next_event(guild_id)
        return {
            "guild_id": guild_id,
            "current_date": format_game_date(state.current_date),
            "total_events": len(state.events),
            "events_by_type": by_type,
            "next_event_date": format_game_date(upcoming.date) if upcoming else None,
            "days_until_next_event": self.days_until_next_event(guild_id),
        }

    # -------------------------------------------------------------------------
    # Advancing time
    # -------------------------------------------------------------------------

    def advance_day(self, guild_id: str) -> TimeAdvanceResult:
        """Advance one day."""
        return self.advance_days(guild_id, 1)

    def advance_days(self, guild_id: str, days: int) -> TimeAdvanceResult:
        """
        Advance several days in one atomic step.

        Every event due by the new date is triggered together and each
        callback is invoked once.

        Raises:
            ValueError: If days is less than 1
        """
        if days < 1:
            raise ValueError(f"Days to advance must be at least 1, got {days}")
        state = self._require(guild_id)
        return self._advance_to(state, add_days(state.current_date, days))

    def set_date(self, guild_id: str, date: GameDate) -> TimeAdvanceResult:
        """
        Jump forward to a specific date, triggering everything due by then.

        Raises:
            ValueError: If the date is before the current date
        """
        state = self._require(guild_id)
        if date < state.current_date:
            raise ValueError(
                f"Cannot move {guild_id} back from {format_game_date(state.current_date)} "
                f"to {format_game_date(date)}"
            )
        return self._advance_to(state, date)

    def _advance_to(self, state: TimelineState, new_date: GameDate) -> TimeAdvanceResult:
        previous_date = state.current_date

        due = [e for e in state.events if e.date <= new_date]
        pending = [e for e in state.events if e.date > new_date]

        # Date and queue change together before any callback runs
        state.current_date = new_date
        state.events = pending

        result = TimeAdvanceResult(
            guild_id=state.guild_id,
            previous_date=previous_date,
            new_date=new_date,
            triggered_events=_sorted_by_date(due),
            events_remaining=len(pending),
        )

        logger.info(
            f"Advanced {state.guild_id}: {format_game_date(previous_date)} -> {format_game_date(new_date)}, "
            f"{len(due)} events triggered, {len(pending)} remaining"
        )

        if self._run_log is not None:
            self._run_log.log_time_step(
                guild_id=state.guild_id,
                old_date=format_game_date(previous_date),
                new_date=format_game_date(new_date),
                days_advanced=result.days_advanced,
                triggered_count=len(due),
            )

        self._notify(result)
        return result

    def _notify(self, result: TimeAdvanceResult) -> None:
        self._last_callback_errors = []

        # Callbacks may register or unregister others while running
        for callback in list(self._callbacks):
            try:
                callback(result)
            except Exception as e:
                error = CallbackError(_callback_name(callback), result.guild_id, e)
                self._last_callback_errors.append(error)
                logger.error(f"Error in time-advance callback {error.callback_name} for {result.guild_id}: {e}")
                if self._run_log is not None:
                    self._run_log.log_callback_error(
                        guild_id=result.guild_id,
                        callback_name=error.callback_name,
                        error=str(e),
                    )

    @property
    def last_callback_errors(self) -> list[CallbackError]:
        """Failures from the most recent advance."""
        return list(self._last_callback_errors)

    # -------------------------------------------------------------------------
    # Callback registry
    # -------------------------------------------------------------------------

    def _find_callback(self, callback: TimeAdvanceCallback) -> Optional[int]:
        for index, registered in enumerate(self._callbacks):
            if _same_callback(registered, callback):
                return index
        return None

    def register_callback(self, callback: TimeAdvanceCallback) -> bool:
        """
        Register a time-advance callback.

        Registering the same callback again is a no-op. Callbacks match by
        identity; a bound method matches another bound to the same object
        and function.

        Returns:
            True if the callback was added
        """
        if self._find_callback(callback) is not None:
            logger.debug(f"Callback {_callback_name(callback)} already registered")
            return False
        self._callbacks.append(callback)
        logger.debug(f"Registered time-advance callback {_callback_name(callback)}")
        return True

    def unregister_callback(self, callback: TimeAdvanceCallback) -> bool:
        """Remove a callback. Unknown callbacks are ignored."""
        index = self._find_callback(callback)
        if index is None:
            return False
        del self._callbacks[index]
        logger.debug(f"Unregistered time-advance callback {_callback_name(callback)}")
        return True

    def clear_callbacks(self) -> None:
        self._callbacks = []

    @property
    def callback_count(self) -> int:
        return len(self._callbacks)

    def reset(self) -> None:
        """Drop every timeline, callback and recorded error."""
        self._timelines = {}
        self._callbacks = []
        self._last_callback_errors = []
        logger.info("TimelineScheduler reset")

    # -------------------------------------------------------------------------
    # Serialization
    # -------------------------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        """Every timeline as plain data. Callbacks are not serialized."""
        return {"timelines": {gid: state.to_dict() for gid, state in self._timelines.items()}}

    def restore(self, data: dict[str, Any]) -> None:
        """Replace all timelines with serialized state, keeping callbacks."""
        self._timelines = {
            gid: TimelineState.from_dict(state) for gid, state in data.get("timelines", {}).items()
        }
        logger.info(f"Restored {len(self._timelines)} timelines")

    @classmethod
    def from_dict(cls, data: dict[str, Any], run_log: Optional["RunLog"] = None) -> "TimelineScheduler":
        scheduler = cls(run_log=run_log)
        scheduler.restore(data)
        return scheduler
