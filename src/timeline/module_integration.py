"""
Glue between domain modules and the timeline scheduler.

A domain module (contracts, services, notices...) keeps exactly one
upcoming event of each kind on a guild's timeline. When time advances it
handles the events it owns and schedules the next round.
"""

from dataclasses import dataclass
from typing import Callable, Iterable, Optional, Union
import logging
import re

from src.data_models import DiceRoller, ScheduledEventType
from src.timeline.calendar import add_days
from src.timeline.scheduler import ScheduledEvent, TimeAdvanceResult, TimelineScheduler

logger = logging.getLogger(__name__)

# Used when a duration string has no recognizable number
DEFAULT_DURATION_DAYS = 7

DAYS_PER_WEEK = 7
DAYS_PER_MONTH = 30

_AMOUNT_PATTERN = re.compile(r"(\d+d\d+(?:[+-]\d+)?|\d+)")
_NUMBER_PATTERN = re.compile(r"\d+")

EventHandler = Callable[[ScheduledEvent], None]
DaysInput = Union[Callable[[], int], str, int]


def _amount(text: str, dice_roller: DiceRoller) -> Optional[int]:
    match = _AMOUNT_PATTERN.search(text)
    if not match:
        return None
    token = match.group(1)
    if "d" in token:
        return dice_roller.roll(token, f"duration: {text}").result
    return int(token)


def convert_time_string_to_days(text: str, dice_roller: Optional[DiceRoller] = None) -> int:
    """
    Turn a duration such as '1d6 dias', '2 semanas' or '1d4 weeks' into days.

    Dice amounts are rolled. A week is 7 days and a month is 30. Text
    without a unit falls back to its first number, and text without any
    number to one week.
    """
    dice_roller = dice_roller or DiceRoller()
    cleaned = text.lower().strip()

    if "dia" in cleaned or "day" in cleaned:
        multiplier = 1
    elif "semana" in cleaned or "week" in cleaned:
        multiplier = DAYS_PER_WEEK
    elif "mês" in cleaned or "mes" in cleaned or "month" in cleaned:
        multiplier = DAYS_PER_MONTH
    else:
        multiplier = None

    if multiplier is not None:
        amount = _amount(cleaned, dice_roller)
        if amount is not None:
            return amount * multiplier

    number = _NUMBER_PATTERN.search(cleaned)
    if number:
        return int(number.group(0))

    return DEFAULT_DURATION_DAYS


@dataclass
class ModuleEventConfig:
    """
    How a module schedules one kind of event.

    Attributes:
        event_type: Type of event to keep on the timeline
        source: Module-defined tag distinguishing events of the same type
        description: Text stored on the scheduled event
        roll_days: Days until the event, as a callable, a duration string
            ('1d6 dias') or a fixed int
        resolution_type: Optional tag copied into the event payload
    """

    event_type: ScheduledEventType
    source: str
    description: str
    roll_days: DaysInput
    resolution_type: Optional[str] = None

    def days_until(self, dice_roller: DiceRoller) -> int:
        if callable(self.roll_days):
            return self.roll_days()
        if isinstance(self.roll_days, str):
            return convert_time_string_to_days(self.roll_days, dice_roller)
        return self.roll_days


def _is_resolution_type(event_type: ScheduledEventType) -> bool:
    return event_type.value.endswith("_resolution")


def has_active_event(
    scheduler: TimelineScheduler,
    guild_id: str,
    event_type: ScheduledEventType,
    source: Optional[str] = None,
) -> bool:
    """
    Check whether a guild already has a pending event of this type.

    Resolution events that are already due do not count, so a module can
    schedule the next resolution while processing the current one.
    """
    if not scheduler.has_timeline(guild_id):
        return False

    today = scheduler.current_date(guild_id)
    for event in scheduler.get_events(guild_id, event_type):
        if source is not None and event.data.get("source") != source:
            continue
        # Overdue resolutions count as due too, not only those dated today
        if _is_resolution_type(event_type) and event.date <= today:
            continue
        return True
    return False


def schedule_module_events(
    scheduler: TimelineScheduler,
    guild_id: str,
    configs: Iterable[ModuleEventConfig],
    dice_roller: Optional[DiceRoller] = None,
) -> list[ScheduledEvent]:
    """
    Schedule the next event for each config that has none pending.

    Guilds without a timeline are skipped.
    """
    if not scheduler.has_timeline(guild_id):
        logger.debug(f"No timeline for {guild_id}; skipping module scheduling")
        return []

    dice_roller = dice_roller or DiceRoller()
    today = scheduler.current_date(guild_id)
    scheduled = []

    for config in configs:
        if has_active_event(scheduler, guild_id, config.event_type, config.source):
            continue

        data = {"source": config.source}
        if config.resolution_type:
            data["resolution_type"] = config.resolution_type

        days = config.days_until(dice_roller)
        scheduled.append(
            scheduler.schedule_event(
                guild_id,
                config.event_type,
                add_days(today, days),
                config.description,
                data,
            )
        )

    return scheduled


def filter_module_events(
    result: TimeAdvanceResult,
    event_types: Iterable[ScheduledEventType],
    guild_id: Optional[str] = None,
) -> list[ScheduledEvent]:
    """Triggered events of the given types belonging to the guild (the advanced one by default)."""
    wanted = set(event_types)
    guild_id = guild_id or result.guild_id
    return [e for e in result.triggered_events if e.guild_id == guild_id and e.type in wanted]


class TimelineModule:
    """
    A domain module's registration with the scheduler.

    Args:
        scheduler: Scheduler the module reacts to
        name: Module name, for logging
        handlers: Handler per event type the module owns
        reschedule: Called with the guild id after each advance so the
            module can queue its next events
        dice_roller: Roller for duration strings in event configs
    """

    def __init__(
        self,
        scheduler: TimelineScheduler,
        name: str,
        handlers: dict[ScheduledEventType, EventHandler],
        reschedule: Optional[Callable[[str], None]] = None,
        dice_roller: Optional[DiceRoller] = None,
    ):
        self.scheduler = scheduler
        self.name = name
        self.handlers = dict(handlers)
        self.reschedule = reschedule
        self.dice_roller = dice_roller or DiceRoller()

    @property
    def event_types(self) -> list[ScheduledEventType]:
        return list(self.handlers)

    def attach(self) -> None:
        self.scheduler.register_callback(self.on_time_advance)
        logger.debug(f"Module {self.name} attached to timeline")

    def detach(self) -> None:
        self.scheduler.unregister_callback(self.on_time_advance)
        logger.debug(f"Module {self.name} detached from timeline")

    def has_active_event(self, guild_id: str, event_type: ScheduledEventType, source: Optional[str] = None) -> bool:
        return has_active_event(self.scheduler, guild_id, event_type, source)

    def schedule_module_events(self, guild_id: str, configs: Iterable[ModuleEventConfig]) -> list[ScheduledEvent]:
        return schedule_module_events(self.scheduler, guild_id, configs, self.dice_roller)

    def filter_module_events(self, result: TimeAdvanceResult) -> list[ScheduledEvent]:
        return filter_module_events(result, self.event_types)

    def on_time_advance(self, result: TimeAdvanceResult) -> None:
        """
        Dispatch this module's triggered events, then reschedule.

        Rescheduling runs even when a handler raises, so the module's
        recurring events stay queued. The handler error still propagates
        to the scheduler.
        """
        if not self.scheduler.has_timeline(result.guild_id):
            return

        events = self.filter_module_events(result)
        try:
            for event in events:
                self.handlers[event.type](event)
        finally:
            if self.reschedule is not None:
                self.reschedule(result.guild_id)

        if events:
            logger.debug(f"Module {self.name} handled {len(events)} events for {result.guild_id}")
