"""
Guild calendar and timeline scheduling.

Implements the 12-month calendar with Gregorian leap years, the per-guild
event scheduler, the glue domain modules use to react to time advances,
and opt-in snapshot persistence.
"""

from src.timeline.calendar import (
    DateValidationError,
    CalendarMonth,
    GameDate,
    MONTHS,
    is_leap_year,
    days_in_month,
    create_game_date,
    default_start_date,
    format_game_date,
    format_short_game_date,
    parse_short_game_date,
    add_days,
    subtract_days,
    add_weeks,
    add_months,
    days_difference,
)
from src.timeline.scheduler import (
    TimelineNotInitializedError,
    CallbackError,
    ScheduledEvent,
    TimeAdvanceResult,
    TimelineState,
    TimelineScheduler,
)
from src.timeline.module_integration import (
    ModuleEventConfig,
    TimelineModule,
    convert_time_string_to_days,
    has_active_event,
    schedule_module_events,
    filter_module_events,
)
from src.timeline.persistence import TimelineSnapshotStore

__all__ = [
    # Calendar
    "DateValidationError",
    "CalendarMonth",
    "GameDate",
    "MONTHS",
    "is_leap_year",
    "days_in_month",
    "create_game_date",
    "default_start_date",
    "format_game_date",
    "format_short_game_date",
    "parse_short_game_date",
    "add_days",
    "subtract_days",
    "add_weeks",
    "add_months",
    "days_difference",
    # Scheduler
    "TimelineNotInitializedError",
    "CallbackError",
    "ScheduledEvent",
    "TimeAdvanceResult",
    "TimelineState",
    "TimelineScheduler",
    # Module integration
    "ModuleEventConfig",
    "TimelineModule",
    "convert_time_string_to_days",
    "has_active_event",
    "schedule_module_events",
    "filter_module_events",
    # Persistence
    "TimelineSnapshotStore",
]
