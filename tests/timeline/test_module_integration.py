"""
Tests for the module integration helpers: duration strings, module event
scheduling and time-advance dispatch.
"""

from unittest.mock import MagicMock

import pytest

from src.data_models import DiceRoller, ScheduledEventType
from src.timeline.calendar import add_days
from src.timeline.module_integration import (
    DEFAULT_DURATION_DAYS,
    ModuleEventConfig,
    TimelineModule,
    convert_time_string_to_days,
    filter_module_events,
    has_active_event,
    schedule_module_events,
)
from tests.helpers import SequenceRandomSource


class TestConvertTimeStringToDays:
    """Duration strings to days."""

    @pytest.mark.parametrize(
        "text,expected",
        [
            ("3 dias", 3),
            ("2 semanas", 14),
            ("1 mês", 30),
            ("2 meses", 60),
            ("5 days", 5),
            ("3 weeks", 21),
            ("1 month", 30),
            ("12", 12),
            ("Sem prazo", DEFAULT_DURATION_DAYS),
        ],
    )
    def test_fixed_amounts(self, text, expected):
        assert convert_time_string_to_days(text) == expected

    def test_dice_amounts_are_rolled(self):
        roller = DiceRoller(random_source=SequenceRandomSource([4]))
        assert convert_time_string_to_days("1d6 dias", roller) == 4

    def test_dice_weeks_with_modifier(self):
        roller = DiceRoller(random_source=SequenceRandomSource([2]))
        assert convert_time_string_to_days("1d4+1 semanas", roller) == 21

    def test_case_and_whitespace(self):
        assert convert_time_string_to_days("  2 SEMANAS ") == 14


class TestModuleEvents:
    """Scheduling and checking a module's own events."""

    def _config(self, roll_days=3, event_type=ScheduledEventType.NEW_CONTRACTS, source="contracts"):
        return ModuleEventConfig(
            event_type=event_type,
            source=source,
            description="New contracts",
            roll_days=roll_days,
        )

    def test_schedules_when_no_active_event(self, scheduler, guild, start_date):
        scheduled = schedule_module_events(scheduler, guild, [self._config()])
        assert len(scheduled) == 1
        assert scheduled[0].date == add_days(start_date, 3)
        assert scheduled[0].data == {"source": "contracts"}

    def test_skips_when_event_is_active(self, scheduler, guild):
        schedule_module_events(scheduler, guild, [self._config()])
        assert schedule_module_events(scheduler, guild, [self._config()]) == []
        assert len(scheduler.get_events(guild)) == 1

    def test_other_source_is_not_active(self, scheduler, guild):
        schedule_module_events(scheduler, guild, [self._config(source="board")])
        assert has_active_event(scheduler, guild, ScheduledEventType.NEW_CONTRACTS, "board")
        assert not has_active_event(scheduler, guild, ScheduledEventType.NEW_CONTRACTS, "hall")
        assert has_active_event(scheduler, guild, ScheduledEventType.NEW_CONTRACTS)

    def test_due_resolution_is_not_active(self, scheduler, guild, start_date):
        """A resolution already due may be rescheduled."""
        scheduler.schedule_event(guild, ScheduledEventType.CONTRACT_RESOLUTION, start_date, "due", {"source": "c"})
        assert not has_active_event(scheduler, guild, ScheduledEventType.CONTRACT_RESOLUTION, "c")

        scheduler.schedule_event(
            guild, ScheduledEventType.CONTRACT_RESOLUTION, add_days(start_date, 1), "later", {"source": "c"}
        )
        assert has_active_event(scheduler, guild, ScheduledEventType.CONTRACT_RESOLUTION, "c")

    def test_overdue_resolution_is_not_active(self, scheduler, guild, start_date):
        """A resolution dated before today is as due as one dated today."""
        scheduler.advance_days(guild, 5)
        scheduler.schedule_event(guild, ScheduledEventType.SERVICE_RESOLUTION, start_date, "late", {"source": "s"})
        assert not has_active_event(scheduler, guild, ScheduledEventType.SERVICE_RESOLUTION, "s")

    def test_past_non_resolution_event_is_active(self, scheduler, guild, start_date):
        """Only resolution types get the due-date exemption."""
        scheduler.advance_days(guild, 5)
        scheduler.schedule_event(guild, ScheduledEventType.NEW_SERVICES, start_date, "late", {"source": "s"})
        assert has_active_event(scheduler, guild, ScheduledEventType.NEW_SERVICES, "s")

    def test_resolution_type_in_payload(self, scheduler, guild):
        config = ModuleEventConfig(
            event_type=ScheduledEventType.CONTRACT_RESOLUTION,
            source="contracts",
            description="Resolve",
            roll_days=lambda: 2,
            resolution_type="npc_competition",
        )
        event = schedule_module_events(scheduler, guild, [config])[0]
        assert event.data == {"source": "contracts", "resolution_type": "npc_competition"}

    def test_duration_string_roll_days(self, scheduler, guild, start_date):
        roller = DiceRoller(random_source=SequenceRandomSource([5]))
        event = schedule_module_events(scheduler, guild, [self._config(roll_days="1d6 dias")], roller)[0]
        assert event.date == add_days(start_date, 5)

    def test_uninitialized_guild_is_skipped(self, scheduler):
        assert schedule_module_events(scheduler, "ghost", [self._config()]) == []
        assert not has_active_event(scheduler, "ghost", ScheduledEventType.NEW_CONTRACTS)

    def test_filter_module_events(self, scheduler, guild, start_date):
        scheduler.initialize_timeline("other", start_date)
        mine = scheduler.schedule_event(guild, ScheduledEventType.NEW_CONTRACTS, start_date, "mine")
        scheduler.schedule_event(guild, ScheduledEventType.NEW_NOTICES, start_date, "not my type")
        result = scheduler.advance_day(guild)
        assert filter_module_events(result, [ScheduledEventType.NEW_CONTRACTS]) == [mine]
        assert filter_module_events(result, [ScheduledEventType.NEW_CONTRACTS], "other") == []


class TestTimelineModule:
    """A module reacting to time advances."""

    def test_dispatches_to_handlers_and_reschedules(self, scheduler, guild, start_date):
        on_contracts = MagicMock()
        on_expiry = MagicMock()
        reschedule = MagicMock()
        module = TimelineModule(
            scheduler,
            "contracts",
            handlers={
                ScheduledEventType.NEW_CONTRACTS: on_contracts,
                ScheduledEventType.CONTRACT_EXPIRATION: on_expiry,
            },
            reschedule=reschedule,
        )
        module.attach()

        posted = scheduler.schedule_event(guild, ScheduledEventType.NEW_CONTRACTS, add_days(start_date, 1), "post")
        scheduler.schedule_event(guild, ScheduledEventType.NEW_NOTICES, add_days(start_date, 1), "not ours")

        scheduler.advance_day(guild)

        on_contracts.assert_called_once_with(posted)
        on_expiry.assert_not_called()
        reschedule.assert_called_once_with(guild)

    def test_attach_twice_registers_once(self, scheduler, guild):
        reschedule = MagicMock()
        module = TimelineModule(scheduler, "m", handlers={}, reschedule=reschedule)
        module.attach()
        module.attach()
        assert scheduler.callback_count == 1

        scheduler.advance_day(guild)
        reschedule.assert_called_once()

    def test_detach(self, scheduler, guild):
        reschedule = MagicMock()
        module = TimelineModule(scheduler, "m", handlers={}, reschedule=reschedule)
        module.attach()
        module.detach()
        scheduler.advance_day(guild)
        reschedule.assert_not_called()

    def test_module_keeps_one_event_queued(self, scheduler, guild, start_date):
        """Handling an event and rescheduling keeps the cycle going."""
        handled = []
        config = ModuleEventConfig(
            event_type=ScheduledEventType.NEW_NOTICES,
            source="board",
            description="Notices",
            roll_days=2,
        )
        module = TimelineModule(
            scheduler,
            "notices",
            handlers={ScheduledEventType.NEW_NOTICES: handled.append},
        )
        module.reschedule = lambda guild_id: module.schedule_module_events(guild_id, [config])
        module.attach()
        module.schedule_module_events(guild, [config])

        for _ in range(6):
            scheduler.advance_day(guild)

        assert [e.date for e in handled] == [add_days(start_date, d) for d in (2, 4, 6)]
        assert len(scheduler.get_events(guild)) == 1

    def test_handler_failure_is_isolated_by_scheduler(self, scheduler, guild, start_date):
        module = TimelineModule(
            scheduler,
            "broken",
            handlers={ScheduledEventType.NEW_SERVICES: MagicMock(side_effect=RuntimeError("handler"))},
        )
        module.attach()
        survivor = MagicMock()
        scheduler.register_callback(survivor)
        scheduler.schedule_event(guild, ScheduledEventType.NEW_SERVICES, start_date, "x")

        scheduler.advance_day(guild)

        survivor.assert_called_once()
        assert len(scheduler.last_callback_errors) == 1

    def test_reschedule_runs_when_a_handler_fails(self, scheduler, guild, start_date):
        """A failing handler does not leave the module without its next event."""
        config = ModuleEventConfig(
            event_type=ScheduledEventType.NEW_SERVICES,
            source="services",
            description="Services",
            roll_days=3,
        )
        module = TimelineModule(
            scheduler,
            "services",
            handlers={ScheduledEventType.NEW_SERVICES: MagicMock(side_effect=RuntimeError("handler"))},
        )
        module.reschedule = lambda guild_id: module.schedule_module_events(guild_id, [config])
        module.attach()
        scheduler.schedule_event(guild, ScheduledEventType.NEW_SERVICES, start_date, "x", {"source": "services"})

        scheduler.advance_day(guild)

        assert len(scheduler.last_callback_errors) == 1
        queued = scheduler.get_events(guild, ScheduledEventType.NEW_SERVICES)
        assert [e.date for e in queued] == [add_days(start_date, 4)]
