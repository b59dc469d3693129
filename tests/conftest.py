"""
Pytest fixtures for the Guild Chronicle test suite.

Provides deterministic dice rollers, resolvers, a fresh scheduler per test
with explicit teardown, and common tables and dates.
"""

import pytest

from src.data_models import DiceRoller, seeded_random_source
from src.observability.run_log import RunLog
from src.tables.table_manager import TableResolver
from src.tables.table_types import TableEntry
from src.timeline.calendar import GameDate
from src.timeline.scheduler import TimelineScheduler

from tests.helpers import SequenceRandomSource


# =============================================================================
# DICE FIXTURES
# =============================================================================


@pytest.fixture
def seeded_dice():
    """Provide a seeded DiceRoller for reproducible tests."""
    return DiceRoller(random_source=seeded_random_source(42))


@pytest.fixture
def fixed_dice():
    """DiceRoller factory whose draws come from a fixed sequence."""

    def make(*values: int) -> DiceRoller:
        return DiceRoller(random_source=SequenceRandomSource(values))

    return make


@pytest.fixture
def run_log():
    """A fresh RunLog."""
    return RunLog()


# =============================================================================
# TABLE FIXTURES
# =============================================================================


@pytest.fixture
def level_table():
    """Contiguous d20 table: Low / Medium / High."""
    return [
        TableEntry(min=1, max=5, result="Low"),
        TableEntry(min=6, max=15, result="Medium"),
        TableEntry(min=16, max=20, result="High"),
    ]


@pytest.fixture
def gap_table():
    """d20 table with an intentional gap at 6-9."""
    return [
        TableEntry(min=1, max=5, result="Low"),
        TableEntry(min=10, max=15, result="Medium"),
        TableEntry(min=16, max=20, result="High"),
    ]


@pytest.fixture
def resolver_for(fixed_dice):
    """TableResolver factory rolling a fixed sequence."""

    def make(*values: int) -> TableResolver:
        return TableResolver(dice_roller=fixed_dice(*values))

    return make


# =============================================================================
# TIMELINE FIXTURES
# =============================================================================


@pytest.fixture
def start_date():
    """Default game date for testing."""
    return GameDate(year=1000, month=1, day=1)


@pytest.fixture
def scheduler():
    """Fresh scheduler, reset at teardown so no callbacks leak between tests."""
    timeline = TimelineScheduler()
    yield timeline
    timeline.reset()


@pytest.fixture
def guild(scheduler, start_date):
    """Guild id with an initialized timeline."""
    scheduler.initialize_timeline("test-guild", start_date)
    return "test-guild"
