"""
Tests for range-table resolution, diagnostics and the table registry.
"""

import pytest

from src.tables.table_manager import (
    MAX_ROLL_AGAINS,
    TableResolver,
    describe_result,
    flag_roll_again_checker,
    format_combined_results,
    text_roll_again_checker,
    find_gaps,
    find_overlaps,
    roll_on_table,
    table_statistics,
    validate_table,
)
from src.tables.table_types import (
    RollModifier,
    RollTable,
    TableEmptyError,
    TableEntry,
    TableRollResult,
)
from src.data_models import DiceRoller, seeded_random_source
from tests.helpers import MaxRandomSource, SequenceRandomSource


class TestResolve:
    """Tests for TableResolver.resolve."""

    def test_always_returns_a_table_result(self, level_table):
        """Over many seeded rolls, results and base rolls stay in range."""
        resolver = TableResolver(dice_roller=DiceRoller(random_source=seeded_random_source(7)))
        for _ in range(300):
            result = resolver.resolve(level_table)
            assert result.result in {"Low", "Medium", "High"}
            assert 1 <= result.roll <= 20
            assert result.matched_entry.matches_roll(result.adjusted_roll)
            assert not result.clamped

    @pytest.mark.parametrize(
        "roll,expected",
        [(1, "Low"), (5, "Low"), (6, "Medium"), (15, "Medium"), (16, "High"), (20, "High")],
    )
    def test_range_boundaries_are_inclusive(self, resolver_for, level_table, roll, expected):
        """Both ends of an entry's range select it."""
        assert resolver_for(roll).resolve(level_table).result == expected

    def test_modifiers_are_summed(self, resolver_for, level_table):
        """adjusted_roll is the base plus every modifier."""
        modifiers = [RollModifier("reputation", 3), RollModifier("staff", 2)]
        result = resolver_for(4).resolve(level_table, modifiers)
        assert result.roll == 4
        assert result.adjusted_roll == 9
        assert result.total_modifier == 5
        assert result.result == "Medium"
        assert result.modifiers == modifiers

    def test_plain_int_modifiers(self, resolver_for, level_table):
        """Bare ints are accepted as modifiers."""
        assert resolver_for(5).resolve(level_table, [1]).result == "Medium"

    def test_clamp_high(self, resolver_for, level_table):
        """Overshooting every max selects the entry with the highest max."""
        result = resolver_for(18).resolve(level_table, [RollModifier("bonus", 10)])
        assert result.adjusted_roll == 28
        assert result.result == "High"
        assert result.clamped

    def test_clamp_low(self, resolver_for, level_table):
        """Undershooting every min selects the entry with the lowest min."""
        result = resolver_for(2).resolve(level_table, [RollModifier("reduction", -6)])
        assert result.adjusted_roll == -4
        assert result.result == "Low"
        assert result.clamped

    def test_clamp_uses_range_not_table_order(self, resolver_for):
        """Clamping picks by bounds even when entries are listed out of order."""
        table = [
            TableEntry(min=11, max=20, result="top"),
            TableEntry(min=1, max=10, result="bottom"),
        ]
        assert resolver_for(1).resolve(table, [-5]).result == "bottom"
        assert resolver_for(20).resolve(table, [5]).result == "top"

    def test_first_matching_entry_wins_on_overlap(self, resolver_for):
        """Overlapping entries resolve to the earlier one."""
        table = [
            TableEntry(min=1, max=10, result="first"),
            TableEntry(min=5, max=20, result="second"),
        ]
        assert resolver_for(7).resolve(table).result == "first"

    def test_custom_die(self, resolver_for):
        """A different die is rolled when requested."""
        source = SequenceRandomSource([50])
        resolver = TableResolver(dice_roller=DiceRoller(random_source=source))
        table = [TableEntry(min=1, max=100, result="any")]
        result = resolver.resolve(table, die="1d100")
        assert result.roll == 50
        assert source.requested_sides == [100]

    def test_roll_table_uses_its_die(self):
        """A RollTable's die is used when none is given."""
        source = SequenceRandomSource([3, 4])
        resolver = TableResolver(dice_roller=DiceRoller(random_source=source))
        table = RollTable(
            table_id="reaction",
            name="Reaction",
            die="2d6",
            entries=[TableEntry(min=2, max=6, result="hostile"), TableEntry(min=7, max=12, result="friendly")],
        )
        assert resolver.resolve(table).result == "friendly"
        assert source.requested_sides == [6, 6]

    def test_empty_table_raises(self):
        """Resolving an empty or missing table fails."""
        resolver = TableResolver()
        with pytest.raises(TableEmptyError, match="Table is empty or undefined"):
            resolver.resolve([])
        with pytest.raises(TableEmptyError):
            resolver.resolve(None)

    def test_structured_results(self, resolver_for):
        """Entry payloads can be any value."""
        table = [TableEntry(min=1, max=20, result={"reward": 100}, description="flat")]
        result = resolver_for(9).resolve(table)
        assert result.result == {"reward": 100}
        assert result.matched_entry.description == "flat"

    def test_result_serializes(self, resolver_for, level_table):
        """TableRollResult round-trips through plain data."""
        result = resolver_for(12).resolve(level_table, [RollModifier("x", 1, "note")])
        restored = TableRollResult.from_dict(result.to_dict())
        assert restored == result

    def test_lookup_reports_to_run_log(self, run_log, level_table):
        """A resolver given a RunLog records the table lookup."""
        resolver = TableResolver(
            dice_roller=DiceRoller(random_source=SequenceRandomSource([19])),
            run_log=run_log,
        )
        resolver.resolve(level_table, [RollModifier("bonus", 5)])

        lookups = run_log.get_table_lookups()
        assert len(lookups) == 1
        assert lookups[0].base_roll == 19
        assert lookups[0].adjusted_roll == 24
        assert lookups[0].result_text == "High"
        assert lookups[0].clamped

    def test_roll_on_table_helper(self, level_table):
        """Module-level helper takes a random source."""
        result = roll_on_table(level_table, [2], random_source=SequenceRandomSource([14]))
        assert result.result == "High"


class TestGapResolution:
    """Tables with an intentional gap resolve to the nearest entry."""

    def test_value_in_gap_goes_to_nearest_entry(self, resolver_for, gap_table):
        """7 is 2 from Low (max 5) and 3 from Medium (min 10)."""
        result = resolver_for(7).resolve(gap_table)
        assert result.result == "Low"
        assert result.clamped

    def test_value_nearer_upper_entry(self, resolver_for, gap_table):
        """9 is nearer Medium."""
        assert resolver_for(9).resolve(gap_table).result == "Medium"

    def test_tie_goes_to_earlier_entry(self, resolver_for):
        """Equidistant values select the entry listed first."""
        table = [TableEntry(min=1, max=4, result="a"), TableEntry(min=8, max=10, result="b")]
        assert resolver_for(6).resolve(table).result == "a"

    def test_gap_is_logged_as_warning(self, resolver_for, gap_table, caplog):
        """Resolving inside a gap is flagged in the log."""
        with caplog.at_level("WARNING"):
            resolver_for(8).resolve(gap_table)
        assert "gap" in caplog.text

    def test_lookup_without_rolling(self, gap_table):
        """lookup selects deterministically and reports clamping."""
        resolver = TableResolver()
        assert resolver.lookup(gap_table, 12) == (gap_table[1], False)
        assert resolver.lookup(gap_table, 8) == (gap_table[1], True)


class TestValidate:
    """Tests for table diagnostics."""

    def test_well_formed_table(self, level_table):
        """A contiguous table is valid."""
        report = validate_table(level_table, expected_range="1d20")
        assert report.is_valid
        assert report.errors == []
        assert report.warnings == []

    def test_empty_table(self):
        """Empty and None tables report the empty error without raising."""
        for table in ([], None):
            report = TableResolver().validate(table)
            assert not report.is_valid
            assert report.errors == ["Table is empty or undefined"]

    def test_reversed_range(self):
        """min > max is reported."""
        report = validate_table([TableEntry(min=1, max=10, result="a"), TableEntry(min=20, max=11, result="b")])
        assert not report.is_valid
        assert "Entry 1 has reversed range: min 20 > max 11" in report.errors

    def test_overlap(self):
        """Overlapping ranges are reported with the shared values."""
        report = validate_table([TableEntry(min=1, max=10, result="a"), TableEntry(min=8, max=20, result="b")])
        assert "Entries 0 and 1 overlap on 8-10" in report.errors

    def test_gap(self, gap_table):
        """Uncovered values are reported."""
        report = validate_table(gap_table)
        assert not report.is_valid
        assert report.errors == ["Gap in coverage: 6-9"]

    def test_coverage_against_expected_range(self):
        """Coverage must start and end on the expected bounds."""
        table = [TableEntry(min=2, max=10, result="a"), TableEntry(min=11, max=18, result="b")]
        report = validate_table(table, expected_range=(1, 20))
        assert "Coverage starts at 2, expected 1" in report.errors
        assert "Coverage ends at 18, expected 20" in report.errors

    def test_entry_outside_expected_range_is_warning(self):
        """Overflow entries for modified rolls are warned about."""
        table = [
            TableEntry(min=1, max=20, result="normal"),
            TableEntry(min=21, max=999, result="overflow"),
        ]
        report = validate_table(table, expected_range="1d20")
        assert "Entry 1 (21-999) lies outside the expected range 1-20" in report.warnings
        assert "Coverage ends at 999, expected 20" in report.errors

    def test_find_overlaps_and_gaps(self):
        """Helpers return structured findings."""
        table = [
            TableEntry(min=1, max=5, result="a"),
            TableEntry(min=4, max=6, result="b"),
            TableEntry(min=10, max=12, result="c"),
        ]
        overlaps = find_overlaps(table)
        assert len(overlaps) == 1
        assert (overlaps[0].first_index, overlaps[0].second_index) == (0, 1)
        assert (overlaps[0].min, overlaps[0].max) == (4, 5)

        gaps = find_gaps(table)
        assert [(g.min, g.max) for g in gaps] == [(7, 9)]

    def test_statistics(self, level_table):
        """Statistics count coverage and frequency per result."""
        stats = table_statistics(level_table + [TableEntry(min=21, max=22, result="Low")])
        assert stats.total_entries == 4
        assert stats.coverage_min == 1
        assert stats.coverage_max == 22
        assert stats.total_range == 22
        assert stats.result_frequency["'Low'"] == 7
        assert stats.average_range_size == 22 / 4

    def test_statistics_empty(self):
        """Statistics need entries."""
        with pytest.raises(TableEmptyError):
            table_statistics([])


class TestRegistry:
    """Tests for the table registry."""

    def test_register_and_roll(self):
        """Registered tables can be rolled by id."""
        resolver = TableResolver(dice_roller=DiceRoller(random_source=SequenceRandomSource([2])))
        table = RollTable(
            table_id="size",
            name="Size",
            die="1d4",
            entries=[TableEntry(min=1, max=2, result="small"), TableEntry(min=3, max=4, result="large")],
        )
        resolver.register_table(table)

        assert resolver.get_table("size") is table
        assert resolver.list_tables() == ["size"]
        assert resolver.roll_table("size").result == "small"

    def test_unknown_table(self):
        """Rolling an unregistered id raises KeyError."""
        resolver = TableResolver()
        assert resolver.get_table("missing") is None
        with pytest.raises(KeyError):
            resolver.roll_table("missing")

    def test_roll_table_serializes(self):
        """RollTable round-trips through plain data."""
        table = RollTable(
            table_id="t",
            name="T",
            entries=[TableEntry(min=1, max=20, result="x", description="all")],
            description="single entry",
        )
        assert RollTable.from_dict(table.to_dict()) == table


COMPLICATIONS = [
    TableEntry(min=1, max=5, result="Bandidos"),
    TableEntry(min=6, max=10, result="Tempestade"),
    TableEntry(min=11, max=15, result="Traição"),
    TableEntry(min=16, max=20, result="Role duas vezes e use ambos"),
]

roll_twice = text_roll_again_checker("Role duas vezes")


class TestMultipleRolls:
    """Tables with a "roll twice and use both" entry."""

    def _resolver(self, *values):
        source = SequenceRandomSource(values)
        return TableResolver(dice_roller=DiceRoller(random_source=source)), source

    def test_single_result(self):
        resolver, _ = self._resolver(3)
        result = resolver.handle_multiple_rolls(COMPLICATIONS, roll_twice)
        assert result.results == ["Bandidos"]
        assert result.total_rolls == 1
        assert result.roll_again_count == 0
        assert result.combined_description == "Bandidos"

    def test_roll_again_adds_two_rolls(self):
        resolver, source = self._resolver(18, 3, 7)
        result = resolver.handle_multiple_rolls(COMPLICATIONS, roll_twice)
        assert result.results == ["Bandidos", "Tempestade"]
        assert result.roll_again_count == 1
        assert result.total_rolls == 3
        assert result.combined_description == "Bandidos E Tempestade"
        assert source.remaining == 0

    def test_nested_roll_again(self):
        """Two roll-agains in a row leave three rolls pending."""
        resolver, source = self._resolver(18, 18, 3, 7, 12)
        result = resolver.handle_multiple_rolls(COMPLICATIONS, roll_twice)
        assert result.results == ["Bandidos", "Tempestade", "Traição"]
        assert result.total_rolls == 5
        assert result.combined_description == "Bandidos, Tempestade E Traição"
        assert source.remaining == 0

    def test_duplicates_are_kept_once(self):
        resolver, _ = self._resolver(18, 3, 4)
        result = resolver.handle_multiple_rolls(COMPLICATIONS, roll_twice)
        assert result.results == ["Bandidos"]
        assert result.total_rolls == 3

    def test_max_unique_results_stops_early(self):
        resolver, source = self._resolver(18, 18, 3, 7, 12)
        result = resolver.handle_multiple_rolls(COMPLICATIONS, roll_twice, max_unique_results=2)
        assert result.results == ["Bandidos", "Tempestade"]
        assert result.total_rolls == 4
        assert source.remaining == 1

    def test_endless_roll_again_is_capped(self, caplog):
        resolver = TableResolver(dice_roller=DiceRoller(random_source=MaxRandomSource()))
        with caplog.at_level("WARNING"):
            result = resolver.handle_multiple_rolls(COMPLICATIONS, roll_twice, context="Complications")
        assert result.results == []
        assert result.roll_again_count == MAX_ROLL_AGAINS + 1
        assert result.total_rolls == MAX_ROLL_AGAINS + 1
        assert "Complications: stopped after" in caplog.text
        assert result.combined_description.startswith(f"Rolou {MAX_ROLL_AGAINS + 1} vezes")

    def test_flag_checker_and_descriptions(self):
        """Structured results use their description in the combined text."""
        table = [
            TableEntry(min=1, max=10, result={"description": "Rival ambicioso", "roll_again": False}),
            TableEntry(min=11, max=18, result={"description": "Nobre corrupto", "roll_again": False}),
            TableEntry(min=19, max=20, result={"description": "Dois antagonistas", "roll_again": True}),
        ]
        resolver, _ = self._resolver(20, 5, 12)
        result = resolver.handle_multiple_rolls(table, flag_roll_again_checker("roll_again"))
        assert [r["description"] for r in result.results] == ["Rival ambicioso", "Nobre corrupto"]
        assert result.combined_description == "Rival ambicioso E Nobre corrupto"

    def test_roll_multiple_with_combining(self):
        resolver, _ = self._resolver(16, 11, 1)
        assert resolver.roll_multiple_with_combining(COMPLICATIONS, roll_twice) == "Traição E Bandidos"

    def test_to_dict(self):
        resolver, _ = self._resolver(18, 3, 7)
        data = resolver.handle_multiple_rolls(COMPLICATIONS, roll_twice).to_dict()
        assert data == {
            "results": ["Bandidos", "Tempestade"],
            "roll_again_count": 1,
            "total_rolls": 3,
            "combined_description": "Bandidos E Tempestade",
        }

    def test_format_combined_results_without_results(self):
        assert format_combined_results([]) == "Nenhum resultado obtido"

    def test_describe_result(self):
        assert describe_result(RollModifier("x", 1, "described")) == "described"
        assert describe_result(42) == "42"
