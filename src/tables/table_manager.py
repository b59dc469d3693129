"""
Table management and resolution for the guild generators.

Resolves rolls against range tables with stackable modifiers, falls back
deterministically when a modified roll leaves the table, reports
structural problems in table definitions, and keeps a registry of named
tables.
"""

from typing import TYPE_CHECKING, Any, Callable, Iterable, Optional, Union
import logging

from src.data_models import DiceExpression, DiceRoller, RandomSource, parse_dice_notation
from src.tables.table_types import (
    MultiRollResult,
    RollModifier,
    RollTable,
    TableEmptyError,
    TableEntry,
    TableGap,
    TableInput,
    TableOverlap,
    TableRollResult,
    TableStatistics,
    TableValidation,
)

if TYPE_CHECKING:
    from src.observability.run_log import RunLog

logger = logging.getLogger(__name__)

DEFAULT_DIE = "1d20"

DEFAULT_MAX_UNIQUE_RESULTS = 19
# Roll-again entries allowed in one multi-roll before giving up
MAX_ROLL_AGAINS = 50

ModifierInput = Union[RollModifier, int]
RangeInput = Union[tuple[int, int], str, DiceExpression]


def _entries_of(table: TableInput) -> list[TableEntry[Any]]:
    if table is None:
        return []
    if isinstance(table, RollTable):
        return table.entries
    return list(table)


def _name_of(table: TableInput) -> str:
    if isinstance(table, RollTable):
        return table.name
    return "inline table"


def _normalize_modifiers(modifiers: Optional[Iterable[ModifierInput]]) -> list[RollModifier]:
    normalized = []
    for mod in modifiers or []:
        if isinstance(mod, RollModifier):
            normalized.append(mod)
        else:
            normalized.append(RollModifier(name="modifier", value=int(mod)))
    return normalized


def _range_bounds(expected_range: RangeInput) -> tuple[int, int]:
    if isinstance(expected_range, str):
        expected_range = parse_dice_notation(expected_range)
    if isinstance(expected_range, DiceExpression):
        return expected_range.min_total, expected_range.max_total
    low, high = expected_range
    return low, high


# =============================================================================
# TABLE DIAGNOSTICS
# =============================================================================


def find_overlaps(table: TableInput) -> list[TableOverlap]:
    """Every pair of entries whose ranges share a value, in table order."""
    entries = [(i, e) for i, e in enumerate(_entries_of(table)) if e.min <= e.max]
    overlaps = []
    for a in range(len(entries)):
        for b in range(a + 1, len(entries)):
            i, first = entries[a]
            j, second = entries[b]
            low = max(first.min, second.min)
            high = min(first.max, second.max)
            if low <= high:
                overlaps.append(TableOverlap(first_index=i, second_index=j, min=low, max=high))
    return overlaps


def find_gaps(table: TableInput) -> list[TableGap]:
    """Uncovered runs between the lowest min and the highest max."""
    entries = sorted(
        (e for e in _entries_of(table) if e.min <= e.max),
        key=lambda e: (e.min, e.max),
    )
    gaps = []
    covered_to: Optional[int] = None
    for entry in entries:
        if covered_to is not None and entry.min > covered_to + 1:
            gaps.append(TableGap(min=covered_to + 1, max=entry.min - 1))
        if covered_to is None or entry.max > covered_to:
            covered_to = entry.max
    return gaps


def table_statistics(table: TableInput) -> TableStatistics:
    """
    Compute coverage and frequency figures for a table.

    Raises:
        TableEmptyError: If the table has no entries
    """
    entries = _entries_of(table)
    if not entries:
        raise TableEmptyError()

    frequency: dict[str, int] = {}
    total_range_size = 0
    for entry in entries:
        size = max(entry.range_size, 0)
        key = repr(entry.result)
        frequency[key] = frequency.get(key, 0) + size
        total_range_size += size

    coverage_min = min(e.min for e in entries)
    coverage_max = max(e.max for e in entries)

    return TableStatistics(
        total_entries=len(entries),
        total_range=coverage_max - coverage_min + 1,
        average_range_size=total_range_size / len(entries),
        coverage_min=coverage_min,
        coverage_max=coverage_max,
        result_frequency=frequency,
    )


def validate_table(table: TableInput, expected_range: Optional[RangeInput] = None) -> TableValidation:
    """
    Report structural problems in a table without raising.

    Args:
        table: Entry list or RollTable
        expected_range: Optional (low, high) bounds or dice notation whose
            range the table is meant to cover exactly

    Returns:
        TableValidation with error strings for empty input, reversed
        ranges, overlaps, gaps and coverage mismatches, and warnings for
        entries lying wholly outside the expected range
    """
    entries = _entries_of(table)
    if not entries:
        return TableValidation(is_valid=False, errors=["Table is empty or undefined"])

    errors: list[str] = []
    warnings: list[str] = []

    for i, entry in enumerate(entries):
        if entry.min > entry.max:
            errors.append(f"Entry {i} has reversed range: min {entry.min} > max {entry.max}")

    for overlap in find_overlaps(entries):
        errors.append(
            f"Entries {overlap.first_index} and {overlap.second_index} overlap on {overlap.min}-{overlap.max}"
        )

    for gap in find_gaps(entries):
        errors.append(f"Gap in coverage: {gap.min}-{gap.max}")

    if expected_range is not None:
        low, high = _range_bounds(expected_range)
        valid_entries = [e for e in entries if e.min <= e.max]
        if valid_entries:
            start = min(e.min for e in valid_entries)
            end = max(e.max for e in valid_entries)
            if start != low:
                errors.append(f"Coverage starts at {start}, expected {low}")
            if end != high:
                errors.append(f"Coverage ends at {end}, expected {high}")
        for i, entry in enumerate(entries):
            if entry.min > entry.max:
                continue
            if entry.max < low or entry.min > high:
                warnings.append(
                    f"Entry {i} ({entry.min}-{entry.max}) lies outside the expected range {low}-{high}"
                )

    return TableValidation(is_valid=not errors, errors=errors, warnings=warnings)


# =============================================================================
# MULTI-ROLL HELPERS
# =============================================================================


def describe_result(result: Any) -> str:
    """Text for a table result, preferring its description when it has one."""
    if isinstance(result, dict) and "description" in result:
        return str(result["description"])
    description = getattr(result, "description", None)
    if isinstance(description, str):
        return description
    return str(result)


def format_combined_results(results: list[Any], roll_again_count: int = 0) -> str:
    """Join results as "A", "A E B" or "A, B E C"."""
    if not results:
        if roll_again_count > 0:
            return f'Rolou {roll_again_count} vezes "rolar duas vezes" sem resultados únicos'
        return "Nenhum resultado obtido"

    texts = [describe_result(r) for r in results]
    if len(texts) == 1:
        return texts[0]
    return f"{', '.join(texts[:-1])} E {texts[-1]}"


def text_roll_again_checker(trigger_text: str) -> Callable[[Any], bool]:
    """Roll again when the result's text contains trigger_text."""

    def check(result: Any) -> bool:
        return trigger_text in str(result)

    return check


def flag_roll_again_checker(flag: str) -> Callable[[Any], bool]:
    """Roll again when the result has a truthy flag (dict key or attribute)."""

    def check(result: Any) -> bool:
        if isinstance(result, dict):
            return bool(result.get(flag))
        return bool(getattr(result, flag, False))

    return check


# =============================================================================
# RESOLUTION
# =============================================================================


class TableResolver:
    """
    Resolves rolls against range tables and keeps a registry of named tables.

    Selection rule: the first entry (in table order) whose range contains
    the adjusted roll. When none does, the roll is clamped: above every
    entry it takes the entry with the highest max, below every entry the
    entry with the lowest min, and inside a gap the nearest entry (ties go
    to the earlier entry).
    """

    def __init__(
        self,
        dice_roller: Optional[DiceRoller] = None,
        run_log: Optional["RunLog"] = None,
    ):
        self._dice_roller = dice_roller or DiceRoller(run_log=run_log)
        self._run_log = run_log

        # Tables indexed by ID, in registration order
        self._tables: dict[str, RollTable[Any]] = {}

    @property
    def dice_roller(self) -> DiceRoller:
        return self._dice_roller

    # -------------------------------------------------------------------------
    # Registry
    # -------------------------------------------------------------------------

    def register_table(self, table: RollTable[Any]) -> None:
        """Register a table, replacing any table with the same ID."""
        if table.table_id in self._tables:
            logger.debug(f"Replacing table {table.table_id}")
        self._tables[table.table_id] = table
        logger.debug(f"Registered table {table.table_id} ({len(table.entries)} entries, {table.die})")

    def get_table(self, table_id: str) -> Optional[RollTable[Any]]:
        return self._tables.get(table_id)

    def list_tables(self) -> list[str]:
        return list(self._tables)

    def roll_table(
        self,
        table_id: str,
        modifiers: Optional[Iterable[ModifierInput]] = None,
        context: str = "",
    ) -> TableRollResult[Any]:
        """
        Roll on a registered table.

        Raises:
            KeyError: If no table is registered under table_id
        """
        table = self._tables.get(table_id)
        if table is None:
            raise KeyError(f"Unknown table: {table_id}")
        return self.resolve(table, modifiers=modifiers, context=context)

    # -------------------------------------------------------------------------
    # Resolution
    # -------------------------------------------------------------------------

    def lookup(self, table: TableInput, value: int) -> tuple[TableEntry[Any], bool]:
        """
        Select the entry for a value without rolling.

        Returns:
            Tuple of (entry, clamped)

        Raises:
            TableEmptyError: If the table is empty or None
        """
        entries = _entries_of(table)
        if not entries:
            raise TableEmptyError()

        for entry in entries:
            if entry.matches_roll(value):
                return entry, False

        if all(value > e.max for e in entries):
            # max() keeps the first of equal keys, so ties go by table order
            return max(entries, key=lambda e: e.max), True

        if all(value < e.min for e in entries):
            return min(entries, key=lambda e: e.min), True

        nearest = min(entries, key=lambda e: e.distance_to(value))
        logger.warning(
            f"Value {value} falls in a gap of {_name_of(table)}; "
            f"using nearest entry {nearest.min}-{nearest.max}"
        )
        return nearest, True

    def resolve(
        self,
        table: TableInput,
        modifiers: Optional[Iterable[ModifierInput]] = None,
        die: Optional[str] = None,
        context: str = "",
    ) -> TableRollResult[Any]:
        """
        Roll on a table and select the matching entry.

        Args:
            table: Entry list or RollTable
            modifiers: RollModifier objects (or plain ints) summed onto the roll
            die: Dice notation for the base roll. Defaults to the RollTable's
                die, or 1d20 for a bare entry list.
            context: Why this roll is being made (for logging)

        Returns:
            TableRollResult with the base roll, adjusted roll and selected entry

        Raises:
            TableEmptyError: If the table is empty or None
        """
        if not _entries_of(table):
            raise TableEmptyError()

        if die is None:
            die = table.die if isinstance(table, RollTable) else DEFAULT_DIE

        applied = _normalize_modifiers(modifiers)
        table_name = _name_of(table)

        base = self._dice_roller.roll(die, context or f"table: {table_name}").result
        total_modifier = sum(m.value for m in applied)
        adjusted = base + total_modifier

        entry, clamped = self.lookup(table, adjusted)
        if clamped:
            logger.info(f"Roll {adjusted} on {table_name} clamped to entry {entry.min}-{entry.max}")

        result = TableRollResult(
            roll=base,
            modifiers=applied,
            result=entry.result,
            matched_entry=entry,
            adjusted_roll=adjusted,
            clamped=clamped,
        )

        if self._run_log is not None:
            self._run_log.log_table_lookup(
                table_name=table_name,
                base_roll=base,
                adjusted_roll=adjusted,
                result_text=str(entry.result),
                modifier_applied=total_modifier,
                clamped=clamped,
            )

        return result

    # -------------------------------------------------------------------------
    # Multiple rolls
    # -------------------------------------------------------------------------

    def handle_multiple_rolls(
        self,
        table: TableInput,
        should_roll_again: Callable[[Any], bool],
        context: str = "Multi-roll",
        max_unique_results: int = DEFAULT_MAX_UNIQUE_RESULTS,
    ) -> MultiRollResult[Any]:
        """
        Roll on a table whose entries may say "roll twice and use both".

        Each roll-again result queues two more rolls; any other result is
        kept once, in the order first rolled. Rolling stops when no rolls
        are pending, when max_unique_results distinct results are collected,
        or after MAX_ROLL_AGAINS roll-agains.

        Args:
            table: Entry list or RollTable, rolled without modifiers
            should_roll_again: True for results that mean "roll again"
            context: Prefix for each roll's context
            max_unique_results: Stop once this many distinct results exist
        """
        results: list[Any] = []
        roll_again_count = 0
        total_rolls = 0
        pending = 1

        while pending > 0 and len(results) < max_unique_results:
            total_rolls += 1
            pending -= 1

            rolled = self.resolve(table, context=f"{context} - roll {total_rolls}").result

            if should_roll_again(rolled):
                roll_again_count += 1
                pending += 2
                if roll_again_count > MAX_ROLL_AGAINS:
                    logger.warning(
                        f"{context}: stopped after {roll_again_count} roll-again results on {_name_of(table)}"
                    )
                    break
            elif rolled not in results:
                results.append(rolled)

        logger.debug(f"{context}: {len(results)} results from {total_rolls} rolls ({roll_again_count} roll-agains)")

        return MultiRollResult(
            results=results,
            roll_again_count=roll_again_count,
            total_rolls=total_rolls,
            combined_description=format_combined_results(results, roll_again_count),
        )

    def roll_multiple_with_combining(
        self,
        table: TableInput,
        should_roll_again: Callable[[Any], bool],
        context: str = "Multi-roll",
        max_unique_results: int = DEFAULT_MAX_UNIQUE_RESULTS,
    ) -> str:
        """handle_multiple_rolls, returning only the combined description."""
        return self.handle_multiple_rolls(table, should_roll_again, context, max_unique_results).combined_description

    # -------------------------------------------------------------------------
    # Diagnostics
    # -------------------------------------------------------------------------

    def validate(self, table: TableInput, expected_range: Optional[RangeInput] = None) -> TableValidation:
        """Report structural problems in a table. Never raises."""
        return validate_table(table, expected_range)

    def find_overlaps(self, table: TableInput) -> list[TableOverlap]:
        return find_overlaps(table)

    def find_gaps(self, table: TableInput) -> list[TableGap]:
        return find_gaps(table)

    def table_statistics(self, table: TableInput) -> TableStatistics:
        return table_statistics(table)


def roll_on_table(
    table: TableInput,
    modifiers: Optional[Iterable[ModifierInput]] = None,
    random_source: Optional[RandomSource] = None,
    die: Optional[str] = None,
) -> TableRollResult[Any]:
    """One-off resolution without keeping a resolver around."""
    resolver = TableResolver(dice_roller=DiceRoller(random_source=random_source))
    return resolver.resolve(table, modifiers=modifiers, die=die)
