"""
Range tables and resolution for the guild generators.

This module provides:
- Table entry, modifier and result types
- Roll resolution with deterministic clamping
- Table diagnostics (reversed ranges, overlaps, gaps, coverage)
- "Roll twice and use both" multi-rolls
- A registry of named tables
"""

from src.tables.table_types import (
    TableEmptyError,
    TableEntry,
    RollModifier,
    RollTable,
    TableRollResult,
    TableValidation,
    TableOverlap,
    TableGap,
    TableStatistics,
    MultiRollResult,
)
from src.tables.table_manager import (
    TableResolver,
    roll_on_table,
    validate_table,
    find_overlaps,
    find_gaps,
    table_statistics,
    describe_result,
    format_combined_results,
    text_roll_again_checker,
    flag_roll_again_checker,
)

__all__ = [
    # Types
    "TableEmptyError",
    "TableEntry",
    "RollModifier",
    "RollTable",
    "TableRollResult",
    "TableValidation",
    "TableOverlap",
    "TableGap",
    "TableStatistics",
    "MultiRollResult",
    # Resolution
    "TableResolver",
    "roll_on_table",
    "validate_table",
    "find_overlaps",
    "find_gaps",
    "table_statistics",
    # Multiple rolls
    "describe_result",
    "format_combined_results",
    "text_roll_again_checker",
    "flag_roll_again_checker",
]
