"""
Table type definitions for range-table resolution.

A table is an ordered list of entries, each covering an inclusive roll
range and carrying an arbitrary result payload. Generators resolve their
attributes by rolling on these tables with stackable numeric modifiers.
"""

from dataclasses import dataclass, field
from typing import Any, Generic, Optional, TypeVar, Union


T = TypeVar("T")


class TableEmptyError(ValueError):
    """Raised when resolving against an empty or missing table."""

    def __init__(self, message: str = "Table is empty or undefined"):
        super().__init__(message)


@dataclass
class TableEntry(Generic[T]):
    """
    A single entry in a range table.

    Attributes:
        min: Lowest roll selecting this entry (inclusive)
        max: Highest roll selecting this entry (inclusive)
        result: Payload returned when the entry is selected
        description: Optional human-readable note
    """

    min: int
    max: int
    result: T
    description: Optional[str] = None

    def matches_roll(self, roll: int) -> bool:
        """Check if a roll value falls within this entry's range."""
        return self.min <= roll <= self.max

    def distance_to(self, value: int) -> int:
        """Distance from a value to the nearest bound of this entry."""
        return min(abs(self.min - value), abs(self.max - value))

    @property
    def range_size(self) -> int:
        return self.max - self.min + 1

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"min": self.min, "max": self.max, "result": self.result}
        if self.description is not None:
            data["description"] = self.description
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TableEntry[Any]":
        return cls(
            min=data["min"],
            max=data["max"],
            result=data.get("result"),
            description=data.get("description"),
        )


@dataclass
class RollModifier:
    """A named numeric adjustment added to the base roll."""

    name: str
    value: int
    description: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"name": self.name, "value": self.value}
        if self.description is not None:
            data["description"] = self.description
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RollModifier":
        return cls(name=data["name"], value=data["value"], description=data.get("description"))


@dataclass
class RollTable(Generic[T]):
    """
    A named table kept in a resolver's registry.

    The die is rolled for the base value; entries should cover the die's
    range without gaps.
    """

    table_id: str
    name: str
    entries: list[TableEntry[T]] = field(default_factory=list)
    die: str = "1d20"
    description: str = ""

    def __len__(self) -> int:
        return len(self.entries)

    def to_dict(self) -> dict[str, Any]:
        return {
            "table_id": self.table_id,
            "name": self.name,
            "die": self.die,
            "description": self.description,
            "entries": [e.to_dict() for e in self.entries],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RollTable[Any]":
        return cls(
            table_id=data["table_id"],
            name=data.get("name", data["table_id"]),
            entries=[TableEntry.from_dict(e) for e in data.get("entries", [])],
            die=data.get("die", "1d20"),
            description=data.get("description", ""),
        )


# A table argument is either a bare entry list or a registered table
TableInput = Union[list[TableEntry[Any]], RollTable[Any], None]


@dataclass
class TableRollResult(Generic[T]):
    """
    Result of resolving a roll against a table.

    Attributes:
        roll: Base roll before modifiers
        modifiers: Modifiers applied, in the order given
        result: Payload of the selected entry
        matched_entry: The selected entry
        adjusted_roll: roll plus the sum of modifier values
        clamped: True if no entry contained adjusted_roll and a fallback
            entry was selected
    """

    roll: int
    modifiers: list[RollModifier]
    result: T
    matched_entry: TableEntry[T]
    adjusted_roll: int
    clamped: bool = False

    @property
    def total_modifier(self) -> int:
        return sum(m.value for m in self.modifiers)

    def to_dict(self) -> dict[str, Any]:
        return {
            "roll": self.roll,
            "modifiers": [m.to_dict() for m in self.modifiers],
            "result": self.result,
            "matched_entry": self.matched_entry.to_dict(),
            "adjusted_roll": self.adjusted_roll,
            "clamped": self.clamped,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TableRollResult[Any]":
        return cls(
            roll=data["roll"],
            modifiers=[RollModifier.from_dict(m) for m in data.get("modifiers", [])],
            result=data.get("result"),
            matched_entry=TableEntry.from_dict(data["matched_entry"]),
            adjusted_roll=data["adjusted_roll"],
            clamped=data.get("clamped", False),
        )


@dataclass
class TableValidation:
    """Diagnostic report produced by table validation."""

    is_valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "is_valid": self.is_valid,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
        }


@dataclass
class TableOverlap:
    """Two entries whose ranges share at least one value."""

    first_index: int
    second_index: int
    min: int
    max: int


@dataclass
class TableGap:
    """A run of values between entries that no entry covers."""

    min: int
    max: int


@dataclass
class TableStatistics:
    """Summary figures for a table."""

    total_entries: int
    total_range: int
    average_range_size: float
    coverage_min: int
    coverage_max: int
    # Number of roll values mapping to each result, keyed by repr(result)
    result_frequency: dict[str, int] = field(default_factory=dict)


@dataclass
class MultiRollResult(Generic[T]):
    """
    Outcome of rolling on a table that can say "roll twice and use both".

    Attributes:
        results: Unique results in the order they were first rolled
        roll_again_count: How many roll-again entries came up
        total_rolls: Rolls made, roll-agains included
        combined_description: Results joined as "A, B E C"
    """

    results: list[T] = field(default_factory=list)
    roll_again_count: int = 0
    total_rolls: int = 0
    combined_description: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "results": list(self.results),
            "roll_again_count": self.roll_again_count,
            "total_rolls": self.total_rolls,
            "combined_description": self.combined_description,
        }
