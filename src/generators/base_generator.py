"""
Base class for procedural content generators.

Subclasses implement _do_generate(); generate() wraps it with a message log
so every roll, table lookup and modifier that shaped the result can be
shown afterwards.
"""

from abc import ABC, abstractmethod
from typing import Any, Generic, Iterable, Optional, TypeVar
import logging

from src.data_models import DiceInput, DiceResult, DiceRoller
from src.tables.table_manager import ModifierInput, TableResolver
from src.tables.table_types import TableInput, TableRollResult

logger = logging.getLogger(__name__)

TResult = TypeVar("TResult")


class BaseGenerator(ABC, Generic[TResult]):
    """
    Abstract generator with logged rolls.

    Args:
        dice_roller: Roller used for every roll. Shared with the resolver
            when no resolver is given.
        resolver: Table resolver for table lookups
        name: Name shown in the log; defaults to the class name
    """

    def __init__(
        self,
        dice_roller: Optional[DiceRoller] = None,
        resolver: Optional[TableResolver] = None,
        name: Optional[str] = None,
    ):
        self.dice_roller = dice_roller or (resolver.dice_roller if resolver else DiceRoller())
        self.resolver = resolver or TableResolver(dice_roller=self.dice_roller)
        self.name = name or type(self).__name__
        self._logs: list[str] = []

    def generate(self) -> TResult:
        """Run one generation with a fresh message log."""
        self._logs = []
        self.log(f"Starting generation: {self.name}")
        try:
            result = self._do_generate()
        except Exception as e:
            self.log(f"Generation failed: {e}")
            raise
        self.log("Generation completed successfully")
        return result

    @abstractmethod
    def _do_generate(self) -> TResult:
        """Produce the generated content."""
        pass

    def log(self, message: str, category: str = "GENERATOR") -> None:
        entry = f"[{category}] {message}"
        self._logs.append(entry)
        logger.debug(f"{self.name}: {entry}")

    def get_logs(self) -> list[str]:
        return self._logs.copy()

    def roll_with_log(self, dice: DiceInput, description: str, category: str = "ROLL") -> DiceResult:
        """Roll and record '<description>: <notation> = <result>'."""
        roll = self.dice_roller.roll(dice, description)
        self.log(f"{description}: {roll.notation} = {roll.result}", category)
        return roll

    def resolve_with_log(
        self,
        table: TableInput,
        description: str,
        modifiers: Optional[Iterable[ModifierInput]] = None,
        die: Optional[str] = None,
    ) -> TableRollResult[Any]:
        """Resolve a table roll and record the roll, adjustment and result."""
        result = self.resolver.resolve(table, modifiers=modifiers, die=die, context=description)
        adjusted = f" -> {result.adjusted_roll}" if result.adjusted_roll != result.roll else ""
        clamped = " (clamped)" if result.clamped else ""
        self.log(f"{description}: {result.roll}{adjusted} = {result.result}{clamped}", "TABLE")
        return result

    def apply_modifier(self, base_value: int, modifier: int, description: str) -> int:
        """Add a modifier, recording it when it is non-zero."""
        final_value = base_value + modifier
        if modifier != 0:
            self.log(f"{description}: {base_value} {modifier:+d} = {final_value}", "MODIFIER")
        return final_value
