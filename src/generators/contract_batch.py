"""
Contract batch generator.

Decides how many new contracts a guild posts and how long each one stays
open, then feeds the deadlines into the guild's timeline.
"""

from dataclasses import dataclass, field
from typing import Any, Optional

from src.data_models import DiceInput
from src.generators.base_generator import BaseGenerator
from src.tables.table_types import RollModifier, RollTable, TableEntry, TableRollResult
from src.timeline.module_integration import convert_time_string_to_days

# Number of contracts on offer (1d20). Results are dice to roll, or a constant.
CONTRACT_QUANTITY_TABLE: RollTable[DiceInput] = RollTable(
    table_id="contract_quantity",
    name="Contract Quantity",
    die="1d20",
    entries=[
        TableEntry(min=1, max=4, result=1),
        TableEntry(min=5, max=6, result="1d4"),
        TableEntry(min=7, max=9, result="1d4+1"),
        TableEntry(min=10, max=10, result="1d6"),
        TableEntry(min=11, max=11, result="1d6+1"),
        TableEntry(min=12, max=13, result="2d6"),
        TableEntry(min=14, max=16, result="2d6+1"),
        TableEntry(min=17, max=18, result="3d6"),
        TableEntry(min=19, max=19, result="3d6+1"),
        TableEntry(min=20, max=20, result="4d6"),
        TableEntry(min=21, max=999, result="5d6", description="21+"),
    ],
)

# Time to complete a contract (1d20). None means no deadline.
CONTRACT_DEADLINE_TABLE: RollTable[Optional[str]] = RollTable(
    table_id="contract_deadline",
    name="Contract Deadline",
    die="1d20",
    entries=[
        TableEntry(min=1, max=1, result="1d4 dias"),
        TableEntry(min=2, max=2, result="3 dias"),
        TableEntry(min=3, max=3, result="1d4+2 dias"),
        TableEntry(min=4, max=4, result="1d6+1 dias"),
        TableEntry(min=5, max=5, result="1d8+2 dias"),
        TableEntry(min=6, max=6, result="1d12+2 dias"),
        TableEntry(min=7, max=8, result="1 semana"),
        TableEntry(min=9, max=9, result="1d4+1 semanas"),
        TableEntry(min=10, max=10, result="1d20+2 dias"),
        TableEntry(min=11, max=999, result=None, description="No deadline"),
    ],
)

# Modifier to the quantity roll by staff condition
STAFF_CONDITION_MODIFIERS: dict[str, int] = {
    "unprepared": -1,
    "normal": 0,
    "experienced": 1,
}


@dataclass
class ContractBatch:
    """Outcome of one contract generation round."""

    quantity: int
    quantity_roll: TableRollResult[Any]
    # Days until each contract expires; None for contracts without deadline
    deadlines: list[Optional[int]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "quantity": self.quantity,
            "quantity_roll": self.quantity_roll.to_dict(),
            "deadlines": list(self.deadlines),
        }


class ContractBatchGenerator(BaseGenerator[ContractBatch]):
    """
    Rolls a batch of contracts for a guild.

    Args:
        staff_condition: Key of STAFF_CONDITION_MODIFIERS
        extra_modifiers: Further modifiers to the quantity roll
    """

    def __init__(
        self,
        staff_condition: str = "normal",
        extra_modifiers: Optional[list[RollModifier]] = None,
        **kwargs: Any,
    ):
        super().__init__(**kwargs)
        if staff_condition not in STAFF_CONDITION_MODIFIERS:
            raise ValueError(f"Unknown staff condition: {staff_condition}")
        self.staff_condition = staff_condition
        self.extra_modifiers = list(extra_modifiers or [])

    def _quantity_modifiers(self) -> list[RollModifier]:
        modifiers = []
        staff_value = STAFF_CONDITION_MODIFIERS[self.staff_condition]
        if staff_value:
            modifiers.append(RollModifier(name="staff", value=staff_value, description=self.staff_condition))
        return modifiers + self.extra_modifiers

    def _do_generate(self) -> ContractBatch:
        quantity_roll = self.resolve_with_log(
            CONTRACT_QUANTITY_TABLE,
            "Contract quantity",
            modifiers=self._quantity_modifiers(),
        )
        quantity = max(self.roll_with_log(quantity_roll.result, "Contracts posted").result, 0)

        deadlines: list[Optional[int]] = []
        for i in range(quantity):
            deadline = self.resolve_with_log(CONTRACT_DEADLINE_TABLE, f"Deadline for contract {i + 1}").result
            if deadline is None:
                deadlines.append(None)
            else:
                days = convert_time_string_to_days(deadline, self.dice_roller)
                self.log(f"Contract {i + 1} deadline: {deadline} = {days} days", "DEADLINE")
                deadlines.append(days)

        return ContractBatch(quantity=quantity, quantity_roll=quantity_roll, deadlines=deadlines)
