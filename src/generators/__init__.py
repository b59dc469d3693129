"""
Procedural content generators.

Generators roll on range tables through a shared DiceRoller and keep a
message log of every roll, lookup and modifier that shaped their output.
"""

from src.generators.base_generator import BaseGenerator
from src.generators.contract_batch import (
    ContractBatch,
    ContractBatchGenerator,
    CONTRACT_QUANTITY_TABLE,
    CONTRACT_DEADLINE_TABLE,
    STAFF_CONDITION_MODIFIERS,
)

__all__ = [
    "BaseGenerator",
    "ContractBatch",
    "ContractBatchGenerator",
    "CONTRACT_QUANTITY_TABLE",
    "CONTRACT_DEADLINE_TABLE",
    "STAFF_CONDITION_MODIFIERS",
]
