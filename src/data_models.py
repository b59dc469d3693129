"""
Shared data structures for the Guild Chronicle core.

Dice notation, dice results and the centralized roller live here because
every generator, table and lifecycle module depends on them.
"""

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Optional, Sequence, Union
import logging
import random
import re

if TYPE_CHECKING:
    from src.observability.run_log import RunLog

logger = logging.getLogger(__name__)


# =============================================================================
# ENUMS
# =============================================================================


class ScheduledEventType(str, Enum):
    """Kinds of events a guild timeline can hold."""

    # Contracts
    NEW_CONTRACTS = "new_contracts"
    CONTRACT_EXPIRATION = "contract_expiration"
    CONTRACT_RESOLUTION = "contract_resolution"

    # Services
    NEW_SERVICES = "new_services"
    SERVICE_RESOLUTION = "service_resolution"

    # Notice board
    NEW_NOTICES = "new_notices"
    NOTICE_EXPIRATION = "notice_expiration"

    # Members
    MEMBER_REGISTRY_UPDATE = "member_registry_update"

    # Renown
    RENOWN_AUTHORIZATION = "renown_authorization"
    RESOURCE_AVAILABILITY = "resource_availability"


# =============================================================================
# RANDOM SOURCES
# =============================================================================

# A random source returns a uniform integer in [1, n].
RandomSource = Callable[[int], int]

_default_rng = random.Random()


def default_random_source(sides: int) -> int:
    """Unseeded process-wide source, used only when nothing is injected."""
    return _default_rng.randint(1, sides)


def seeded_random_source(seed: int) -> RandomSource:
    """Build a reproducible random source from a seed."""
    rng = random.Random(seed)

    def source(sides: int) -> int:
        return rng.randint(1, sides)

    return source


# =============================================================================
# DICE NOTATION
# =============================================================================


class DiceNotationError(ValueError):
    """Raised when a dice notation string cannot be parsed."""

    def __init__(self, notation: Any, message: Optional[str] = None):
        self.notation = notation
        super().__init__(message or f"Invalid dice notation: {notation!r}")


_NOTATION_PATTERN = re.compile(r"^(\d+)d(\d+)(?:([+-])(\d+))?$")


@dataclass(frozen=True)
class DiceExpression:
    """A parsed dice expression: roll `count` dice of `sides` and add `modifier`."""

    count: int
    sides: int
    modifier: int = 0

    def __post_init__(self):
        if self.count < 1:
            raise DiceNotationError(self.notation, f"Dice count must be at least 1, got {self.count}")
        if self.sides < 1:
            raise DiceNotationError(self.notation, f"Dice sides must be at least 1, got {self.sides}")

    @property
    def notation(self) -> str:
        if self.modifier > 0:
            return f"{self.count}d{self.sides}+{self.modifier}"
        elif self.modifier < 0:
            return f"{self.count}d{self.sides}-{abs(self.modifier)}"
        return f"{self.count}d{self.sides}"

    @property
    def min_total(self) -> int:
        return self.count + self.modifier

    @property
    def max_total(self) -> int:
        return self.count * self.sides + self.modifier

    def to_dict(self) -> dict[str, Any]:
        return {"count": self.count, "sides": self.sides, "modifier": self.modifier}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DiceExpression":
        return cls(
            count=data["count"],
            sides=data["sides"],
            modifier=data.get("modifier", 0),
        )

    def __str__(self) -> str:
        return self.notation


def parse_dice_notation(notation: str) -> DiceExpression:
    """
    Parse dice notation such as '1d20', '2d6+3' or '3d6 - 2'.

    Whitespace and letter case are ignored.

    Raises:
        DiceNotationError: If the string is not of the form NdS[+|-M]
    """
    if not isinstance(notation, str):
        raise DiceNotationError(notation)

    cleaned = re.sub(r"\s+", "", notation).lower()
    match = _NOTATION_PATTERN.match(cleaned)
    if not match:
        raise DiceNotationError(notation)

    count = int(match.group(1))
    sides = int(match.group(2))
    modifier = 0
    if match.group(3):
        modifier = int(match.group(4))
        if match.group(3) == "-":
            modifier = -modifier

    if count < 1 or sides < 1:
        raise DiceNotationError(notation, f"Dice count and sides must be positive: {notation!r}")

    return DiceExpression(count=count, sides=sides, modifier=modifier)


def is_valid_dice_notation(notation: str) -> bool:
    """Check whether a notation string parses."""
    try:
        parse_dice_notation(notation)
    except DiceNotationError:
        return False
    return True


# =============================================================================
# DICE ROLLING
# =============================================================================


@dataclass
class DiceResult:
    """Result of a dice roll with every individual die preserved."""

    notation: str
    individual: list[int]
    modifier: int
    result: int
    context: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "notation": self.notation,
            "individual": list(self.individual),
            "modifier": self.modifier,
            "result": self.result,
            "context": self.context,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DiceResult":
        return cls(
            notation=data["notation"],
            individual=list(data.get("individual", [])),
            modifier=data.get("modifier", 0),
            result=data["result"],
            context=data.get("context", ""),
        )

    def __str__(self) -> str:
        if self.modifier > 0:
            return f"{self.notation}: {self.individual} + {self.modifier} = {self.result}"
        elif self.modifier < 0:
            return f"{self.notation}: {self.individual} - {abs(self.modifier)} = {self.result}"
        return f"{self.notation}: {self.individual} = {self.result}"


DiceInput = Union[str, int, DiceExpression]


class DiceRoller:
    """
    Centralized randomization interface.

    Every roll goes through an instance of this class so that the random
    source can be injected (tests pass deterministic sequences) and so that
    each roll is kept in the roller's log and, when given, the run log.
    """

    def __init__(
        self,
        random_source: Optional[RandomSource] = None,
        run_log: Optional["RunLog"] = None,
    ):
        """
        Initialize the roller.

        Args:
            random_source: Callable returning a uniform int in [1, n].
                Defaults to the unseeded process-wide source.
            run_log: Optional RunLog receiving a ROLL event per roll
        """
        self._random_source = random_source or default_random_source
        self._run_log = run_log
        self._roll_log: list[DiceResult] = []

    @property
    def random_source(self) -> RandomSource:
        return self._random_source

    def roll(self, dice: DiceInput, context: str = "") -> DiceResult:
        """
        Roll dice using standard notation (e.g., '2d6', '1d20+5', '3d6-2').

        A bare integer is a constant: nothing is rolled and the value is
        used as the result.

        Args:
            dice: Notation string, parsed DiceExpression, or int constant
            context: Why this roll is being made (for logging)

        Returns:
            DiceResult with individual rolls and total

        Raises:
            DiceNotationError: If the notation is malformed
        """
        if isinstance(dice, bool):
            raise DiceNotationError(dice)

        if isinstance(dice, int):
            result = DiceResult(
                notation=str(dice),
                individual=[],
                modifier=0,
                result=dice,
                context=context,
            )
            self._record(result)
            return result

        expression = dice if isinstance(dice, DiceExpression) else parse_dice_notation(dice)

        individual = [self._random_source(expression.sides) for _ in range(expression.count)]
        total = sum(individual) + expression.modifier

        result = DiceResult(
            notation=expression.notation,
            individual=individual,
            modifier=expression.modifier,
            result=total,
            context=context,
        )
        self._record(result)
        return result

    def _record(self, result: DiceResult) -> None:
        self._roll_log.append(result)
        logger.debug(f"Rolled {result} ({result.context})")
        if self._run_log is not None:
            self._run_log.log_roll(
                notation=result.notation,
                rolls=result.individual,
                modifier=result.modifier,
                total=result.result,
                reason=result.context,
            )

    def roll_d20(self, context: str = "") -> DiceResult:
        """Convenience method for d20 rolls."""
        return self.roll("1d20", context)

    def roll_2d6(self, context: str = "") -> DiceResult:
        """Convenience method for 2d6 rolls."""
        return self.roll("2d6", context)

    def roll_d6(self, num_dice: int = 1, context: str = "") -> DiceResult:
        """Convenience method for d6 rolls."""
        return self.roll(f"{num_dice}d6", context)

    def roll_percentile(self, context: str = "") -> DiceResult:
        """Roll d100 for percentile checks."""
        return self.roll("1d100", context)

    def randint(self, a: int, b: int) -> int:
        """Return a random integer in [a, b] drawn from the random source."""
        if b < a:
            raise ValueError(f"Empty range: [{a}, {b}]")
        return a - 1 + self._random_source(b - a + 1)

    def choice(self, seq: Sequence[Any]) -> Any:
        """Choose an element from a non-empty sequence."""
        if not seq:
            raise IndexError("Cannot choose from an empty sequence")
        return seq[self.randint(0, len(seq) - 1)]

    def get_roll_log(self) -> list[DiceResult]:
        """Get every roll made by this roller."""
        return self._roll_log.copy()

    def clear_roll_log(self) -> None:
        """Clear the roll log."""
        self._roll_log = []


def roll_dice(
    dice: DiceInput,
    random_source: Optional[RandomSource] = None,
    context: str = "",
) -> DiceResult:
    """One-off roll without keeping a roller around."""
    return DiceRoller(random_source=random_source).roll(dice, context)
