"""
Guild Calendar System.

Defines the 12 months of the in-fiction calendar, the Gregorian leap-year
rule, and the validated GameDate used by every timeline.
"""

from dataclasses import dataclass
from typing import Any


class DateValidationError(ValueError):
    """Raised when a day, month or year is outside the calendar."""

    def __init__(self, field: str, value: Any, message: str):
        self.field = field
        self.value = value
        super().__init__(message)


@dataclass(frozen=True)
class CalendarMonth:
    """
    A month of the calendar.

    Attributes:
        number: 1-12
        name: Month name used in long-format dates
        days: Number of days in a common year
    """

    number: int
    name: str
    days: int


MONTHS: dict[int, CalendarMonth] = {
    1: CalendarMonth(number=1, name="Janeiro", days=31),
    2: CalendarMonth(number=2, name="Fevereiro", days=28),
    3: CalendarMonth(number=3, name="Março", days=31),
    4: CalendarMonth(number=4, name="Abril", days=30),
    5: CalendarMonth(number=5, name="Maio", days=31),
    6: CalendarMonth(number=6, name="Junho", days=30),
    7: CalendarMonth(number=7, name="Julho", days=31),
    8: CalendarMonth(number=8, name="Agosto", days=31),
    9: CalendarMonth(number=9, name="Setembro", days=30),
    10: CalendarMonth(number=10, name="Outubro", days=31),
    11: CalendarMonth(number=11, name="Novembro", days=30),
    12: CalendarMonth(number=12, name="Dezembro", days=31),
}

DEFAULT_START_YEAR = 1000

# Days in a 400-year Gregorian cycle
_DAYS_IN_400_YEARS = 146097
_DAYS_IN_100_YEARS = 36524
_DAYS_IN_4_YEARS = 1461


def is_leap_year(year: int) -> bool:
    """Divisible by 4, except centuries not divisible by 400."""
    return (year % 4 == 0 and year % 100 != 0) or year % 400 == 0


def days_in_month(month: int, year: int) -> int:
    """Number of days in a month, accounting for leap years."""
    if month not in MONTHS:
        raise DateValidationError("month", month, f"Invalid month: {month}. Must be between 1 and 12.")
    if month == 2 and is_leap_year(year):
        return 29
    return MONTHS[month].days


def days_in_year(year: int) -> int:
    return 366 if is_leap_year(year) else 365


@dataclass(frozen=True, order=True)
class GameDate:
    """
    A date on the guild calendar.

    Immutable; ordering and equality follow (year, month, day). The
    fields are validated on construction so an invalid date can never
    exist.
    """

    year: int
    month: int
    day: int

    def __post_init__(self):
        if not isinstance(self.year, int) or self.year < 1:
            raise DateValidationError("year", self.year, f"Invalid year: {self.year}. Must be 1 or greater.")
        if not isinstance(self.month, int) or not 1 <= self.month <= 12:
            raise DateValidationError("month", self.month, f"Invalid month: {self.month}. Must be between 1 and 12.")
        max_days = days_in_month(self.month, self.year)
        if not isinstance(self.day, int) or not 1 <= self.day <= max_days:
            raise DateValidationError(
                "day",
                self.day,
                f"Invalid day: {self.day}. Month {self.month} of year {self.year} has {max_days} days.",
            )

    def to_dict(self) -> dict[str, int]:
        return {"day": self.day, "month": self.month, "year": self.year}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "GameDate":
        return cls(year=data["year"], month=data["month"], day=data["day"])

    def __str__(self) -> str:
        return format_game_date(self)


def create_game_date(day: int, month: int, year: int) -> GameDate:
    """Validating factory in day/month/year order."""
    return GameDate(year=year, month=month, day=day)


def default_start_date() -> GameDate:
    """1 January of the default starting year."""
    return GameDate(year=DEFAULT_START_YEAR, month=1, day=1)


def is_valid_game_date(day: int, month: int, year: int) -> bool:
    try:
        create_game_date(day, month, year)
    except DateValidationError:
        return False
    return True


# =============================================================================
# FORMATTING
# =============================================================================


def format_game_date(date: GameDate) -> str:
    """Long form, e.g. '1 de Janeiro de 1000'."""
    return f"{date.day} de {MONTHS[date.month].name} de {date.year}"


def format_short_game_date(date: GameDate) -> str:
    """Short form, e.g. '01/01/1000'."""
    return f"{date.day:02d}/{date.month:02d}/{date.year}"


def parse_short_game_date(text: str) -> GameDate:
    """
    Parse a 'DD/MM/YYYY' string.

    Raises:
        DateValidationError: If the text is malformed or not a calendar date
    """
    parts = text.strip().split("/")
    if len(parts) != 3 or not all(p.strip().isdigit() for p in parts):
        raise DateValidationError("date", text, f"Invalid date: {text!r}. Expected DD/MM/YYYY.")
    day, month, year = (int(p) for p in parts)
    return create_game_date(day, month, year)


# =============================================================================
# ARITHMETIC
# =============================================================================


def date_to_ordinal(date: GameDate) -> int:
    """Days since the start of the calendar; 1 January of year 1 is day 1."""
    y = date.year - 1
    days_before_year = y * 365 + y // 4 - y // 100 + y // 400
    days_before_month = sum(days_in_month(m, date.year) for m in range(1, date.month))
    return days_before_year + days_before_month + date.day


def date_from_ordinal(ordinal: int) -> GameDate:
    """Inverse of date_to_ordinal."""
    if ordinal < 1:
        raise DateValidationError("year", 0, "Resulting date would fall before year 1.")

    n = ordinal - 1
    n400, n = divmod(n, _DAYS_IN_400_YEARS)
    n100, n = divmod(n, _DAYS_IN_100_YEARS)
    n4, n = divmod(n, _DAYS_IN_4_YEARS)
    n1, n = divmod(n, 365)

    year = n400 * 400 + n100 * 100 + n4 * 4 + n1 + 1
    # Last day of a 4- or 400-year cycle
    if n1 == 4 or n100 == 4:
        return GameDate(year=year - 1, month=12, day=31)

    month = 1
    while n >= days_in_month(month, year):
        n -= days_in_month(month, year)
        month += 1
    return GameDate(year=year, month=month, day=n + 1)


def add_days(date: GameDate, days: int) -> GameDate:
    """
    Advance a date by a number of days.

    Negative values move backwards. Month and year rollover follow the
    calendar, including leap days.

    Raises:
        DateValidationError: If the result would fall before year 1
    """
    if days == 0:
        return date
    return date_from_ordinal(date_to_ordinal(date) + days)


def subtract_days(date: GameDate, days: int) -> GameDate:
    return add_days(date, -days)


def add_weeks(date: GameDate, weeks: int) -> GameDate:
    return add_days(date, weeks * 7)


def add_months(date: GameDate, months: int) -> GameDate:
    """
    Move a date by whole months, clamping the day to the target month.

    31 January plus one month is 28 (or 29) February.
    """
    if months == 0:
        return date
    index = date.year * 12 + (date.month - 1) + months
    year, month_index = divmod(index, 12)
    month = month_index + 1
    if year < 1:
        raise DateValidationError("year", year, "Resulting date would fall before year 1.")
    return GameDate(year=year, month=month, day=min(date.day, days_in_month(month, year)))


def days_difference(start: GameDate, end: GameDate) -> int:
    """Signed number of days from start to end."""
    return date_to_ordinal(end) - date_to_ordinal(start)


# =============================================================================
# MONTH INFORMATION
# =============================================================================


def get_month_info(month: int, year: int) -> dict[str, Any]:
    """Name, length and leap flag for a month."""
    return {
        "name": MONTHS[month].name if month in MONTHS else None,
        "days": days_in_month(month, year),
        "is_leap_year": month == 2 and is_leap_year(year),
    }


def generate_month_days(month: int, year: int) -> list[GameDate]:
    """Every date of a month, in order."""
    return [GameDate(year=year, month=month, day=d) for d in range(1, days_in_month(month, year) + 1)]
