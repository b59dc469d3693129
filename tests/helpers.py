"""
Test helpers for the Guild Chronicle test suite.

Provides deterministic random sources and small recording callbacks.
"""

from typing import Iterable

from src.timeline.scheduler import TimeAdvanceResult


class SequenceRandomSource:
    """
    Random source returning a fixed sequence of values.

    Each call returns the next value, ignoring the requested range so tests
    can force out-of-range draws. Records the sides asked for.

    Raises:
        AssertionError: If more values are drawn than were supplied
    """

    def __init__(self, values: Iterable[int]):
        self._values = list(values)
        self._index = 0
        self.requested_sides: list[int] = []

    def __call__(self, sides: int) -> int:
        self.requested_sides.append(sides)
        assert self._index < len(self._values), "SequenceRandomSource exhausted"
        value = self._values[self._index]
        self._index += 1
        return value

    @property
    def remaining(self) -> int:
        return len(self._values) - self._index


class MaxRandomSource:
    """Random source always returning the highest face."""

    def __call__(self, sides: int) -> int:
        return sides


class MinRandomSource:
    """Random source always returning 1."""

    def __call__(self, sides: int) -> int:
        return 1


class RecordingCallback:
    """Time-advance callback that keeps every result it receives."""

    def __init__(self):
        self.results: list[TimeAdvanceResult] = []

    def __call__(self, result: TimeAdvanceResult) -> None:
        self.results.append(result)

    @property
    def call_count(self) -> int:
        return len(self.results)
