"""Creation-time ordinal ids."""

import time
from collections.abc import Callable, Iterable


class MonotonicIdGenerator:
    """Millisecond wall-clock ids that never repeat within a process.

    Two ids requested in the same millisecond (or after the clock stepped
    back) get ``last + 1`` instead of a duplicate.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._last = 0

    @property
    def last(self) -> int:
        return self._last

    def seed(self, existing: Iterable[int | None]) -> None:
        """Make sure future ids are larger than every id already stored."""
        for value in existing:
            if value is not None and value > self._last:
                self._last = value

    def __call__(self) -> int:
        now = int(self._clock() * 1000)
        self._last = max(now, self._last + 1)
        return self._last
