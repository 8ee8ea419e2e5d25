"""Caller deadlines propagated into every registry call."""

from __future__ import annotations

import time
from collections.abc import Callable

from gitops_squared.core.errors import DeadlineExceeded


class Deadline:
    """An absolute point in monotonic time by which an operation must finish.

    A request handler creates one ``Deadline`` and hands it down; each
    registry call converts the remaining budget into its HTTP timeout.

    Parameters
    ----------
    expires_at:
        Absolute value of ``clock()`` at which the deadline expires.
    clock:
        Monotonic time source, injectable for tests.
    """

    def __init__(
        self, expires_at: float, clock: Callable[[], float] = time.monotonic
    ) -> None:
        self._expires_at = expires_at
        self._clock = clock

    @classmethod
    def after(
        cls, seconds: float, clock: Callable[[], float] = time.monotonic
    ) -> Deadline:
        """Create a deadline ``seconds`` from now."""
        return cls(clock() + seconds, clock=clock)

    def remaining(self) -> float:
        """Seconds left, raising ``DeadlineExceeded`` once expired."""
        left = self._expires_at - self._clock()
        if left <= 0:
            raise DeadlineExceeded("deadline exceeded before registry call")
        return left

    @property
    def expired(self) -> bool:
        return self._expires_at - self._clock() <= 0

    def __repr__(self) -> str:
        return f"Deadline(remaining={self._expires_at - self._clock():.3f}s)"
