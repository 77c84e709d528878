"""Accumulator state owned by the calculator Thing.

State is held as one immutable snapshot that is replaced as a whole under a
lock, so readers (property reads, the observation poller) always see a
fully-applied mutation.
"""

from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from wotcalc.core.errors import BadRequestError

logger = logging.getLogger(__name__)

Number = int | float

# Largest integer every registered representation carries exactly
MAX_SAFE_INTEGER = 2**53


def is_representable(value: object) -> bool:
    """Return True for a finite number within the range served to every representation."""
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return abs(value) <= MAX_SAFE_INTEGER
    if isinstance(value, float):
        return math.isfinite(value)
    return False


@dataclass(frozen=True)
class AccumulatorState:
    """Snapshot of the accumulator.

    Attributes:
        value: Current accumulated value.
        last_change: Time of the last mutation, None before the first one.
    """

    value: Number = 0
    last_change: datetime | None = None

    @property
    def last_change_text(self) -> str:
        """ISO 8601 timestamp of the last mutation, empty before the first one."""
        if self.last_change is None:
            return ""
        return self.last_change.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StateStore:
    """Single writer entry point for the accumulator.

    Example:
        store = StateStore()
        state = await store.apply(10)   # value 10
        state = await store.apply(-5)   # value 5
        store.snapshot().value          # 5
    """

    def __init__(
        self,
        initial: AccumulatorState | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._state = initial or AccumulatorState()
        self._lock = asyncio.Lock()
        self._clock = clock

    def snapshot(self) -> AccumulatorState:
        """Return the current state. Never a partially applied mutation."""
        return self._state

    async def apply(self, delta: Number) -> AccumulatorState:
        """Add delta to the accumulator and stamp the mutation time.

        Timestamps have millisecond resolution and are strictly increasing,
        even when the clock has not advanced between consecutive calls.

        Returns:
            The new state.

        Raises:
            BadRequestError: If the delta or the resulting value is out of range;
                the state is left unchanged.
        """
        if not is_representable(delta):
            raise BadRequestError(
                "Operand out of range: finite number with magnitude at most "
                f"{MAX_SAFE_INTEGER} required"
            )
        async with self._lock:
            previous = self._state
            value = previous.value + delta
            if not is_representable(value):
                raise BadRequestError(f"Result out of range: {previous.value} + {delta}")
            now = self._clock()
            now = now.replace(microsecond=now.microsecond // 1000 * 1000)
            if previous.last_change is not None and now <= previous.last_change:
                now = previous.last_change + timedelta(milliseconds=1)
            self._state = AccumulatorState(value=value, last_change=now)
            logger.info("Accumulator %s -> %s", previous.value, self._state.value)
            return self._state
