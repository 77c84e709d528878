"""State watcher for property and event observation.

One periodic check snapshots the accumulator and fans changes out to every
subscriber, instead of each observation running its own timer.

Architecture:
    - Each subscription selects one value from the state (result,
      lastChange, or the update event's value) and keeps its own baseline
    - On every tick the state is read once; a subscriber whose selected value
      differs from its baseline receives the new value and advances it
    - Subscriber queues hold only the latest undelivered value, so a slow
      consumer skips intermediate values instead of falling behind
    - The polling task starts with the first subscriber and is cancelled
      when the last one leaves

Example:
    watcher = StateWatcher(store, interval=1.0)

    subscription = watcher.subscribe("result")
    try:
        value = await subscription.next()
    finally:
        watcher.unsubscribe(subscription)
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from wotcalc.core.state import AccumulatorState, StateStore

logger = logging.getLogger(__name__)

Selector = Callable[[AccumulatorState], Any]

# Observable values by affordance name
SELECTORS: dict[str, Selector] = {
    "result": lambda state: state.value,
    "lastChange": lambda state: state.last_change_text,
    "update": lambda state: state.value,
}


@dataclass(eq=False)
class Subscription:
    """One active observation.

    Attributes:
        key: Affordance name being observed.
        selector: Extracts the observed value from a state snapshot.
        baseline: Last value delivered (or the value at subscription time).
        queue: Holds at most the latest undelivered value.
    """

    key: str
    selector: Selector
    baseline: Any
    queue: asyncio.Queue[Any] = field(default_factory=lambda: asyncio.Queue(maxsize=1))

    def offer(self, value: Any) -> None:
        """Queue a value, replacing any value not yet consumed."""
        if self.queue.full():
            self.queue.get_nowait()
        self.queue.put_nowait(value)

    async def next(self) -> Any:
        """Wait for the next changed value."""
        return await self.queue.get()


class StateWatcher:
    """Shared polling loop that notifies subscribers of state changes."""

    def __init__(self, store: StateStore, interval: float = 1.0) -> None:
        """Initialize the watcher.

        Args:
            store: The state to watch.
            interval: Seconds between checks.
        """
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        self._store = store
        self._interval = interval
        self._subscribers: set[Subscription] = set()
        self._task: asyncio.Task[None] | None = None

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def polling(self) -> bool:
        """True while the periodic check task is alive."""
        return self._task is not None and not self._task.done()

    def subscribe(self, key: str, selector: Selector | None = None) -> Subscription:
        """Start observing a value, using its current state as the baseline.

        Must be called from within a running event loop.

        Args:
            key: Affordance name; selects from SELECTORS unless selector is given.
            selector: Custom value extractor.

        Raises:
            KeyError: If key has no known selector and none is given.
        """
        selector = selector or SELECTORS[key]
        subscription = Subscription(
            key=key,
            selector=selector,
            baseline=selector(self._store.snapshot()),
        )
        self._subscribers.add(subscription)
        if not self.polling:
            self._task = asyncio.get_running_loop().create_task(self._run())
        logger.info("Observation of '%s' started (%d active)", key, len(self._subscribers))
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        """Remove a subscription. Safe to call more than once."""
        if subscription not in self._subscribers:
            return
        self._subscribers.discard(subscription)
        logger.info(
            "Observation of '%s' ended (%d active)", subscription.key, len(self._subscribers)
        )
        if not self._subscribers and self._task is not None:
            self._task.cancel()
            self._task = None

    def is_subscribed(self, subscription: Subscription) -> bool:
        return subscription in self._subscribers

    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def check(self) -> int:
        """Run one tick: compare every subscriber against one state snapshot.

        Returns:
            Number of subscribers notified.
        """
        state = self._store.snapshot()
        notified = 0
        for subscription in list(self._subscribers):
            value = subscription.selector(state)
            if value != subscription.baseline:
                subscription.baseline = value
                subscription.offer(value)
                notified += 1
        return notified

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            self.check()

    async def close(self) -> None:
        """Drop all subscriptions and stop polling."""
        self._subscribers.clear()
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
