"""Unit tests for StateWatcher observation polling."""

import asyncio

import pytest

from wotcalc.core.state import StateStore
from wotcalc.server.watch import StateWatcher

INTERVAL = 0.02


class TestCheck:
    """Tests for a single check() tick, driven manually."""

    @pytest.mark.asyncio
    async def test_no_notification_while_unchanged(self, store):
        watcher = StateWatcher(store, interval=60)
        subscription = watcher.subscribe("result")
        try:
            assert watcher.check() == 0
            assert subscription.queue.empty()
        finally:
            await watcher.close()

    @pytest.mark.asyncio
    async def test_one_notification_per_net_change(self, store):
        """Two mutations between ticks produce one notification with the latest value."""
        watcher = StateWatcher(store, interval=60)
        subscription = watcher.subscribe("result")
        try:
            await store.apply(10)
            await store.apply(-5)
            assert watcher.check() == 1
            assert subscription.queue.get_nowait() == 5
            assert watcher.check() == 0
        finally:
            await watcher.close()

    @pytest.mark.asyncio
    async def test_net_zero_change_not_notified(self, store):
        watcher = StateWatcher(store, interval=60)
        subscription = watcher.subscribe("result")
        try:
            await store.apply(10)
            await store.apply(-10)
            assert watcher.check() == 0
            assert subscription.queue.empty()
        finally:
            await watcher.close()

    @pytest.mark.asyncio
    async def test_last_change_observed_even_when_value_returns(self, store):
        """lastChange moves on every mutation, including a net-zero pair."""
        watcher = StateWatcher(store, interval=60)
        subscription = watcher.subscribe("lastChange")
        try:
            await store.apply(10)
            await store.apply(-10)
            assert watcher.check() == 1
            assert subscription.queue.get_nowait() == store.snapshot().last_change_text
        finally:
            await watcher.close()

    @pytest.mark.asyncio
    async def test_independent_baselines(self, store):
        """A late subscriber's baseline is the value at its subscription time."""
        watcher = StateWatcher(store, interval=60)
        early = watcher.subscribe("result")
        try:
            await store.apply(10)
            late = watcher.subscribe("result")
            assert watcher.check() == 1
            assert early.queue.get_nowait() == 10
            assert late.queue.empty()
        finally:
            await watcher.close()

    @pytest.mark.asyncio
    async def test_slow_consumer_keeps_latest_only(self, store):
        watcher = StateWatcher(store, interval=60)
        subscription = watcher.subscribe("update")
        try:
            await store.apply(1)
            watcher.check()
            await store.apply(1)
            watcher.check()
            assert subscription.queue.qsize() == 1
            assert await subscription.next() == 2
        finally:
            await watcher.close()

    @pytest.mark.asyncio
    async def test_unknown_key_raises(self, store):
        watcher = StateWatcher(store)
        with pytest.raises(KeyError):
            watcher.subscribe("nope")
        assert not watcher.polling

    def test_interval_must_be_positive(self, store):
        with pytest.raises(ValueError):
            StateWatcher(store, interval=0)


class TestPolling:
    """Tests for the shared polling task lifecycle."""

    @pytest.mark.asyncio
    async def test_change_delivered_within_interval(self, store):
        watcher = StateWatcher(store, interval=INTERVAL)
        subscription = watcher.subscribe("result")
        try:
            await store.apply(10)
            value = await asyncio.wait_for(subscription.next(), timeout=INTERVAL * 20)
            assert value == 10
        finally:
            await watcher.close()

    @pytest.mark.asyncio
    async def test_polling_starts_and_stops_with_subscribers(self, store):
        watcher = StateWatcher(store, interval=INTERVAL)
        assert not watcher.polling

        first = watcher.subscribe("result")
        second = watcher.subscribe("lastChange")
        assert watcher.polling
        assert watcher.subscriber_count() == 2

        watcher.unsubscribe(first)
        assert watcher.polling

        watcher.unsubscribe(second)
        assert watcher.subscriber_count() == 0
        assert not watcher.polling

    @pytest.mark.asyncio
    async def test_unsubscribed_receives_nothing(self, store):
        watcher = StateWatcher(store, interval=INTERVAL)
        subscription = watcher.subscribe("result")
        watcher.unsubscribe(subscription)
        assert not watcher.is_subscribed(subscription)

        await store.apply(10)
        await asyncio.sleep(INTERVAL * 3)
        assert subscription.queue.empty()

    @pytest.mark.asyncio
    async def test_unsubscribe_twice_is_safe(self, store):
        watcher = StateWatcher(store, interval=INTERVAL)
        subscription = watcher.subscribe("result")
        watcher.unsubscribe(subscription)
        watcher.unsubscribe(subscription)
        assert watcher.subscriber_count() == 0

    @pytest.mark.asyncio
    async def test_close_stops_polling(self):
        watcher = StateWatcher(StateStore(), interval=INTERVAL)
        watcher.subscribe("result")
        await watcher.close()
        assert not watcher.polling
        assert watcher.subscriber_count() == 0

    @pytest.mark.asyncio
    async def test_custom_selector(self, store):
        watcher = StateWatcher(store, interval=60)
        subscription = watcher.subscribe("doubled", selector=lambda state: state.value * 2)
        try:
            await store.apply(4)
            watcher.check()
            assert subscription.queue.get_nowait() == 8
        finally:
            await watcher.close()
