"""Tests for CacheManager.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

import asyncio
import inspect
import logging
from datetime import datetime, timedelta, timezone

import pytest

from swrcache_core.cache.entry import CacheEntry
from swrcache_core.cache.manager import CacheManager, CacheManagerConfig
from swrcache_core.scheduler.idle import (
    IdleDeadline,
    IdleScheduler,
    LoopIdleScheduler,
    ScheduledCall,
    SchedulerConfig,
    TimerScheduler,
)
from swrcache_core.store.memory import MemoryStore

START = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Clock that only moves when told to."""

    def __init__(self, now=START):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += timedelta(seconds=seconds)


class ManualScheduler(IdleScheduler):
    """Records callbacks and runs them on demand."""

    def __init__(self):
        super().__init__()
        self.calls = []

    def schedule(self, callback, timeout=None):
        call = ScheduledCall()
        self.calls.append((callback, timeout, call))
        return call

    async def run_all(self):
        calls, self.calls = self.calls, []
        for callback, _, call in calls:
            call.started = True
            result = callback(IdleDeadline(did_timeout=False, budget=0.05))
            if inspect.isawaitable(result):
                await result
            call.finished = True


class Fetcher:
    """Async fetch function returning a sequence of values."""

    def __init__(self, *values, error=None):
        self.values = list(values)
        self.error = error
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        await asyncio.sleep(0)
        if self.error is not None:
            raise self.error
        return self.values[min(self.calls, len(self.values)) - 1]


def make_manager(fetcher, ttl=5, **kwargs):
    kwargs.setdefault("store", MemoryStore())
    kwargs.setdefault("scheduler", ManualScheduler())
    kwargs.setdefault("clock", FakeClock())
    kwargs.setdefault("on_log", lambda message: None)
    return CacheManager("MyDataCache", ttl, fetcher, **kwargs)


def stored_entry(manager):
    return CacheEntry.loads(manager.store.get(manager.key))


class TestGetData:
    """Tests for get_data."""

    def test_empty_store_fetches_and_stores(self):
        """Test a cold cache fetches and writes an entry."""
        clock = FakeClock()
        fetcher = Fetcher([{"id": 1, "value": "V1"}])
        manager = make_manager(fetcher, clock=clock)

        result = asyncio.run(manager.get_data(False))

        assert result == [{"id": 1, "value": "V1"}]
        assert fetcher.calls == 1
        entry = stored_entry(manager)
        assert entry.value == [{"id": 1, "value": "V1"}]
        assert entry.expiration == START + timedelta(seconds=5)

    def test_round_trip_before_expiration(self):
        """Test a stored value is returned unchanged without fetching."""
        value = {"name": "report", "rows": [1, 2, 3], "ok": True, "ratio": 0.5}
        fetcher = Fetcher(value, "other")
        manager = make_manager(fetcher)

        asyncio.run(manager.get_data())
        result = asyncio.run(manager.get_data())

        assert result == value
        assert fetcher.calls == 1
        assert manager.stats.hits == 1

    def test_falsy_values_are_cached(self):
        """Test empty and zero values count as cached data."""
        for value in (0, [], "", False, None):
            fetcher = Fetcher(value, "other")
            manager = make_manager(fetcher)

            asyncio.run(manager.get_data())
            assert asyncio.run(manager.get_data()) == value
            assert fetcher.calls == 1

    def test_before_expiration_no_refresh(self):
        """Test reads before the TTL elapses never schedule a refresh."""
        clock = FakeClock()
        scheduler = ManualScheduler()
        manager = make_manager(Fetcher("V1", "V2"), clock=clock, scheduler=scheduler)

        asyncio.run(manager.get_data())
        clock.advance(4.999)

        assert asyncio.run(manager.get_data()) == "V1"
        assert scheduler.calls == []
        assert not manager.refresh_scheduled

    def test_exact_expiration_is_fresh(self):
        """Test a read at the expiration instant is still a fresh hit."""
        clock = FakeClock()
        scheduler = ManualScheduler()
        fetcher = Fetcher("V1", "V2")
        manager = make_manager(fetcher, clock=clock, scheduler=scheduler)

        asyncio.run(manager.get_data())
        clock.advance(5)

        assert asyncio.run(manager.get_data()) == "V1"
        assert scheduler.calls == []
        assert not manager.refresh_scheduled
        assert fetcher.calls == 1
        assert manager.stats.hits == 1
        assert manager.stats.stale_hits == 0

    def test_after_expiration_returns_stale_and_schedules(self):
        """Test an expired entry is served and a refresh is scheduled."""
        clock = FakeClock()
        scheduler = ManualScheduler()
        fetcher = Fetcher("V1", "V2")
        manager = make_manager(fetcher, clock=clock, scheduler=scheduler)

        asyncio.run(manager.get_data())
        clock.advance(5.001)

        assert asyncio.run(manager.get_data()) == "V1"
        assert fetcher.calls == 1
        assert len(scheduler.calls) == 1
        assert manager.refresh_scheduled
        assert manager.stats.stale_hits == 1

    def test_at_most_one_refresh(self):
        """Test repeated stale reads schedule a single refresh."""
        clock = FakeClock()
        scheduler = ManualScheduler()
        manager = make_manager(Fetcher("V1", "V2", "V3"), clock=clock, scheduler=scheduler)

        asyncio.run(manager.get_data())
        clock.advance(10)

        asyncio.run(manager.get_data())
        asyncio.run(manager.get_data())
        asyncio.run(manager.get_data())

        assert len(scheduler.calls) == 1

    def test_refresh_eligible_again_after_completion(self):
        """Test a completed refresh allows the next one."""
        clock = FakeClock()
        scheduler = ManualScheduler()
        manager = make_manager(Fetcher("V1", "V2", "V3"), clock=clock, scheduler=scheduler)

        asyncio.run(manager.get_data())
        clock.advance(10)
        asyncio.run(manager.get_data())
        asyncio.run(scheduler.run_all())

        assert not manager.refresh_scheduled
        clock.advance(10)
        assert asyncio.run(manager.get_data()) == "V2"
        assert len(scheduler.calls) == 1

    def test_reload_forces_fetch(self):
        """Test reload removes a valid entry and fetches."""
        fetcher = Fetcher("V1", "V2")
        manager = make_manager(fetcher)

        asyncio.run(manager.get_data())
        result = asyncio.run(manager.get_data(reload=True))

        assert result == "V2"
        assert fetcher.calls == 2
        assert stored_entry(manager).value == "V2"
        assert manager.stats.reloads == 1

    def test_malformed_entry_is_a_miss(self):
        """Test an unparseable stored string triggers a fetch."""
        store = MemoryStore()
        store.set("MyDataCache", "{not json")
        fetcher = Fetcher("V1")
        manager = make_manager(fetcher, store=store)

        assert asyncio.run(manager.get_data()) == "V1"
        assert fetcher.calls == 1
        assert stored_entry(manager).value == "V1"
        assert manager.stats.malformed == 1

    def test_entry_without_expiration_is_a_miss(self):
        """Test a JSON object missing fields is treated as a miss."""
        store = MemoryStore()
        store.set("MyDataCache", '{"value": "old"}')
        manager = make_manager(Fetcher("V1"), store=store)

        assert asyncio.run(manager.get_data()) == "V1"

    @pytest.mark.parametrize(
        "text",
        [
            '{"expiration": "0001-01-01T00:00:00+01:00", "value": 1}',
            "[" * 100000 + "]" * 100000,
        ],
    )
    def test_unparseable_entry_is_a_miss(self, text):
        """Test out-of-range timestamps and runaway nesting fall back to a fetch."""
        store = MemoryStore()
        store.set("MyDataCache", text)
        fetcher = Fetcher("V1")
        manager = make_manager(fetcher, store=store)

        assert asyncio.run(manager.get_data()) == "V1"
        assert fetcher.calls == 1
        assert stored_entry(manager).value == "V1"
        assert manager.stats.malformed == 1
        assert manager.get_expiration() == START + timedelta(seconds=5)

    def test_fetch_failure_propagates(self):
        """Test a failed fetch on a cold cache reaches the caller."""
        manager = make_manager(Fetcher(error=RuntimeError("service down")))

        with pytest.raises(RuntimeError, match="service down"):
            asyncio.run(manager.get_data())

        assert manager.store.get(manager.key) is None

    def test_store_failure_propagates(self):
        """Test store errors are not swallowed."""

        class BrokenStore(MemoryStore):
            def get(self, key):
                raise OSError("disk gone")

        manager = make_manager(Fetcher("V1"), store=BrokenStore())

        with pytest.raises(OSError):
            asyncio.run(manager.get_data())

    def test_concurrent_cold_fetches_both_run(self):
        """Test simultaneous cold reads are not deduplicated."""
        fetcher = Fetcher("V1", "V2")
        manager = make_manager(fetcher)

        async def both():
            return await asyncio.gather(manager.get_data(), manager.get_data())

        results = asyncio.run(both())

        assert fetcher.calls == 2
        assert sorted(results) == ["V1", "V2"]
        assert stored_entry(manager).value in ("V1", "V2")


class TestBackgroundRefresh:
    """Tests for the deferred refresh."""

    def test_scenario(self):
        """Test fetch, cached read, stale read and refresh over time."""
        clock = FakeClock()
        scheduler = ManualScheduler()
        fetcher = Fetcher("V1", "V2")
        refreshed = []
        manager = make_manager(
            fetcher,
            clock=clock,
            scheduler=scheduler,
            on_background_refresh=refreshed.append,
        )

        # t=0
        assert asyncio.run(manager.get_data(False)) == "V1"
        assert stored_entry(manager).expiration == START + timedelta(seconds=5)

        # t=2
        clock.advance(2)
        assert asyncio.run(manager.get_data(False)) == "V1"
        assert fetcher.calls == 1

        # t=6
        clock.advance(4)
        assert asyncio.run(manager.get_data(False)) == "V1"
        assert len(scheduler.calls) == 1

        # refresh runs at t=7
        clock.advance(1)
        asyncio.run(scheduler.run_all())

        entry = stored_entry(manager)
        assert entry.value == "V2"
        assert entry.expiration == START + timedelta(seconds=12)
        assert refreshed == ["V2"]
        assert manager.stats.refreshes == 1

    def test_observer_called_after_write(self):
        """Test the observer sees the new entry already stored."""
        clock = FakeClock()
        scheduler = ManualScheduler()
        seen = []
        manager = make_manager(Fetcher("V1", "V2"), clock=clock, scheduler=scheduler)
        manager._on_background_refresh = lambda value: seen.append(stored_entry(manager).value)

        asyncio.run(manager.get_data())
        clock.advance(6)
        asyncio.run(manager.get_data())
        asyncio.run(scheduler.run_all())

        assert seen == ["V2"]

    def test_refresh_failure_is_swallowed(self):
        """Test a failed refresh keeps the stale entry and resets the guard."""
        clock = FakeClock()
        scheduler = ManualScheduler()
        fetcher = Fetcher("V1")
        refreshed = []
        messages = []
        manager = make_manager(
            fetcher,
            clock=clock,
            scheduler=scheduler,
            on_background_refresh=refreshed.append,
            on_log=messages.append,
        )

        asyncio.run(manager.get_data())
        clock.advance(6)
        asyncio.run(manager.get_data())

        fetcher.error = ValueError("timeout")
        asyncio.run(scheduler.run_all())

        assert not manager.refresh_scheduled
        assert refreshed == []
        assert stored_entry(manager).value == "V1"
        assert manager.stats.refresh_failures == 1
        assert any("Error during background refresh: timeout" in m for m in messages)

        # Next stale read schedules again
        asyncio.run(manager.get_data())
        assert len(scheduler.calls) == 1

    def test_observer_failure_is_contained(self):
        """Test a raising observer neither propagates nor counts as a failed refresh."""
        clock = FakeClock()
        scheduler = ManualScheduler()
        messages = []

        def observer(value):
            raise RuntimeError("render failed")

        manager = make_manager(
            Fetcher("V1", "V2", "V3"),
            clock=clock,
            scheduler=scheduler,
            on_background_refresh=observer,
            on_log=messages.append,
        )

        asyncio.run(manager.get_data())
        clock.advance(6)
        asyncio.run(manager.get_data())
        asyncio.run(scheduler.run_all())

        assert not manager.refresh_scheduled
        assert stored_entry(manager).value == "V2"
        assert manager.stats.refreshes == 1
        assert manager.stats.refresh_failures == 0
        assert any("Error in background refresh observer: render failed" in m for m in messages)
        assert not any("Error during background refresh" in m for m in messages)

        clock.advance(6)
        asyncio.run(manager.get_data())
        assert len(scheduler.calls) == 1

    def test_cancelled_refresh_releases_guard(self):
        """Test a cancelled scheduled refresh lets the next stale read schedule again."""
        clock = FakeClock()
        scheduler = ManualScheduler()
        messages = []
        manager = make_manager(
            Fetcher("V1", "V2"), clock=clock, scheduler=scheduler, on_log=messages.append
        )

        asyncio.run(manager.get_data())
        clock.advance(6)
        asyncio.run(manager.get_data())
        _, _, call = scheduler.calls.pop()
        call.cancel()

        assert not manager.refresh_scheduled
        assert "Scheduled background refresh was discarded." in messages

        asyncio.run(manager.get_data())
        assert len(scheduler.calls) == 1
        assert manager.refresh_scheduled

    @pytest.mark.parametrize(
        "scheduler",
        [
            TimerScheduler(delay=0.01),
            LoopIdleScheduler(SchedulerConfig(lag_threshold=0.5)),
        ],
        ids=["timer", "loop-idle"],
    )
    def test_refresh_discarded_with_its_loop(self, scheduler):
        """Test a refresh lost to a closed event loop does not block later refreshes."""
        clock = FakeClock()
        fetcher = Fetcher("V1", "V2")
        manager = make_manager(fetcher, clock=clock, scheduler=scheduler)

        asyncio.run(manager.get_data())
        clock.advance(6)

        # asyncio.run closes the loop before the refresh gets to run
        assert asyncio.run(manager.get_data()) == "V1"
        assert fetcher.calls == 1
        assert scheduler.pending() == 0
        assert not manager.refresh_scheduled

        async def stale_read_then_drain():
            value = await manager.get_data()
            await scheduler.drain()
            return value

        clock.advance(1)
        assert asyncio.run(stale_read_then_drain()) == "V1"
        assert fetcher.calls == 2
        assert stored_entry(manager).value == "V2"
        assert not manager.refresh_scheduled
        assert scheduler.pending() == 0

    def test_refresh_timeout_hint_passed(self):
        """Test the configured timeout reaches the scheduler."""
        clock = FakeClock()
        scheduler = ManualScheduler()
        manager = make_manager(
            Fetcher("V1", "V2"), clock=clock, scheduler=scheduler, refresh_timeout=1.5
        )

        asyncio.run(manager.get_data())
        clock.advance(6)
        asyncio.run(manager.get_data())

        assert scheduler.calls[0][1] == 1.5

    def test_with_timer_scheduler(self):
        """Test a refresh through the fixed-delay fallback."""
        clock = FakeClock()
        scheduler = TimerScheduler(delay=0.01)
        refreshed = []
        manager = make_manager(
            Fetcher("V1", "V2"),
            clock=clock,
            scheduler=scheduler,
            on_background_refresh=refreshed.append,
        )

        async def scenario():
            await manager.get_data()
            clock.advance(6)
            stale = await manager.get_data()
            await scheduler.drain()
            return stale

        assert asyncio.run(scenario()) == "V1"
        assert refreshed == ["V2"]
        assert not manager.refresh_scheduled


class TestExpirationSettings:
    """Tests for TTL updates and inspection."""

    def test_update_is_not_retroactive(self):
        """Test a TTL change leaves the stored expiration alone."""
        clock = FakeClock()
        scheduler = ManualScheduler()
        manager = make_manager(Fetcher("V1", "V2"), clock=clock, scheduler=scheduler)

        asyncio.run(manager.get_data())
        manager.update_expiration(100)

        assert manager.get_expiration() == START + timedelta(seconds=5)

        clock.advance(6)
        assert asyncio.run(manager.get_data()) == "V1"
        asyncio.run(scheduler.run_all())

        assert manager.get_expiration() == START + timedelta(seconds=106)

    def test_update_logs(self):
        """Test TTL updates are logged."""
        messages = []
        manager = make_manager(Fetcher("V1"), on_log=messages.append)

        manager.update_expiration(30)

        assert manager.expiration_seconds == 30
        assert messages == ["Expiration seconds updated to 30"]

    def test_negative_ttl_rejected(self):
        """Test negative TTLs raise ValueError."""
        manager = make_manager(Fetcher("V1"))

        with pytest.raises(ValueError):
            manager.update_expiration(-1)
        with pytest.raises(ValueError):
            make_manager(Fetcher("V1"), ttl=-5)

    def test_get_expiration_missing_or_invalid(self):
        """Test get_expiration returns None without a valid entry."""
        store = MemoryStore()
        manager = make_manager(Fetcher("V1"), store=store)

        assert manager.get_expiration() is None
        store.set(manager.key, "garbage")
        assert manager.get_expiration() is None

    def test_clear(self):
        """Test clear removes the stored entry."""
        manager = make_manager(Fetcher("V1"))

        asyncio.run(manager.get_data())

        assert manager.clear()
        assert manager.get_expiration() is None
        assert not manager.clear()


class TestLogging:
    """Tests for log routing."""

    def test_messages_go_to_callback(self):
        """Test every event reaches on_log."""
        clock = FakeClock()
        messages = []
        manager = make_manager(Fetcher("V1"), clock=clock, on_log=messages.append)

        asyncio.run(manager.get_data())
        asyncio.run(manager.get_data(reload=True))

        assert "Cache updated. New expiration: 12:00:05" in messages
        assert "Reload requested. Cache cleared." in messages

    def test_default_sink_is_logging(self, caplog):
        """Test messages go to the module logger without a callback."""
        manager = CacheManager(
            "key",
            5,
            Fetcher("V1"),
            store=MemoryStore(),
            scheduler=ManualScheduler(),
            clock=FakeClock(),
        )

        with caplog.at_level(logging.INFO, logger="swrcache_core.cache.manager"):
            asyncio.run(manager.get_data())

        assert "Cache updated. New expiration: 12:00:05" in caplog.text


class TestConfig:
    """Tests for configuration."""

    def test_from_config(self):
        """Test building a manager from CacheManagerConfig."""
        config = CacheManagerConfig(key="items", expiration_seconds=20, refresh_timeout=2.0)
        manager = CacheManager.from_config(config, Fetcher("V1"), store=MemoryStore())

        assert manager.key == "items"
        assert manager.expiration_seconds == 20
        assert manager.refresh_timeout == 2.0

    def test_empty_key_rejected(self):
        """Test an empty key raises ValueError."""
        with pytest.raises(ValueError):
            CacheManager("", 5, Fetcher("V1"))

    def test_stats_hit_rate(self):
        """Test hit rate counts stale hits as served."""
        clock = FakeClock()
        manager = make_manager(Fetcher("V1", "V2"), clock=clock)

        asyncio.run(manager.get_data())  # miss
        asyncio.run(manager.get_data())  # hit
        clock.advance(6)
        asyncio.run(manager.get_data())  # stale hit

        stats = manager.stats
        assert stats.hit_rate == pytest.approx(2 / 3, rel=0.01)
        assert stats.to_dict()["fetches"] == 1


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
