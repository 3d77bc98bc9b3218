"""Tests for the collection scheduler and the two collection modes."""
from __future__ import annotations

import threading
import time

import pytest

from ipmi_tap.cache import SnapshotCache
from ipmi_tap.context import AppContext
from ipmi_tap.orchestrator import Snapshot
from ipmi_tap.scheduler import (
    CachedMode,
    CadenceScheduler,
    OnDemandMode,
    build_mode,
)

from helpers import make_config, make_target


class FakeFanOut:
    """Records cycles instead of spawning collectors."""

    def __init__(self, delay: float = 0.0, error: Exception | None = None):
        self.delay = delay
        self.error = error
        self.cycles = 0
        self.cancelled = 0
        self.started = threading.Event()

    def run_cycle(self, config):
        self.cycles += 1
        self.started.set()
        if self.delay:
            time.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return Snapshot((), (), float(self.cycles), self.delay)

    def cancel_all(self):
        self.cancelled += 1


def make_context(fanout: FakeFanOut, interval_s: int = 60) -> AppContext:
    config = make_config(targets=(make_target(),), interval_s=interval_s)
    return AppContext(config, cache=SnapshotCache(), fanout=fanout)


class TestCadenceScheduler:
    """Tests for CadenceScheduler."""

    def test_run_once_fills_cache(self):
        context = make_context(FakeFanOut())

        assert CadenceScheduler(context).run_once() is True

        assert context.cache.get().collected_at == 1.0

    def test_overlapping_cycle_is_skipped(self):
        fanout = FakeFanOut(delay=0.3)
        scheduler = CadenceScheduler(make_context(fanout))
        first = threading.Thread(target=scheduler.run_once)

        first.start()
        assert fanout.started.wait(1.0)
        second = scheduler.run_once()
        first.join(2.0)

        assert second is False
        assert fanout.cycles == 1

    def test_failed_cycle_keeps_previous_snapshot(self):
        fanout = FakeFanOut()
        context = make_context(fanout)
        scheduler = CadenceScheduler(context)
        scheduler.run_once()
        previous = context.cache.get()

        fanout.error = RuntimeError("boom")
        scheduler.run_once()

        assert context.cache.get() is previous

    def test_start_collects_immediately_and_stop_cancels(self):
        fanout = FakeFanOut()
        scheduler = CadenceScheduler(make_context(fanout, interval_s=60))

        scheduler.start()
        assert fanout.started.wait(2.0)
        scheduler.stop(timeout=2.0)

        assert fanout.cycles == 1
        assert fanout.cancelled == 1
        assert scheduler._thread is None

    def test_start_is_idempotent(self):
        fanout = FakeFanOut()
        scheduler = CadenceScheduler(make_context(fanout))

        scheduler.start()
        thread = scheduler._thread
        scheduler.start()

        assert scheduler._thread is thread
        scheduler.stop(timeout=2.0)


class TestModes:
    """Tests for cached and on-demand collection modes."""

    def test_cached_mode_reads_cache_without_collecting(self):
        fanout = FakeFanOut()
        mode = CachedMode(make_context(fanout))

        assert mode.snapshot() is None
        assert mode.observations() == []
        assert fanout.cycles == 0

    def test_cached_mode_serves_latest_cycle(self):
        fanout = FakeFanOut()
        context = make_context(fanout)
        mode = CachedMode(context)

        mode.scheduler.run_once()
        mode.scheduler.run_once()

        assert mode.snapshot().collected_at == 2.0
        assert fanout.cycles == 2

    def test_on_demand_collects_per_scrape(self):
        fanout = FakeFanOut()
        context = make_context(fanout)
        mode = OnDemandMode(context)

        first = mode.snapshot()
        second = mode.snapshot()

        assert fanout.cycles == 2
        assert (first.collected_at, second.collected_at) == (1.0, 2.0)
        assert context.cache.get() is second

    def test_on_demand_observations_include_cycle_metadata(self):
        mode = OnDemandMode(make_context(FakeFanOut()))

        names = [o.family.name for o in mode.observations()]

        assert names == [
            "ipmi_last_cycle_timestamp_seconds",
            "ipmi_last_cycle_duration_seconds",
        ]

    def test_on_demand_stop_cancels_cycles(self):
        fanout = FakeFanOut()
        OnDemandMode(make_context(fanout)).stop()

        assert fanout.cancelled == 1

    @pytest.mark.parametrize("name,expected", [("cached", CachedMode), ("on-demand", OnDemandMode)])
    def test_build_mode(self, name, expected):
        mode = build_mode(make_context(FakeFanOut()), name)

        assert isinstance(mode, expected)
        assert mode.name == name

    def test_build_mode_rejects_unknown(self):
        with pytest.raises(ValueError):
            build_mode(make_context(FakeFanOut()), "push")
