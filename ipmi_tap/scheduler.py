from __future__ import annotations

from abc import ABC, abstractmethod
import logging
import threading
import time

from ipmi_tap.classifier import Observation
from ipmi_tap.config import MODE_CACHED, MODE_ON_DEMAND
from ipmi_tap.context import AppContext
from ipmi_tap.orchestrator import Snapshot


class CadenceScheduler:
    """Runs a collection cycle every ``interval_s`` seconds on one thread.

    Ticks missed because a cycle overran are skipped, never queued, and
    ``run_once`` refuses to start while another cycle is in flight.
    """

    def __init__(self, context: AppContext) -> None:
        self.context = context
        self.logger = logging.getLogger(self.__class__.__name__)
        self._stop = threading.Event()
        self._running = threading.Lock()
        self._thread: threading.Thread | None = None

    def run_once(self) -> bool:
        if not self._running.acquire(blocking=False):
            self.logger.warning("Collection cycle already running; skipping.")
            return False
        try:
            self.context.collect()
        except Exception:
            self.logger.exception("Collection cycle failed.")
        finally:
            self._running.release()
        return True

    def _loop(self) -> None:
        next_run = time.monotonic()
        while not self._stop.is_set():
            self.run_once()
            interval = self.context.config.general.interval_s
            next_run += interval
            now = time.monotonic()
            if next_run < now:
                skipped = int((now - next_run) // interval) + 1
                self.logger.warning(
                    "Collection cycle overran its %ss interval; skipping %s tick(s).",
                    interval,
                    skipped,
                )
                next_run += skipped * interval
            self._stop.wait(next_run - now)
        self.logger.info("Scheduler stopped.")

    def start(self) -> None:
        if self._thread is not None:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="scheduler", daemon=True)
        self._thread.start()
        self.logger.info(
            "Scheduler started; collecting every %ss.", self.context.config.general.interval_s
        )

    def stop(self, timeout: float | None = None) -> None:
        self._stop.set()
        self.context.fanout.cancel_all()
        if self._thread is not None:
            self._thread.join(timeout)
            if self._thread.is_alive():
                self.logger.warning("Scheduler thread did not finish in time.")
            self._thread = None


class CollectionMode(ABC):
    name = ""

    def __init__(self, context: AppContext) -> None:
        self.context = context

    @abstractmethod
    def snapshot(self) -> Snapshot | None:
        """Snapshot to serve for the current scrape, None before the first cycle."""

    def observations(self) -> list[Observation]:
        snapshot = self.snapshot()
        if snapshot is None:
            return []
        return snapshot.exported()

    def start(self) -> None:
        pass

    def stop(self) -> None:
        pass


class CachedMode(CollectionMode):
    """Scrapes read the cache; a background scheduler refreshes it."""

    name = MODE_CACHED

    def __init__(self, context: AppContext, scheduler: CadenceScheduler | None = None) -> None:
        super().__init__(context)
        self.scheduler = scheduler or CadenceScheduler(context)

    def snapshot(self) -> Snapshot | None:
        return self.context.cache.get()

    def start(self) -> None:
        self.scheduler.start()

    def stop(self) -> None:
        self.scheduler.stop(timeout=self.context.config.general.timeout_s)


class OnDemandMode(CollectionMode):
    """Every scrape runs a full cycle before answering."""

    name = MODE_ON_DEMAND

    def snapshot(self) -> Snapshot | None:
        return self.context.collect()

    def stop(self) -> None:
        self.context.fanout.cancel_all()


def build_mode(context: AppContext, name: str) -> CollectionMode:
    if name == MODE_CACHED:
        return CachedMode(context)
    if name == MODE_ON_DEMAND:
        return OnDemandMode(context)
    raise ValueError(f"Unknown collection mode: {name}")
