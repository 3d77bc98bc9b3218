from __future__ import annotations

from contextlib import contextmanager
import logging
import threading
from typing import Iterator

from ipmi_tap.classifier import Observation
from ipmi_tap.orchestrator import Snapshot


class ReadWriteLock:
    """Many concurrent readers or a single writer.

    A waiting writer blocks new readers so the periodic replace is not
    starved by a steady stream of scrapes.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    def acquire_read(self) -> None:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1

    def release_read(self) -> None:
        with self._cond:
            self._readers -= 1
            if self._readers == 0:
                self._cond.notify_all()

    def acquire_write(self) -> None:
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer = True

    def release_write(self) -> None:
        with self._cond:
            self._writer = False
            self._cond.notify_all()

    @contextmanager
    def read_locked(self) -> Iterator[None]:
        self.acquire_read()
        try:
            yield
        finally:
            self.release_read()

    @contextmanager
    def write_locked(self) -> Iterator[None]:
        self.acquire_write()
        try:
            yield
        finally:
            self.release_write()


class SnapshotCache:
    """Holds the last completed snapshot, replaced whole once per cycle."""

    def __init__(self) -> None:
        self._lock = ReadWriteLock()
        self._snapshot: Snapshot | None = None
        self.logger = logging.getLogger(self.__class__.__name__)

    def replace(self, snapshot: Snapshot) -> None:
        with self._lock.write_locked():
            self._snapshot = snapshot
        self.logger.debug(
            "Snapshot replaced: %s observations, %s outcomes",
            len(snapshot.observations),
            len(snapshot.outcomes),
        )

    def get(self) -> Snapshot | None:
        with self._lock.read_locked():
            return self._snapshot

    def observations(self) -> list[Observation]:
        snapshot = self.get()
        if snapshot is None:
            return []
        return snapshot.exported()
