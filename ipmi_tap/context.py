from __future__ import annotations

import logging
import threading
from typing import Callable

from ipmi_tap.cache import SnapshotCache
from ipmi_tap.config import AppConfig, load_config
from ipmi_tap.orchestrator import FanOut, Snapshot

SnapshotListener = Callable[[Snapshot], None]


class AppContext:
    """Process-wide state passed explicitly to the components that need it.

    The configuration is only ever swapped whole, so a running cycle keeps
    iterating the target tuple it started with.
    """

    def __init__(
        self,
        config: AppConfig,
        cache: SnapshotCache | None = None,
        fanout: FanOut | None = None,
    ) -> None:
        self._config = config
        self._config_lock = threading.Lock()
        self._reload_lock = threading.Lock()
        self.cache = cache or SnapshotCache()
        self.fanout = fanout or FanOut()
        self._listeners: list[SnapshotListener] = []
        self.logger = logging.getLogger(self.__class__.__name__)

    @property
    def config(self) -> AppConfig:
        with self._config_lock:
            return self._config

    def add_listener(self, listener: SnapshotListener) -> None:
        self._listeners.append(listener)

    def reload(self) -> AppConfig:
        """Re-read the config file; on ConfigError the current config stays."""
        with self._reload_lock:
            current = self.config
            new = load_config(current.source)
            if new.general.address != current.general.address:
                self.logger.warning(
                    "Listen address changed to %s; restart to apply.", new.general.address
                )
            if new.general.mode != current.general.mode:
                self.logger.warning(
                    "Collection mode changed to %s; restart to apply.", new.general.mode
                )
            with self._config_lock:
                self._config = new
        self.logger.info(
            "Configuration reloaded from %s: %s target(s).", new.source, len(new.targets)
        )
        return new

    def collect(self) -> Snapshot:
        snapshot = self.fanout.run_cycle(self.config)
        self.cache.replace(snapshot)
        for listener in self._listeners:
            try:
                listener(snapshot)
            except Exception:
                self.logger.exception("Snapshot listener %r failed", listener)
        return snapshot
