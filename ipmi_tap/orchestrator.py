from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass
import logging
import threading
import time

from ipmi_tap.classifier import (
    LAST_CYCLE_DURATION,
    LAST_CYCLE_TIMESTAMP,
    Observation,
    collector_duration_observation,
    up_observation,
)
from ipmi_tap.collector import TargetCollector, TargetOutcome, TargetResult
from ipmi_tap.config import AppConfig
from ipmi_tap.runner import CommandRunner, Deadline

# Time granted to workers to unwind after the deadline has been cancelled.
GRACE_S = 2.0


@dataclass(frozen=True)
class Snapshot:
    observations: tuple[Observation, ...]
    outcomes: tuple[TargetOutcome, ...]
    collected_at: float
    duration_s: float

    def exported(self) -> list[Observation]:
        """All observations to publish, outcomes included."""
        exported = list(self.observations)
        for outcome in self.outcomes:
            exported.append(up_observation(outcome.collector, outcome.host, outcome.up))
            exported.append(
                collector_duration_observation(outcome.collector, outcome.host, outcome.duration_s)
            )
        exported.append(Observation(LAST_CYCLE_TIMESTAMP, (), self.collected_at))
        exported.append(Observation(LAST_CYCLE_DURATION, (), self.duration_s))
        return exported


class FanOut:
    """Runs every target's collection concurrently under one deadline."""

    def __init__(self, runner: CommandRunner | None = None, grace_s: float = GRACE_S) -> None:
        self.runner = runner or CommandRunner()
        self.grace_s = grace_s
        self.logger = logging.getLogger(self.__class__.__name__)
        self._active: set[Deadline] = set()
        self._active_lock = threading.Lock()

    def cancel_all(self) -> None:
        with self._active_lock:
            active = list(self._active)
        for deadline in active:
            deadline.cancel()

    def run_cycle(self, config: AppConfig) -> Snapshot:
        targets = config.targets
        collected_at = time.time()
        started = time.monotonic()
        if not targets:
            self.logger.info("No targets configured; publishing an empty snapshot.")
            return Snapshot((), (), collected_at, 0.0)

        collector = TargetCollector.from_config(config, self.runner)
        results = [TargetResult(target) for target in targets]
        max_workers = min(config.general.max_workers or len(targets), len(targets))
        deadline = Deadline.after(config.general.timeout_s)
        with self._active_lock:
            self._active.add(deadline)

        executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="collect")
        try:
            futures = {
                executor.submit(collector.collect, result.target, deadline, result): result
                for result in results
            }
            done, pending = wait(futures, timeout=deadline.remaining())
            if pending:
                for future in pending:
                    self.logger.error(
                        "Collection timed out for %s after %ss",
                        futures[future].target.host,
                        config.general.timeout_s,
                    )
                deadline.cancel()
                for future in pending:
                    future.cancel()
                wait(pending, timeout=self.grace_s)
            for future in done:
                error = future.exception()
                if error is not None:
                    self.logger.error(
                        "Worker for %s failed: %s", futures[future].target.host, error
                    )
        finally:
            deadline.cancel()
            executor.shutdown(wait=False, cancel_futures=True)
            with self._active_lock:
                self._active.discard(deadline)

        observations: list[Observation] = []
        outcomes: list[TargetOutcome] = []
        for result in results:
            target_observations, target_outcomes = result.seal()
            observations.extend(target_observations)
            outcomes.extend(target_outcomes)
            self.logger.debug(
                "%s: %s observations, %s/%s collectors up",
                result.target.host,
                len(target_observations),
                sum(1 for outcome in target_outcomes if outcome.up),
                len(target_outcomes),
            )

        duration = time.monotonic() - started
        self.logger.info(
            "Collected %s observations from %s target(s) in %.3fs",
            len(observations),
            len(targets),
            duration,
        )
        return Snapshot(tuple(observations), tuple(outcomes), collected_at, duration)
