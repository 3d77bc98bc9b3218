from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
import logging
import threading
import time
from typing import TYPE_CHECKING, Callable, Mapping

from ipmi_tap.classifier import (
    Observation,
    classify_scalar,
    classify_sensor,
    duration_observation,
)
from ipmi_tap.errors import (
    CommandError,
    CommandTimeout,
    OutputParseError,
    PartialReadError,
)
from ipmi_tap.parsers import (
    CHASSIS_COOLING_FAULT_RE,
    CHASSIS_DRIVE_FAULT_RE,
    CHASSIS_POWER_RE,
    parse_chassis_flag,
    parse_current_power,
    parse_sensor_table,
)
from ipmi_tap.runner import CommandRunner, Deadline

if TYPE_CHECKING:
    from ipmi_tap.config import AppConfig, TargetConfig, ToolsConfig

_REGISTRY: dict[str, type[SubCollector]] = {}


def register_collector(name: str) -> Callable[[type[SubCollector]], type[SubCollector]]:
    def decorator(cls: type[SubCollector]) -> type[SubCollector]:
        cls.name = name
        _REGISTRY[name] = cls
        return cls

    return decorator


def registered_collectors() -> frozenset[str]:
    return frozenset(_REGISTRY)


def build_collectors(tools: ToolsConfig) -> dict[str, SubCollector]:
    return {
        name: cls(getattr(tools, cls.tool_option)) for name, cls in _REGISTRY.items()
    }


class SubCollector(ABC):
    """One diagnostic tool invocation for one target."""

    name = ""
    tool_option = ""

    def __init__(self, executable: str) -> None:
        self.executable = executable
        self.logger = logging.getLogger(self.__class__.__name__)

    def arguments(self, target: TargetConfig, drive: str) -> list[str]:
        return ["-D", drive, "-h", target.host, "-u", target.user, "-p", target.password]

    def collect(
        self,
        target: TargetConfig,
        runner: CommandRunner,
        drive: str,
        deadline: Deadline | None = None,
    ) -> list[Observation]:
        output = runner.run(self.executable, self.arguments(target, drive), deadline)
        return self.interpret(output, target.host)

    @abstractmethod
    def interpret(self, output: bytes, host: str) -> list[Observation]:
        """Turn raw tool output into observations for ``host``."""


@register_collector("ipmimonitoring")
class MonitoringCollector(SubCollector):
    tool_option = "ipmimonitoring_path"

    def interpret(self, output: bytes, host: str) -> list[Observation]:
        observations: list[Observation] = []
        for reading in parse_sensor_table(output):
            observations.extend(classify_sensor(reading, host))
        return observations


@register_collector("ipmi-dcmi")
class DcmiCollector(SubCollector):
    tool_option = "ipmi_dcmi_path"

    def interpret(self, output: bytes, host: str) -> list[Observation]:
        return [classify_scalar(parse_current_power(output), host)]


@register_collector("ipmi-chassis")
class ChassisCollector(SubCollector):
    tool_option = "ipmi_chassis_path"

    FLAGS = (
        ("chassis_power", CHASSIS_POWER_RE),
        ("chassis_drive_fault", CHASSIS_DRIVE_FAULT_RE),
        ("chassis_cooling_fault", CHASSIS_COOLING_FAULT_RE),
    )

    def interpret(self, output: bytes, host: str) -> list[Observation]:
        observations: list[Observation] = []
        for kind, pattern in self.FLAGS:
            try:
                reading = parse_chassis_flag(output, pattern, kind)
            except OutputParseError as exc:
                if observations:
                    raise PartialReadError(str(exc), observations) from exc
                raise
            observations.append(classify_scalar(reading, host))
        return observations


@dataclass(frozen=True)
class TargetOutcome:
    host: str
    collector: str
    up: bool
    duration_s: float


class TargetResult:
    """Observations gathered for one target during one cycle.

    Written by the target's worker, sealed by the orchestrator. Once sealed,
    further records are refused so a straggling worker cannot alter a
    finished snapshot.
    """

    def __init__(self, target: TargetConfig) -> None:
        self.target = target
        self._lock = threading.Lock()
        self._observations: list[Observation] = []
        self._outcomes: dict[str, TargetOutcome] = {}
        self._started = time.monotonic()
        self._duration_s: float | None = None
        self._sealed = False

    @property
    def finished(self) -> bool:
        with self._lock:
            return self._duration_s is not None

    def record(self, outcome: TargetOutcome, observations: list[Observation]) -> bool:
        with self._lock:
            if self._sealed:
                return False
            self._observations.extend(observations)
            self._outcomes[outcome.collector] = outcome
            return True

    def finish(self) -> None:
        with self._lock:
            if not self._sealed:
                self._duration_s = time.monotonic() - self._started

    def seal(self) -> tuple[list[Observation], list[TargetOutcome]]:
        """Freeze the result; collectors that never reported count as down."""
        with self._lock:
            self._sealed = True
            duration = self._duration_s
            if duration is None:
                duration = time.monotonic() - self._started
            host = self.target.host
            outcomes = [
                self._outcomes.get(name) or TargetOutcome(host, name, False, 0.0)
                for name in self.target.collectors
            ]
            observations = list(self._observations)
        observations.append(duration_observation(host, duration))
        return observations, outcomes


class TargetCollector:
    def __init__(
        self,
        runner: CommandRunner,
        collectors: Mapping[str, SubCollector],
        drive: str,
    ) -> None:
        self.runner = runner
        self.collectors = collectors
        self.drive = drive
        self.logger = logging.getLogger(self.__class__.__name__)

    @classmethod
    def from_config(cls, config: AppConfig, runner: CommandRunner) -> TargetCollector:
        return cls(runner, build_collectors(config.tools), config.general.drive)

    def collect(self, target: TargetConfig, deadline: Deadline, result: TargetResult) -> None:
        host = target.host
        for name in target.collectors:
            if deadline.expired:
                self.logger.error("Deadline reached before %s ran for %s", name, host)
                break
            self.logger.debug("Running collector %s for %s", name, host)
            sub_collector = self.collectors[name]
            started = time.monotonic()
            up = False
            observations: list[Observation] = []
            try:
                observations = sub_collector.collect(target, self.runner, self.drive, deadline)
                up = True
            except PartialReadError as exc:
                observations = exc.observations
                self.logger.error("Failed to parse %s data from %s: %s", name, host, exc)
            except CommandTimeout as exc:
                self.logger.error("Timed out collecting %s data from %s: %s", name, host, exc)
            except CommandError as exc:
                self.logger.error("Failed to collect %s data from %s: %s", name, host, exc)
            except OutputParseError as exc:
                self.logger.error("Failed to parse %s data from %s: %s", name, host, exc)
            except Exception:
                self.logger.exception("Unexpected error in collector %s for %s", name, host)
            outcome = TargetOutcome(host, name, up, time.monotonic() - started)
            if not result.record(outcome, observations):
                self.logger.warning("Discarding late %s results for %s", name, host)
                return
        result.finish()
