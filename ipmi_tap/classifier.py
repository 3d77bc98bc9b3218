"""Classification of parsed readings into Prometheus metric families.

Every family is declared once below together with its label schema.
Typed sensor families are labeled ``id, name, host``; the generic fallback
adds ``type`` so unknown sensor kinds are still exported with context.
"""
from __future__ import annotations

from dataclasses import dataclass
import logging
import math

from ipmi_tap.parsers import ScalarReading, SensorReading

logger = logging.getLogger(__name__)

NAMESPACE = "ipmi"

SENSOR_LABELS = ("id", "name", "host")
GENERIC_SENSOR_LABELS = ("id", "name", "type", "host")
HOST_LABELS = ("host",)
COLLECTOR_LABELS = ("collector", "host")

STATE_HELP = "Reported state of a {} sensor (0=nominal, 1=warning, 2=critical)."


@dataclass(frozen=True)
class MetricFamily:
    name: str
    documentation: str
    labels: tuple[str, ...]


@dataclass(frozen=True)
class Observation:
    family: MetricFamily
    labels: tuple[str, ...]
    value: float

    def __post_init__(self) -> None:
        if len(self.labels) != len(self.family.labels):
            raise ValueError(
                f"{self.family.name} expects labels {self.family.labels}, got {self.labels}"
            )

    def label_map(self) -> dict[str, str]:
        return dict(zip(self.family.labels, self.labels))


def _family(subsystem: str, suffix: str, documentation: str, labels: tuple[str, ...]) -> MetricFamily:
    parts = [NAMESPACE, subsystem, suffix]
    return MetricFamily("_".join(p for p in parts if p), documentation, labels)


SENSOR_VALUE = _family(
    "sensor", "value",
    "Generic data read from an IPMI sensor of unknown type, relying on labels for context.",
    GENERIC_SENSOR_LABELS,
)
SENSOR_STATE = _family(
    "sensor", "state",
    "Indicates the severity of the state reported by an IPMI sensor (0=nominal, 1=warning, 2=critical).",
    GENERIC_SENSOR_LABELS,
)
FAN_SPEED = _family("fan_speed", "rpm", "Fan speed in rotations per minute.", SENSOR_LABELS)
FAN_SPEED_STATE = _family("fan_speed", "state", STATE_HELP.format("fan speed"), SENSOR_LABELS)
TEMPERATURE = _family("temperature", "celsius", "Temperature reading in degree Celsius.", SENSOR_LABELS)
TEMPERATURE_STATE = _family("temperature", "state", STATE_HELP.format("temperature"), SENSOR_LABELS)
VOLTAGE = _family("voltage", "volts", "Voltage reading in Volts.", SENSOR_LABELS)
VOLTAGE_STATE = _family("voltage", "state", STATE_HELP.format("voltage"), SENSOR_LABELS)
CURRENT = _family("current", "amperes", "Current reading in Amperes.", SENSOR_LABELS)
CURRENT_STATE = _family("current", "state", STATE_HELP.format("current"), SENSOR_LABELS)
POWER = _family("power", "watts", "Power reading in Watts.", SENSOR_LABELS)
POWER_STATE = _family("power", "state", STATE_HELP.format("power"), SENSOR_LABELS)

POWER_CONSUMPTION = _family(
    "dcmi", "power_consumption_watts", "Current power consumption in Watts.", HOST_LABELS
)
CHASSIS_POWER_STATE = _family(
    "chassis", "power_state", "Current power state (1=on, 0=off).", HOST_LABELS
)
CHASSIS_DRIVE_FAULT = _family(
    "chassis", "drive_fault", "Current drive fault (1=false, 0=true).", HOST_LABELS
)
CHASSIS_COOLING_FAULT = _family(
    "chassis", "cooling_fault", "Current cooling fault (1=false, 0=true).", HOST_LABELS
)

UP = _family(
    "", "up", "'1' if a scrape of the IPMI device was successful, '0' otherwise.", COLLECTOR_LABELS
)
SCRAPE_DURATION = _family(
    "scrape_duration", "seconds", "Returns how long the scrape took to complete in seconds.", HOST_LABELS
)
COLLECTOR_DURATION = _family(
    "collector_duration", "seconds", "How long a single sub-collector took in seconds.", COLLECTOR_LABELS
)
LAST_CYCLE_TIMESTAMP = _family(
    "last_cycle", "timestamp_seconds", "Unix time at which the served snapshot was collected.", ()
)
LAST_CYCLE_DURATION = _family(
    "last_cycle", "duration_seconds", "Wall-clock duration of the cycle that produced the served snapshot.", ()
)

UNIT_FAMILIES: dict[str, tuple[MetricFamily, MetricFamily]] = {
    "RPM": (FAN_SPEED, FAN_SPEED_STATE),
    "C": (TEMPERATURE, TEMPERATURE_STATE),
    "A": (CURRENT, CURRENT_STATE),
    "V": (VOLTAGE, VOLTAGE_STATE),
    "W": (POWER, POWER_STATE),
}

SCALAR_FAMILIES: dict[str, MetricFamily] = {
    "power_consumption": POWER_CONSUMPTION,
    "chassis_power": CHASSIS_POWER_STATE,
    "chassis_drive_fault": CHASSIS_DRIVE_FAULT,
    "chassis_cooling_fault": CHASSIS_COOLING_FAULT,
}

ALL_FAMILIES: tuple[MetricFamily, ...] = (
    SENSOR_VALUE,
    SENSOR_STATE,
    *(family for pair in UNIT_FAMILIES.values() for family in pair),
    *SCALAR_FAMILIES.values(),
    UP,
    SCRAPE_DURATION,
    COLLECTOR_DURATION,
    LAST_CYCLE_TIMESTAMP,
    LAST_CYCLE_DURATION,
)

SEVERITY = {
    "Nominal": 0.0,
    "Warning": 1.0,
    "Critical": 2.0,
    "N/A": math.nan,
}


def state_severity(state: str) -> float:
    """Encode a qualitative sensor state as 0/1/2, NaN when unknown."""
    try:
        return SEVERITY[state]
    except KeyError:
        logger.warning("Unknown sensor state: %r", state)
        return math.nan


def classify_sensor(reading: SensorReading, host: str) -> list[Observation]:
    severity = state_severity(reading.state)
    logger.debug("Got values: %s", reading)
    sensor_id = str(reading.id)
    families = UNIT_FAMILIES.get(reading.unit)
    if families is None:
        labels = (sensor_id, reading.name, reading.type, host)
        value_family, state_family = SENSOR_VALUE, SENSOR_STATE
    else:
        labels = (sensor_id, reading.name, host)
        value_family, state_family = families
    return [
        Observation(value_family, labels, reading.value),
        Observation(state_family, labels, severity),
    ]


def classify_scalar(reading: ScalarReading, host: str) -> Observation:
    try:
        family = SCALAR_FAMILIES[reading.kind]
    except KeyError:
        raise ValueError(f"Unknown scalar reading kind: {reading.kind}") from None
    return Observation(family, (host,), reading.value)


def up_observation(collector: str, host: str, up: bool) -> Observation:
    return Observation(UP, (collector, host), 1.0 if up else 0.0)


def collector_duration_observation(collector: str, host: str, seconds: float) -> Observation:
    return Observation(COLLECTOR_DURATION, (collector, host), seconds)


def duration_observation(host: str, seconds: float) -> Observation:
    return Observation(SCRAPE_DURATION, (host,), seconds)
