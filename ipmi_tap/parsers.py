"""Parsers for FreeIPMI tool output.

``ipmimonitoring`` prints one pipe-delimited row per sensor::

    ID  | Name          | Type        | State    | Reading | Units | Event
    7   | Fan 1 Tach    | Fan         | Nominal  | 3200.00 | RPM   | 'OK'

``ipmi-dcmi`` and ``ipmi-chassis`` print ``Label : value`` lines that are
matched with a regular expression carrying a ``value`` group.
"""
from __future__ import annotations

import csv
from dataclasses import dataclass
import io
import logging
import math
import re

from ipmi_tap.errors import OutputParseError, ValueNotFoundError
from ipmi_tap.logging_utils import TRACE_LEVEL

logger = logging.getLogger(__name__)

NOT_AVAILABLE = "N/A"

CURRENT_POWER_RE = re.compile(r"^Current Power\s*:\s*(?P<value>[0-9.]*)\s*Watts.*")
CHASSIS_POWER_RE = re.compile(r"^System Power\s*:\s(?P<value>.*)")
CHASSIS_DRIVE_FAULT_RE = re.compile(r"^Drive Fault\s*:\s(?P<value>.*)")
CHASSIS_COOLING_FAULT_RE = re.compile(r"^Cooling/fan fault\s*:\s(?P<value>.*)")

# Words that map a chassis flag to 1.0: power "on", fault "false".
_HEALTHY_WORDS = frozenset({"on", "false"})

_SENSOR_ID_RE = re.compile(r"^[+-]?[0-9]+$")
_TABLE_FIELDS = 7


@dataclass(frozen=True)
class SensorReading:
    id: int
    name: str
    type: str
    state: str
    value: float
    unit: str
    event: str

    @property
    def available(self) -> bool:
        return not math.isnan(self.value)


@dataclass(frozen=True)
class ScalarReading:
    kind: str
    value: float


def _decode(output: bytes | str) -> str:
    if isinstance(output, bytes):
        return output.decode("utf-8", errors="replace")
    return output


def normalize_sensor_name(raw: str) -> str:
    """Collapse a sensor name into a label-friendly form.

    Multi-word names get underscores instead of spaces and lose slashes.
    Names carrying a two-character vendor prefix (``01-Inlet Ambient``)
    drop the prefix and use underscores for the remaining hyphens.
    """
    name = raw
    if len(name.split()) > 1:
        name = name.replace(" ", "_").replace("/", "")
    if name.find("-") == 2:
        name = name[3:].replace("-", "_")
    return name


def parse_sensor_table(output: bytes | str) -> list[SensorReading]:
    """Parse ``ipmimonitoring`` output into sensor readings.

    Rows whose first field is not an integer (headers, banners) are skipped.
    A row with a reading that is neither ``N/A`` nor a number aborts the
    whole parse, since that points at a change in the tool's format.
    """
    text = _decode(output)
    readings: list[SensorReading] = []
    try:
        records = list(csv.reader(io.StringIO(text)))
    except csv.Error as exc:
        raise OutputParseError(f"Malformed sensor table: {exc}") from exc

    for record in records:
        if not record:
            continue
        fields = [part.strip(" ") for part in record[0].split("|")]
        if not _SENSOR_ID_RE.match(fields[0]):
            logger.log(TRACE_LEVEL, "Skipping sensor row: %s", record[0])
            continue
        if len(fields) < _TABLE_FIELDS:
            raise OutputParseError(
                f"Sensor row has {len(fields)} fields, expected {_TABLE_FIELDS}: {record[0]!r}"
            )
        raw_value = fields[4]
        if raw_value == NOT_AVAILABLE:
            value = math.nan
        else:
            try:
                value = float(raw_value)
            except ValueError as exc:
                raise OutputParseError(
                    f"Invalid reading {raw_value!r} for sensor {fields[0]}"
                ) from exc
        readings.append(
            SensorReading(
                id=int(fields[0]),
                name=normalize_sensor_name(fields[1]),
                type=fields[2],
                state=fields[3],
                value=value,
                unit=fields[5],
                event=fields[6].strip("'"),
            )
        )
    return readings


def extract_value(output: bytes | str, pattern: re.Pattern[str]) -> str:
    """Return the ``value`` group of the first line matching ``pattern``."""
    for line in _decode(output).splitlines():
        match = pattern.match(line)
        if match is None:
            continue
        return match.group("value")
    raise ValueNotFoundError(f"Could not find value for {pattern.pattern!r} in output")


def parse_current_power(output: bytes | str) -> ScalarReading:
    value = extract_value(output, CURRENT_POWER_RE)
    try:
        watts = float(value)
    except ValueError as exc:
        raise OutputParseError(f"Invalid current power value {value!r}") from exc
    return ScalarReading(kind="power_consumption", value=watts)


def parse_chassis_flag(output: bytes | str, pattern: re.Pattern[str], kind: str) -> ScalarReading:
    """Map a ``Label : word`` chassis line to 1.0 (on/false) or 0.0."""
    word = extract_value(output, pattern).strip()
    return ScalarReading(kind=kind, value=1.0 if word in _HEALTHY_WORDS else 0.0)
