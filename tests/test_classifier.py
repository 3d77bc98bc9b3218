"""Tests for sensor classification into metric families."""
from __future__ import annotations

import logging
import math

import pytest

from ipmi_tap import classifier
from ipmi_tap.classifier import (
    ALL_FAMILIES,
    FAN_SPEED,
    FAN_SPEED_STATE,
    SENSOR_STATE,
    SENSOR_VALUE,
    Observation,
    classify_scalar,
    classify_sensor,
    state_severity,
)
from ipmi_tap.parsers import ScalarReading, SensorReading

HOST = "10.0.0.1"


def reading(unit: str = "RPM", state: str = "Nominal", value: float = 3200.0) -> SensorReading:
    return SensorReading(
        id=7,
        name="Fan_1_Tach",
        type="Fan",
        state=state,
        value=value,
        unit=unit,
        event="OK",
    )


class TestSeverity:
    """Tests for qualitative state encoding."""

    @pytest.mark.parametrize(
        "state,expected", [("Nominal", 0.0), ("Warning", 1.0), ("Critical", 2.0)]
    )
    def test_known_states(self, state, expected):
        assert state_severity(state) == expected

    def test_not_available_is_nan_without_warning(self, caplog):
        with caplog.at_level(logging.WARNING, logger="ipmi_tap.classifier"):
            assert math.isnan(state_severity("N/A"))

        assert caplog.records == []

    @pytest.mark.parametrize("state", ["Degraded", "nominal", ""])
    def test_unknown_state_is_logged_not_raised(self, state, caplog):
        with caplog.at_level(logging.WARNING, logger="ipmi_tap.classifier"):
            severity = state_severity(state)

        assert math.isnan(severity)
        assert any("Unknown sensor state" in record.getMessage() for record in caplog.records)


class TestClassifySensor:
    """Tests for unit-based dispatch."""

    def test_fan_speed(self):
        observations = classify_sensor(reading(), HOST)

        assert len(observations) == 2
        value, state = observations
        assert value.family is FAN_SPEED
        assert state.family is FAN_SPEED_STATE
        assert value.value == 3200.0
        assert state.value == 0.0
        assert value.labels == state.labels == ("7", "Fan_1_Tach", HOST)
        assert value.label_map() == {"id": "7", "name": "Fan_1_Tach", "host": HOST}

    @pytest.mark.parametrize(
        "unit,metric",
        [
            ("C", "ipmi_temperature_celsius"),
            ("A", "ipmi_current_amperes"),
            ("V", "ipmi_voltage_volts"),
            ("W", "ipmi_power_watts"),
            ("RPM", "ipmi_fan_speed_rpm"),
        ],
    )
    def test_typed_units(self, unit, metric):
        value, state = classify_sensor(reading(unit=unit, value=1.5), HOST)

        assert value.family.name == metric
        assert state.family.name.endswith("_state")
        assert value.family.labels == ("id", "name", "host")

    def test_unknown_unit_uses_generic_families(self):
        value, state = classify_sensor(reading(unit="%", value=55.0), HOST)

        assert value.family is SENSOR_VALUE
        assert state.family is SENSOR_STATE
        assert value.label_map() == {
            "id": "7",
            "name": "Fan_1_Tach",
            "type": "Fan",
            "host": HOST,
        }
        assert len(state.labels) == 4

    def test_unavailable_reading_keeps_nan(self):
        value, state = classify_sensor(reading(unit="N/A", state="N/A", value=math.nan), HOST)

        assert math.isnan(value.value)
        assert math.isnan(state.value)

    def test_unknown_state_still_classified(self):
        value, state = classify_sensor(reading(state="Bogus"), HOST)

        assert value.value == 3200.0
        assert math.isnan(state.value)


class TestScalarsAndFamilies:
    """Tests for scalar readings and the family table."""

    @pytest.mark.parametrize(
        "kind,metric",
        [
            ("power_consumption", "ipmi_dcmi_power_consumption_watts"),
            ("chassis_power", "ipmi_chassis_power_state"),
            ("chassis_drive_fault", "ipmi_chassis_drive_fault"),
            ("chassis_cooling_fault", "ipmi_chassis_cooling_fault"),
        ],
    )
    def test_scalar_families(self, kind, metric):
        observation = classify_scalar(ScalarReading(kind=kind, value=1.0), HOST)

        assert observation.family.name == metric
        assert observation.labels == (HOST,)

    def test_unknown_scalar_kind(self):
        with pytest.raises(ValueError):
            classify_scalar(ScalarReading(kind="fan_count", value=3.0), HOST)

    def test_label_count_is_enforced(self):
        with pytest.raises(ValueError):
            Observation(FAN_SPEED, ("7", HOST), 1.0)

    def test_family_names_are_unique(self):
        names = [family.name for family in ALL_FAMILIES]

        assert len(names) == len(set(names))
        assert "ipmi_up" in names
        assert "ipmi_scrape_duration_seconds" in names

    def test_up_observation(self):
        observation = classifier.up_observation("ipmi-dcmi", HOST, False)

        assert observation.value == 0.0
        assert observation.label_map() == {"collector": "ipmi-dcmi", "host": HOST}
