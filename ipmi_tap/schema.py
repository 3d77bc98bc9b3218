from __future__ import annotations

from datetime import datetime, timezone
from importlib import resources
import json
import math
from typing import Any

from jsonschema import Draft202012Validator

from ipmi_tap.orchestrator import Snapshot

SCHEMA_NAME = "ipmi-tap-snapshot"
SCHEMA_VERSION = 1


def load_schema() -> dict[str, Any]:
    schema_path = resources.files("ipmi_tap").joinpath("schemas/snapshot.schema.json")
    return json.loads(schema_path.read_text(encoding="utf-8"))


def get_validator() -> Draft202012Validator:
    schema = load_schema()
    return Draft202012Validator(schema=schema)


def _json_number(value: float) -> float | None:
    return None if math.isnan(value) or math.isinf(value) else value


def snapshot_payload(snapshot: Snapshot) -> dict[str, Any]:
    """Render a snapshot as a JSON-safe dict (NaN becomes null)."""
    return {
        "schema": {"name": SCHEMA_NAME, "version": SCHEMA_VERSION},
        "ts": datetime.fromtimestamp(snapshot.collected_at, tz=timezone.utc).isoformat(),
        "duration_s": snapshot.duration_s,
        "observations": [
            {
                "metric": observation.family.name,
                "labels": observation.label_map(),
                "value": _json_number(observation.value),
            }
            for observation in snapshot.observations
        ],
        "outcomes": [
            {
                "host": outcome.host,
                "collector": outcome.collector,
                "up": outcome.up,
                "duration_s": outcome.duration_s,
            }
            for outcome in snapshot.outcomes
        ],
    }


def validate_payload(payload: dict[str, Any]) -> list[str]:
    validator = get_validator()
    errors = sorted(validator.iter_errors(payload), key=lambda e: [str(part) for part in e.path])
    return [error.message for error in errors]
