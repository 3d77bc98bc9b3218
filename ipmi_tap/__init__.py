"""ipmi-tap IPMI sensor exporter."""

from ipmi_tap.cache import SnapshotCache
from ipmi_tap.config import AppConfig, load_config
from ipmi_tap.context import AppContext
from ipmi_tap.exporter import IpmiCollector, build_registry
from ipmi_tap.orchestrator import FanOut, Snapshot
from ipmi_tap.schema import validate_payload

__all__ = [
    "AppConfig",
    "AppContext",
    "FanOut",
    "IpmiCollector",
    "Snapshot",
    "SnapshotCache",
    "build_registry",
    "load_config",
    "validate_payload",
]
