from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
import configparser

from ipmi_tap.collector import registered_collectors
from ipmi_tap.errors import ConfigError

TARGET_PREFIX = "target:"

MODE_CACHED = "cached"
MODE_ON_DEMAND = "on-demand"
COLLECTION_MODES = (MODE_CACHED, MODE_ON_DEMAND)

DEFAULT_ADDRESS = "0.0.0.0:9290"
DEFAULT_COLLECTORS = "ipmimonitoring, ipmi-dcmi, ipmi-chassis"


@dataclass(frozen=True)
class GlobalConfig:
    address: str
    listen_host: str
    listen_port: int
    drive: str
    collectors: tuple[str, ...]
    timeout_s: float
    interval_s: int
    mode: str
    max_workers: int


@dataclass(frozen=True)
class ToolsConfig:
    ipmimonitoring_path: str
    ipmi_dcmi_path: str
    ipmi_chassis_path: str


@dataclass(frozen=True)
class LoggingConfig:
    level: str
    file: str | None


@dataclass(frozen=True)
class TargetConfig:
    name: str
    host: str
    user: str
    password: str
    collectors: tuple[str, ...]


@dataclass(frozen=True)
class AppConfig:
    general: GlobalConfig
    tools: ToolsConfig
    logging: LoggingConfig
    targets: tuple[TargetConfig, ...]
    source: str


def _get_optional(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value if value else None


def _get_list(value: str | None) -> tuple[str, ...]:
    if value is None:
        return ()
    # dict.fromkeys keeps the first occurrence and the configured order
    return tuple(dict.fromkeys(item.strip() for item in value.split(",") if item.strip()))


def parse_address(address: str) -> tuple[str, int]:
    host, sep, port = address.strip().rpartition(":")
    if not sep:
        raise ValueError(f"address must be host:port, got {address!r}")
    port_number = int(port)
    if not 1 <= port_number <= 65535:
        raise ValueError(f"port must be between 1 and 65535, got {port_number}")
    return host or "0.0.0.0", port_number


def _check_collectors(owner: str, names: tuple[str, ...], problems: list[str]) -> None:
    known = registered_collectors()
    for name in names:
        if name not in known:
            problems.append(
                f"{owner}: unknown collector {name!r} (known: {', '.join(sorted(known))})"
            )


def load_config(path: str | Path) -> AppConfig:
    parser = configparser.ConfigParser(interpolation=None)
    try:
        read_files = parser.read(path, encoding="utf-8")
    except (configparser.Error, UnicodeDecodeError, OSError) as exc:
        raise ConfigError(f"Invalid config file {path}: {exc}") from exc
    if not read_files:
        raise ConfigError(f"Config file not found: {path}")

    problems: list[str] = []

    address = parser.get("global", "address", fallback=DEFAULT_ADDRESS)
    listen_host, listen_port = "0.0.0.0", 0
    try:
        listen_host, listen_port = parse_address(address)
    except ValueError as exc:
        problems.append(f"[global] address: {exc}")

    try:
        timeout_s = parser.getfloat("global", "timeout_s", fallback=30.0)
        interval_s = parser.getint("global", "interval_s", fallback=60)
        max_workers = parser.getint("global", "max_workers", fallback=0)
    except ValueError as exc:
        raise ConfigError(f"Invalid config file {path}", [f"[global] {exc}"]) from exc
    if timeout_s <= 0:
        problems.append(f"[global] timeout_s must be > 0, got {timeout_s}")
    if interval_s <= 0:
        problems.append(f"[global] interval_s must be > 0, got {interval_s}")
    if max_workers < 0:
        problems.append(f"[global] max_workers must be >= 0, got {max_workers}")

    mode = parser.get("global", "mode", fallback=MODE_CACHED).strip().lower()
    if mode not in COLLECTION_MODES:
        problems.append(f"[global] mode must be one of {', '.join(COLLECTION_MODES)}, got {mode!r}")

    collectors = _get_list(parser.get("global", "collectors", fallback=DEFAULT_COLLECTORS))
    _check_collectors("[global] collectors", collectors, problems)

    general = GlobalConfig(
        address=address,
        listen_host=listen_host,
        listen_port=listen_port,
        drive=parser.get("global", "drive", fallback="LAN_2_0"),
        collectors=collectors,
        timeout_s=timeout_s,
        interval_s=interval_s,
        mode=mode,
        max_workers=max_workers,
    )

    tools = ToolsConfig(
        ipmimonitoring_path=parser.get("tools", "ipmimonitoring_path", fallback="ipmimonitoring"),
        ipmi_dcmi_path=parser.get("tools", "ipmi_dcmi_path", fallback="ipmi-dcmi"),
        ipmi_chassis_path=parser.get("tools", "ipmi_chassis_path", fallback="ipmi-chassis"),
    )

    logging_config = LoggingConfig(
        level=parser.get("logging", "level", fallback="INFO"),
        file=_get_optional(parser.get("logging", "file", fallback=None)),
    )

    targets: list[TargetConfig] = []
    seen_hosts: set[str] = set()
    for section in parser.sections():
        if not section.startswith(TARGET_PREFIX):
            continue
        name = section[len(TARGET_PREFIX):].strip()
        host = _get_optional(parser.get(section, "host", fallback=None))
        if host is None:
            problems.append(f"[{section}] host is required")
            continue
        if host in seen_hosts:
            problems.append(f"[{section}] duplicate target host {host}")
            continue
        seen_hosts.add(host)
        override = _get_list(parser.get(section, "collectors", fallback=None))
        _check_collectors(f"[{section}] collectors", override, problems)
        targets.append(
            TargetConfig(
                name=name or host,
                host=host,
                user=parser.get(section, "user", fallback=""),
                password=parser.get(section, "password", fallback=""),
                collectors=override or collectors,
            )
        )

    if problems:
        raise ConfigError(f"Invalid config file {path}", problems)

    return AppConfig(
        general=general,
        tools=tools,
        logging=logging_config,
        targets=tuple(targets),
        source=str(path),
    )
