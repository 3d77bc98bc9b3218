from __future__ import annotations

import argparse
import json
import logging
import signal
import threading

from ipmi_tap.config import COLLECTION_MODES, MODE_CACHED, load_config
from ipmi_tap.context import AppContext
from ipmi_tap.errors import ConfigError
from ipmi_tap.exporter import build_registry
from ipmi_tap.logging_utils import configure_logging, resolve_log_level
from ipmi_tap.orchestrator import Snapshot
from ipmi_tap.scheduler import build_mode
from ipmi_tap.schema import snapshot_payload, validate_payload
from ipmi_tap.server import ExporterServer

logger = logging.getLogger("ipmi_tap")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="ipmi-tap IPMI Prometheus exporter")
    parser.add_argument(
        "--config",
        default="config/ipmi-tap.cfg",
        help="Path to CFG configuration file",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Logging level (DEBUG, INFO, WARNING, ERROR); overrides [logging] level",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Enable debug logging (-v) or trace logging (-vv)",
    )
    parser.add_argument(
        "--mode",
        choices=COLLECTION_MODES,
        help="Override the [global] mode setting",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single collection cycle, log a summary and exit",
    )
    parser.add_argument(
        "--dump-json",
        help="Write each snapshot as JSON to a file (overwrites on each cycle)",
    )
    return parser


def write_snapshot_json(path: str, snapshot: Snapshot, pretty: bool) -> None:
    payload = snapshot_payload(snapshot)
    schema_errors = validate_payload(payload)
    if schema_errors:
        logger.warning("Schema validation failed with %s errors.", len(schema_errors))
        logger.debug("Schema errors: %s", schema_errors)
    with open(path, "w", encoding="utf-8") as handle:
        json.dump(payload, handle, indent=2 if pretty else None)


def log_summary(snapshot: Snapshot) -> None:
    for outcome in snapshot.outcomes:
        logger.info(
            "%s %s: %s (%.3fs)",
            outcome.host,
            outcome.collector,
            "up" if outcome.up else "down",
            outcome.duration_s,
        )
    logger.info(
        "Cycle produced %s observations in %.3fs.",
        len(snapshot.observations),
        snapshot.duration_s,
    )


def install_signal_handlers(
    shutdown_requested: threading.Event, reload_requested: threading.Event
) -> None:
    """Signal handlers only flag work; the main loop does it."""

    def handle_shutdown(signum: int, frame: object) -> None:
        logger.info("Received signal %s, initiating graceful shutdown...", signum)
        shutdown_requested.set()

    def handle_reload(signum: int, frame: object) -> None:
        reload_requested.set()

    signal.signal(signal.SIGTERM, handle_shutdown)
    signal.signal(signal.SIGINT, handle_shutdown)
    if hasattr(signal, "SIGHUP"):
        signal.signal(signal.SIGHUP, handle_reload)


def reload_config(context: AppContext) -> bool:
    try:
        context.reload()
    except ConfigError as exc:
        logger.error("Config reload failed, keeping previous config: %s", exc)
        return False
    return True


def wait_for_shutdown(
    context: AppContext,
    shutdown_requested: threading.Event,
    reload_requested: threading.Event,
    poll_s: float = 0.5,
) -> None:
    while not shutdown_requested.wait(poll_s):
        if reload_requested.is_set():
            reload_requested.clear()
            reload_config(context)


def main() -> None:
    parser = build_parser()
    args = parser.parse_args()

    try:
        config = load_config(args.config)
    except ConfigError as exc:
        raise SystemExit(f"ipmi-tap: {exc}") from exc

    level = resolve_log_level(args.verbose, args.log_level or config.logging.level)
    configure_logging(level, config.logging.file)
    pretty_print = level <= logging.DEBUG

    context = AppContext(config)
    if args.dump_json:
        context.add_listener(lambda snapshot: write_snapshot_json(args.dump_json, snapshot, pretty_print))

    if args.once:
        logger.info("Single-run mode enabled; collecting %s target(s).", len(config.targets))
        log_summary(context.collect())
        return

    mode_name = args.mode or config.general.mode
    if mode_name == MODE_CACHED and config.general.interval_s <= config.general.timeout_s:
        logger.warning(
            "interval_s (%s) does not exceed timeout_s (%s); slow cycles will skip ticks.",
            config.general.interval_s,
            config.general.timeout_s,
        )
    mode = build_mode(context, mode_name)
    server = ExporterServer(
        (config.general.listen_host, config.general.listen_port),
        context,
        build_registry(mode),
    )
    shutdown_requested = threading.Event()
    reload_requested = threading.Event()
    install_signal_handlers(shutdown_requested, reload_requested)

    mode.start()
    server_thread = threading.Thread(target=server.serve_forever, name="http-server", daemon=True)
    server_thread.start()
    logger.info(
        "ipmi-tap listening on %s in %s mode, %s target(s).",
        config.general.address,
        mode_name,
        len(config.targets),
    )
    for target in config.targets:
        logger.info("  - %s (%s): %s", target.name, target.host, ", ".join(target.collectors))

    try:
        wait_for_shutdown(context, shutdown_requested, reload_requested)
    finally:
        logger.info("Shutting down HTTP server...")
        server.shutdown()
        server.server_close()
        mode.stop()
        logger.info("ipmi-tap stopped.")


if __name__ == "__main__":
    main()
