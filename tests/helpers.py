"""Canned FreeIPMI output and builders shared by the test modules."""
from __future__ import annotations

import textwrap

from ipmi_tap.config import (
    AppConfig,
    GlobalConfig,
    LoggingConfig,
    TargetConfig,
    ToolsConfig,
)

ALL_COLLECTORS = ("ipmimonitoring", "ipmi-dcmi", "ipmi-chassis")

MONITORING_OUTPUT = textwrap.dedent(
    """\
    ID  | Name             | Type                    | State    | Reading  | Units | Event
    4   | CPU Temp         | Temperature             | Nominal  | 41.00    | C     | 'OK'
    7   | Fan 1 Tach       | Fan                     | Nominal  | 3200.00  | RPM   | 'OK'
    12  | 12V              | Voltage                 | Warning  | 12.48    | V     | 'Upper Non-critical'
    20  | PS1 Status       | Power Supply            | Nominal  | N/A      | N/A   | 'Presence detected'
    """
).encode()

DCMI_OUTPUT = textwrap.dedent(
    """\
    Current Power                        : 145.0 Watts
    Minimum Power over sampling duration : 120 watts
    Maximum Power over sampling duration : 210 watts
    """
).encode()

CHASSIS_OUTPUT = textwrap.dedent(
    """\
    System Power                        : on
    Power overload                      : false
    Drive Fault                         : false
    Cooling/fan fault                   : true
    """
).encode()


def make_target(host: str = "10.0.0.1", collectors: tuple[str, ...] = ALL_COLLECTORS) -> TargetConfig:
    return TargetConfig(
        name=host,
        host=host,
        user="ADMIN",
        password="secret",
        collectors=collectors,
    )


def make_config(
    targets: tuple[TargetConfig, ...] = (),
    timeout_s: float = 5.0,
    interval_s: int = 60,
    mode: str = "cached",
    max_workers: int = 0,
    source: str = "test.cfg",
) -> AppConfig:
    return AppConfig(
        general=GlobalConfig(
            address="127.0.0.1:9290",
            listen_host="127.0.0.1",
            listen_port=9290,
            drive="LAN_2_0",
            collectors=ALL_COLLECTORS,
            timeout_s=timeout_s,
            interval_s=interval_s,
            mode=mode,
            max_workers=max_workers,
        ),
        tools=ToolsConfig(
            ipmimonitoring_path="ipmimonitoring",
            ipmi_dcmi_path="ipmi-dcmi",
            ipmi_chassis_path="ipmi-chassis",
        ),
        logging=LoggingConfig(level="INFO", file=None),
        targets=targets,
        source=source,
    )


class FakeRunner:
    """Stands in for CommandRunner, answering by executable name.

    ``responses`` maps an executable to bytes, an exception instance, or a
    callable ``(args, deadline) -> bytes``.
    """

    def __init__(self, responses):
        self.responses = responses
        self.calls = []

    def run(self, executable, args, deadline=None):
        self.calls.append((executable, list(args)))
        response = self.responses[executable]
        if isinstance(response, Exception):
            raise response
        if callable(response):
            return response(args, deadline)
        return response
