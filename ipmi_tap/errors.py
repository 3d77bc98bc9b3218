from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ipmi_tap.classifier import Observation


class IpmiTapError(Exception):
    """Base class for all ipmi-tap errors."""


class ConfigError(IpmiTapError):
    """Configuration could not be read or failed validation."""

    def __init__(self, message: str, problems: list[str] | None = None) -> None:
        self.problems = problems or []
        if self.problems:
            message = message + ":\n  " + "\n  ".join(self.problems)
        super().__init__(message)


class CommandError(IpmiTapError):
    """A diagnostic tool exited non-zero or could not be launched."""

    def __init__(
        self,
        executable: str,
        message: str,
        returncode: int | None = None,
        stderr: str = "",
    ) -> None:
        self.executable = executable
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(f"{executable}: {message}")


class CommandTimeout(CommandError):
    """The cycle deadline expired while the tool was still running."""


class OutputParseError(IpmiTapError):
    """Tool output did not have the expected shape."""


class ValueNotFoundError(OutputParseError):
    """No line of the tool output matched the labeled-value pattern."""


class PartialReadError(IpmiTapError):
    """A sub-collector failed after it had already produced observations."""

    def __init__(self, message: str, observations: list[Observation]) -> None:
        self.observations = observations
        super().__init__(message)
