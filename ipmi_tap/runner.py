from __future__ import annotations

import logging
import subprocess
import threading
import time

import psutil

from ipmi_tap.errors import CommandError, CommandTimeout
from ipmi_tap.logging_utils import TRACE_LEVEL, mask_command

# How often a waiting command re-checks its deadline.
POLL_INTERVAL_S = 0.25
KILL_WAIT_S = 3.0


class Deadline:
    """Shared expiry for one collection cycle.

    Workers poll ``expired``; the orchestrator may ``cancel()`` early, e.g.
    on shutdown or once the cycle has been sealed.
    """

    def __init__(self, expires_at: float | None) -> None:
        self.expires_at = expires_at
        self._cancelled = threading.Event()

    @classmethod
    def after(cls, seconds: float) -> Deadline:
        return cls(time.monotonic() + seconds)

    @classmethod
    def never(cls) -> Deadline:
        return cls(None)

    def remaining(self) -> float | None:
        if self.expires_at is None:
            return None
        return max(0.0, self.expires_at - time.monotonic())

    @property
    def expired(self) -> bool:
        if self._cancelled.is_set():
            return True
        return self.expires_at is not None and time.monotonic() >= self.expires_at

    def cancel(self) -> None:
        self._cancelled.set()


class CommandRunner:
    def __init__(self, poll_interval_s: float = POLL_INTERVAL_S) -> None:
        self.poll_interval_s = poll_interval_s
        self.logger = logging.getLogger(self.__class__.__name__)

    def run(self, executable: str, args: list[str], deadline: Deadline | None = None) -> bytes:
        """Run a tool and return its stdout.

        Raises ``CommandError`` on launch failure or non-zero exit, and
        ``CommandTimeout`` (after killing the process tree) once ``deadline``
        expires.
        """
        command = [executable, *args]
        printable = mask_command(command)
        self.logger.debug("Running: %s", printable)
        try:
            proc = subprocess.Popen(
                command,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
            )
        except OSError as exc:
            raise CommandError(executable, f"could not launch: {exc}") from exc

        stdout, stderr = self._wait(proc, executable, deadline)
        stderr_text = stderr.decode("utf-8", errors="replace").strip()
        if proc.returncode != 0:
            self.logger.debug("Command failed (%s): %s", proc.returncode, printable)
            if stderr_text:
                self.logger.log(TRACE_LEVEL, "stderr: %s", stderr_text)
            raise CommandError(
                executable,
                stderr_text or f"exited with status {proc.returncode}",
                returncode=proc.returncode,
                stderr=stderr_text,
            )
        if stdout:
            self.logger.log(TRACE_LEVEL, "stdout: %s", stdout.decode("utf-8", errors="replace").strip())
        return stdout

    def _wait(
        self, proc: subprocess.Popen, executable: str, deadline: Deadline | None
    ) -> tuple[bytes, bytes]:
        if deadline is None:
            return proc.communicate()
        while True:
            if deadline.expired:
                self._kill_tree(proc)
                raise CommandTimeout(executable, "deadline expired, process killed")
            timeout = self.poll_interval_s
            remaining = deadline.remaining()
            if remaining is not None:
                timeout = min(timeout, remaining)
            try:
                return proc.communicate(timeout=timeout)
            except subprocess.TimeoutExpired:
                continue

    def _kill_tree(self, proc: subprocess.Popen) -> None:
        try:
            children = psutil.Process(proc.pid).children(recursive=True)
        except psutil.NoSuchProcess:
            children = []
        for child in children:
            try:
                child.kill()
            except psutil.NoSuchProcess:
                pass
        proc.kill()
        try:
            proc.communicate(timeout=KILL_WAIT_S)
        except subprocess.TimeoutExpired:
            self.logger.warning("Process %s did not exit after kill", proc.pid)
        psutil.wait_procs(children, timeout=KILL_WAIT_S)
        self.logger.debug("Killed process tree of pid %s", proc.pid)
