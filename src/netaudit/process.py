"""
Supervised nmap child process.

One process per host. The orchestrator only consumes the line stream on
stdout and the exit code; everything goes through ScanProcess so tests
can substitute a fake process factory.
"""

from __future__ import annotations

import logging
import subprocess
from typing import Callable, Iterator, Optional, Protocol

from .exceptions import ScanProcessError

logger = logging.getLogger(__name__)

NMAP_SCRIPTS = (
    "banner",
    "http-title",
    "ssl-cert",
    "ssh-hostkey",
    "snmp-info",
    "smb-os-discovery",
)

DEFAULT_HOST_TIMEOUT = "60s"
VERSION_INTENSITY = 7
MAX_OS_TRIES = 2
KILL_GRACE_SECONDS = 5.0


def build_nmap_command(
    host: str,
    intensity: str,
    host_timeout: str = DEFAULT_HOST_TIMEOUT,
    nmap_path: str = "nmap",
) -> list[str]:
    """Build the fixed per-host nmap argument list; the target host goes last."""
    return [
        nmap_path,
        "-p", "1-65535",
        "-sS",
        "-sV",
        "-O",
        "-A",
        "--osscan-guess",
        "--max-os-tries", str(MAX_OS_TRIES),
        intensity,
        "--host-timeout", host_timeout,
        "--version-intensity", str(VERSION_INTENSITY),
        f"--script={','.join(NMAP_SCRIPTS)}",
        host,
    ]


class HostProcess(Protocol):
    """What the orchestrator needs from a running scan process."""

    def lines(self) -> Iterator[str]: ...

    def kill(self) -> None: ...

    def wait(self, timeout: Optional[float] = None) -> int: ...


ProcessFactory = Callable[[list[str]], HostProcess]


class ScanProcess:
    """
    A running nmap process with captured stdout.

    stderr is discarded; nmap reports everything the parser needs on
    stdout. Script output can carry arbitrary bytes (page titles,
    banners), so undecodable bytes are replaced rather than raised.
    The host timeout is enforced by nmap itself.
    """

    def __init__(self, command: list[str]):
        self.command = command
        host = command[-1] if command else "?"
        try:
            self._proc = subprocess.Popen(
                command,
                stdout=subprocess.PIPE,
                stderr=subprocess.DEVNULL,
                encoding="utf-8",
                errors="replace",
                bufsize=1,
            )
        except (OSError, ValueError) as e:
            raise ScanProcessError(host, str(e)) from e
        logger.debug(f"Started nmap (pid={self._proc.pid}) for {host}")

    @property
    def pid(self) -> int:
        return self._proc.pid

    def lines(self) -> Iterator[str]:
        """Yield stdout lines (without line endings) as they are produced."""
        assert self._proc.stdout is not None
        for line in self._proc.stdout:
            yield line.rstrip("\r\n")

    def kill(self) -> None:
        """Terminate the process, escalating to SIGKILL if it lingers."""
        if self._proc.poll() is not None:
            return
        self._proc.terminate()
        try:
            self._proc.wait(timeout=KILL_GRACE_SECONDS)
        except subprocess.TimeoutExpired:
            logger.warning(f"nmap pid={self._proc.pid} ignored SIGTERM, killing")
            self._proc.kill()
            self._proc.wait()
        finally:
            if self._proc.stdout:
                self._proc.stdout.close()

    def wait(self, timeout: Optional[float] = None) -> int:
        """Wait for exit and return the exit code; kills the process on timeout."""
        try:
            return self._proc.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            logger.warning(f"nmap pid={self._proc.pid} did not exit within {timeout}s")
            self.kill()
            return self._proc.returncode


def launch_scan_process(command: list[str]) -> ScanProcess:
    """Default process factory."""
    return ScanProcess(command)
