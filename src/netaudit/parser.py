"""
Parser for nmap's normal (human-readable) output.

Lines are processed independently as they stream in. Each line is tested
against the host, MAC, OS and service patterns in that order; the first
match updates its accumulator and anything else is ignored, so banners,
script output and warnings never break a parse.
"""

from __future__ import annotations

import logging
import re
import time
from typing import Callable, Iterable, Optional

from ._types import UNKNOWN, Device, Service, ServiceState
from .process import HostProcess

logger = logging.getLogger(__name__)

# "Nmap scan report for router.lan (192.168.1.1)" or "... for 192.168.1.1"
HOST_PATTERN = re.compile(
    r"^Nmap scan report for (?P<name>\S+) [(\[](?P<address>[^)\]]+)[)\]]"
)
HOST_ONLY_PATTERN = re.compile(r"^Nmap scan report for (?P<address>\S+)\s*$")
MAC_PATTERN = re.compile(r"MAC Address: (?P<mac>[0-9A-Fa-f:]+) \((?P<vendor>[^)]*)\)")
OS_PATTERN = re.compile(r"OS details?: (?P<os>.+)")
SERVICE_PATTERN = re.compile(
    r"^(?P<port>\d+)/(?P<protocol>\w+)\s+(?P<state>\S+)\s+(?P<name>\S+)(?:\s+(?P<extra>.*?))?\s*$"
)

EXIT_WAIT_SECONDS = 30.0


class ScanOutputParser:
    """
    Accumulates one host's nmap output into a Device.

    A parser instance is owned by a single worker and used for a single
    host; it is not thread-safe and not reusable. Only the first
    "Nmap scan report" block is parsed: if the target resolved to more
    than one host, later blocks are ignored instead of being merged.
    """

    def __init__(self, host: str):
        self.host = host
        self.hostname = host
        self.address = host
        self.mac = UNKNOWN
        self.vendor = UNKNOWN
        self.os_description = UNKNOWN
        self.services: dict[int, Service] = {}
        # Non-blank lines only
        self.lines_seen = 0
        self._host_reports = 0

    def feed(self, line: str) -> None:
        """Process one output line."""
        line = line.strip()
        if not line:
            return
        self.lines_seen += 1

        if line.startswith("Nmap scan report for"):
            self._host_reports += 1
            if self._host_reports == 2:
                logger.warning(
                    f"nmap reported more than one host for target {self.host}; "
                    f"keeping only {self.address}"
                )
        if self._host_reports > 1:
            return

        match = HOST_PATTERN.search(line)
        if match:
            self.hostname = match.group("name")
            self.address = match.group("address")
            return

        match = HOST_ONLY_PATTERN.search(line)
        if match:
            self.address = match.group("address")
            return

        match = MAC_PATTERN.search(line)
        if match:
            self.mac = match.group("mac")
            self.vendor = match.group("vendor")
            return

        match = OS_PATTERN.search(line)
        if match:
            self.os_description = match.group("os").strip()
            return

        match = SERVICE_PATTERN.search(line)
        if match:
            self._add_service(match)

    def _add_service(self, match: re.Match) -> None:
        if match.group("state") != ServiceState.OPEN.value:
            return

        product = version = None
        extra = (match.group("extra") or "").split()
        if extra:
            product = extra[0]
            if len(extra) > 1:
                version = extra[1]

        try:
            service = Service(
                port=int(match.group("port")),
                protocol=match.group("protocol"),
                state=ServiceState.OPEN,
                name=match.group("name"),
                product=product,
                version=version,
            )
        except ValueError as e:
            logger.debug(f"Ignoring service line for {self.host}: {e}")
            return

        self.services[service.port] = service

    def result(self, scan_duration: float = 0.0) -> Device:
        """Build the Device from everything accumulated so far."""
        return Device(
            address=self.address,
            hostname=self.hostname,
            mac=self.mac,
            vendor=self.vendor,
            os_description=self.os_description,
            services=dict(self.services),
            scan_duration_seconds=scan_duration,
        )


def parse_lines(host: str, lines: Iterable[str]) -> Device:
    """Parse a complete, already captured output."""
    parser = ScanOutputParser(host)
    for line in lines:
        parser.feed(line)
    return parser.result()


def parse_process_output(
    host: str,
    process: HostProcess,
    should_stop: Callable[[], bool],
    exit_timeout: float = EXIT_WAIT_SECONDS,
) -> Optional[Device]:
    """
    Stream a running scan process through a parser.

    Returns None if cancellation is observed mid-stream (the process is
    killed and no partial Device is produced) or if the process exits
    non-zero without printing anything but blank lines. A non-zero exit
    after some output only logs a warning and the accumulated Device is
    returned.
    """
    started = time.monotonic()
    parser = ScanOutputParser(host)

    for line in process.lines():
        if should_stop():
            logger.info(f"Scan of {host} cancelled, killing nmap")
            process.kill()
            return None
        parser.feed(line)

    exit_code = process.wait(timeout=exit_timeout)
    if exit_code != 0:
        logger.warning(f"nmap exited with code {exit_code} for host: {host}")
        if parser.lines_seen == 0:
            return None

    return parser.result(scan_duration=time.monotonic() - started)
