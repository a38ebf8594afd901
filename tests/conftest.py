"""Shared fixtures: fake nmap processes and sample output."""

import threading

import pytest

from netaudit._types import Device, Service
from netaudit.exceptions import ScanProcessError
from netaudit.orchestrator import ScanOrchestrator


SAMPLE_NMAP_OUTPUT = """\
Starting Nmap 7.94 ( https://nmap.org ) at 2024-03-01 10:00 UTC
Nmap scan report for router.lan (192.168.1.1)
Host is up (0.0010s latency).
Not shown: 65532 closed tcp ports (reset)
PORT     STATE    SERVICE VERSION
22/tcp   open     ssh     OpenSSH 8.2p1 Ubuntu 4ubuntu0.5 (Ubuntu Linux; protocol 2.0)
| ssh-hostkey:
|   3072 aa:bb:cc (RSA)
23/tcp   filtered telnet
80/tcp   open     http    nginx 1.18.0 (Ubuntu)
|_http-title: Welcome
MAC Address: AA:BB:CC:DD:EE:FF (Routerboard.com)
OS details: Linux 5.0 - 5.4
Service Info: OS: Linux; CPE: cpe:/o:linux:linux_kernel
Nmap done: 1 IP address (1 host up) scanned in 12.34 seconds
"""


def host_output(host, services=("22/tcp open ssh OpenSSH 8.2p1",)):
    """Minimal nmap output for one host."""
    return [f"Nmap scan report for {host}", *services]


class FakeProcess:
    """Stands in for a running nmap process."""

    def __init__(self, lines, exit_code=0):
        self._lines = list(lines)
        self.exit_code = exit_code
        self.killed = False

    def lines(self):
        yield from self._lines

    def kill(self):
        self.killed = True

    def wait(self, timeout=None):
        return self.exit_code


class BlockingProcess(FakeProcess):
    """Prints one line, then blocks until killed."""

    def __init__(self, host, started: threading.Event):
        super().__init__(host_output(host))
        self.host = host
        self._started = started
        self._released = threading.Event()

    def lines(self):
        yield self._lines[0]
        self._started.set()
        self._released.wait(timeout=10)

    def kill(self):
        self.killed = True
        self._released.set()


class FakeProcessFactory:
    """
    Process factory keyed by target host (the last nmap argument).

    Hosts without an explicit entry get a default one-service output.
    """

    def __init__(self, outputs=None, exit_codes=None, failures=()):
        self.outputs = outputs or {}
        self.exit_codes = exit_codes or {}
        self.failures = set(failures)
        self.commands = []
        self.processes = []
        self._lock = threading.Lock()

    def __call__(self, command):
        host = command[-1]
        with self._lock:
            self.commands.append(command)
        if host in self.failures:
            raise ScanProcessError(host, "nmap not found")
        process = FakeProcess(
            self.outputs.get(host, host_output(host)),
            exit_code=self.exit_codes.get(host, 0),
        )
        with self._lock:
            self.processes.append(process)
        return process


@pytest.fixture
def process_factory():
    return FakeProcessFactory()


@pytest.fixture
def orchestrator(process_factory):
    orch = ScanOrchestrator(process_factory=process_factory, max_workers=4, poll_timeout=0.05)
    yield orch
    orch.shutdown()


@pytest.fixture
def web_server_device():
    """Device exposing SSH, plain HTTP and Telnet."""
    return Device(
        address="192.168.1.20",
        hostname="web01",
        services={
            22: Service(port=22, name="ssh", product="OpenSSH", version="8.2p1"),
            23: Service(port=23, name="telnet"),
            80: Service(port=80, name="http", product="nginx", version="1.18.0"),
        },
    )
