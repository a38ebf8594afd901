"""
Scan orchestration - worker pool, queues, progress and cancellation.

scan() fans the target hosts out to a fixed pool of threads. Each worker
runs one nmap process per host, streams its output through the parser,
audits the resulting Device and emits it to registered callbacks and the
result queue. Failures are isolated per host: a host that cannot be
scanned is logged and simply contributes no Device.
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, Optional

from ._types import Device, ScanTask
from .exceptions import InvalidTargetError, ScanInProgressError, ScanProcessError
from .parser import parse_process_output
from .process import (
    DEFAULT_HOST_TIMEOUT,
    HostProcess,
    ProcessFactory,
    build_nmap_command,
    launch_scan_process,
)
from .registry import KnownDeviceRegistry
from .rules import RuleSet, default_rules
from .security_auditor import SecurityAuditor
from .targets import expand_hosts, ip_sort_key

logger = logging.getLogger(__name__)

MAX_WORKERS = 32
POLL_TIMEOUT_SECONDS = 1.0
DEFAULT_INTENSITY = "-T4"

DeviceCallback = Callable[[Device], Any]


def hardware_placeholder(host: str, snmp_community: str) -> dict[str, Any]:
    """Hardware details are not collected yet; every device gets empty sections."""
    return {
        "cpu": {},
        "memory": {},
        "storage": [],
        "network_interfaces": [],
    }


def _drain(q: queue.Queue) -> list:
    items = []
    while True:
        try:
            items.append(q.get_nowait())
        except queue.Empty:
            return items


class ProgressCounter:
    """Thread-safe completed/total counter for progress display."""

    def __init__(self):
        self._lock = threading.Lock()
        self._total = 0
        self._completed = 0

    def start(self, total: int) -> None:
        with self._lock:
            self._total = total
            self._completed = 0

    def increment(self) -> int:
        with self._lock:
            self._completed += 1
            return self._completed

    def reset(self) -> None:
        self.start(0)

    @property
    def total(self) -> int:
        return self._total

    @property
    def completed(self) -> int:
        return self._completed

    @property
    def percent(self) -> float:
        with self._lock:
            if self._total <= 0:
                return 0.0
            return self._completed / self._total * 100


class ScanOrchestrator:
    """
    Runs per-host nmap scans on a bounded thread pool.

    Progress and is_scanning are best-effort values for display only.
    stop() is the sole cancellation mechanism: it sets the cancellation
    flag of the running scan and of any scan queued by scan_async(), kills
    in-flight processes and clears both queues. Once stop() has
    returned no further device callbacks fire.
    """

    def __init__(
        self,
        rules: Optional[RuleSet] = None,
        process_factory: ProcessFactory = launch_scan_process,
        registry: Optional[KnownDeviceRegistry] = None,
        max_workers: int = MAX_WORKERS,
        poll_timeout: float = POLL_TIMEOUT_SECONDS,
        host_timeout: str = DEFAULT_HOST_TIMEOUT,
        nmap_path: str = "nmap",
    ):
        self.rules = rules or default_rules()
        self.auditor = SecurityAuditor(self.rules)
        self.registry = registry if registry is not None else KnownDeviceRegistry()
        self.max_workers = max_workers
        self.poll_timeout = poll_timeout
        self.host_timeout = host_timeout
        self.nmap_path = nmap_path
        self._process_factory = process_factory

        self._task_queue: queue.Queue[ScanTask] = queue.Queue()
        self._result_queue: queue.Queue[Device] = queue.Queue()
        # Cancellation flag of the current (or last) run; every run gets its own
        self._stop_event = threading.Event()
        self._pending_runs: set[threading.Event] = set()
        self._progress = ProgressCounter()
        self._is_scanning = False
        self._scan_lock = threading.Lock()

        # Held while emitting a device and by stop(), so no callback can
        # start once stop() has returned.
        self._emit_lock = threading.RLock()
        self._callbacks: list[DeviceCallback] = []

        self._processes_lock = threading.Lock()
        self._processes: set[HostProcess] = set()

        self._executor: Optional[ThreadPoolExecutor] = None
        self.last_results: list[Device] = []

    @classmethod
    def from_config(cls, config, **kwargs) -> "ScanOrchestrator":
        """Build an orchestrator from a ScannerConfig."""
        return cls(
            max_workers=config.max_workers,
            poll_timeout=config.poll_timeout_seconds,
            host_timeout=config.host_timeout,
            nmap_path=config.nmap_path,
            **kwargs,
        )

    # -------------------------------------------------------------------------
    # Callbacks
    # -------------------------------------------------------------------------

    def register_device_callback(self, callback: DeviceCallback) -> None:
        if callback is None:
            return
        with self._emit_lock:
            self._callbacks.append(callback)

    def unregister_device_callback(self, callback: DeviceCallback) -> None:
        with self._emit_lock:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

    def _notify_device_found(self, device: Device) -> None:
        for callback in list(self._callbacks):
            try:
                callback(device)
            except Exception as e:
                logger.error(f"Device callback failed for {device.address}: {e}")

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def scan_progress(self) -> float:
        """Percentage of hosts completed in the current scan."""
        return self._progress.percent

    @property
    def is_scanning(self) -> bool:
        return self._is_scanning

    @property
    def stop_requested(self) -> bool:
        """Whether the current (or last) scan run was stopped."""
        return self._stop_event.is_set()

    def queue_sizes(self) -> tuple[int, int]:
        """(pending tasks, undrained results)."""
        return self._task_queue.qsize(), self._result_queue.qsize()

    # -------------------------------------------------------------------------
    # Scanning
    # -------------------------------------------------------------------------

    def _new_run(self) -> threading.Event:
        """Register the cancellation flag of a scan run that has not started yet."""
        stop_event = threading.Event()
        with self._emit_lock:
            self._pending_runs.add(stop_event)
        return stop_event

    def scan(
        self,
        host_range: str,
        intensity: str = DEFAULT_INTENSITY,
        snmp_community: str = "public",
    ) -> list[Device]:
        """
        Scan every host in host_range and return the devices found, sorted by address.

        An invalid range is logged and yields an empty list. Blocks until
        every worker has finished.

        Raises:
            ScanInProgressError: if another scan is running on this orchestrator
        """
        return self._run(host_range, intensity, snmp_community, self._new_run())

    def scan_async(
        self,
        host_range: str,
        intensity: str = DEFAULT_INTENSITY,
        snmp_community: str = "public",
    ) -> Future:
        """
        Run scan() on a background thread and return its Future.

        The run is registered before this returns, so a stop() issued
        right after it cancels the run even if it has not started yet.
        """
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="scan")
        stop_event = self._new_run()
        return self._executor.submit(self._run, host_range, intensity, snmp_community, stop_event)

    def _run(
        self,
        host_range: str,
        intensity: str,
        snmp_community: str,
        stop_event: threading.Event,
    ) -> list[Device]:
        if not self._scan_lock.acquire(blocking=False):
            with self._emit_lock:
                self._pending_runs.discard(stop_event)
            raise ScanInProgressError("A scan is already in progress")

        started = time.monotonic()
        try:
            with self._emit_lock:
                self._stop_event = stop_event
                if stop_event.is_set():
                    logger.info("Scan was stopped before it started")
                    return []
                _drain(self._task_queue)
                _drain(self._result_queue)
                self._progress.reset()

            try:
                hosts = expand_hosts(host_range)
            except InvalidTargetError as e:
                logger.error(f"Invalid network range: {e}")
                return []

            # Tasks are queued under the emit lock so stop() either sees
            # none of them or drains all of them.
            with self._emit_lock:
                if stop_event.is_set():
                    return []
                self._is_scanning = True
                self._progress.start(len(hosts))
                for host in hosts:
                    self._task_queue.put(ScanTask(host=host, snmp_community=snmp_community))
            logger.info(f"Scanning {len(hosts)} hosts in {host_range}")

            worker_count = min(self.max_workers, len(hosts))
            workers = [
                threading.Thread(
                    target=self._worker,
                    args=(intensity, stop_event),
                    name=f"scan-worker-{i}",
                    daemon=True,
                )
                for i in range(worker_count)
            ]
            for worker in workers:
                worker.start()
            for worker in workers:
                worker.join()

            devices = sorted(_drain(self._result_queue), key=lambda d: ip_sort_key(d.address))
            self.last_results = devices

            logger.info(
                f"Scan completed in {time.monotonic() - started:.2f} seconds. "
                f"Found {len(devices)} devices."
            )
            return devices

        finally:
            with self._emit_lock:
                self._pending_runs.discard(stop_event)
                self._is_scanning = False
            self._scan_lock.release()

    def stop(self) -> None:
        """Cancel the running scan and any queued ones, clear both queues and reset progress."""
        logger.info("Stopping scan...")
        with self._emit_lock:
            for stop_event in self._pending_runs:
                stop_event.set()
            self._stop_event.set()

        with self._processes_lock:
            in_flight = list(self._processes)
        for process in in_flight:
            try:
                process.kill()
            except Exception as e:
                logger.warning(f"Failed to kill scan process: {e}")

        with self._emit_lock:
            _drain(self._task_queue)
            _drain(self._result_queue)
            self._progress.reset()
            self._is_scanning = False

        logger.info("Scan stopped")

    def shutdown(self) -> None:
        """Stop any scan and release the background executor."""
        self.stop()
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

    # -------------------------------------------------------------------------
    # Workers
    # -------------------------------------------------------------------------

    def _worker(self, intensity: str, stop_event: threading.Event) -> None:
        while not stop_event.is_set():
            try:
                task = self._task_queue.get(timeout=self.poll_timeout)
            except queue.Empty:
                # Every task is queued before the workers start
                break

            try:
                logger.info(f"Scanning {task.host}...")
                device = self._scan_host(task, intensity, stop_event)
                if device is not None:
                    self._emit(device, stop_event)
            except Exception as e:
                logger.error(f"Scan worker error for {task.host}: {e}")
            finally:
                if not stop_event.is_set():
                    self._progress.increment()

    def _scan_host(
        self,
        task: ScanTask,
        intensity: str,
        stop_event: threading.Event,
    ) -> Optional[Device]:
        command = build_nmap_command(
            task.host,
            intensity,
            host_timeout=self.host_timeout,
            nmap_path=self.nmap_path,
        )

        try:
            process = self._process_factory(command)
        except (ScanProcessError, OSError) as e:
            logger.error(f"Could not launch scan for {task.host}: {e}")
            return None

        with self._processes_lock:
            self._processes.add(process)
        try:
            device = parse_process_output(task.host, process, stop_event.is_set)
        except (OSError, ValueError) as e:
            if stop_event.is_set():
                return None
            logger.error(f"Error reading scan output for {task.host}: {e}")
            process.kill()
            return None
        finally:
            with self._processes_lock:
                self._processes.discard(process)

        if device is None:
            return None

        device.hardware = hardware_placeholder(task.host, task.snmp_community)
        self._apply_audit(device)

        logger.info(
            f"Scan of {task.host} completed in {device.scan_duration_seconds:.2f}s - "
            f"open ports: {device.open_ports} - risk level: "
            f"{device.risk_level.value if device.risk_level else 'not evaluated'}"
        )
        return device

    def _apply_audit(self, device: Device) -> None:
        result = self.auditor.analyze_device(device)
        if not result.ok:
            logger.warning(f"Security audit failed for {device.address}: {result.error}")
            return
        device.risk_level = result.risk_level
        device.risk_score = result.risk_score
        device.vulnerabilities = list(result.vulnerabilities)
        device.recommendations = list(result.recommendations)

    def _emit(self, device: Device, stop_event: threading.Event) -> None:
        with self._emit_lock:
            if stop_event.is_set():
                logger.debug(f"Discarding {device.address}: scan was stopped")
                return
            self.registry.add(device)
            self._notify_device_found(device)
            self._result_queue.put(device)
