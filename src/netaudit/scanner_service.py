"""
Network assessment service - HTTP API and command-line entry point.

Wraps a ScanOrchestrator: every device it emits is risk-analyzed and
checked against the alert rules, and the latest results are served over
a small aiohttp API for dashboards and report generators.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import signal
import sys
import threading
import uuid
from concurrent.futures import Future
from pathlib import Path
from typing import Any, Optional

from aiohttp import web

from ._types import Device, RiskReport, TrafficLight, now_utc
from .alerts import AlertSystem, rule_from_dict
from .config import ScannerConfig
from .exceptions import InvalidRuleError, InvalidTargetError, ScanInProgressError
from .orchestrator import ScanOrchestrator
from .registry import KnownDeviceRegistry
from .risk import RiskAnalyzer
from .targets import expand_hosts

logger = logging.getLogger(__name__)


class NetworkAssessmentService:
    """
    Drives scans and keeps the most recent results.

    Device callbacks run on scan worker threads, so report storage is
    guarded by a lock.
    """

    def __init__(
        self,
        config: ScannerConfig,
        orchestrator: Optional[ScanOrchestrator] = None,
        alerts: Optional[AlertSystem] = None,
    ):
        self.config = config
        self.orchestrator = orchestrator or ScanOrchestrator.from_config(config)
        self.risk_analyzer = RiskAnalyzer(rules=self.orchestrator.rules, scale=config.risk_scale)
        self.alerts = alerts or AlertSystem(registry=KnownDeviceRegistry())
        for rule in config.alert_rules:
            self.alerts.add_rule(rule_from_dict(rule))

        self._lock = threading.Lock()
        self._reports: dict[str, RiskReport] = {}
        self._current_scan: Optional[dict[str, Any]] = None
        self._last_scan: Optional[dict[str, Any]] = None
        self._future: Optional[Future] = None

        self.orchestrator.register_device_callback(self._on_device_found)

        self._api_app: Optional[web.Application] = None
        self._api_runner: Optional[web.AppRunner] = None
        self._shutdown_event = asyncio.Event()

    # -------------------------------------------------------------------------
    # Scanning
    # -------------------------------------------------------------------------

    def _on_device_found(self, device: Device) -> None:
        report = self.risk_analyzer.analyze_device_risk(device)
        if not report.ok:
            logger.warning(f"Risk analysis failed for {device.address}: {report.error}")
        with self._lock:
            self._reports[device.address] = report
        self.alerts.check_device(device)

    def _begin(self, targets: str) -> None:
        with self._lock:
            self._reports.clear()
            self._current_scan = {
                "scan_id": str(uuid.uuid4()),
                "targets": targets,
                "started_at": now_utc().isoformat(),
                "status": "running",
            }

    def _finish(self, devices: list[Device], error: Optional[str] = None) -> dict[str, Any]:
        with self._lock:
            summary = dict(self._current_scan or {})
            summary["completed_at"] = now_utc().isoformat()
            summary["devices_found"] = len(devices)
            summary["risk_summary"] = self._risk_summary(devices)
            if error:
                summary["status"] = "failed"
                summary["error"] = error
            elif self.orchestrator.stop_requested:
                summary["status"] = "stopped"
            else:
                summary["status"] = "completed"
            self._last_scan = summary
            self._current_scan = None
        logger.info(
            f"Scan {summary.get('scan_id')} {summary['status']}: "
            f"{len(devices)} devices found"
        )
        return summary

    def _risk_summary(self, devices: list[Device]) -> dict[str, int]:
        counts = {level.value: 0 for level in TrafficLight}
        counts["error"] = 0
        for device in devices:
            report = self._reports.get(device.address)
            if report is None or not report.ok:
                counts["error"] += 1
            else:
                counts[report.risk_level.value] += 1
        return counts

    def run_scan(self, targets: Optional[str] = None) -> dict[str, Any]:
        """Run a scan synchronously and return its summary."""
        targets = targets or self.config.targets
        expand_hosts(targets)
        self._begin(targets)
        try:
            devices = self.orchestrator.scan(
                targets,
                intensity=self.config.intensity,
                snmp_community=self.config.snmp_community,
            )
        except ScanInProgressError:
            raise
        except Exception as e:
            logger.error(f"Scan failed: {e}")
            return self._finish([], error=str(e))
        return self._finish(devices)

    def start_scan(self, targets: Optional[str] = None) -> Future:
        """Start a scan in the background."""
        targets = targets or self.config.targets
        expand_hosts(targets)
        if self.orchestrator.is_scanning or (self._future and not self._future.done()):
            raise ScanInProgressError("A scan is already in progress")

        self._begin(targets)
        future = self.orchestrator.scan_async(
            targets,
            intensity=self.config.intensity,
            snmp_community=self.config.snmp_community,
        )
        future.add_done_callback(self._on_scan_done)
        self._future = future
        return future

    def _on_scan_done(self, future: Future) -> None:
        error = future.exception()
        if error is not None:
            logger.error(f"Background scan failed: {error}")
            self._finish([], error=str(error))
        else:
            self._finish(future.result())

    def results(self) -> list[dict[str, Any]]:
        """Latest devices with their risk reports."""
        with self._lock:
            reports = dict(self._reports)
        results = []
        for device in self.orchestrator.last_results:
            entry = device.to_dict()
            report = reports.get(device.address)
            entry["risk_report"] = report.to_dict() if report else None
            results.append(entry)
        return results

    # -------------------------------------------------------------------------
    # API server
    # -------------------------------------------------------------------------

    def create_app(self) -> web.Application:
        app = web.Application()
        app.router.add_post("/api/scans", self._handle_start_scan)
        app.router.add_post("/api/scans/stop", self._handle_stop_scan)
        app.router.add_get("/api/scans/status", self._handle_scan_status)
        app.router.add_get("/api/devices", self._handle_list_devices)
        app.router.add_get("/api/health", self._handle_health)
        return app

    async def start(self) -> None:
        """Start the API server and wait for shutdown."""
        logger.info("Starting network assessment service")
        self._api_app = self.create_app()
        self._api_runner = web.AppRunner(self._api_app)
        await self._api_runner.setup()
        site = web.TCPSite(self._api_runner, self.config.api_host, self.config.api_port)
        await site.start()
        logger.info(f"API server started on {self.config.api_host}:{self.config.api_port}")
        await self._shutdown_event.wait()

    async def stop(self) -> None:
        logger.info("Stopping network assessment service")
        self._shutdown_event.set()
        await asyncio.get_running_loop().run_in_executor(None, self.orchestrator.shutdown)
        if self._api_runner:
            await self._api_runner.cleanup()
            self._api_runner = None

    async def _handle_start_scan(self, request: web.Request) -> web.Response:
        """Handle POST /api/scans."""
        try:
            data = await request.json() if request.body_exists else {}
        except json.JSONDecodeError:
            return web.json_response(
                {"status": "error", "message": "Invalid JSON body"},
                status=400,
            )
        if not isinstance(data, dict):
            return web.json_response(
                {"status": "error", "message": "Request body must be a JSON object"},
                status=400,
            )

        targets = data.get("targets") or self.config.targets
        if isinstance(targets, list):
            targets = ",".join(str(t) for t in targets)

        try:
            self.start_scan(targets)
        except InvalidTargetError as e:
            return web.json_response({"status": "error", "message": str(e)}, status=400)
        except ScanInProgressError as e:
            return web.json_response({"status": "error", "message": str(e)}, status=409)

        return web.json_response({
            "status": "started",
            "scan_id": (self._current_scan or {}).get("scan_id"),
            "targets": targets,
        })

    async def _handle_stop_scan(self, request: web.Request) -> web.Response:
        """Handle POST /api/scans/stop."""
        await asyncio.get_running_loop().run_in_executor(None, self.orchestrator.stop)
        return web.json_response({"status": "stopped"})

    async def _handle_scan_status(self, request: web.Request) -> web.Response:
        """Handle GET /api/scans/status."""
        with self._lock:
            current = dict(self._current_scan) if self._current_scan else None
            last = dict(self._last_scan) if self._last_scan else None
        return web.json_response({
            "is_scanning": self.orchestrator.is_scanning,
            "progress": round(self.orchestrator.scan_progress, 1),
            "current": current,
            "last_scan": last,
        })

    async def _handle_list_devices(self, request: web.Request) -> web.Response:
        """Handle GET /api/devices."""
        level = request.query.get("risk_level")
        devices = self.results()
        if level:
            devices = [
                d for d in devices
                if d["risk_report"] and d["risk_report"].get("risk_level") == level
            ]
        return web.json_response({"devices": devices, "total": len(devices)})

    async def _handle_health(self, request: web.Request) -> web.Response:
        """Handle GET /api/health."""
        return web.json_response({
            "status": "ok",
            "service": "netaudit",
            "scanning": self.orchestrator.is_scanning,
            "known_devices": len(self.orchestrator.registry),
        })


def main():
    """Entry point for the netaudit service."""
    parser = argparse.ArgumentParser(description="Network device discovery and risk assessment")
    parser.add_argument("--config", type=str, help="Path to config file")
    parser.add_argument("--target", type=str, help="Run one scan against TARGET and print a JSON summary")
    parser.add_argument("--host", type=str, default=None, help="API host")
    parser.add_argument("--port", type=int, default=None, help="API port")
    parser.add_argument("--log-level", type=str, default=None, help="Log level")
    args = parser.parse_args()

    # Load configuration
    if args.config:
        config = ScannerConfig.from_yaml(Path(args.config))
    else:
        config = ScannerConfig.from_env()

    # Override with CLI args
    if args.host:
        config.api_host = args.host
    if args.port:
        config.api_port = args.port
    if args.log_level:
        config.log_level = args.log_level
    if args.target:
        config.targets = args.target

    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    config.load_credentials()

    errors = config.validate()
    if errors:
        for error in errors:
            logger.error(f"Config error: {error}")
        sys.exit(1)

    try:
        service = NetworkAssessmentService(config)
    except InvalidRuleError as e:
        logger.error(f"Invalid alert rule: {e}")
        sys.exit(1)

    if args.target:
        summary = service.run_scan(args.target)
        print(json.dumps({"scan": summary, "devices": service.results()}, indent=2))
        sys.exit(0 if summary["status"] == "completed" else 1)

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    def signal_handler():
        logger.info("Received shutdown signal")
        asyncio.ensure_future(service.stop())

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, signal_handler)

    try:
        loop.run_until_complete(service.start())
    except KeyboardInterrupt:
        logger.info("Interrupted")
    finally:
        if service._api_runner is not None:
            loop.run_until_complete(service.stop())
        loop.close()


if __name__ == "__main__":
    main()
