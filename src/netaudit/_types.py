"""
Type definitions for the device assessment pipeline.

These dataclasses define the core domain model: discovered devices and
their services, the vulnerabilities flagged on them, and the results of
each scoring stage.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


def now_utc() -> datetime:
    """Get current UTC timestamp (replaces deprecated datetime.utcnow())."""
    return datetime.now(timezone.utc)


UNKNOWN = "unknown"


class ServiceState(str, Enum):
    """Port state as reported by nmap."""
    OPEN = "open"
    CLOSED = "closed"
    FILTERED = "filtered"


class Severity(str, Enum):
    """Severity of a single vulnerability, and the auditor's overall level."""
    INFO = "info"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class TrafficLight(str, Enum):
    """Combined risk classification."""
    GREEN = "green"
    ORANGE = "orange"
    RED = "red"


class ScoreScale(str, Enum):
    """How the risk analyzer brings both sub-scores onto the 0-10 scale."""
    NORMALIZED = "normalized"  # rescale both to 0-10, heuristic inverted to a risk
    RAW = "raw"                # average the raw sub-scores, then clamp


@dataclass(frozen=True)
class Service:
    """An open network port on a device."""
    port: int
    protocol: str = "tcp"
    state: ServiceState = ServiceState.OPEN
    name: str = ""
    product: Optional[str] = None
    version: Optional[str] = None

    def __post_init__(self) -> None:
        if not 0 <= self.port <= 65535:
            raise ValueError(f"Port out of range: {self.port}")


@dataclass
class Device:
    """
    A discovered network host.

    Created by the orchestrator from one host's scan output, then
    augmented in place with the security audit fields before it is
    handed to callbacks. Consumers must treat it as read-only.
    """
    address: str
    hostname: str = ""
    mac: Optional[str] = None
    vendor: Optional[str] = None
    os_description: str = UNKNOWN
    services: dict[int, Service] = field(default_factory=dict)
    scan_duration_seconds: float = 0.0
    last_seen: datetime = field(default_factory=now_utc)

    # Discovery metadata
    status: str = "up"
    detection_method: str = "nmap"
    hardware: dict[str, Any] = field(default_factory=dict)

    # Security audit (populated by the orchestrator)
    risk_level: Optional[Severity] = None
    risk_score: int = 0
    vulnerabilities: list[Vulnerability] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.address:
            raise ValueError("Device address must not be empty")
        if not self.hostname:
            self.hostname = self.address

    @property
    def open_ports(self) -> int:
        return len(self.services)

    def to_dict(self) -> dict[str, Any]:
        """Plain representation for JSON responses and collaborators."""
        return {
            "ip": self.address,
            "hostname": self.hostname,
            "mac": self.mac or UNKNOWN,
            "vendor": self.vendor or UNKNOWN,
            "os_info": self.os_description,
            "services": {
                port: {
                    "port": svc.port,
                    "protocol": svc.protocol,
                    "state": svc.state.value,
                    "name": svc.name,
                    "product": svc.product,
                    "version": svc.version,
                }
                for port, svc in sorted(self.services.items())
            },
            "open_ports": self.open_ports,
            "status": self.status,
            "detection_method": self.detection_method,
            "hardware": self.hardware,
            "scan_duration": self.scan_duration_seconds,
            "last_seen": self.last_seen.isoformat(),
            "risk_level": self.risk_level.value if self.risk_level else None,
            "risk_score": self.risk_score,
            "vulnerabilities": [v.to_dict() for v in self.vulnerabilities],
            "recommendations": list(self.recommendations),
        }


@dataclass(frozen=True)
class Vulnerability:
    """A single flagged weakness tied to a port."""
    name: str
    port: int
    risk_level: Severity
    description: str
    service_product: str = "Unknown"
    service_version: str = "Unknown"

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "port": self.port,
            "risk_level": self.risk_level.value,
            "description": self.description,
            "service_product": self.service_product,
            "service_version": self.service_version,
        }


@dataclass(frozen=True)
class ScanTask:
    """One unit of work in the orchestrator's queue."""
    host: str
    snmp_community: str = "public"


@dataclass
class AuditResult:
    """Outcome of a SecurityAuditor pass over one device's services."""
    vulnerabilities: list[Vulnerability] = field(default_factory=list)
    risk_score: int = 0
    risk_level: Severity = Severity.INFO
    recommendations: list[str] = field(default_factory=list)
    analyzed_at: datetime = field(default_factory=now_utc)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class HeuristicResult:
    """Outcome of the heuristic (AI analysis) scorer for one device."""
    device_type: str = UNKNOWN
    security_score: int = 0
    recommendations: list[str] = field(default_factory=list)
    analyzed_at: datetime = field(default_factory=now_utc)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class RiskReport:
    """Combined, normalized risk assessment for one device."""
    risk_score: float = 0.0
    risk_level: Optional[TrafficLight] = None
    risk_color: Optional[str] = None
    recommendations: list[str] = field(default_factory=list)
    security_score: int = 0
    ai_score: int = 0
    analyzed_at: datetime = field(default_factory=now_utc)
    details: dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict[str, Any]:
        if self.error is not None:
            return {"error": self.error}
        return {
            "risk_score": self.risk_score,
            "risk_level": self.risk_level.value if self.risk_level else None,
            "risk_color": self.risk_color,
            "recommendations": list(self.recommendations),
            "security_score": self.security_score,
            "ai_score": self.ai_score,
            "analysis_date": self.analyzed_at.isoformat(),
        }
