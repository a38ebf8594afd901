"""
Static rule tables used by the scoring pipeline.

The tables are built once (see default_rules()) and passed by reference
into the auditor, the classifier and the heuristic scorer. Everything
here is immutable: tuples, frozensets and read-only mappings.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping

from ._types import Severity
from .exceptions import InvalidRuleError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ServiceRule:
    """Catalog entry for a known-insecure service."""
    name: str
    severity: Severity
    description: str


@dataclass(frozen=True)
class DeviceTypeRule:
    """Ports and keywords that hint at one device category."""
    device_type: str
    ports: frozenset[int]
    keywords: tuple[str, ...]


@dataclass(frozen=True)
class VersionPattern:
    """Version substrings known to be current (safe) or outdated (unsafe)."""
    safe: tuple[str, ...]
    unsafe: tuple[str, ...]


# Severity weights summed by the security auditor
SEVERITY_WEIGHTS: Mapping[Severity, int] = MappingProxyType({
    Severity.CRITICAL: 10,
    Severity.HIGH: 8,
    Severity.MEDIUM: 5,
    Severity.LOW: 2,
    Severity.INFO: 0,
})

INSECURE_SERVICES: Mapping[int, ServiceRule] = MappingProxyType({
    21: ServiceRule("FTP", Severity.HIGH, "Unencrypted file transfer protocol"),
    23: ServiceRule("Telnet", Severity.CRITICAL, "Unencrypted remote access"),
    53: ServiceRule("DNS", Severity.MEDIUM, "Potentially vulnerable DNS server"),
    139: ServiceRule("NetBIOS", Severity.HIGH, "Insecure SMB v1 protocol"),
    445: ServiceRule("SMB", Severity.HIGH, "Potentially vulnerable file sharing protocol"),
    1433: ServiceRule("MSSQL", Severity.MEDIUM, "Exposed SQL Server database"),
    3306: ServiceRule("MySQL", Severity.MEDIUM, "Exposed MySQL database"),
    3389: ServiceRule("RDP", Severity.HIGH, "Exposed Windows remote access"),
    5432: ServiceRule("PostgreSQL", Severity.MEDIUM, "Exposed PostgreSQL database"),
    8080: ServiceRule("HTTP Alternate", Severity.MEDIUM, "Alternate web server without SSL"),
})

# Catalog order is the classifier's tie-break: first max wins
DEVICE_TYPE_RULES: tuple[DeviceTypeRule, ...] = (
    DeviceTypeRule(
        "router",
        frozenset({53, 67, 68, 161}),  # DNS, DHCP, SNMP
        ("router", "gateway", "mikrotik", "cisco"),
    ),
    DeviceTypeRule(
        "switch",
        frozenset({161, 162}),  # SNMP
        ("switch", "catalyst", "procurve"),
    ),
    DeviceTypeRule(
        "server",
        frozenset({21, 22, 80, 443, 3306, 1433}),
        ("server", "windows server", "ubuntu server", "centos"),
    ),
    DeviceTypeRule(
        "workstation",
        frozenset({135, 139, 445}),  # NetBIOS, SMB
        ("windows", "desktop", "workstation"),
    ),
    DeviceTypeRule(
        "printer",
        frozenset({515, 631, 9100}),  # LPD, IPP, RAW
        ("printer", "hp", "epson", "canon"),
    ),
    DeviceTypeRule(
        "camera",
        frozenset({554, 8000, 8080}),  # RTSP, HTTP stream
        ("camera", "ipcam", "axis", "hikvision"),
    ),
)

SECURITY_WEIGHTS: Mapping[str, int] = MappingProxyType({
    "open_ports": -2,
    "secure_services": 5,
    "insecure_services": -5,
    "updated_software": 3,
    "outdated_software": -3,
})

VERSION_PATTERNS: Mapping[str, VersionPattern] = MappingProxyType({
    "openssh": VersionPattern(safe=("8.", "7.9"), unsafe=("6.", "5.")),
    "apache": VersionPattern(safe=("2.4.",), unsafe=("2.2.", "2.0.")),
    "nginx": VersionPattern(safe=("1.20.", "1.18."), unsafe=("1.16.", "1.14.")),
    "windows": VersionPattern(safe=("10.", "2019"), unsafe=("7", "xp", "2003")),
})


@dataclass(frozen=True)
class RuleSet:
    """
    All rule tables the scoring components need.

    Build with default_rules() unless a deployment ships its own tables;
    custom tables should be checked with validate() before use.
    """
    insecure_services: Mapping[int, ServiceRule] = field(default_factory=lambda: INSECURE_SERVICES)
    severity_weights: Mapping[Severity, int] = field(default_factory=lambda: SEVERITY_WEIGHTS)
    device_types: tuple[DeviceTypeRule, ...] = DEVICE_TYPE_RULES
    security_weights: Mapping[str, int] = field(default_factory=lambda: SECURITY_WEIGHTS)
    version_patterns: Mapping[str, VersionPattern] = field(default_factory=lambda: VERSION_PATTERNS)

    def weight(self, severity: Severity) -> int:
        return self.severity_weights[severity]

    def validate(self) -> "RuleSet":
        """Reject malformed tables. Returns self so calls can be chained."""
        for port, rule in self.insecure_services.items():
            if not isinstance(port, int) or not 0 <= port <= 65535:
                raise InvalidRuleError(f"Insecure service port out of range: {port!r}")
            if not isinstance(rule.severity, Severity):
                raise InvalidRuleError(
                    f"Unknown severity {rule.severity!r} for port {port}"
                )
            if not rule.name:
                raise InvalidRuleError(f"Insecure service on port {port} has no name")

        missing = [s.value for s in Severity if s not in self.severity_weights]
        if missing:
            raise InvalidRuleError(f"Missing severity weights: {missing}")

        if not self.device_types:
            raise InvalidRuleError("Device type catalog is empty")
        seen = set()
        for rule in self.device_types:
            if rule.device_type in seen:
                raise InvalidRuleError(f"Duplicate device type: {rule.device_type}")
            seen.add(rule.device_type)
            bad_ports = [p for p in rule.ports if not 0 <= p <= 65535]
            if bad_ports:
                raise InvalidRuleError(
                    f"Device type {rule.device_type} has invalid ports: {bad_ports}"
                )

        required = set(SECURITY_WEIGHTS)
        if not required.issubset(self.security_weights):
            raise InvalidRuleError(
                f"Missing security weights: {sorted(required - set(self.security_weights))}"
            )

        return self


def default_rules() -> RuleSet:
    """Build the stock rule set."""
    rules = RuleSet().validate()
    logger.debug(
        f"Loaded {len(rules.insecure_services)} insecure service rules, "
        f"{len(rules.device_types)} device types"
    )
    return rules
