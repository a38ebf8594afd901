"""
Rule-based security audit of a device's open services.

Each open port is checked against the insecure-service catalog. Matches
become vulnerabilities whose severity weights are summed into an integer
risk score, which is then bucketed into a severity level.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Mapping, Optional

from ._types import (
    AuditResult,
    Device,
    Service,
    Severity,
    Vulnerability,
    now_utc,
)
from .rules import RuleSet, default_rules

logger = logging.getLogger(__name__)

HTTP_WITHOUT_SSL = "HTTP without SSL"

# Level thresholds, checked top-down
RISK_LEVEL_THRESHOLDS: tuple[tuple[int, Severity], ...] = (
    (30, Severity.CRITICAL),
    (20, Severity.HIGH),
    (10, Severity.MEDIUM),
)

SERVICE_RECOMMENDATIONS: dict[str, str] = {
    "Telnet": "Disable Telnet and use SSH for secure remote access",
    "FTP": "Migrate to SFTP or FTPS for secure file transfer",
    "SMB": "Upgrade to SMB v3 and disable older protocol versions",
    HTTP_WITHOUT_SSL: "Enable SSL/TLS for all web traffic",
    "RDP": "Restrict RDP access to a VPN or specific IP addresses",
}

GENERAL_RECOMMENDATIONS: tuple[str, ...] = (
    "Deploy a firewall to filter unauthorized traffic",
    "Keep all services updated with the latest security patches",
    "Perform periodic security audits",
)


def calculate_risk_level(score: int) -> Severity:
    """Bucket a summed risk score into a severity level."""
    for threshold, level in RISK_LEVEL_THRESHOLDS:
        if score >= threshold:
            return level
    if score > 0:
        return Severity.LOW
    return Severity.INFO


@dataclass
class SecurityReport:
    """Aggregate audit over a batch of devices."""
    total_devices: int = 0
    risk_summary: dict[str, int] = field(
        default_factory=lambda: {s.value: 0 for s in Severity}
    )
    device_reports: dict[str, AuditResult] = field(default_factory=dict)
    global_recommendations: list[str] = field(default_factory=list)
    total_vulnerabilities: int = 0
    average_risk_score: float = 0.0
    errors: int = 0
    generated_at: datetime = field(default_factory=now_utc)


class SecurityAuditor:
    """
    Evaluate open services against the insecure-service catalog.

    The auditor holds no per-call state, so analyzing the same services
    twice always yields the same result.
    """

    def __init__(self, rules: Optional[RuleSet] = None):
        self.rules = rules or default_rules()

    @property
    def insecure_services(self):
        return self.rules.insecure_services

    def analyze(self, services: Optional[Mapping[int, Service]]) -> AuditResult:
        """
        Audit a port -> Service map.

        Never raises; on an internal failure the returned result carries
        only an error description.
        """
        try:
            vulnerabilities: list[Vulnerability] = []
            total_score = 0

            for port, service in sorted((services or {}).items()):
                vuln = self._check_service(port, service)
                if vuln is None:
                    continue
                vulnerabilities.append(vuln)
                total_score += self.rules.weight(vuln.risk_level)

            return AuditResult(
                vulnerabilities=vulnerabilities,
                risk_score=total_score,
                risk_level=calculate_risk_level(total_score),
                recommendations=self._recommendations(vulnerabilities),
            )

        except Exception as e:
            logger.error(f"Security audit failed: {e}")
            return AuditResult(error=str(e))

    def analyze_device(self, device: Device) -> AuditResult:
        """Audit a Device without modifying it."""
        try:
            return self.analyze(device.services)
        except Exception as e:
            logger.error(f"Security audit failed for device: {e}")
            return AuditResult(error=str(e))

    def _check_service(self, port: int, service: Service) -> Optional[Vulnerability]:
        product = service.product or "Unknown"
        version = service.version or "Unknown"

        rule = self.rules.insecure_services.get(port)
        if rule is not None:
            return Vulnerability(
                name=rule.name,
                port=port,
                risk_level=rule.severity,
                description=rule.description,
                service_product=product,
                service_version=version,
            )

        if service.name.lower() == "http" and port != 443:
            return Vulnerability(
                name=HTTP_WITHOUT_SSL,
                port=port,
                risk_level=Severity.MEDIUM,
                description="Web service without SSL/TLS encryption",
                service_product=product,
                service_version=version,
            )

        return None

    def _recommendations(self, vulnerabilities: list[Vulnerability]) -> list[str]:
        recommendations: set[str] = set()

        for vuln in vulnerabilities:
            advice = SERVICE_RECOMMENDATIONS.get(vuln.name)
            if advice:
                recommendations.add(advice)
            elif "SQL" in vuln.name:
                recommendations.add(
                    f"Restrict access to {vuln.name} to authorized IP addresses only"
                )

        if vulnerabilities:
            recommendations.update(GENERAL_RECOMMENDATIONS)

        return sorted(recommendations)

    def generate_security_report(self, devices: list[Device]) -> SecurityReport:
        """
        Audit a batch of devices and summarize the results.

        Devices whose audit fails are counted in `errors` and left out of
        the summary and the averages.
        """
        report = SecurityReport(total_devices=len(devices))
        global_recommendations: set[str] = set()
        score_total = 0
        audited = 0

        for device in devices:
            result = self.analyze_device(device)
            report.device_reports[device.address] = result
            if not result.ok:
                report.errors += 1
                continue

            audited += 1
            report.risk_summary[result.risk_level.value] += 1
            global_recommendations.update(result.recommendations)
            report.total_vulnerabilities += len(result.vulnerabilities)
            score_total += result.risk_score

        report.global_recommendations = sorted(global_recommendations)
        report.average_risk_score = score_total / audited if audited else 0.0

        logger.info(
            f"Security report: {report.total_devices} devices, "
            f"{report.total_vulnerabilities} vulnerabilities, "
            f"{report.errors} errors"
        )
        return report

