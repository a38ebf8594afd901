"""
Heuristic ("AI analysis") scoring of a device.

Independent of the rule-based auditor: classifies the device type,
computes a 0-100 security score from fixed weights and known software
versions, and derives type- and score-specific recommendations.
A higher score here means a *better* secured device.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from ._types import Device, HeuristicResult, Service, now_utc
from .classifier import classify
from .rules import RuleSet, default_rules

logger = logging.getLogger(__name__)

BASE_SCORE = 100
SECURE_SERVICE_MARKERS = ("ssh", "https")
INSECURE_SERVICE_MARKERS = ("telnet", "ftp")

CRITICAL_SCORE = 50
REVIEW_SCORE = 80

DEVICE_TYPE_RECOMMENDATIONS: dict[str, tuple[str, ...]] = {
    "router": (
        "Configure ACLs to filter unauthorized traffic",
        "Require two-factor authentication for administrative access",
        "Update the firmware regularly",
    ),
    "server": (
        "Enforce a strong password policy",
        "Configure automatic backups",
        "Monitor security logs",
    ),
    "workstation": (
        "Install and keep antivirus software up to date",
        "Enable the operating system firewall",
        "Enforce automatic update policies",
    ),
}

LOW_SCORE_RECOMMENDATIONS = (
    "Perform a complete security audit",
    "Review and update all security configurations",
    "Consider deploying an IDS/IPS",
)

MEDIUM_SCORE_RECOMMENDATIONS = (
    "Review and update security policies",
    "Schedule periodic security audits",
)


def clamp_score(score: int) -> int:
    return max(0, min(100, score))


@dataclass
class NetworkAnalysis:
    """Heuristic summary over every device of a scan."""
    device_types: dict[str, int] = field(default_factory=dict)
    average_security_score: float = 0.0
    critical_devices: list[dict[str, Any]] = field(default_factory=list)
    global_recommendations: list[str] = field(default_factory=list)
    analyzed_at: datetime = field(default_factory=now_utc)
    error: Optional[str] = None


class HeuristicScorer:
    """Score devices with weighted heuristics instead of fixed vulnerability rules."""

    def __init__(self, rules: Optional[RuleSet] = None):
        self.rules = rules or default_rules()

    def analyze(self, device: Device) -> HeuristicResult:
        """
        Analyze one device.

        Never raises; an internal failure yields a result carrying only
        the error description.
        """
        try:
            device_type = classify(device, self.rules).device_type
            score = self.security_score(device.services)
            return HeuristicResult(
                device_type=device_type,
                security_score=score,
                recommendations=self._recommendations(device.services, device_type, score),
            )
        except Exception as e:
            logger.error(f"Heuristic analysis failed: {e}")
            return HeuristicResult(error=str(e))

    def security_score(self, services: dict[int, Service]) -> int:
        weights = self.rules.security_weights
        score = BASE_SCORE + len(services) * weights["open_ports"]

        for service in services.values():
            name = service.name.lower()

            if any(marker in name for marker in SECURE_SERVICE_MARKERS):
                score += weights["secure_services"]
            if any(marker in name for marker in INSECURE_SERVICE_MARKERS):
                score += weights["insecure_services"]

            score += self._version_adjustment(service)

        return clamp_score(score)

    def _version_adjustment(self, service: Service) -> int:
        """Reward known-current and penalize known-outdated software versions."""
        version = service.version or ""
        if not version:
            return 0

        weights = self.rules.security_weights
        identity = f"{service.product or ''} {service.name}".lower()
        version_lower = version.lower()
        adjustment = 0

        for product, patterns in self.rules.version_patterns.items():
            if product not in identity:
                continue
            if any(p in version_lower for p in patterns.safe):
                adjustment += weights["updated_software"]
            if any(p in version_lower for p in patterns.unsafe):
                adjustment += weights["outdated_software"]

        return adjustment

    def _recommendations(
        self,
        services: dict[int, Service],
        device_type: str,
        score: int,
    ) -> list[str]:
        recommendations: set[str] = set()

        for port, service in services.items():
            name = service.name.lower()
            if "telnet" in name:
                recommendations.add("Replace Telnet with SSH for secure remote access")
            elif "ftp" in name:
                recommendations.add("Migrate from FTP to SFTP or FTPS for secure file transfer")
            elif port == 80 and 443 not in services:
                recommendations.add("Implement HTTPS to encrypt web traffic")

        recommendations.update(DEVICE_TYPE_RECOMMENDATIONS.get(device_type, ()))

        if score < CRITICAL_SCORE:
            recommendations.update(LOW_SCORE_RECOMMENDATIONS)
        elif score < REVIEW_SCORE:
            recommendations.update(MEDIUM_SCORE_RECOMMENDATIONS)

        return sorted(recommendations)

    def analyze_network(self, devices: list[Device]) -> NetworkAnalysis:
        """Analyze every device and build a network-wide summary."""
        try:
            type_counts: Counter[str] = Counter()
            critical: list[dict[str, Any]] = []
            global_recommendations: set[str] = set()
            total = 0
            analyzed = 0

            for device in devices:
                result = self.analyze(device)
                if not result.ok:
                    logger.warning(f"Skipping {device.address} in network analysis: {result.error}")
                    continue

                analyzed += 1
                type_counts[result.device_type] += 1
                total += result.security_score
                global_recommendations.update(result.recommendations)

                if result.security_score < CRITICAL_SCORE:
                    critical.append({
                        "ip": device.address,
                        "hostname": device.hostname,
                        "score": result.security_score,
                        "type": result.device_type,
                    })

            return NetworkAnalysis(
                device_types=dict(type_counts),
                average_security_score=total / analyzed if analyzed else 0.0,
                critical_devices=critical,
                global_recommendations=sorted(global_recommendations),
            )

        except Exception as e:
            logger.error(f"Network analysis failed: {e}")
            return NetworkAnalysis(error=str(e))
