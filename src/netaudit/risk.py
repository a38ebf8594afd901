"""
Traffic-light risk analysis.

Combines the rule-based SecurityAuditor and the HeuristicScorer into one
0-10 risk score, classified green/orange/red.
"""

from __future__ import annotations

import logging
from typing import Optional

from ._types import (
    AuditResult,
    Device,
    HeuristicResult,
    RiskReport,
    ScoreScale,
    TrafficLight,
)
from .heuristic import HeuristicScorer
from .rules import RuleSet, default_rules
from .security_auditor import SecurityAuditor

logger = logging.getLogger(__name__)

# Closed, non-overlapping bands. Anything outside all of them is red.
RISK_THRESHOLDS: tuple[tuple[TrafficLight, float, float], ...] = (
    (TrafficLight.GREEN, 0, 3),
    (TrafficLight.ORANGE, 4, 7),
    (TrafficLight.RED, 8, 10),
)

RISK_COLORS: dict[TrafficLight, str] = {
    TrafficLight.GREEN: "#4CAF50",
    TrafficLight.ORANGE: "#FF9800",
    TrafficLight.RED: "#F44336",
}

RECOMMENDATION_TEMPLATES: dict[str, str] = {
    "close_port": "Close port {port} ({service}) if it is not needed",
    "enable_ssl": "Enable SSL/TLS for the {service} service",
    "enable_firewall": "Enable and correctly configure the firewall",
}

UNENCRYPTED_SERVICES = ("http", "ftp", "telnet")
FIREWALL_SCORE_THRESHOLD = 5


def clamp(value: float, low: float = 0.0, high: float = 10.0) -> float:
    return max(low, min(high, value))


def determine_risk_level(risk_score: float) -> TrafficLight:
    """Classify a 0-10 score; scores outside every band fail safe to red."""
    for level, low, high in RISK_THRESHOLDS:
        if low <= risk_score <= high:
            return level
    return TrafficLight.RED


def risk_color(level: Optional[TrafficLight]) -> str:
    return RISK_COLORS.get(level, RISK_COLORS[TrafficLight.RED])


def combine_scores(
    audit_score: int,
    heuristic_score: int,
    scale: ScoreScale = ScoreScale.NORMALIZED,
) -> float:
    """
    Average the two sub-scores into a 0-10 risk score.

    NORMALIZED: the audit score (capped at 100) and the heuristic risk
    (100 minus its security score) are both divided by 10 before
    averaging, so higher means riskier on both axes.
    RAW: the raw scores are averaged and clamped with no rescale.
    """
    if scale == ScoreScale.RAW:
        return clamp((audit_score + heuristic_score) / 2)

    audit_10 = clamp(audit_score, 0, 100) / 10
    heuristic_10 = (100 - clamp(heuristic_score, 0, 100)) / 10
    return round(clamp((audit_10 + heuristic_10) / 2), 2)


class RiskAnalyzer:
    """Combine both scoring stages into a RiskReport."""

    def __init__(
        self,
        rules: Optional[RuleSet] = None,
        scale: ScoreScale = ScoreScale.NORMALIZED,
        auditor: Optional[SecurityAuditor] = None,
        scorer: Optional[HeuristicScorer] = None,
    ):
        rules = rules or default_rules()
        self.scale = scale
        self.auditor = auditor or SecurityAuditor(rules)
        self.scorer = scorer or HeuristicScorer(rules)

    def analyze_device_risk(self, device: Device) -> RiskReport:
        """
        Analyze one device.

        Returns a report carrying only `error` if either stage fails or
        anything else goes wrong; callers must check `report.ok`.
        """
        try:
            audit = self.auditor.analyze_device(device)
            if not audit.ok:
                return RiskReport(error=f"Security audit failed: {audit.error}")

            heuristic = self.scorer.analyze(device)
            if not heuristic.ok:
                return RiskReport(error=f"Heuristic analysis failed: {heuristic.error}")

            score = combine_scores(audit.risk_score, heuristic.security_score, self.scale)
            level = determine_risk_level(score)

            return RiskReport(
                risk_score=score,
                risk_level=level,
                risk_color=risk_color(level),
                recommendations=self._recommendations(device, audit, heuristic),
                security_score=min(audit.risk_score, 100),
                ai_score=heuristic.security_score,
                details={
                    "security_analysis": audit,
                    "ai_analysis": heuristic,
                    "device_type": heuristic.device_type,
                },
            )

        except Exception as e:
            logger.error(f"Error in risk analysis: {e}")
            return RiskReport(error=str(e))

    def _recommendations(
        self,
        device: Device,
        audit: AuditResult,
        heuristic: HeuristicResult,
    ) -> list[str]:
        recommendations = set(audit.recommendations)
        recommendations.update(heuristic.recommendations)

        for port, service in device.services.items():
            name = service.name or "unknown"
            if port in self.auditor.insecure_services:
                recommendations.add(
                    RECOMMENDATION_TEMPLATES["close_port"].format(port=port, service=name)
                )
            if name.lower() in UNENCRYPTED_SERVICES:
                recommendations.add(
                    RECOMMENDATION_TEMPLATES["enable_ssl"].format(service=name)
                )

        if audit.risk_score > FIREWALL_SCORE_THRESHOLD:
            recommendations.add(RECOMMENDATION_TEMPLATES["enable_firewall"])

        return sorted(recommendations)
