"""
Device type classification based on ports, hostname, and OS.

Every candidate type in the rule catalog is scored independently and the
highest score wins. The classifier is purely heuristic and deterministic:
the same ports, OS string and hostname always yield the same type.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Mapping, Optional, Union

from ._types import UNKNOWN, Device, Service
from .rules import RuleSet, default_rules

logger = logging.getLogger(__name__)

PORT_MATCH_POINTS = 2
OS_KEYWORD_POINTS = 3
HOSTNAME_KEYWORD_POINTS = 2


@dataclass
class ClassificationResult:
    """Result of device classification."""
    device_type: str
    score: int
    scores: dict[str, int] = field(default_factory=dict)

    @property
    def is_unknown(self) -> bool:
        return self.device_type == UNKNOWN


def classify_device(
    open_ports: Union[Iterable[int], Mapping[int, Service]],
    os_info: Optional[str],
    hostname: Optional[str],
    rules: Optional[RuleSet] = None,
) -> ClassificationResult:
    """
    Classify a device based on network characteristics.

    Args:
        open_ports: Open port numbers, or a port -> Service map
        os_info: OS description string (if known)
        hostname: Device hostname (if known)
        rules: Rule set to classify against (defaults to the stock rules)

    Returns:
        ClassificationResult with the winning type and per-type scores.
        Ties go to the type listed first in the catalog; a device that
        scores nothing anywhere is "unknown".
    """
    rules = rules or default_rules()
    port_set = set(open_ports)
    os_lower = (os_info or "").lower()
    hostname_lower = (hostname or "").lower()

    scores: dict[str, int] = {}
    for rule in rules.device_types:
        score = PORT_MATCH_POINTS * len(port_set & rule.ports)
        for keyword in rule.keywords:
            if keyword in os_lower:
                score += OS_KEYWORD_POINTS
            if keyword in hostname_lower:
                score += HOSTNAME_KEYWORD_POINTS
        scores[rule.device_type] = score

    best_type = UNKNOWN
    best_score = 0
    for device_type, score in scores.items():
        # Strict comparison keeps the first max in catalog order
        if score > best_score:
            best_type = device_type
            best_score = score

    return ClassificationResult(device_type=best_type, score=best_score, scores=scores)


def classify(device: Device, rules: Optional[RuleSet] = None) -> ClassificationResult:
    """Classify a parsed Device."""
    return classify_device(
        open_ports=device.services,
        os_info=device.os_description,
        hostname=device.hostname,
        rules=rules,
    )
