"""
Netaudit - Network device discovery and risk assessment.

Scans a set of hosts with nmap on a bounded worker pool, turns the
streamed output into Device records, and scores every device three ways:
a rule-based security audit, a heuristic posture score with device type
classification, and a combined traffic-light risk report.

Architecture:
    orchestrator      - worker pool, queues, progress, cancellation
    parser / process  - nmap process supervision and output parsing
    security_auditor  - insecure-service audit (0-100 risk)
    heuristic         - posture score (0-100) and device type
    risk              - combined 0-10 score and traffic light
    scanner_service   - aiohttp API and CLI
"""

__version__ = "1.0.0"

from ._types import (
    Device,
    Service,
    ServiceState,
    Severity,
    TrafficLight,
    ScoreScale,
    Vulnerability,
    AuditResult,
    HeuristicResult,
    RiskReport,
)
from .exceptions import (
    NetauditError,
    InvalidTargetError,
    InvalidRuleError,
    ScanProcessError,
    ScanInProgressError,
)
from .rules import RuleSet, default_rules
from .classifier import classify_device
from .security_auditor import SecurityAuditor
from .heuristic import HeuristicScorer
from .risk import RiskAnalyzer
from .parser import ScanOutputParser
from .orchestrator import ScanOrchestrator
from .events import DeviceEventStream
from .alerts import AlertSystem

__all__ = [
    "__version__",
    "Device",
    "Service",
    "ServiceState",
    "Severity",
    "TrafficLight",
    "ScoreScale",
    "Vulnerability",
    "AuditResult",
    "HeuristicResult",
    "RiskReport",
    "NetauditError",
    "InvalidTargetError",
    "InvalidRuleError",
    "ScanProcessError",
    "ScanInProgressError",
    "RuleSet",
    "default_rules",
    "classify_device",
    "SecurityAuditor",
    "HeuristicScorer",
    "RiskAnalyzer",
    "ScanOutputParser",
    "ScanOrchestrator",
    "DeviceEventStream",
    "AlertSystem",
]
