"""
Scanner configuration.

Loaded from environment variables or a YAML file. The SNMP community
string is a credential and lives in a separate credentials file
(default /var/lib/netaudit/scanner_creds.yaml).
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from ._types import ScoreScale
from .exceptions import InvalidTargetError
from .targets import expand_hosts

logger = logging.getLogger(__name__)


@dataclass
class ScannerConfig:
    """Network scanner configuration."""

    # Targets: a single host, or a comma-separated host list
    targets: str = ""
    intensity: str = "-T4"

    # SNMP community string (overridden by the credentials file)
    snmp_community: str = "public"

    # Scanning behavior
    max_workers: int = 32
    poll_timeout_seconds: float = 1.0
    host_timeout: str = "60s"
    nmap_path: str = "nmap"

    # Risk scoring
    risk_scale: ScoreScale = ScoreScale.NORMALIZED

    # Alert rules (see alerts.rule_from_dict)
    alert_rules: list[dict[str, Any]] = field(default_factory=list)

    # API server
    api_host: str = "127.0.0.1"
    api_port: int = 8083

    credentials_path: Path = field(
        default_factory=lambda: Path("/var/lib/netaudit/scanner_creds.yaml")
    )

    # Logging
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "ScannerConfig":
        """Load configuration from environment variables."""
        config = cls()

        config.targets = os.getenv("SCAN_TARGETS", "")
        config.intensity = os.getenv("SCAN_INTENSITY", "-T4")
        config.snmp_community = os.getenv("SNMP_COMMUNITY", "public")

        config.max_workers = int(os.getenv("MAX_WORKERS", "32"))
        config.poll_timeout_seconds = float(os.getenv("POLL_TIMEOUT_SECONDS", "1.0"))
        config.host_timeout = os.getenv("HOST_TIMEOUT", "60s")
        config.nmap_path = os.getenv("NMAP_PATH", "nmap")

        config.risk_scale = ScoreScale(os.getenv("RISK_SCALE", ScoreScale.NORMALIZED.value))

        config.api_host = os.getenv("API_HOST", "127.0.0.1")
        config.api_port = int(os.getenv("API_PORT", "8083"))

        if creds_path := os.getenv("CREDENTIALS_PATH"):
            config.credentials_path = Path(creds_path)

        config.log_level = os.getenv("LOG_LEVEL", "INFO")

        return config

    @classmethod
    def from_yaml(cls, path: Path) -> "ScannerConfig":
        """Load configuration from YAML file."""
        if not path.exists():
            logger.warning(f"Config file not found: {path}, using defaults")
            return cls()

        with open(path) as f:
            data = yaml.safe_load(f) or {}

        config = cls()

        targets = data.get("targets", "")
        if isinstance(targets, list):
            targets = ",".join(str(t) for t in targets)
        config.targets = targets

        if "scan" in data:
            s = data["scan"]
            config.intensity = s.get("intensity", "-T4")
            config.max_workers = s.get("max_workers", 32)
            config.poll_timeout_seconds = s.get("poll_timeout_seconds", 1.0)
            config.host_timeout = s.get("host_timeout", "60s")
            config.nmap_path = s.get("nmap_path", "nmap")

        if "risk" in data:
            config.risk_scale = ScoreScale(data["risk"].get("scale", ScoreScale.NORMALIZED.value))

        config.alert_rules = data.get("alerts", []) or []

        if "api" in data:
            a = data["api"]
            config.api_host = a.get("host", "127.0.0.1")
            config.api_port = a.get("port", 8083)

        if "paths" in data and "credentials" in data["paths"]:
            config.credentials_path = Path(data["paths"]["credentials"])

        config.log_level = data.get("log_level", "INFO")

        return config

    def load_credentials(self) -> bool:
        """Load the SNMP community from the separate credentials file."""
        if not self.credentials_path.exists():
            logger.warning(f"Credentials file not found: {self.credentials_path}")
            return False

        try:
            with open(self.credentials_path) as f:
                creds = yaml.safe_load(f) or {}

            if "snmp" in creds:
                self.snmp_community = creds["snmp"].get("community", self.snmp_community)

            logger.info("Scanner credentials loaded successfully")
            return True

        except (OSError, yaml.YAMLError) as e:
            logger.error(f"Failed to load credentials: {e}")
            return False

    def validate(self) -> list[str]:
        """Validate configuration, returning list of errors."""
        errors = []

        if self.targets:
            try:
                expand_hosts(self.targets)
            except InvalidTargetError as e:
                errors.append(str(e))

        if not 1 <= self.max_workers <= 32:
            errors.append(f"Invalid worker count: {self.max_workers} (must be 1-32)")

        if self.poll_timeout_seconds <= 0:
            errors.append(f"Invalid poll timeout: {self.poll_timeout_seconds}")

        if not self.intensity.startswith("-"):
            errors.append(f"Invalid scan intensity flag: {self.intensity!r}")

        if not 0 < self.api_port < 65536:
            errors.append(f"Invalid API port: {self.api_port}")

        return errors


# Example scanner_creds.yaml:
"""
# /var/lib/netaudit/scanner_creds.yaml
snmp:
  community: "public"
"""

# Example scanner_config.yaml:
"""
targets:
  - "192.168.88.1"
  - "192.168.88.10"

scan:
  intensity: "-T4"
  max_workers: 16
  host_timeout: "60s"

risk:
  scale: normalized

alerts:
  - id: telnet-open
    name: Telnet exposed
    condition: {type: port_open, port: 23}
    notification_type: log

api:
  host: "127.0.0.1"
  port: 8083

paths:
  credentials: "/var/lib/netaudit/scanner_creds.yaml"

log_level: "INFO"
"""
