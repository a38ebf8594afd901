"""Tests for the static rule tables."""

import dataclasses

import pytest

from netaudit._types import Severity
from netaudit.exceptions import InvalidRuleError
from netaudit.rules import (
    DEVICE_TYPE_RULES,
    INSECURE_SERVICES,
    DeviceTypeRule,
    RuleSet,
    ServiceRule,
    default_rules,
)


class TestDefaultRules:
    """Tests for the stock rule set."""

    def test_default_rules_validate(self):
        """The built-in rule set passes its own validation."""
        rules = default_rules()
        assert rules.validate() is rules

    def test_severity_weights(self):
        """Severity weights match the audit scoring table."""
        rules = default_rules()
        assert rules.weight(Severity.CRITICAL) == 10
        assert rules.weight(Severity.HIGH) == 8
        assert rules.weight(Severity.MEDIUM) == 5
        assert rules.weight(Severity.LOW) == 2
        assert rules.weight(Severity.INFO) == 0

    def test_insecure_service_catalog(self):
        """The insecure service catalog covers the known risky ports."""
        assert INSECURE_SERVICES[23].severity == Severity.CRITICAL
        assert INSECURE_SERVICES[21].name == "FTP"
        assert 22 not in INSECURE_SERVICES

    def test_catalog_order(self):
        """Device types are listed in tie-break order."""
        assert [r.device_type for r in DEVICE_TYPE_RULES] == [
            "router", "switch", "server", "workstation", "printer", "camera",
        ]

    def test_tables_are_read_only(self):
        """Shared rule tables cannot be modified."""
        rules = default_rules()
        with pytest.raises(TypeError):
            rules.insecure_services[22] = ServiceRule("SSH", Severity.LOW, "x")
        with pytest.raises(dataclasses.FrozenInstanceError):
            rules.device_types = ()


class TestValidate:
    """Tests for rule validation."""

    def test_bad_port(self):
        """An insecure-service entry on an invalid port is rejected."""
        rules = RuleSet(insecure_services={70000: ServiceRule("X", Severity.LOW, "x")})
        with pytest.raises(InvalidRuleError):
            rules.validate()

    def test_unknown_severity(self):
        """Severities must be Severity members."""
        rules = RuleSet(insecure_services={21: ServiceRule("FTP", "severe", "x")})
        with pytest.raises(InvalidRuleError):
            rules.validate()

    def test_missing_severity_weight(self):
        """Every severity needs a weight."""
        rules = RuleSet(severity_weights={Severity.HIGH: 8})
        with pytest.raises(InvalidRuleError, match="Missing severity weights"):
            rules.validate()

    def test_duplicate_device_type(self):
        """Device type names must be unique."""
        rule = DeviceTypeRule("router", frozenset({53}), ("router",))
        with pytest.raises(InvalidRuleError, match="Duplicate"):
            RuleSet(device_types=(rule, rule)).validate()

    def test_empty_device_catalog(self):
        """At least one device type is required."""
        with pytest.raises(InvalidRuleError):
            RuleSet(device_types=()).validate()

    def test_missing_security_weight(self):
        """Both secure and insecure weights are required."""
        with pytest.raises(InvalidRuleError, match="security weights"):
            RuleSet(security_weights={"open_ports": -2}).validate()
