"""Tests for the rule-based security auditor."""

import pytest

from netaudit._types import Device, Service, Severity
from netaudit.security_auditor import (
    GENERAL_RECOMMENDATIONS,
    HTTP_WITHOUT_SSL,
    SecurityAuditor,
    calculate_risk_level,
)


@pytest.fixture
def auditor():
    return SecurityAuditor()


def services(*entries):
    return {port: Service(port=port, name=name) for port, name in entries}


class TestRiskLevel:
    """Tests for score bucketing."""

    @pytest.mark.parametrize("score,level", [
        (0, Severity.INFO),
        (1, Severity.LOW),
        (9, Severity.LOW),
        (10, Severity.MEDIUM),
        (19, Severity.MEDIUM),
        (20, Severity.HIGH),
        (29, Severity.HIGH),
        (30, Severity.CRITICAL),
        (250, Severity.CRITICAL),
    ])
    def test_thresholds(self, score, level):
        """Scores map to severities at the documented thresholds."""
        assert calculate_risk_level(score) == level


class TestAnalyze:
    """Tests for auditing a service map."""

    def test_ssh_http_telnet(self, auditor):
        """SSH, plain HTTP and Telnet are each flagged with their weights."""
        result = auditor.analyze(services((22, "ssh"), (80, "http"), (23, "telnet")))

        assert result.ok
        assert result.risk_score == 15
        assert result.risk_level == Severity.MEDIUM
        assert [(v.name, v.port) for v in result.vulnerabilities] == [
            ("Telnet", 23),
            (HTTP_WITHOUT_SSL, 80),
        ]
        assert "Disable Telnet and use SSH for secure remote access" in result.recommendations
        assert "Enable SSL/TLS for all web traffic" in result.recommendations
        for advice in GENERAL_RECOMMENDATIONS:
            assert advice in result.recommendations
        assert len(result.recommendations) == 5

    def test_no_services(self, auditor):
        """A device with no services is clean."""
        result = auditor.analyze({})

        assert result.ok
        assert result.risk_score == 0
        assert result.risk_level == Severity.INFO
        assert result.vulnerabilities == []
        assert result.recommendations == []

    def test_none_services(self, auditor):
        """None is treated as no services."""
        assert auditor.analyze(None).risk_score == 0

    def test_secure_services_only(self, auditor):
        """Encrypted services produce no findings."""
        result = auditor.analyze(services((22, "ssh"), (443, "https")))
        assert result.risk_score == 0
        assert result.recommendations == []

    def test_http_on_443_not_flagged(self, auditor):
        """HTTP on 443 is not reported as unencrypted."""
        result = auditor.analyze(services((443, "http")))
        assert result.vulnerabilities == []

    def test_http_on_other_port_flagged(self, auditor):
        """HTTP on any other port is reported as unencrypted."""
        result = auditor.analyze(services((8000, "HTTP")))
        assert result.vulnerabilities[0].name == HTTP_WITHOUT_SSL
        assert result.risk_score == 5

    def test_catalog_port_wins_over_http_check(self, auditor):
        """A catalog port is reported once, not again as HTTP."""
        result = auditor.analyze(services((8080, "http")))
        assert result.vulnerabilities[0].name == "HTTP Alternate"

    def test_critical_total(self, auditor):
        """A high enough total score is critical."""
        result = auditor.analyze(
            services((23, "telnet"), (21, "ftp"), (3389, "ms-wbt-server"), (3306, "mysql"))
        )
        assert result.risk_score == 31
        assert result.risk_level == Severity.CRITICAL

    def test_high_total(self, auditor):
        """Totals in the high band are high."""
        result = auditor.analyze(services((23, "telnet"), (21, "ftp"), (3389, "rdp")))
        assert result.risk_score == 26
        assert result.risk_level == Severity.HIGH

    def test_sql_recommendation(self, auditor):
        """Database ports get the database recommendation."""
        result = auditor.analyze(services((3306, "mysql")))
        assert "Restrict access to MySQL to authorized IP addresses only" in result.recommendations

    def test_vulnerability_carries_product(self, auditor):
        """Findings carry the detected product and version."""
        svc = {21: Service(port=21, name="ftp", product="vsftpd", version="2.3.4")}
        vuln = auditor.analyze(svc).vulnerabilities[0]
        assert vuln.service_product == "vsftpd"
        assert vuln.service_version == "2.3.4"

    def test_missing_product_is_unknown(self, auditor):
        """Findings without a product say unknown."""
        vuln = auditor.analyze(services((23, "telnet"))).vulnerabilities[0]
        assert vuln.service_product == "Unknown"
        assert vuln.service_version == "Unknown"

    def test_idempotent(self, auditor):
        """Analyzing twice gives identical results."""
        svc = services((22, "ssh"), (80, "http"), (23, "telnet"))
        first = auditor.analyze(svc)
        second = auditor.analyze(svc)

        assert first.risk_score == second.risk_score
        assert first.vulnerabilities == second.vulnerabilities
        assert first.recommendations == second.recommendations

    def test_malformed_input_returns_error(self, auditor):
        """Bad input returns an error result instead of raising."""
        result = auditor.analyze(["not", "a", "mapping"])

        assert result.ok is False
        assert result.error
        assert result.vulnerabilities == []


class TestAnalyzeDevice:
    """Tests for auditing devices."""

    def test_device_not_modified(self, auditor, web_server_device):
        """Auditing a device leaves it unchanged."""
        result = auditor.analyze_device(web_server_device)

        assert result.risk_score == 15
        assert web_server_device.risk_level is None
        assert web_server_device.vulnerabilities == []


class TestSecurityReport:
    """Tests for batch reports."""

    def test_report_summary(self, auditor, web_server_device):
        """The report counts findings per severity."""
        quiet = Device(address="10.0.0.2", services=services((22, "ssh")))

        report = auditor.generate_security_report([web_server_device, quiet])

        assert report.total_devices == 2
        assert report.risk_summary["medium"] == 1
        assert report.risk_summary["info"] == 1
        assert report.total_vulnerabilities == 2
        assert report.average_risk_score == 7.5
        assert report.errors == 0
        assert set(report.device_reports) == {"192.168.1.20", "10.0.0.2"}

    def test_empty_report(self, auditor):
        """A report over no devices is empty."""
        report = auditor.generate_security_report([])
        assert report.total_devices == 0
        assert report.average_risk_score == 0.0
