"""Tests for the heuristic scorer."""

import pytest

from netaudit._types import Device, Service
from netaudit.heuristic import (
    LOW_SCORE_RECOMMENDATIONS,
    MEDIUM_SCORE_RECOMMENDATIONS,
    HeuristicScorer,
    clamp_score,
)


@pytest.fixture
def scorer():
    return HeuristicScorer()


class TestSecurityScore:
    """Tests for the 0-100 security score."""

    def test_no_services_is_perfect(self, scorer):
        """No services scores 100."""
        assert scorer.security_score({}) == 100

    def test_open_ports_penalized(self, scorer):
        """Each open port costs one point."""
        svc = {p: Service(port=p, name="unknown") for p in (1000, 1001, 1002)}
        assert scorer.security_score(svc) == 94

    def test_secure_and_insecure_markers(self, scorer):
        """Secure services add points and insecure ones subtract."""
        svc = {
            22: Service(port=22, name="ssh"),
            23: Service(port=23, name="telnet"),
            21: Service(port=21, name="ftp"),
        }
        # 100 - 6 + 5 - 5 - 5
        assert scorer.security_score(svc) == 89

    def test_outdated_openssh(self, scorer):
        """An OpenSSH version below the threshold is penalized."""
        svc = {
            22: Service(port=22, name="ssh", product="OpenSSH", version="6.6.1p1"),
            23: Service(port=23, name="telnet"),
        }
        # 100 - 4 + 5 - 5 - 3
        assert scorer.security_score(svc) == 93

    def test_current_openssh(self, scorer):
        """A current OpenSSH version is not penalized."""
        svc = {
            22: Service(port=22, name="ssh", product="OpenSSH", version="8.2p1"),
            23: Service(port=23, name="telnet"),
        }
        assert scorer.security_score(svc) == 99

    def test_version_without_known_product(self, scorer):
        """Versions of unknown products are not penalized."""
        svc = {
            8000: Service(port=8000, name="http", product="lighttpd", version="1.4.55"),
            23: Service(port=23, name="telnet"),
        }
        assert scorer.security_score(svc) == 91

    def test_clamped_at_zero(self, scorer):
        """The score never goes below 0."""
        svc = {p: Service(port=p, name="unknown") for p in range(1000, 1060)}
        assert scorer.security_score(svc) == 0

    def test_clamped_at_hundred(self, scorer):
        """The score never goes above 100."""
        svc = {443: Service(port=443, name="https")}
        assert scorer.security_score(svc) == 100

    @pytest.mark.parametrize("raw,clamped", [(-20, 0), (0, 0), (57, 57), (100, 100), (130, 100)])
    def test_clamp_score(self, raw, clamped):
        """clamp_score bounds values to 0-100."""
        assert clamp_score(raw) == clamped


class TestAnalyze:
    """Tests for single-device analysis."""

    def test_web_server(self, scorer, web_server_device):
        """A web server gets its type, score and advice."""
        result = scorer.analyze(web_server_device)

        assert result.ok
        assert result.device_type == "server"
        assert result.security_score == 100
        assert "Replace Telnet with SSH for secure remote access" in result.recommendations
        assert "Implement HTTPS to encrypt web traffic" in result.recommendations
        assert "Configure automatic backups" in result.recommendations

    def test_http_with_https_no_https_advice(self, scorer):
        """HTTPS advice is skipped when HTTPS is already offered."""
        device = Device(
            address="10.0.0.3",
            services={
                80: Service(port=80, name="http"),
                443: Service(port=443, name="https"),
            },
        )
        result = scorer.analyze(device)
        assert "Implement HTTPS to encrypt web traffic" not in result.recommendations

    def test_low_score_recommendations(self, scorer):
        """Low scores get the urgent recommendations."""
        device = Device(
            address="10.0.0.4",
            services={p: Service(port=p, name="unknown") for p in range(2000, 2030)},
        )
        result = scorer.analyze(device)

        assert result.security_score == 40
        for advice in LOW_SCORE_RECOMMENDATIONS:
            assert advice in result.recommendations

    def test_medium_score_recommendations(self, scorer):
        """Medium scores get the hardening recommendations."""
        device = Device(
            address="10.0.0.5",
            services={p: Service(port=p, name="unknown") for p in range(2000, 2015)},
        )
        result = scorer.analyze(device)

        assert result.security_score == 70
        for advice in MEDIUM_SCORE_RECOMMENDATIONS:
            assert advice in result.recommendations
        for advice in LOW_SCORE_RECOMMENDATIONS:
            assert advice not in result.recommendations

    def test_unknown_type_no_type_advice(self, scorer):
        """Unknown devices get no type-specific advice."""
        result = scorer.analyze(Device(address="10.0.0.6"))
        assert result.device_type == "unknown"
        assert result.recommendations == []

    def test_failure_returns_error(self, scorer):
        """Internal failures are returned as an error result."""
        device = Device(address="10.0.0.7")
        device.services = None

        result = scorer.analyze(device)

        assert result.ok is False
        assert result.error


class TestAnalyzeNetwork:
    """Tests for network-wide analysis."""

    def test_summary(self, scorer, web_server_device):
        """Network analysis summarizes types and average score."""
        weak = Device(
            address="10.0.0.8",
            services={p: Service(port=p, name="unknown") for p in range(2000, 2030)},
        )

        analysis = scorer.analyze_network([web_server_device, weak])

        assert analysis.error is None
        assert analysis.device_types == {"server": 1, "unknown": 1}
        assert analysis.average_security_score == 70.0
        assert [d["ip"] for d in analysis.critical_devices] == ["10.0.0.8"]
