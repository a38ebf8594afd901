"""Tests for device type classification."""

from netaudit._types import Device, Service
from netaudit.classifier import classify, classify_device
from netaudit.rules import DeviceTypeRule, RuleSet


class TestClassifyDevice:
    """Tests for port, OS and hostname scoring."""

    def test_router_by_ports(self):
        """Router ports should classify as router."""
        result = classify_device(open_ports=[53, 67, 161], os_info=None, hostname=None)

        assert result.device_type == "router"
        assert result.score == 6
        assert result.scores["switch"] == 2

    def test_printer_by_ports_and_hostname(self):
        """Printer ports plus a printer hostname classify as printer."""
        result = classify_device(
            open_ports=[9100, 631],
            os_info=None,
            hostname="printer-2nd-floor",
        )

        assert result.device_type == "printer"
        assert result.score == 6

    def test_os_keyword_scores_three(self):
        """An OS keyword match is worth three points."""
        result = classify_device(open_ports=[], os_info="Cisco IOS 15.2", hostname=None)

        assert result.device_type == "router"
        assert result.score == 3

    def test_keywords_case_insensitive(self):
        """Keyword matching ignores case."""
        result = classify_device(open_ports=[], os_info=None, hostname="CORE-SWITCH-01")
        assert result.device_type == "switch"

    def test_unknown_when_nothing_scores(self):
        """No matching port or keyword gives unknown."""
        result = classify_device(open_ports=[], os_info=None, hostname="")

        assert result.device_type == "unknown"
        assert result.is_unknown is True
        assert result.score == 0

    def test_tie_goes_to_first_in_catalog(self):
        """On a tie the earlier catalog entry wins."""
        # SNMP alone scores 2 for both router and switch
        result = classify_device(open_ports=[161], os_info=None, hostname=None)
        assert result.device_type == "router"

    def test_windows_server_prefers_server(self):
        """Windows Server scores higher as server than workstation."""
        # "windows" also hits workstation, but server matches two keywords
        result = classify_device(open_ports=[], os_info="Windows Server 2019", hostname=None)
        assert result.device_type == "server"

    def test_deterministic(self):
        """Repeated calls give the same result."""
        args = dict(open_ports=[22, 80, 443, 554], os_info="Linux", hostname="cam-lobby")
        first = classify_device(**args)
        for _ in range(5):
            assert classify_device(**args) == first

    def test_accepts_service_map(self):
        """A port-to-service mapping is accepted in place of a port list."""
        services = {515: Service(port=515, name="printer"), 9100: Service(port=9100)}
        result = classify_device(open_ports=services, os_info=None, hostname=None)
        assert result.device_type == "printer"

    def test_custom_rules(self):
        """A custom device catalog is honoured."""
        rules = RuleSet(device_types=(DeviceTypeRule("nas", frozenset({2049}), ("synology",)),))
        result = classify_device(open_ports=[2049], os_info=None, hostname=None, rules=rules)
        assert result.device_type == "nas"


class TestClassify:
    """Tests for classifying parsed devices."""

    def test_classify_device_record(self, web_server_device):
        """A parsed device classifies from its services, OS and hostname."""
        result = classify(web_server_device)
        assert result.device_type == "server"

    def test_hostname_defaulted_to_address_scores_nothing(self):
        """A bare address hostname matches no keyword."""
        device = Device(address="10.0.0.9")
        assert classify(device).is_unknown
