"""
Scan target handling: host list validation and address ordering.

CIDR ranges are NOT expanded, and a range literal such as "10.0.0.0/24"
is rejected with InvalidTargetError. Callers pass a single host or a
pre-resolved, comma- or whitespace-separated host list; each host gets
its own worker and its own nmap process.
"""

from __future__ import annotations

import ipaddress
import logging
import re

from .exceptions import InvalidTargetError

logger = logging.getLogger(__name__)

_SEPARATORS = re.compile(r"[\s,]+")
_HOSTNAME_LABEL = re.compile(r"^(?!-)[A-Za-z0-9-]{1,63}(?<!-)$")


def _is_hostname(value: str) -> bool:
    if len(value) > 253:
        return False
    labels = value.rstrip(".").split(".")
    return all(_HOSTNAME_LABEL.match(label) for label in labels)


def validate_target(target: str) -> str:
    """
    Return the target if it names exactly one host.

    A single-address network ("10.0.0.1/32") is reduced to its address.
    Wider ranges are rejected: nmap would report every host of the range
    in one output stream, and one scan process yields exactly one Device.
    """
    try:
        ipaddress.ip_address(target)
        return target
    except ValueError:
        pass

    if "/" in target:
        try:
            network = ipaddress.ip_network(target, strict=False)
        except ValueError as e:
            raise InvalidTargetError(target, str(e)) from e
        if network.num_addresses != 1:
            raise InvalidTargetError(
                target, "network ranges are not expanded; pass a list of hosts"
            )
        return str(network.network_address)

    # All-numeric dotted strings that failed address parsing are typos, not hostnames
    if re.fullmatch(r"[\d.]+", target):
        raise InvalidTargetError(target, "malformed IPv4 address")

    if not _is_hostname(target):
        raise InvalidTargetError(target, "not an address, network or hostname")
    return target


def expand_hosts(host_range: str) -> list[str]:
    """
    Turn the caller's target string into the list of hosts to scan.

    Raises:
        InvalidTargetError: if the string is empty or any entry is invalid
    """
    if host_range is None or not str(host_range).strip():
        raise InvalidTargetError(str(host_range), "empty target")

    hosts: list[str] = []
    seen: set[str] = set()
    for entry in _SEPARATORS.split(str(host_range).strip()):
        if not entry:
            continue
        host = validate_target(entry)
        if host in seen:
            continue
        hosts.append(host)
        seen.add(host)

    return hosts


def ip_sort_key(address: str) -> tuple:
    """
    Sort key ordering dotted-quad addresses numerically, octet by octet.

    Anything that is not an IPv4 address sorts after all IPv4 addresses,
    lexicographically among itself.
    """
    parts = address.split(".")
    if len(parts) == 4 and all(p.isdigit() for p in parts):
        return (0, tuple(int(p) for p in parts), "")
    return (1, (), address)
