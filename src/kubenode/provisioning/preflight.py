"""
Host checks that must hold before anything is installed or written.
"""

import ipaddress
import logging
from pathlib import Path
from typing import Dict

from kubenode.core.errors import PreconditionError

logger = logging.getLogger("kubenode.preflight")


def read_lsb_release(path: Path) -> Dict[str, str]:
    """Parses KEY=VALUE lines of /etc/lsb-release, unquoting values."""
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise PreconditionError(f"Cannot read {path}: {e}")
    values = {}
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        values[key.strip()] = value.strip().strip('"').strip("'")
    return values


def check_distribution(path: Path, expected_release: str) -> str:
    release = read_lsb_release(path).get("DISTRIB_RELEASE", "")
    if release != expected_release:
        raise PreconditionError(
            f"This installer only works on Ubuntu {expected_release}, found release {release or 'unknown'!r}")
    logger.info("Distribution release %s is supported", release)
    return release


def parse_route_source(route_output: str) -> str:
    """
    Picks the source address out of 'ip route get 1'.

    >>> parse_route_source('1.0.0.0 via 10.0.0.1 dev eth0 src 10.0.0.5 uid 0\\n    cache')
    '10.0.0.5'
    """
    fields = route_output.split()
    if "src" in fields:
        index = fields.index("src")
        if index + 1 < len(fields):
            return fields[index + 1]
    # Same field the classic awk '{print $7}' one-liner takes
    return fields[6] if len(fields) > 6 else ""


def validate_ipv4(candidate: str) -> str:
    try:
        return str(ipaddress.IPv4Address(candidate))
    except ipaddress.AddressValueError:
        raise PreconditionError(f"Could not determine main interface IP address, got {candidate!r}")


def detect_main_ip(runner) -> str:
    output = runner.capture(["ip", "route", "get", "1"])
    address = validate_ipv4(parse_route_source(output))
    logger.info("Main interface address: %s", address)
    return address
