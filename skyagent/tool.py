"""Small helpers shared across the agent: errors, host facts and time conversion."""

from __future__ import annotations

import ipaddress
import os
import platform
import socket
from datetime import datetime, timedelta, timezone

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_ONE_MILLISECOND = timedelta(milliseconds=1)


class AgentError(Exception):
    """Base error raised by the agent for invalid usage."""


def process_no() -> str:
    """Return the current process id as a string, or an empty string if unknown."""
    pid = os.getpid()
    return str(pid) if pid > 0 else ""


def host_name() -> str:
    """Return the host name, or ``"unknown"`` when it cannot be determined."""
    try:
        name = socket.gethostname()
    except OSError:
        return "unknown"
    return name or "unknown"


def os_name() -> str:
    """Return the lower-case operating system name, e.g. ``linux``."""
    return platform.system().lower()


def all_ipv4() -> list[str]:
    """Return every non-loopback IPv4 address of this host, in discovery order."""
    try:
        infos = socket.getaddrinfo(socket.gethostname(), None, socket.AF_INET)
    except OSError:
        return []

    addresses: list[str] = []
    for info in infos:
        address = str(info[4][0])
        try:
            ip = ipaddress.ip_address(address)
        except ValueError:
            continue
        if ip.version != 4 or ip.is_loopback:
            continue
        if address in ("127.0.0.1", "localhost") or address in addresses:
            continue
        addresses.append(address)
    return addresses


def ipv4() -> str:
    """Return the first non-loopback IPv4 address, or ``"no-hostname"``."""
    return next(iter(all_ipv4()), "no-hostname")


def millisecond(t: datetime) -> int:
    """Convert a datetime to milliseconds since the Unix epoch.

    Naive datetimes are taken to be in local time.
    """
    if t.tzinfo is None:
        t = t.astimezone()
    return (t - _EPOCH) // _ONE_MILLISECOND