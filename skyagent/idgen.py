"""Generation of globally unique identifiers."""

from __future__ import annotations

import uuid as _uuid


def uuid() -> str:
    """Return a time-based UUID as 32 hexadecimal characters without dashes."""
    return _uuid.uuid1().hex


def generate_global_id() -> str:
    """Return a new globally unique id."""
    return uuid()