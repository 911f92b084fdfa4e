"""Shared helpers for webhook engine models."""

from __future__ import annotations

import time
from datetime import UTC, datetime
from uuid import uuid4


def generate_id(prefix: str) -> str:
    """Generate a unique, roughly time-ordered ID with the given prefix.

    Examples:
        generate_id("evt") -> "evt_1729350000123_a1b2c3d4e"
        generate_id("dlv") -> "dlv_1729350000124_f6e5d4c3b"
    """
    return f"{prefix}_{time.time_ns() // 1_000_000}_{uuid4().hex[:9]}"


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)
