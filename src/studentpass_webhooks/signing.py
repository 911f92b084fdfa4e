"""HMAC-SHA256 payload signatures.

Receivers verify a delivery by recomputing the HMAC over the raw request
body with their copy of the shared secret and comparing it with the
``X-<prefix>-Signature`` header. The body is the canonical JSON produced by
``canonical_json``, so the bytes signed are exactly the bytes sent.
"""

from __future__ import annotations

import hashlib
import hmac
import json
from collections.abc import Mapping
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any

SIGNATURE_PREFIX = "sha256="


def _json_default(value: Any) -> Any:
    if isinstance(value, datetime | date):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, set | frozenset):
        return sorted(value, key=str)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def canonical_json(payload: Any) -> bytes:
    """Serialize a payload to compact, key-sorted UTF-8 JSON."""
    return json.dumps(
        payload,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=_json_default,
    ).encode("utf-8")


def _to_bytes(payload: Mapping[str, Any] | str | bytes) -> bytes:
    if isinstance(payload, bytes):
        return payload
    if isinstance(payload, str):
        return payload.encode("utf-8")
    return canonical_json(payload)


def compute_signature(body: bytes, secret: str) -> str:
    """Compute the ``sha256=<hex>`` signature of a raw body."""
    digest = hmac.new(
        key=secret.encode("utf-8"),
        msg=body,
        digestmod=hashlib.sha256,
    ).hexdigest()
    return f"{SIGNATURE_PREFIX}{digest}"


def sign(payload: Mapping[str, Any] | str | bytes, secret: str | None) -> str | None:
    """Sign a payload for delivery.

    Args:
        payload: Mapping (serialized with ``canonical_json``) or the raw body.
        secret: Webhook secret. No signature is produced without one.

    Returns:
        ``sha256=<hex_digest>``, or None if no secret is configured.
    """
    if not secret:
        return None
    return compute_signature(_to_bytes(payload), secret)


def verify(
    payload: Mapping[str, Any] | str | bytes,
    signature: str | None,
    secret: str | None,
) -> bool:
    """Verify a signature using a constant-time comparison.

    Args:
        payload: Mapping or the raw body that was signed.
        signature: Signature to check (``sha256=<hex_digest>``).
        secret: Shared secret.

    Returns:
        True if the signature is valid. False, never an exception, when the
        secret or signature is missing or does not match.
    """
    if not secret or not signature:
        return False
    expected = compute_signature(_to_bytes(payload), secret)
    return hmac.compare_digest(expected.encode("utf-8"), signature.encode("utf-8"))
