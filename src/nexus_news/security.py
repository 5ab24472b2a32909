"""Slack request signing (v0 scheme).

Slack signs ``v0:<timestamp>:<raw body>`` with HMAC-SHA256 using the app's
signing secret and sends ``v0=<hexdigest>`` in ``X-Slack-Signature``.
"""
from __future__ import annotations

import hashlib
import hmac
import time
from typing import Mapping, Optional, Union

MAX_CLOCK_SKEW_SEC = 300
TIMESTAMP_HEADER = "x-slack-request-timestamp"
SIGNATURE_HEADER = "x-slack-signature"


def _to_bytes(value: Union[str, bytes]) -> bytes:
    return value if isinstance(value, bytes) else value.encode("utf-8")


def compute_signature(signing_secret: str, timestamp: str, body: Union[str, bytes]) -> str:
    base = f"v0:{timestamp}:".encode("utf-8") + _to_bytes(body)
    digest = hmac.new(signing_secret.encode("utf-8"), base, hashlib.sha256).hexdigest()
    return f"v0={digest}"


def verify_signature(
    signing_secret: str,
    body: Union[str, bytes],
    timestamp: str,
    signature: str,
    now: Optional[float] = None,
) -> bool:
    try:
        ts = int(str(timestamp).strip())
    except (TypeError, ValueError):
        return False
    current = int(now if now is not None else time.time())
    if abs(current - ts) > MAX_CLOCK_SKEW_SEC:
        return False
    expected = compute_signature(signing_secret, str(timestamp).strip(), body)
    return hmac.compare_digest(expected.encode("utf-8"), str(signature).encode("utf-8"))


def _header(headers: Mapping[str, str], name: str) -> str:
    for key, value in headers.items():
        if key.lower() == name:
            return str(value or "").strip()
    return ""


def verify_request(
    headers: Mapping[str, str],
    body: Union[str, bytes],
    signing_secret: Optional[str],
    now: Optional[float] = None,
) -> bool:
    if not signing_secret:
        return False
    timestamp = _header(headers, TIMESTAMP_HEADER)
    signature = _header(headers, SIGNATURE_HEADER)
    if not timestamp or not signature:
        return False
    return verify_signature(signing_secret, body, timestamp, signature, now=now)
