from __future__ import annotations

import hashlib
import hmac
from typing import Optional


def _digest(secret: str, payload: bytes, algorithm: str) -> str:
    return hmac.new(secret.encode("utf-8"), msg=payload, digestmod=algorithm).hexdigest()


def verify_signature(
    secret: str,
    payload: bytes,
    signature_256: Optional[str] = None,
    signature_sha1: Optional[str] = None,
) -> bool:
    """
    Check a webhook body against `X-Hub-Signature-256`, or the legacy SHA-1 header
    when only that one was sent. An empty secret disables verification.
    """
    if not secret:
        return True
    if signature_256:
        expected = "sha256=" + _digest(secret, payload, "sha256")
        return hmac.compare_digest(expected, signature_256)
    if signature_sha1:
        expected = "sha1=" + _digest(secret, payload, "sha1")
        return hmac.compare_digest(expected, signature_sha1)
    return False
