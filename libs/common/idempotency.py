"""Idempotency key helpers."""

import hashlib
import secrets

from libs.common.datetime_utils import utc_now


def generate_idempotency_key(prefix: str = "req") -> str:
    """Return ``{prefix}-{YYYYMMDDHHMMSS}-{16 hex chars}``."""
    timestamp = utc_now().strftime("%Y%m%d%H%M%S")
    return f"{prefix}-{timestamp}-{secrets.token_hex(8)}"


def derive_key(base_key: str, *parts: object) -> str:
    """
    Derive a child key from a parent key, e.g. one per order line.

    Keys longer than the column allows are hashed so the result stays stable.
    """
    key = "-".join([base_key, *(str(part) for part in parts)])
    if len(key) <= 200:
        return key
    digest = hashlib.sha256(key.encode("utf-8")).hexdigest()
    return f"{base_key[:100]}-{digest}"
