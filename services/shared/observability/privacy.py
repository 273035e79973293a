"""
Helpers that keep document contents and identifiers out of log records.

BOQ uploads carry commercially sensitive rates, so logs reference them by
hash and size only.
"""

import hashlib
import json
from collections.abc import Iterable, Mapping
from typing import Any

REDACTED = "[REDACTED]"


def hash_payload(value: Any) -> str:
    """
    Return a stable SHA-256 hash for the provided payload without leaking contents.

    Strings are encoded as UTF-8, bytes are used as-is, and arbitrary objects are
    serialized via JSON (falling back to repr()) before hashing.
    """

    if value is None:
        normalized = b"null"
    elif isinstance(value, bytes):
        normalized = value
    elif isinstance(value, str):
        normalized = value.encode("utf-8")
    else:
        try:
            normalized = json.dumps(value, sort_keys=True, default=str).encode("utf-8")
        except TypeError:
            normalized = repr(value).encode("utf-8")

    return hashlib.sha256(normalized).hexdigest()


def redact_fields(payload: Mapping[str, Any], allowed_keys: Iterable[str]) -> dict[str, Any]:
    """Shallow copy that keeps whitelisted keys and redacts every other value."""

    whitelist = set(allowed_keys)
    return {key: (value if key in whitelist else REDACTED) for key, value in payload.items()}


def describe_upload(file_bytes: bytes, filename: str | None) -> dict[str, Any]:
    """Log-safe fingerprint of an uploaded document."""

    extension = ""
    if filename and "." in filename:
        extension = filename.rsplit(".", 1)[-1].lower()
    return {
        "file_extension": extension,
        "size_bytes": len(file_bytes),
        "content_hash": hash_payload(file_bytes),
    }
