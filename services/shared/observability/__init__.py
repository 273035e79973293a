"""
Shared observability helpers (telemetry, privacy utilities).
"""

from .privacy import describe_upload, hash_payload, redact_fields
from .telemetry import (
    CORRELATION_ID_HEADER,
    RequestContextToken,
    bind_request_context,
    ensure_request_id,
    reset_request_context,
    setup_telemetry,
)

__all__ = [
    "describe_upload",
    "hash_payload",
    "redact_fields",
    "CORRELATION_ID_HEADER",
    "RequestContextToken",
    "bind_request_context",
    "ensure_request_id",
    "reset_request_context",
    "setup_telemetry",
]
