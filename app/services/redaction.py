"""
Redaction helpers for audit payloads and operational logs.

- scrub() strips credentials (passwords, tokens, OTP codes, ...) from request
  data before it is stored in an audit record.
- redact_phi_from_string() / redact_phi_from_object() keep PHI out of log lines.
"""

from __future__ import annotations

import re
from typing import Any

REDACTED_MARKER = "[redacted]"
PHI_REDACTED = "[REDACTED]"

SENSITIVE_KEY = re.compile(r"password|token|secret|code|otp|two[-_]?factor|2fa", re.IGNORECASE)

PHI_KEYS = frozenset(
    {
        "email",
        "old_email",
        "new_email",
        "firstname",
        "lastname",
        "first_name",
        "last_name",
        "ssn",
        "social_security_number",
        "medical_record_number",
        "mrn",
        "dob",
        "date_of_birth",
        "birth_date",
        "address",
        "phone",
        "phone_number",
        "street",
        "city",
        "state",
        "zip",
        "postal_code",
        "credit_card",
        "creditcard",
        "account_number",
        "data_content",
    }
)
PHI_FRAGMENTS = (
    "email",
    "password",
    "ssn",
    "phone",
    "name",
    "address",
    "birth",
    "medical_record",
    "emergency_contact",
    "encrypted_",
)


def scrub(value: Any) -> Any:
    """Return a copy of JSON-shaped ``value`` with sensitive keys redacted at any depth."""
    if isinstance(value, list):
        return [scrub(item) for item in value]
    if not isinstance(value, dict):
        return value
    out = {}
    for key, item in value.items():
        if SENSITIVE_KEY.search(str(key)):
            out[key] = REDACTED_MARKER
        else:
            out[key] = scrub(item)
    return out


def redact_phi_from_string(value: str | None) -> str:
    if value is None or str(value).strip() == "":
        return ""
    return PHI_REDACTED


def _is_phi_key(key: str) -> bool:
    lowered = key.lower()
    return lowered in PHI_KEYS or any(fragment in lowered for fragment in PHI_FRAGMENTS)


def redact_phi_from_object(obj: dict[str, Any] | None) -> dict[str, Any] | None:
    """Shallow copy of ``obj`` with PHI-looking keys replaced, for log statements."""
    if obj is None:
        return None
    return {
        key: PHI_REDACTED if _is_phi_key(key) and value is not None else value
        for key, value in obj.items()
    }
