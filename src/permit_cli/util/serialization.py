from __future__ import annotations

import dataclasses
from datetime import date, datetime
from typing import Any

REDACTED_VALUE = "<redacted>"
SENSITIVE_KEY_SUBSTRINGS = (
    "api_key",
    "apikey",
    "authorization",
    "password",
    "secret",
    "token",
    "cookie",
)


def is_sensitive_key(key: Any) -> bool:
    return isinstance(key, str) and any(s in key.lower() for s in SENSITIVE_KEY_SUBSTRINGS)


def redact_token(token: str | None, *, keep: int = 4) -> str:
    """
    Show only the trailing characters of a credential, e.g. "<redacted>...abcd".
    """
    if not token:
        return ""
    if len(token) <= keep * 2:
        return REDACTED_VALUE
    return f"{REDACTED_VALUE}...{token[-keep:]}"


def redact_payload(value: Any) -> Any:
    """
    Copy of an API payload that json.dumps accepts, with credential-like keys masked.
    """
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        value = dataclasses.asdict(value)
    if isinstance(value, dict):
        return {k: REDACTED_VALUE if is_sensitive_key(k) else redact_payload(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [redact_payload(v) for v in value]
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, bytes):
        return value.decode("utf-8", "replace")
    return value
