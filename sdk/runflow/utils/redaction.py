"""
Redaction helpers for debug logging of HTTP traffic.

Request bodies carry human decisions and run variables, headers carry the
bearer token; both go through here before hitting a log line.
"""
import re
from typing import Any


SENSITIVE_PATTERNS = [
    re.compile(r"^.*password.*$", re.IGNORECASE),
    re.compile(r"^.*token.*$", re.IGNORECASE),
    re.compile(r"^.*api[_-]?key.*$", re.IGNORECASE),
    re.compile(r"^.*secret.*$", re.IGNORECASE),
    re.compile(r"^.*credential.*$", re.IGNORECASE),
    re.compile(r"^.*authorization.*$", re.IGNORECASE),
    re.compile(r"^.*cookie.*$", re.IGNORECASE),
]

REDACTION_PLACEHOLDER = "***REDACTED***"


def _is_sensitive_key(key: str) -> bool:
    return any(pattern.match(key) for pattern in SENSITIVE_PATTERNS)


def redact_sensitive_data(data: Any, max_depth: int = 10) -> Any:
    """Return a copy of *data* with values under sensitive keys replaced."""
    if max_depth <= 0:
        return data

    if isinstance(data, dict):
        return {
            key: REDACTION_PLACEHOLDER
            if _is_sensitive_key(str(key))
            else redact_sensitive_data(value, max_depth - 1)
            for key, value in data.items()
        }

    if isinstance(data, (list, tuple)):
        return type(data)(redact_sensitive_data(item, max_depth - 1) for item in data)

    return data


def redact_headers(headers: Any) -> dict[str, str]:
    """Flatten an httpx ``Headers`` (or any mapping) and mask credentials."""
    return {
        str(key): REDACTION_PLACEHOLDER if _is_sensitive_key(str(key)) else str(value)
        for key, value in dict(headers).items()
    }
