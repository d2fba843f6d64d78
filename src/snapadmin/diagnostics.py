"""
Log-safe helpers for credentials and upstream payloads.
"""

import hashlib
import json
from typing import Any


def fingerprint(value: Any) -> str | None:
    """
    Short SHA256 fingerprint so values can be compared across logs
    without printing them.
    """
    if not value:
        return None
    digest = hashlib.sha256(str(value).encode("utf-8")).hexdigest()
    return f"sha256:{digest[:12]}"


def mask_last(value: Any, keep: int = 4) -> str | None:
    """Mask all but the last ``keep`` characters."""
    if not value:
        return None
    s = str(value)
    if len(s) <= keep:
        return "*" * len(s)
    return f"{'*' * (len(s) - keep)}{s[-keep:]}"


def safe_string(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, str):
        return value
    try:
        return json.dumps(value)
    except (TypeError, ValueError):
        return str(value)


def safe_preview_json(value: Any, max_len: int = 4000) -> str:
    """Pretty JSON truncated to ``max_len`` characters."""
    try:
        s = json.dumps(value, indent=2, default=str)
    except (TypeError, ValueError) as e:
        return f"<<unserializable: {e}>>"
    if len(s) <= max_len:
        return s
    return f"{s[:max_len]}\n... (truncated {len(s) - max_len} chars)"


def summarize_accounts_response(data: Any) -> dict[str, Any]:
    """Shape summary of an accounts response (kind, count, first keys/id/name)."""
    if not data:
        return {"kind": type(data).__name__, "count": 0}
    if isinstance(data, list):
        first = data[0]
        first_is_obj = isinstance(first, dict)
        get = first.get if first_is_obj else (lambda _key: None)
        return {
            "kind": "array",
            "count": len(data),
            "firstKeys": list(first)[:30] if first_is_obj else None,
            "firstId": (
                get("id")
                or get("accountId")
                or get("brokerageAccountId")
                or get("snapTradeAccountId")
            ),
            "firstName": get("name") or get("accountName"),
        }
    if isinstance(data, dict):
        return {"kind": "object", "keys": list(data)[:50]}
    return {"kind": type(data).__name__}
