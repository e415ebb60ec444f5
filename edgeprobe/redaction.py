import re
from typing import Dict, Optional, Mapping

SENSITIVE_KEYS = frozenset({
    "authorization", "proxy-authorization", "cookie", "set-cookie",
    "x-api-key", "x-api-token", "x-auth-token", "authentication",
    "access-token", "id-token", "api-key", "token", "password", "pw",
})

_JWT_PART = re.compile(r"^[A-Za-z0-9_-]{10,}$")
MAX_PLAIN_VALUE = 128
REDACTED = "REDACTED"


def mask_secret(value: Optional[str], keep: int = 3) -> str:
    """
    First ``keep`` characters followed by a fixed mask. Values no longer
    than ``keep`` are masked entirely.
    """
    value = value or ""
    if len(value) <= keep:
        return "***"
    return value[:keep] + "***"


def looks_like_jwt(value: str) -> bool:
    parts = value.split(".")
    return len(parts) == 3 and all(_JWT_PART.match(p) for p in parts)


def _is_secret_value(value: str) -> bool:
    v = value.strip()
    return v.lower().startswith("bearer ") or len(v) > MAX_PLAIN_VALUE or looks_like_jwt(v)


def redact_headers(headers: Optional[Mapping[str, str]]) -> Optional[Dict[str, str]]:
    """Drops sensitive keys and masks values that look like credentials."""
    if headers is None:
        return None
    return {
        k: (REDACTED if _is_secret_value(v) else v.strip())
        for k, v in headers.items()
        if k.lower() not in SENSITIVE_KEYS
    }


def redact_metadata(metadata: Mapping[str, Optional[str]]) -> Dict[str, Optional[str]]:
    """Like ``redact_headers`` but keeps sensitive keys with a masked value."""
    out = {}
    for k, v in metadata.items():
        if v is None:
            out[k] = None
        elif k.lower() in SENSITIVE_KEYS and not v.endswith("***"):
            out[k] = REDACTED
        elif _is_secret_value(v):
            out[k] = REDACTED
        else:
            out[k] = v
    return out
