"""
Payload & URL helpers: payload encodings, query building, synthetic bodies.
"""
import base64
import json
from typing import Dict, Optional
from urllib.parse import quote_plus, unquote_plus

ENCODING_MODES = ("raw", "urlencode", "base64", "case-mix", "case-double")

MAX_FIELD_CHARS = 32 * 1024


def encode_payload(value: str, mode: Optional[str]) -> str:
    """
    Transforms ``value`` through a named encoding.

    raw          unchanged
    urlencode    form-style percent-encoding (space -> '+')
    base64       standard base64 of the UTF-8 bytes, no line wrapping
    case-mix     alternating lower/upper case, length preserved
    case-double  every character as lower+upper pair (legacy form, doubles length)

    Unknown modes fall back to raw.
    """
    mode = (mode or "raw").lower()
    if mode == "urlencode":
        return quote_plus(value, safe="")
    if mode == "base64":
        return base64.b64encode(value.encode("utf-8")).decode("ascii")
    if mode == "case-mix":
        return "".join(c.upper() if i % 2 else c.lower() for i, c in enumerate(value))
    if mode == "case-double":
        return "".join(c.lower() + c.upper() for c in value)
    return value


def decode_payload(value: str, mode: Optional[str]) -> str:
    """Inverse of ``encode_payload`` for the lossless modes (raw, urlencode, base64)."""
    mode = (mode or "raw").lower()
    if mode == "urlencode":
        return unquote_plus(value)
    if mode == "base64":
        return base64.b64decode(value.encode("ascii")).decode("utf-8")
    if mode in ("case-mix", "case-double"):
        raise ValueError(f"{mode} is lossy and cannot be decoded")
    return value


def append_query(base: str, params: Dict[str, str], pre_encoded: bool = False) -> str:
    """
    Appends ``params`` to ``base`` using '&' when a query string already exists.
    Values are percent-encoded unless ``pre_encoded`` says they already are.
    """
    if not params:
        return base
    sep = "&" if "?" in base else "?"
    parts = []
    for key, value in params.items():
        encoded = value if pre_encoded else quote_plus(value, safe="")
        parts.append(f"{quote_plus(key, safe='')}={encoded}")
    return base + sep + "&".join(parts)


def form_body(params: Dict[str, str], pre_encoded: bool = False) -> str:
    """application/x-www-form-urlencoded body."""
    return append_query("", params, pre_encoded=pre_encoded).lstrip("?")


def build_large_json(field_repeats: int, approx_kb: int) -> str:
    """
    JSON object of roughly ``approx_kb`` KiB split across ``field_repeats``
    fields named field0..fieldN, each value capped at 32 KiB.
    """
    repeats = max(1, field_repeats)
    size = min(approx_kb * 1024 // repeats, MAX_FIELD_CHARS)
    return json.dumps({f"field{i}": "A" * size for i in range(repeats)}, separators=(",", ":"))


def build_oversized_field(length: int) -> str:
    return json.dumps({"field": "Z" * max(0, length)}, separators=(",", ":"))


def normalize_url(value: str) -> str:
    """Adds https:// when a bare host or host/path is given."""
    value = value.strip()
    if value.startswith(("http://", "https://")):
        return value
    return "https://" + value


def join_url(base: str, path: str) -> str:
    return base.rstrip("/") + "/" + path.lstrip("/")


def build_url(base: str, endpoint: str) -> str:
    """Absolute endpoints pass through; relative ones are joined onto ``base``."""
    if endpoint.startswith(("http://", "https://")):
        return endpoint
    return join_url(base, endpoint)
