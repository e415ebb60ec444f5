"""
Engine configuration.

Values come from (lowest to highest precedence) the dataclass defaults, an
optional YAML file, ``EDGEPROBE_*`` environment variables and CLI flags.
"""
import os
import logging
from dataclasses import dataclass, field, fields, replace
from typing import Dict, Any, Optional

import yaml

from .models import EdgeProbeError

logger = logging.getLogger("edgeprobe.config")

DEFAULT_USER_AGENT = "edgeprobe/1.0 (+security-probe)"


@dataclass(frozen=True)
class EngineConfig:
    # HTTP client
    connect_timeout: float = 10.0
    read_timeout: float = 30.0
    follow_redirects: bool = True
    verify_tls: bool = False
    max_requests: int = 64
    max_requests_per_host: int = 5
    user_agent: str = DEFAULT_USER_AGENT
    default_headers: Dict[str, str] = field(default_factory=dict)

    # Safety ceilings
    burst_cap: int = 64
    flood_cap: int = 128
    parallel_users_cap: int = 64
    brute_force_cap: int = 32

    # Crawler
    crawl_depth_cap: int = 2
    crawl_breadth: int = 50

    def with_overrides(self, **overrides: Any) -> "EngineConfig":
        clean = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **clean)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "EngineConfig":
        data = data or {}
        known = {f.name: f for f in fields(cls)}
        values = {}
        for key, value in data.items():
            if key not in known:
                logger.warning("Unknown config key ignored: %s", key)
                continue
            values[key] = value
        return cls(**values)


_ENV_PREFIX = "EDGEPROBE_"


def _coerce(raw: str, current: Any) -> Any:
    if isinstance(current, bool):
        return raw.strip().lower() in ("1", "true", "yes", "on")
    if isinstance(current, int):
        return int(raw)
    if isinstance(current, float):
        return float(raw)
    return raw


def apply_env(config: EngineConfig, environ: Optional[Dict[str, str]] = None) -> EngineConfig:
    """Applies EDGEPROBE_<FIELD> environment overrides (scalar fields only)."""
    environ = os.environ if environ is None else environ
    overrides = {}
    for f in fields(config):
        raw = environ.get(_ENV_PREFIX + f.name.upper())
        if raw is None:
            continue
        current = getattr(config, f.name)
        if isinstance(current, dict):
            continue
        try:
            overrides[f.name] = _coerce(raw, current)
        except ValueError:
            raise EdgeProbeError(f"Invalid value for {_ENV_PREFIX}{f.name.upper()}: {raw!r}") from None
    return replace(config, **overrides) if overrides else config


def load_config(path: Optional[str] = None, environ: Optional[Dict[str, str]] = None) -> EngineConfig:
    data = {}
    if path:
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise EdgeProbeError(f"Cannot load config {path}: {e}") from e
        if not isinstance(data, dict):
            raise EdgeProbeError(f"Config {path} must be a mapping")
    return apply_env(EngineConfig.from_dict(data), environ)
