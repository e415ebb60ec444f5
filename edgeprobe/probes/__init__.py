"""
Built-in probes. Importing this package registers every probe with
``edgeprobe.core.registry.default_registry``.
"""
from . import dos, waf, bot, api

__all__ = ["dos", "waf", "bot", "api"]
