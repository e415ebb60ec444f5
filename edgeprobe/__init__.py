"""
edgeprobe: configuration-driven security probe execution engine.
"""
__version__ = "1.0.0"
