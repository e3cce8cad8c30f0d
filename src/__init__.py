# src/__init__.py — v1
"""smartcache: dependency cache fingerprinting and adaptive CI resource sizing."""

from smartcache.version import __version__

__all__ = ["__version__"]
