# src/core/errors.py — v1
"""Error taxonomy shared by cache, tracking and resource commands.

The CLI maps each class to an exit status; see main.py.
"""

from __future__ import annotations


class SmartCacheError(Exception):
    """Base class for all smartcache failures."""


class InputError(SmartCacheError, ValueError):
    """Malformed caller input, rejected before any I/O."""


class TransientIOError(SmartCacheError):
    """External resource unreachable or timed out; committed state is untouched."""

    def __init__(self, operation: str, detail: str | Exception) -> None:
        self.operation = operation
        self.detail = detail
        super().__init__(f"{operation} failed: {detail}")


class NoDataError(SmartCacheError):
    """Not enough samples to produce a report or recommendation."""

    def __init__(self, subject: str, sample_count: int = 0) -> None:
        self.subject = subject
        self.sample_count = sample_count
        super().__init__(f"No usable data for {subject} (samples: {sample_count})")


class ConfigurationError(SmartCacheError):
    """Raised when configuration is internally inconsistent."""
