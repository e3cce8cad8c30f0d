# src/logging/context.py — v2
"""Contextual logging support: attach build_id, commit_sha and command to log records."""

from __future__ import annotations

import contextvars
from dataclasses import dataclass
from typing import Any

# Set once per CLI invocation.
_build_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "build_id", default=None
)
_commit_sha: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "commit_sha", default=None
)
_command: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "command", default=None
)


@dataclass
class LogContext:
    """Immutable snapshot of current logging context."""

    build_id: str | None = None
    commit_sha: str | None = None
    command: str | None = None

    def as_dict(self) -> dict[str, Any]:
        """Return non-None fields as dict for JSON log injection."""
        return {k: v for k, v in self.__dict__.items() if v is not None}


def get_context() -> LogContext:
    """Snapshot current context variables."""
    return LogContext(
        build_id=_build_id.get(),
        commit_sha=_commit_sha.get(),
        command=_command.get(),
    )


def set_build_context(build_id: str, commit_sha: str) -> None:
    """Set build-level context (called once per CLI invocation)."""
    _build_id.set(build_id)
    _commit_sha.set(commit_sha)


def set_command_context(command: str | None) -> None:
    """Set the subcommand being executed."""
    _command.set(command)


def clear_context() -> None:
    """Reset all context variables."""
    _build_id.set(None)
    _commit_sha.set(None)
    _command.set(None)
