# src/logging/context.py — v1
"""Contextual logging support: attach pipeline_id, event, step, origin to log records."""

from __future__ import annotations

import contextvars
from dataclasses import dataclass
from typing import Any

# Context variables for structured logging, set per event handler run.
_pipeline_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "pipeline_id", default=None
)
_event: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "event", default=None
)
_step: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "step", default=None
)
_origin: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "origin", default=None
)


@dataclass
class LogContext:
    """Immutable snapshot of current logging context."""

    pipeline_id: str | None = None
    event: str | None = None
    step: str | None = None
    origin: str | None = None

    def as_dict(self) -> dict[str, Any]:
        """Return non-None fields as dict for JSON log injection."""
        return {k: v for k, v in self.__dict__.items() if v is not None}


def get_context() -> LogContext:
    """Snapshot current context variables."""
    return LogContext(
        pipeline_id=_pipeline_id.get(),
        event=_event.get(),
        step=_step.get(),
        origin=_origin.get(),
    )


def set_event_context(event: str, pipeline_id: str | None = None) -> None:
    """Set handler-level context (called once per event handler run)."""
    _event.set(event)
    _pipeline_id.set(pipeline_id)


def set_pipeline_context(pipeline_id: str) -> None:
    """Attach the pipeline id once it is known (after creation or lookup)."""
    _pipeline_id.set(pipeline_id)


def set_step_context(step: str | None, origin: str | None = None) -> None:
    """Set step-level context (called per pipeline step)."""
    _step.set(step)
    if origin is not None:
        _origin.set(origin)


def clear_context() -> None:
    """Reset all context variables."""
    _pipeline_id.set(None)
    _event.set(None)
    _step.set(None)
    _origin.set(None)
