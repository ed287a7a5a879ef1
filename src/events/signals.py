# src/events/signals.py — v1
"""Signal intake: record an external signal and republish it on the bus.

A signal named ``type`` from ``source`` is emitted as ``<source>.<type>``,
so ``store_signal("release", "ready", {...})`` reaches the
``release.ready`` subscribers.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from thegrid.events.bus import EventBus
from thegrid.workflow.models import new_id, utcnow

logger = logging.getLogger(__name__)


class Signal(BaseModel):
    id: str = Field(default_factory=new_id)
    source: str
    type: str
    payload: dict[str, Any] = Field(default_factory=dict)
    metadata: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=utcnow)

    @property
    def event_name(self) -> str:
        return f"{self.source}.{self.type}"


class SignalService:
    """Keeps received signals in memory (newest last) and emits them."""

    def __init__(self, bus: EventBus, max_history: int = 1000) -> None:
        self._bus = bus
        self._max_history = max_history
        self._signals: list[Signal] = []

    async def store_signal(
        self,
        source: str,
        type: str,
        payload: dict[str, Any] | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> Signal:
        if not source or not type:
            raise ValueError("source and type are required")
        signal = Signal(source=source, type=type, payload=payload or {}, metadata=metadata or {})
        self._signals.append(signal)
        if len(self._signals) > self._max_history:
            del self._signals[: len(self._signals) - self._max_history]
        logger.info("Signal %s received (%s)", signal.event_name, signal.id)
        await self._bus.emit(signal.event_name, signal.payload)
        return signal

    def list_signals(self, source: str | None = None) -> list[Signal]:
        return [s for s in self._signals if source is None or s.source == source]
