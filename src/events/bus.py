# src/events/bus.py — v1
"""In-process publish/subscribe event bus with typed topics.

Decouples producers (agents, approval surfaces) from consumers (the
pipeline orchestrator). Delivery is in-memory only: nothing is persisted
and an emission is lost if the process dies before handlers run.

Usage:
    bus = EventBus()
    bus.subscribe("approval.granted", orchestrator.handle_approval_granted)
    await bus.emit("approval.granted", {"pipelineId": "...", "approvalStepId": "..."})
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Mapping

from pydantic import BaseModel, ValidationError

from thegrid.events.types import EVENT_PAYLOADS, EventPayload

logger = logging.getLogger(__name__)

Handler = Callable[[Any], "Awaitable[None] | None"]


class EventBus:
    """Fan-out event bus.

    ``emit`` runs every handler registered for an event concurrently and
    returns once all of them have settled. A failing handler never stops
    its siblings and its exception is never raised to the emitter; the
    bus logs it. There is no retry and no dead-lettering.

    Args:
        catalog: Mapping of event name -> payload model used to validate
            payloads before dispatch. Defaults to the built-in catalog.
    """

    def __init__(self, catalog: Mapping[str, type[EventPayload]] | None = None) -> None:
        self._handlers: dict[str, list[Handler]] = {}
        self._catalog: dict[str, type[EventPayload]] = dict(
            EVENT_PAYLOADS if catalog is None else catalog
        )

    def subscribe(self, event_name: str, handler: Handler) -> None:
        """Register ``handler`` for every future emission of ``event_name``."""
        self._handlers.setdefault(event_name, []).append(handler)
        logger.debug(
            "Subscribed %s to '%s' (%d handlers)",
            _handler_name(handler), event_name, len(self._handlers[event_name]),
        )

    def unsubscribe(self, event_name: str, handler: Handler) -> None:
        """Remove ``handler`` from ``event_name``. Unknown handlers are ignored."""
        handlers = self._handlers.get(event_name)
        if not handlers:
            return
        remaining = [h for h in handlers if h != handler]
        if remaining:
            self._handlers[event_name] = remaining
        else:
            del self._handlers[event_name]

    async def emit(self, event_name: str, payload: Any = None) -> None:
        """Deliver ``payload`` to every handler of ``event_name``.

        Catalogued events are validated into their payload model first; an
        invalid payload is logged and not delivered.
        """
        handlers = list(self._handlers.get(event_name, ()))
        if not handlers:
            logger.debug("No subscribers for '%s'", event_name)
            return

        try:
            message = self._parse(event_name, payload)
        except ValidationError as exc:
            logger.error("Dropping '%s': invalid payload: %s", event_name, exc)
            return

        results = await asyncio.gather(
            *(_invoke(handler, message) for handler in handlers),
            return_exceptions=True,
        )
        for handler, result in zip(handlers, results):
            if isinstance(result, BaseException):
                logger.error(
                    "Handler %s for '%s' failed: %s",
                    _handler_name(handler), event_name, result,
                    exc_info=(type(result), result, result.__traceback__),
                )

    def has_subscribers(self, event_name: str) -> bool:
        return bool(self._handlers.get(event_name))

    def subscriber_count(self, event_name: str) -> int:
        return len(self._handlers.get(event_name, ()))

    def list_event_names(self) -> list[str]:
        """Return sorted names of events with at least one handler."""
        return sorted(name for name, handlers in self._handlers.items() if handlers)

    def _parse(self, event_name: str, payload: Any) -> Any:
        model = self._catalog.get(event_name)
        if model is None or isinstance(payload, model):
            return payload
        if isinstance(payload, BaseModel):
            payload = payload.model_dump()
        return model.model_validate(payload)


async def _invoke(handler: Handler, message: Any) -> None:
    result = handler(message)
    if inspect.isawaitable(result):
        await result


def _handler_name(handler: Handler) -> str:
    return getattr(handler, "__qualname__", None) or repr(handler)
