# src/api/facade.py — v2
"""Public API facade: single entry point to assemble the workflow core.

Usage:
    from thegrid.api.facade import build_runtime
    runtime = build_runtime(collaborators=Collaborators(...))
    await runtime.bus.emit("release.ready", {"repoOwner": "acme", ...})
    await runtime.approvals.approve(approval_id)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from thegrid.config.settings import Settings
from thegrid.events.bus import EventBus
from thegrid.events.signals import SignalService
from thegrid.integrations.base import Collaborators
from thegrid.pipeline.approvals import ApprovalService
from thegrid.pipeline.orchestrator import PipelineOrchestrator
from thegrid.pipeline.registry import ContinuationRegistry
from thegrid.store.base_store import BasePipelineStore
from thegrid.store.store_factory import create_pipeline_store

logger = logging.getLogger(__name__)


@dataclass
class GridRuntime:
    """Wired components of one workflow core instance."""

    settings: Settings
    bus: EventBus
    store: BasePipelineStore
    orchestrator: PipelineOrchestrator
    approvals: ApprovalService
    signals: SignalService

    def close(self) -> None:
        self.orchestrator.unregister()
        self.store.close()


def build_runtime(
    settings: Settings | None = None,
    collaborators: Collaborators | None = None,
    store: BasePipelineStore | None = None,
    bus: EventBus | None = None,
    registry: ContinuationRegistry | None = None,
) -> GridRuntime:
    """Create the bus, store, orchestrator and services and subscribe handlers.

    Args:
        settings: Global settings. Loaded from .env if None.
        collaborators: External services. Defaults to the in-process inbox
            and the chat notifier chosen by ``create_chat_notifier``; flows
            needing CMS, changelog, diff, repository or summarizer clients
            fail until those are provided.
        store: Pipeline store. Built from settings if None.
        bus: Event bus. A fresh one if None.
        registry: Continuation registry. Built-in one if None.

    Returns:
        GridRuntime with the orchestrator already registered on the bus.
    """
    settings = settings or Settings()
    if collaborators is None:
        from thegrid.integrations.chat_factory import create_chat_notifier
        from thegrid.integrations.inbox import InMemoryNotificationInbox
        collaborators = Collaborators(
            notifications=InMemoryNotificationInbox(),
            chat=create_chat_notifier(settings),
        )
    store = store or create_pipeline_store(settings)
    bus = bus or EventBus()

    orchestrator = PipelineOrchestrator(
        store=store,
        bus=bus,
        collaborators=collaborators,
        settings=settings,
        registry=registry,
    )
    orchestrator.register()
    approvals = ApprovalService(store, bus, fanout=orchestrator.fanout)
    signals = SignalService(bus)

    logger.info(
        "Runtime ready: store=%s, continuations=%s",
        settings.store_backend, ", ".join(orchestrator.registry.supported),
    )
    return GridRuntime(
        settings=settings,
        bus=bus,
        store=store,
        orchestrator=orchestrator,
        approvals=approvals,
        signals=signals,
    )
