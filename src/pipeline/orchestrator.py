# src/pipeline/orchestrator.py — v2
"""Pipeline orchestrator: wires producer events to Phase A and resumes
pipelines after approval (Phase B).

Phase B, for one ``approval.granted`` event:
  1. Load the pipeline (missing: log and stop).
  2. Check the approval step belongs to it and is parked or already
     completed; anything else is a stale event, logged and ignored.
  3. Claim resumption; a duplicate delivery loses the claim and stops.
  4. Mark the approval step completed.
  5. Select the continuation by (type, source); an unknown pair is
     reported on ``pipeline.unhandled`` and handled per policy.
  6. Parse the typed metadata and run the continuation.
  7. Run the "Send Notifications" step and mark the pipeline completed.
Any exception after the claim marks the pipeline failed.
"""

from __future__ import annotations

import logging
from typing import Any, Literal

from thegrid.config.settings import Settings
from thegrid.events.bus import EventBus
from thegrid.events.types import (
    APPROVAL_GRANTED,
    FIGMA_TO_STORYBLOK_READY,
    PIPELINE_UNHANDLED,
    RELEASE_READY,
    STORYBLOK_EDITOR_COMPLETED,
    ApprovalGranted,
    FigmaToStoryblokReady,
    PipelineUnhandled,
    ReleaseReady,
    StoryblokEditorCompleted,
)
from thegrid.integrations.base import Collaborators
from thegrid.logging.context import set_event_context, set_step_context
from thegrid.notifications.fanout import NotificationFanout
from thegrid.pipeline.continuations.base import ContinuationContext, ContinuationResult
from thegrid.pipeline.initiation import PipelineInitiator
from thegrid.pipeline.registry import ContinuationRegistry, UnhandledPipelineType, default_registry
from thegrid.pipeline.steps import StepRecorder
from thegrid.store.base_store import BasePipelineStore, StoreError
from thegrid.workflow.metadata import parse_pipeline_metadata
from thegrid.workflow.models import Approval, Pipeline
from thegrid.workflow.state_machine import InvalidTransitionError

logger = logging.getLogger(__name__)

ResumeOutcome = Literal[
    "missing", "stale", "duplicate", "completed", "failed", "unhandled"
]

_RESUMABLE_STEP_STATUSES = frozenset({"waiting_approval", "completed"})


class PipelineOrchestrator:
    """Event-driven coordinator for pipeline initiation and resumption.

    Args:
        store: Pipeline store.
        bus: Event bus to subscribe to and publish on.
        collaborators: External services used by the continuations.
        settings: Application settings.
        registry: Continuation registry. Defaults to the built-in one.
    """

    def __init__(
        self,
        store: BasePipelineStore,
        bus: EventBus,
        collaborators: Collaborators,
        settings: Settings,
        registry: ContinuationRegistry | None = None,
    ) -> None:
        self._store = store
        self._bus = bus
        self._collaborators = collaborators
        self._settings = settings
        self._registry = registry if registry is not None else default_registry()
        self._fanout = NotificationFanout(
            collaborators.notifications,
            collaborators.chat,
            user_id=settings.notification_user_id,
        )
        self._initiator = PipelineInitiator(store, collaborators, self._fanout, settings)
        self._registered = False

    @property
    def registry(self) -> ContinuationRegistry:
        return self._registry

    @property
    def fanout(self) -> NotificationFanout:
        return self._fanout

    def register(self) -> None:
        """Subscribe the Phase A and Phase B handlers on the bus. Idempotent."""
        if self._registered:
            return
        self._bus.subscribe(FIGMA_TO_STORYBLOK_READY, self.handle_figma_ready)
        self._bus.subscribe(STORYBLOK_EDITOR_COMPLETED, self.handle_editor_completed_event)
        self._bus.subscribe(RELEASE_READY, self.handle_release_ready)
        self._bus.subscribe(APPROVAL_GRANTED, self.handle_approval_granted)
        self._registered = True
        logger.info("Orchestrator subscribed to %s", ", ".join(self._bus.list_event_names()))

    def unregister(self) -> None:
        if not self._registered:
            return
        self._bus.unsubscribe(FIGMA_TO_STORYBLOK_READY, self.handle_figma_ready)
        self._bus.unsubscribe(STORYBLOK_EDITOR_COMPLETED, self.handle_editor_completed_event)
        self._bus.unsubscribe(RELEASE_READY, self.handle_release_ready)
        self._bus.unsubscribe(APPROVAL_GRANTED, self.handle_approval_granted)
        self._registered = False

    # ------------------------------------------------------------------
    # Phase A
    # ------------------------------------------------------------------

    async def handle_figma_ready(
        self, payload: FigmaToStoryblokReady | dict[str, Any]
    ) -> Approval | None:
        return await self._initiator.handle_figma_ready(payload)

    async def handle_editor_completed(
        self, payload: StoryblokEditorCompleted | dict[str, Any]
    ) -> Approval | None:
        """Direct-call form: returns the created approval (or None on failure)."""
        return await self._initiator.handle_editor_completed(payload)

    async def handle_editor_completed_event(
        self, payload: StoryblokEditorCompleted | dict[str, Any]
    ) -> None:
        await self._initiator.handle_editor_completed(payload)

    async def handle_release_ready(
        self, payload: ReleaseReady | dict[str, Any]
    ) -> Approval | None:
        return await self._initiator.handle_release_ready(payload)

    # ------------------------------------------------------------------
    # Phase B
    # ------------------------------------------------------------------

    async def handle_approval_granted(
        self, payload: ApprovalGranted | dict[str, Any]
    ) -> ResumeOutcome:
        """Resume a pipeline whose approval was granted.

        Never raises: every failure is logged and, once the pipeline is
        claimed, recorded as ``failed`` on the pipeline.
        """
        event = ApprovalGranted.model_validate(payload)
        pipeline_id = event.pipeline_id
        set_event_context(APPROVAL_GRANTED, pipeline_id)
        set_step_context(None, origin=event.origin)

        try:
            pipeline = await self._store.get_pipeline(pipeline_id)
            if pipeline is None:
                logger.error("Pipeline not found: %s", pipeline_id)
                return "missing"
            problem = await self._approval_step_problem(pipeline, event.approval_step_id)
            if problem is not None:
                logger.error(
                    "Ignoring approval for step %s of pipeline %s: %s",
                    event.approval_step_id, pipeline_id, problem,
                )
                return "stale"
            claimed = await self._store.claim_resumption(pipeline_id)
        except Exception:
            logger.exception("Could not load or claim pipeline %s", pipeline_id)
            return "failed"

        if not claimed:
            logger.warning(
                "Pipeline %s already resumed or no longer active (status=%s); ignoring duplicate",
                pipeline_id, pipeline.status,
            )
            return "duplicate"

        try:
            return await self._resume(pipeline, event)
        except Exception:
            logger.exception("Error resuming pipeline %s after approval", pipeline_id)
            await self._mark_failed(pipeline_id)
            return "failed"

    async def _approval_step_problem(self, pipeline: Pipeline, step_id: str) -> str | None:
        """Why ``step_id`` cannot resume ``pipeline``, or None if it can."""
        step = pipeline.step_by_id(step_id)
        if step is None:
            return "step not in pipeline"
        if step.status not in _RESUMABLE_STEP_STATUSES:
            return f"step is {step.status}"
        if await self._store.get_approval_by_step(step_id) is None:
            return "step has no approval"
        return None

    async def _resume(self, pipeline: Pipeline, event: ApprovalGranted) -> ResumeOutcome:
        steps = StepRecorder(self._store, pipeline.id)
        set_step_context("approval")
        await steps.complete_by_id(event.approval_step_id)

        try:
            continuation = self._registry.resolve(pipeline.type, pipeline.source)
        except UnhandledPipelineType as exc:
            await self._handle_unhandled(pipeline, exc)
            return "unhandled"

        metadata = parse_pipeline_metadata(pipeline.metadata)
        logger.info("Resuming pipeline '%s' with continuation '%s'", pipeline.name, continuation.name)
        result = await continuation.resume(
            ContinuationContext(
                pipeline=pipeline,
                metadata=metadata,
                event=event,
                steps=steps,
                collaborators=self._collaborators,
                settings=self._settings,
            )
        )

        await self._send_notifications(steps, result, continuation.notify_description)
        await self._store.update_pipeline_status(pipeline.id, "completed")
        set_step_context(None)
        logger.info("Pipeline '%s' completed", pipeline.name)
        return "completed"

    async def _send_notifications(
        self, steps: StepRecorder, result: ContinuationResult, description: str
    ) -> None:
        step = await steps.open("Send Notifications", description)
        report = await self._fanout.fan_out(
            result.notification_message,
            chat_text=result.chat_message,
            notification_type=result.notification_type,
        )
        metadata = {"errors": report.errors} if report.errors else None
        await steps.complete(step, metadata=metadata)

    async def _handle_unhandled(self, pipeline: Pipeline, exc: UnhandledPipelineType) -> None:
        policy = self._settings.unhandled_pipeline_policy
        logger.error("Pipeline %s cannot be resumed: %s (policy=%s)", pipeline.id, exc, policy)
        await self._bus.emit(
            PIPELINE_UNHANDLED,
            PipelineUnhandled(
                pipeline_id=pipeline.id,
                type=pipeline.type,
                source=pipeline.source,
                policy=policy,
                supported=exc.supported,
            ),
        )
        if policy == "fail":
            await self._store.update_pipeline_status(pipeline.id, "failed")
        else:
            await self._store.release_resumption(pipeline.id)

    async def _mark_failed(self, pipeline_id: str) -> None:
        try:
            await self._store.update_pipeline_status(pipeline_id, "failed")
        except (InvalidTransitionError, StoreError) as exc:
            logger.error("Could not mark pipeline %s failed: %s", pipeline_id, exc)
