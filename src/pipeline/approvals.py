# src/pipeline/approvals.py — v1
"""Approval resolution surface: approve, reject and browse approvals.

``approve`` resolves the approval, folds reviewer edits into the pipeline
metadata and publishes ``approval.granted``; the orchestrator does the
rest. ``reject`` ends the pipeline as ``cancelled``.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from pydantic import BaseModel, Field

from thegrid.events.bus import EventBus
from thegrid.events.types import APPROVAL_GRANTED, APPROVAL_REJECTED, ApprovalGranted, ApprovalRejected
from thegrid.notifications.fanout import NotificationFanout
from thegrid.store.base_store import ApprovalNotFoundError, BasePipelineStore
from thegrid.workflow.metadata import PipelineMetadataError, parse_pipeline_metadata
from thegrid.workflow.models import (
    Approval,
    ApprovalStatus,
    Origin,
    Pipeline,
    PipelineStep,
    Risk,
    StepPatch,
)

logger = logging.getLogger(__name__)

# Metadata key receiving an edited document, per metadata kind.
_DOCUMENT_KEYS = {"cms-update": "edited_story", "cms-create": "story"}


class ApprovalResolutionError(Exception):
    """Raised when an approval cannot be linked to its step or pipeline."""


class ApprovalEdits(BaseModel):
    """Reviewer changes submitted together with an approval."""

    title: str | None = None
    summary: str | None = None
    document: str | None = None  # JSON text of the edited CMS document


class ApprovalFilter(BaseModel):
    status: ApprovalStatus | None = None
    risk: Risk | None = None
    approval_type: str | None = None
    origins: list[str] = Field(default_factory=list)
    search: str | None = None
    limit: int = Field(50, ge=1, le=100)
    offset: int = Field(0, ge=0)


class ApprovalView(BaseModel):
    """Approval joined with the names a reviewer needs to see."""

    approval: Approval
    pipeline_id: str
    pipeline_name: str
    step_name: str
    summary: str | None = None


class ApprovalPage(BaseModel):
    items: list[ApprovalView]
    total: int
    limit: int
    offset: int


class ApprovalService:
    """Resolve approvals and publish the outcome on the bus.

    Args:
        store: Pipeline store.
        bus: Event bus used to publish approval.granted / approval.rejected.
        fanout: Optional notification fan-out for rejections.
    """

    def __init__(
        self,
        store: BasePipelineStore,
        bus: EventBus,
        fanout: NotificationFanout | None = None,
    ) -> None:
        self._store = store
        self._bus = bus
        self._fanout = fanout

    async def get(self, approval_id: str) -> Approval | None:
        return await self._store.get_approval(approval_id)

    async def approve(
        self,
        approval_id: str,
        origin: Origin = "thehorizon",
        edited: ApprovalEdits | None = None,
    ) -> Approval:
        """Approve and publish ``approval.granted``.

        Raises:
            ApprovalNotFoundError: Unknown approval.
            InvalidTransitionError: Approval already resolved.
            ApprovalResolutionError: Step or pipeline is missing.
        """
        current = await self._store.get_approval(approval_id)
        if current is None:
            raise ApprovalNotFoundError(approval_id)
        step, pipeline = await self._load_context(current)

        approval = await self._store.resolve_approval(approval_id, "approved", origin=origin)
        logger.info("Approval %s granted from %s", approval_id, origin)

        metadata = pipeline.metadata
        summary = step.metadata.get("summary") or metadata.get("summary")
        pr_details = metadata.get("pr_details")
        commits = metadata.get("commits")

        if edited is not None:
            if edited.title and pr_details:
                pr_details = {**pr_details, "title": edited.title}
            if edited.summary:
                summary = edited.summary
            if edited.document:
                await self._apply_document_edit(pipeline, edited.document)

        if not (summary and pr_details and commits):
            for earlier in pipeline.steps:
                summary = summary or earlier.metadata.get("summary")
                pr_details = pr_details or earlier.metadata.get("pr_details")
                commits = commits or earlier.metadata.get("commits")

        await self._bus.emit(
            APPROVAL_GRANTED,
            ApprovalGranted(
                pipeline_id=pipeline.id,
                approval_step_id=step.id,
                origin=origin,
                repo_owner=metadata.get("repo_owner"),
                repo_name=metadata.get("repo_name"),
                pr_number=metadata.get("pr_number"),
                summary=summary,
                commits=commits,
                pr_details=pr_details,
            ),
        )
        return approval

    async def reject(
        self,
        approval_id: str,
        reason: str | None = None,
        origin: Origin = "thehorizon",
    ) -> Approval:
        """Reject: approval ``rejected``, its step ``failed``, pipeline ``cancelled``.

        Raises:
            ApprovalNotFoundError: Unknown approval.
            InvalidTransitionError: Approval already resolved or pipeline terminal.
            ApprovalResolutionError: Step or pipeline is missing.
        """
        current = await self._store.get_approval(approval_id)
        if current is None:
            raise ApprovalNotFoundError(approval_id)
        step, pipeline = await self._load_context(current)

        async with self._store.transaction():
            approval = await self._store.resolve_approval(
                approval_id, "rejected", origin=origin, reason=reason
            )
            await self._store.update_pipeline_step(
                step.id,
                StepPatch(status="failed", metadata={**step.metadata, "rejection_reason": reason}),
            )
            await self._store.update_pipeline_status(pipeline.id, "cancelled")
        logger.info("Approval %s rejected from %s: %s", approval_id, origin, reason)

        await self._bus.emit(
            APPROVAL_REJECTED,
            ApprovalRejected(
                pipeline_id=pipeline.id,
                approval_id=approval_id,
                approval_step_id=step.id,
                reason=reason,
                origin=origin,
            ),
        )
        if self._fanout is not None:
            message = f'Approval rejected for "{pipeline.name}"'
            if reason:
                message = f"{message}: {reason}"
            await self._fanout.fan_out(message, chat_text=f"🚫 {message}")
        return approval

    async def list(self, query: ApprovalFilter | None = None) -> ApprovalPage:
        """Filter, search and paginate approvals (newest first)."""
        query = query or ApprovalFilter()
        pipelines: dict[str, Pipeline | None] = {}
        views: list[ApprovalView] = []

        for approval in await self._store.list_approvals(query.status):
            if query.risk and approval.risk != query.risk:
                continue
            if query.approval_type and approval.approval_type != query.approval_type:
                continue
            if query.origins and approval.origin not in query.origins:
                continue
            step = await self._store.get_pipeline_step(approval.pipeline_step_id)
            if step is None:
                continue
            if step.pipeline_id not in pipelines:
                pipelines[step.pipeline_id] = await self._store.get_pipeline(step.pipeline_id)
            pipeline = pipelines[step.pipeline_id]
            if pipeline is None:
                continue
            view = ApprovalView(
                approval=approval,
                pipeline_id=pipeline.id,
                pipeline_name=pipeline.name,
                step_name=step.name,
                summary=step.metadata.get("summary") or pipeline.metadata.get("summary"),
            )
            if query.search and not _matches(view, query.search):
                continue
            views.append(view)

        page = views[query.offset:query.offset + query.limit]
        return ApprovalPage(items=page, total=len(views), limit=query.limit, offset=query.offset)

    async def _load_context(self, approval: Approval) -> tuple[PipelineStep, Pipeline]:
        step = await self._store.get_pipeline_step(approval.pipeline_step_id)
        if step is None:
            raise ApprovalResolutionError(
                f"Approval {approval.id} references missing step {approval.pipeline_step_id}"
            )
        pipeline = await self._store.get_pipeline(step.pipeline_id)
        if pipeline is None:
            raise ApprovalResolutionError(
                f"Approval {approval.id} references missing pipeline {step.pipeline_id}"
            )
        return step, pipeline

    async def _apply_document_edit(self, pipeline: Pipeline, raw: str) -> None:
        """Store an edited CMS document in the pipeline metadata if it is valid."""
        key = _DOCUMENT_KEYS.get(str(pipeline.metadata.get("kind")))
        if key is None:
            logger.warning("Pipeline %s does not accept document edits", pipeline.id)
            return
        try:
            document = json.loads(raw)
            if not isinstance(document, dict):
                raise ValueError("edited document must be a JSON object")
            candidate: dict[str, Any] = {**pipeline.metadata, key: document}
            parse_pipeline_metadata(candidate)
        except (ValueError, PipelineMetadataError) as exc:
            logger.error("Ignoring edited document for pipeline %s: %s", pipeline.id, exc)
            return
        await self._store.update_pipeline_metadata(pipeline.id, {key: document})
        pipeline.metadata[key] = document
        logger.info("Persisted edited document into pipeline %s metadata", pipeline.id)


def _matches(view: ApprovalView, search: str) -> bool:
    needle = search.lower()
    haystack = (view.pipeline_name, view.step_name, view.summary or "")
    return any(needle in text.lower() for text in haystack)
