# src/store/memory_store.py — v1
"""In-process pipeline store (STORE_BACKEND=memory).

Rows are immutable pydantic models replaced on every write, so a
transaction snapshot is a shallow copy of the three tables.
"""

from __future__ import annotations

import logging
from typing import Any

from thegrid.store.base_store import (
    ApprovalNotFoundError,
    BasePipelineStore,
    PipelineNotFoundError,
    StepNotFoundError,
)
from thegrid.workflow.models import (
    Approval,
    ApprovalStatus,
    NewApproval,
    NewPipeline,
    NewPipelineStep,
    Origin,
    Pipeline,
    PipelineStatus,
    PipelineStep,
    StepPatch,
    utcnow,
)
from thegrid.workflow.state_machine import (
    apply_step_patch,
    check_approval_resolution,
    check_pipeline_transition,
    check_single_pending,
    initial_patch,
)

logger = logging.getLogger(__name__)


class MemoryPipelineStore(BasePipelineStore):
    """Dict-backed store. Contents are lost when the process exits."""

    def __init__(self) -> None:
        super().__init__()
        self._pipelines: dict[str, Pipeline] = {}
        self._steps: dict[str, PipelineStep] = {}
        self._approvals: dict[str, Approval] = {}
        self._snapshot: tuple[dict, dict, dict] | None = None

    def _begin(self) -> None:
        self._snapshot = (dict(self._pipelines), dict(self._steps), dict(self._approvals))

    def _commit(self) -> None:
        self._snapshot = None

    def _rollback(self) -> None:
        if self._snapshot is not None:
            self._pipelines, self._steps, self._approvals = self._snapshot
            self._snapshot = None
            logger.debug("Rolled back in-memory transaction")

    # --- Pipelines ---

    async def create_pipeline(self, data: NewPipeline) -> Pipeline:
        async with self.transaction():
            pipeline = Pipeline(**data.model_dump())
            self._pipelines[pipeline.id] = pipeline
        return pipeline.model_copy(deep=True)

    async def get_pipeline(self, pipeline_id: str) -> Pipeline | None:
        pipeline = self._pipelines.get(pipeline_id)
        if pipeline is None:
            return None
        return self._with_steps(pipeline)

    async def list_pipelines(
        self, limit: int = 20, offset: int = 0
    ) -> tuple[list[Pipeline], int]:
        # Ascending then reversed, so same-timestamp rows stay newest first.
        ordered = sorted(self._pipelines.values(), key=lambda p: p.created_at)[::-1]
        page = ordered[offset:offset + limit]
        return [self._with_steps(p) for p in page], len(ordered)

    async def update_pipeline_status(
        self, pipeline_id: str, status: PipelineStatus
    ) -> Pipeline:
        async with self.transaction():
            pipeline = self._require_pipeline(pipeline_id)
            check_pipeline_transition(pipeline_id, pipeline.status, status)
            if pipeline.status != status:
                pipeline = pipeline.model_copy(
                    update={"status": status, "updated_at": utcnow()}
                )
                self._pipelines[pipeline_id] = pipeline
        return self._with_steps(pipeline)

    async def update_pipeline_metadata(
        self, pipeline_id: str, metadata: dict[str, Any], merge: bool = True
    ) -> Pipeline:
        async with self.transaction():
            pipeline = self._require_pipeline(pipeline_id)
            merged = {**pipeline.metadata, **metadata} if merge else dict(metadata)
            pipeline = pipeline.model_copy(
                update={"metadata": merged, "updated_at": utcnow()}
            )
            self._pipelines[pipeline_id] = pipeline
        return self._with_steps(pipeline)

    async def claim_resumption(self, pipeline_id: str) -> bool:
        async with self.transaction():
            pipeline = self._pipelines.get(pipeline_id)
            if pipeline is None or pipeline.status != "active" or pipeline.resumed_at:
                return False
            now = utcnow()
            self._pipelines[pipeline_id] = pipeline.model_copy(
                update={"resumed_at": now, "updated_at": now}
            )
            return True

    async def release_resumption(self, pipeline_id: str) -> None:
        async with self.transaction():
            pipeline = self._require_pipeline(pipeline_id)
            self._pipelines[pipeline_id] = pipeline.model_copy(
                update={"resumed_at": None, "updated_at": utcnow()}
            )

    # --- Steps ---

    async def create_pipeline_step(self, data: NewPipelineStep) -> PipelineStep:
        async with self.transaction():
            self._require_pipeline(data.pipeline_id)
            step = PipelineStep(
                pipeline_id=data.pipeline_id,
                name=data.name,
                description=data.description,
                metadata=dict(data.metadata),
            )
            patch = initial_patch(data)
            if patch is not None:
                step = apply_step_patch(step, patch, step.created_at)
            self._steps[step.id] = step
        return step.model_copy(deep=True)

    async def get_pipeline_step(self, step_id: str) -> PipelineStep | None:
        step = self._steps.get(step_id)
        return step.model_copy(deep=True) if step else None

    async def update_pipeline_step(self, step_id: str, patch: StepPatch) -> PipelineStep:
        async with self.transaction():
            step = self._steps.get(step_id)
            if step is None:
                raise StepNotFoundError(step_id)
            step = apply_step_patch(step, patch, utcnow())
            self._steps[step_id] = step
        return step.model_copy(deep=True)

    # --- Approvals ---

    async def create_approval(self, data: NewApproval) -> Approval:
        async with self.transaction():
            if data.pipeline_step_id not in self._steps:
                raise StepNotFoundError(data.pipeline_step_id)
            check_single_pending(data.pipeline_step_id, self._approvals.values())
            approval = Approval(**data.model_dump())
            self._approvals[approval.id] = approval
        return approval.model_copy()

    async def get_approval(self, approval_id: str) -> Approval | None:
        approval = self._approvals.get(approval_id)
        return approval.model_copy() if approval else None

    async def get_approval_by_step(self, step_id: str) -> Approval | None:
        matches = [a for a in self._approvals.values() if a.pipeline_step_id == step_id]
        if not matches:
            return None
        return max(matches, key=lambda a: a.created_at).model_copy()

    async def list_approvals(self, status: ApprovalStatus | None = None) -> list[Approval]:
        approvals = [
            a for a in self._approvals.values() if status is None or a.status == status
        ]
        approvals.sort(key=lambda a: a.created_at)
        return [a.model_copy() for a in reversed(approvals)]

    async def resolve_approval(
        self,
        approval_id: str,
        status: ApprovalStatus,
        origin: Origin = "unknown",
        reason: str | None = None,
    ) -> Approval:
        async with self.transaction():
            approval = self._approvals.get(approval_id)
            if approval is None:
                raise ApprovalNotFoundError(approval_id)
            check_approval_resolution(approval, status)
            now = utcnow()
            stamp = {"approved_at": now} if status == "approved" else {"rejected_at": now}
            approval = approval.model_copy(
                update={"status": status, "origin": origin, "reason": reason, **stamp}
            )
            self._approvals[approval_id] = approval
        return approval.model_copy()

    # --- Internal ---

    def _require_pipeline(self, pipeline_id: str) -> Pipeline:
        pipeline = self._pipelines.get(pipeline_id)
        if pipeline is None:
            raise PipelineNotFoundError(pipeline_id)
        return pipeline

    def _with_steps(self, pipeline: Pipeline) -> Pipeline:
        steps = [s for s in self._steps.values() if s.pipeline_id == pipeline.id]
        steps.sort(key=lambda s: s.created_at)
        return pipeline.model_copy(
            update={"steps": [s.model_copy(deep=True) for s in steps]}, deep=True
        )
