# src/pipeline/steps.py — v1
"""Small helper that records step progress for one pipeline.

Keeps the orchestrator and continuations free of StepPatch plumbing and
attaches the step name to the logging context while a step runs.
"""

from __future__ import annotations

import logging
from typing import Any

from thegrid.logging.context import set_step_context
from thegrid.store.base_store import BasePipelineStore
from thegrid.workflow.models import NewPipelineStep, PipelineStep, StepPatch, StepStatus

logger = logging.getLogger(__name__)


class StepRecorder:
    """Create and advance the steps of ``pipeline_id``."""

    def __init__(self, store: BasePipelineStore, pipeline_id: str) -> None:
        self._store = store
        self.pipeline_id = pipeline_id

    async def open(
        self,
        name: str,
        description: str | None = None,
        status: StepStatus = "in_progress",
        metadata: dict[str, Any] | None = None,
    ) -> PipelineStep:
        """Create a step that is starting now."""
        set_step_context(name)
        step = await self._store.create_pipeline_step(
            NewPipelineStep(
                pipeline_id=self.pipeline_id,
                name=name,
                description=description,
                status=status,
                metadata=metadata or {},
            )
        )
        logger.debug("Step '%s' opened as %s", name, status)
        return step

    async def record_completed(
        self,
        name: str,
        description: str | None = None,
        duration: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> PipelineStep:
        """Create a step for work that already happened elsewhere."""
        return await self._store.create_pipeline_step(
            NewPipelineStep(
                pipeline_id=self.pipeline_id,
                name=name,
                description=description,
                status="completed",
                duration=duration,
                metadata=metadata or {},
            )
        )

    async def park(
        self, name: str, description: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> PipelineStep:
        """Create a step waiting on a human approval."""
        return await self.open(name, description, status="waiting_approval", metadata=metadata)

    async def complete(
        self, step: PipelineStep, metadata: dict[str, Any] | None = None
    ) -> PipelineStep:
        return await self.complete_by_id(step.id, metadata)

    async def complete_by_id(
        self, step_id: str, metadata: dict[str, Any] | None = None
    ) -> PipelineStep:
        patch = StepPatch(status="completed")
        if metadata is not None:
            patch = StepPatch(status="completed", metadata=metadata)
        return await self._store.update_pipeline_step(step_id, patch)

    async def fail(self, step: PipelineStep, error: BaseException | str) -> PipelineStep:
        """Mark ``step`` failed and keep the error message in its metadata."""
        metadata = {**step.metadata, "error": str(error)}
        logger.warning("Step '%s' failed: %s", step.name, error)
        return await self._store.update_pipeline_step(
            step.id, StepPatch(status="failed", metadata=metadata)
        )
