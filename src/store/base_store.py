# src/store/base_store.py — v1
"""Abstract pipeline store interface.

Durable record of pipelines, their steps and approvals. Backends enforce
the status rules of ``thegrid.workflow.state_machine`` on every write.

Writes are serialized per store instance. ``transaction()`` groups
several writes so that either all of them land or none do; nesting is
flat (an inner ``transaction()`` joins the outer one).
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from contextvars import ContextVar
from typing import Any, AsyncIterator

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
)

# Store currently holding the write gate in this context, if any.
_tx_owner: ContextVar[BasePipelineStore | None] = ContextVar("thegrid_store_tx", default=None)


class StoreError(Exception):
    """Base class for store failures."""


class PipelineNotFoundError(StoreError):
    def __init__(self, pipeline_id: str) -> None:
        self.pipeline_id = pipeline_id
        super().__init__(f"Pipeline not found: {pipeline_id}")


class StepNotFoundError(StoreError):
    def __init__(self, step_id: str) -> None:
        self.step_id = step_id
        super().__init__(f"Pipeline step not found: {step_id}")


class ApprovalNotFoundError(StoreError):
    def __init__(self, approval_id: str) -> None:
        self.approval_id = approval_id
        super().__init__(f"Approval not found: {approval_id}")


class BasePipelineStore(ABC):
    """Unified interface for pipeline storage backends."""

    def __init__(self) -> None:
        self._lock = asyncio.Lock()

    # --- Transactions ---

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        """Run the enclosed writes atomically.

        Raises whatever the body raises, after rolling back.
        """
        if _tx_owner.get() is self:
            yield
            return
        async with self._lock:
            token = _tx_owner.set(self)
            self._begin()
            try:
                yield
            except BaseException:
                self._rollback()
                raise
            else:
                self._commit()
            finally:
                _tx_owner.reset(token)

    @property
    def in_transaction(self) -> bool:
        return _tx_owner.get() is self

    @abstractmethod
    def _begin(self) -> None:
        """Start a backend transaction."""

    @abstractmethod
    def _commit(self) -> None:
        """Make the current transaction durable."""

    @abstractmethod
    def _rollback(self) -> None:
        """Discard every write since ``_begin``."""

    # --- Pipelines ---

    @abstractmethod
    async def create_pipeline(self, data: NewPipeline) -> Pipeline:
        """Insert a pipeline in status ``active``."""

    @abstractmethod
    async def get_pipeline(self, pipeline_id: str) -> Pipeline | None:
        """Return the pipeline with its steps ordered by creation, or None."""

    @abstractmethod
    async def list_pipelines(
        self, limit: int = 20, offset: int = 0
    ) -> tuple[list[Pipeline], int]:
        """Return a page of pipelines (newest first) and the total count."""

    @abstractmethod
    async def update_pipeline_status(
        self, pipeline_id: str, status: PipelineStatus
    ) -> Pipeline:
        """Move a pipeline to ``status``.

        Raises:
            PipelineNotFoundError: Unknown id.
            InvalidTransitionError: Terminal pipeline or move back to active.
        """

    @abstractmethod
    async def update_pipeline_metadata(
        self, pipeline_id: str, metadata: dict[str, Any], merge: bool = True
    ) -> Pipeline:
        """Merge ``metadata`` into (or replace) the pipeline metadata."""

    @abstractmethod
    async def claim_resumption(self, pipeline_id: str) -> bool:
        """Atomically mark an active, unclaimed pipeline as resumed.

        Returns:
            True for the single caller that wins, False for everyone else
            (already claimed, not active or unknown).
        """

    @abstractmethod
    async def release_resumption(self, pipeline_id: str) -> None:
        """Undo a claim so a later approval can resume the pipeline."""

    # --- Steps ---

    @abstractmethod
    async def create_pipeline_step(self, data: NewPipelineStep) -> PipelineStep:
        """Insert a step. Raises PipelineNotFoundError for an unknown pipeline."""

    @abstractmethod
    async def get_pipeline_step(self, step_id: str) -> PipelineStep | None:
        """Return a step by id, or None."""

    @abstractmethod
    async def update_pipeline_step(self, step_id: str, patch: StepPatch) -> PipelineStep:
        """Apply a partial update.

        Raises:
            StepNotFoundError: Unknown id.
            InvalidTransitionError: The step is already terminal.
        """

    # --- Approvals ---

    @abstractmethod
    async def create_approval(self, data: NewApproval) -> Approval:
        """Insert a pending approval for an existing step.

        Raises:
            StepNotFoundError: Unknown step.
            InvalidTransitionError: The step already has a pending approval.
        """

    @abstractmethod
    async def get_approval(self, approval_id: str) -> Approval | None:
        """Return an approval by id, or None."""

    @abstractmethod
    async def get_approval_by_step(self, step_id: str) -> Approval | None:
        """Return the most recent approval attached to a step, or None."""

    @abstractmethod
    async def list_approvals(self, status: ApprovalStatus | None = None) -> list[Approval]:
        """Return approvals (newest first), optionally filtered by status."""

    @abstractmethod
    async def resolve_approval(
        self,
        approval_id: str,
        status: ApprovalStatus,
        origin: Origin = "unknown",
        reason: str | None = None,
    ) -> Approval:
        """Mark a pending approval approved or rejected.

        Raises:
            ApprovalNotFoundError: Unknown id.
            InvalidTransitionError: The approval is already resolved.
        """

    def close(self) -> None:
        """Release backend resources."""
