# src/workflow/models.py — v1
"""Workflow domain models: Pipeline, PipelineStep, Approval and their inputs.

A pipeline is a named, typed unit of work made of ordered steps. A step
may be gated by exactly one pending Approval at a time. Status values are
plain string literals so that rows round-trip through any store unchanged.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, Field

PipelineStatus = Literal["active", "completed", "failed", "cancelled"]
StepStatus = Literal["pending", "in_progress", "completed", "failed", "waiting_approval"]
ApprovalStatus = Literal["pending", "approved", "rejected"]
Risk = Literal["low", "medium", "high"]
Origin = Literal[
    "thehorizon",
    "slack",
    "storyblok-ui",
    "storyblok-plugin",
    "email",
    "api",
    "webhook",
    "system",
    "unknown",
]


def utcnow() -> datetime:
    """Timezone-aware current time used for every stored timestamp."""
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


class PipelineStep(BaseModel):
    """One unit of progress inside a pipeline."""

    id: str = Field(default_factory=new_id)
    pipeline_id: str
    name: str
    description: str | None = None
    status: StepStatus = "pending"
    started_at: datetime | None = None
    completed_at: datetime | None = None
    duration: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class Pipeline(BaseModel):
    """Durable record of a multi-step job.

    ``metadata`` carries everything the continuation needs after the
    approval gap; see ``thegrid.workflow.metadata`` for its typed shapes.
    ``resumed_at`` is set once, when the post-approval continuation claims
    the pipeline.
    """

    id: str = Field(default_factory=new_id)
    name: str
    description: str | None = None
    source: str
    type: str
    status: PipelineStatus = "active"
    origin: Origin = "system"
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    resumed_at: datetime | None = None
    steps: list[PipelineStep] = Field(default_factory=list)

    def step_by_id(self, step_id: str) -> PipelineStep | None:
        return next((s for s in self.steps if s.id == step_id), None)


class Approval(BaseModel):
    """A decision required before a pipeline step may continue."""

    id: str = Field(default_factory=new_id)
    pipeline_step_id: str
    approval_type: str
    risk: Risk = "low"
    status: ApprovalStatus = "pending"
    origin: Origin = "unknown"
    reason: str | None = None
    created_at: datetime = Field(default_factory=utcnow)
    approved_at: datetime | None = None
    rejected_at: datetime | None = None


# === Store inputs ===


class NewPipeline(BaseModel):
    """Input for BasePipelineStore.create_pipeline."""

    name: str
    description: str | None = None
    source: str
    type: str
    origin: Origin = "system"
    metadata: dict[str, Any] = Field(default_factory=dict)


class NewPipelineStep(BaseModel):
    """Input for BasePipelineStore.create_pipeline_step."""

    pipeline_id: str
    name: str
    description: str | None = None
    status: StepStatus = "pending"
    duration: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class StepPatch(BaseModel):
    """Partial update of a step. Only explicitly set fields are applied."""

    status: StepStatus | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    duration: str | None = None
    metadata: dict[str, Any] | None = None


class NewApproval(BaseModel):
    """Input for BasePipelineStore.create_approval."""

    pipeline_step_id: str
    approval_type: str
    risk: Risk = "low"
    origin: Origin = "system"
