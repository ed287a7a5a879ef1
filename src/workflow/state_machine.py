# src/workflow/state_machine.py — v1
"""Status transition rules for pipelines, steps and approvals.

Every store backend funnels its writes through these functions so the
rules hold no matter who writes:

  - Pipeline status only moves forward out of ``active``; terminal
    statuses (completed, failed, cancelled) are final.
  - A step's ``completed_at`` is set if and only if the step is terminal
    (completed or failed); terminal steps are final.
  - At most one pending approval exists per step; a resolved approval
    never changes again.

Rewriting the current status (e.g. completed -> completed) is accepted as
a no-op so that replayed writes stay harmless.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Iterable

from thegrid.workflow.models import (
    Approval,
    ApprovalStatus,
    NewPipelineStep,
    PipelineStatus,
    PipelineStep,
    StepPatch,
    StepStatus,
)

PIPELINE_TERMINAL: frozenset[str] = frozenset({"completed", "failed", "cancelled"})
STEP_TERMINAL: frozenset[str] = frozenset({"completed", "failed"})
APPROVAL_RESOLVED: frozenset[str] = frozenset({"approved", "rejected"})


class InvalidTransitionError(Exception):
    """Raised when a write would break a status invariant."""

    def __init__(self, entity: str, entity_id: str, current: str, target: str) -> None:
        self.entity = entity
        self.entity_id = entity_id
        self.current = current
        self.target = target
        super().__init__(
            f"{entity} {entity_id}: illegal transition {current!r} -> {target!r}"
        )


def check_pipeline_transition(
    pipeline_id: str, current: PipelineStatus, target: PipelineStatus
) -> None:
    """Raise InvalidTransitionError unless current -> target is allowed."""
    if current == target:
        return
    if current in PIPELINE_TERMINAL or target == "active":
        raise InvalidTransitionError("pipeline", pipeline_id, current, target)


def check_step_transition(step_id: str, current: StepStatus, target: StepStatus) -> None:
    """Raise InvalidTransitionError unless current -> target is allowed."""
    if current == target:
        return
    if current in STEP_TERMINAL:
        raise InvalidTransitionError("step", step_id, current, target)


def apply_step_patch(step: PipelineStep, patch: StepPatch, now: datetime) -> PipelineStep:
    """Return a copy of ``step`` with ``patch`` applied and invariants restored.

    ``completed_at`` is filled with ``now`` when a terminal status arrives
    without one and cleared for non-terminal statuses. ``started_at`` is
    stamped when work begins. A terminal step without an explicit duration
    gets one computed from its timestamps.
    """
    changes = patch.model_dump(exclude_unset=True)
    target: StepStatus = changes.get("status") or step.status
    check_step_transition(step.id, step.status, target)

    if step.status == target and target in STEP_TERMINAL:
        # Replayed terminal write: timestamps stay as first recorded.
        changes.pop("completed_at", None)
        changes.pop("started_at", None)

    updated = step.model_copy(update={**changes, "status": target, "updated_at": now})

    if target in STEP_TERMINAL:
        if updated.completed_at is None:
            updated.completed_at = now
        if updated.started_at is None:
            updated.started_at = updated.completed_at
        if updated.duration is None:
            updated.duration = format_duration(updated.completed_at - updated.started_at)
    else:
        updated.completed_at = None
        if target in ("in_progress", "waiting_approval") and updated.started_at is None:
            updated.started_at = now

    return updated


def initial_patch(data: NewPipelineStep) -> StepPatch | None:
    """Patch that brings a freshly created pending step to its requested state."""
    if data.status == "pending" and data.duration is None:
        return None
    fields: dict = {"status": data.status}
    if data.duration is not None:
        fields["duration"] = data.duration
    return StepPatch(**fields)


def check_single_pending(step_id: str, approvals: Iterable[Approval]) -> None:
    """Raise if ``step_id`` already has a pending approval."""
    for approval in approvals:
        if approval.pipeline_step_id == step_id and approval.status == "pending":
            raise InvalidTransitionError("approval", approval.id, "pending", "pending")


def check_approval_resolution(approval: Approval, target: ApprovalStatus) -> None:
    """Only a pending approval can be resolved, and only to approved/rejected."""
    if approval.status != "pending" or target not in APPROVAL_RESOLVED:
        raise InvalidTransitionError("approval", approval.id, approval.status, target)


def format_duration(delta: timedelta) -> str:
    """Render a step duration for display: '850ms', '3s', '2m 5s'."""
    total_ms = max(int(delta.total_seconds() * 1000), 0)
    if total_ms < 1000:
        return f"{total_ms}ms"
    seconds = total_ms // 1000
    if seconds < 60:
        return f"{seconds}s"
    minutes, seconds = divmod(seconds, 60)
    if minutes < 60:
        return f"{minutes}m {seconds}s"
    hours, minutes = divmod(minutes, 60)
    return f"{hours}h {minutes}m"
