# src/pipeline/continuations/base.py — v1
"""Continuation interface: the type-specific half of a pipeline.

A continuation runs after its pipeline's approval is granted. It records
its own step(s), calls external collaborators and returns the messages
the orchestrator fans out in the "Send Notifications" step. Raising marks
the whole pipeline failed.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, ClassVar

from thegrid.config.settings import Settings
from thegrid.events.types import ApprovalGranted
from thegrid.integrations.base import Collaborators, NotificationType
from thegrid.pipeline.steps import StepRecorder
from thegrid.workflow.metadata import PipelineMetadata
from thegrid.workflow.models import Pipeline


class ContinuationError(Exception):
    """Raised when a continuation cannot run with the data it was given."""


@dataclass
class ContinuationContext:
    """Everything a continuation may touch."""

    pipeline: Pipeline
    metadata: PipelineMetadata
    event: ApprovalGranted
    steps: StepRecorder
    collaborators: Collaborators
    settings: Settings


@dataclass
class ContinuationResult:
    """Messages for the notification fan-out plus data for logs and tests."""

    notification_message: str
    chat_message: str
    notification_type: NotificationType = "alert"
    output: dict[str, Any] = field(default_factory=dict)


class BaseContinuation(ABC):
    """Standard interface for post-approval continuations."""

    #: Description of the "Send Notifications" step for this continuation.
    notify_description: ClassVar[str] = "Sending notifications"

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique continuation identifier (e.g., 'cms-create')."""

    @abstractmethod
    async def resume(self, ctx: ContinuationContext) -> ContinuationResult:
        """Run the continuation.

        Raises:
            Exception: Any failure; the orchestrator marks the pipeline failed.
        """
