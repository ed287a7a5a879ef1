# src/events/types.py — v1
"""Event catalog: names and payload models exchanged over the EventBus.

Names follow the ``<domain>.<action>`` pattern. Payload fields are
snake_case in Python and accept the camelCase keys producers send
(``storyName``, ``pipelineId``...).
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

FIGMA_TO_STORYBLOK_READY = "figma-to-storyblok.ready"
STORYBLOK_EDITOR_COMPLETED = "storyblok-editor.completed"
RELEASE_READY = "release.ready"
APPROVAL_GRANTED = "approval.granted"
APPROVAL_REJECTED = "approval.rejected"
PIPELINE_UNHANDLED = "pipeline.unhandled"

EventName = Literal[
    "figma-to-storyblok.ready",
    "storyblok-editor.completed",
    "release.ready",
    "approval.granted",
    "approval.rejected",
    "pipeline.unhandled",
]


class EventPayload(BaseModel):
    """Base for all catalogued payloads."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _coerce_str(v: Any) -> Any:
    return str(v) if isinstance(v, int) and not isinstance(v, bool) else v


# === Design-to-CMS producer ===


class FigmaToStoryblokMetadata(EventPayload):
    figma_file_name: str = ""
    component_count: int = 0
    node_count: int = 0
    story_name: str
    story_slug: str
    space_id: str = ""


class FigmaToStoryblokReady(EventPayload):
    figma_data: Any = None
    irf_result: Any = None
    storyblok_result: Any = None
    final_storyblok_story: dict[str, Any]
    metadata: FigmaToStoryblokMetadata


# === Editor producer ===


class StoryblokEditorMetadata(EventPayload):
    transformation_time: str = ""
    original_component_count: int = 0
    final_component_count: int = 0
    story_name: str
    story_slug: str
    space_id: str = ""

    @field_validator("space_id", mode="before")
    @classmethod
    def coerce_space_id(cls, v: Any) -> Any:  # noqa: N805
        return _coerce_str(v)


class StoryblokEditorCompleted(EventPayload):
    original_storyblok: dict[str, Any]
    irf: Any = None
    edited_storyblok: dict[str, Any]
    metadata: StoryblokEditorMetadata


# === Release producer ===


class ReleaseReady(EventPayload):
    repo_owner: str
    repo_name: str
    pr_number: str

    @field_validator("pr_number", mode="before")
    @classmethod
    def coerce_pr_number(cls, v: Any) -> Any:  # noqa: N805
        return _coerce_str(v)


# === Approval resolution ===


class ApprovalGranted(EventPayload):
    """Resume signal. Extra type-specific fields are kept as-is."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="allow"
    )

    pipeline_id: str
    approval_step_id: str
    origin: str | None = None
    repo_owner: str | None = None
    repo_name: str | None = None
    pr_number: str | None = None
    summary: str | None = None
    commits: list[Any] | None = None
    pr_details: dict[str, Any] | None = None

    @field_validator("pr_number", mode="before")
    @classmethod
    def coerce_pr_number(cls, v: Any) -> Any:  # noqa: N805
        return _coerce_str(v)


class ApprovalRejected(EventPayload):
    pipeline_id: str
    approval_id: str
    approval_step_id: str
    reason: str | None = None
    origin: str | None = None


class PipelineUnhandled(EventPayload):
    """Published when no continuation matches a pipeline's (type, source)."""

    pipeline_id: str
    type: str
    source: str
    policy: Literal["ignore", "fail"]
    supported: list[str] = Field(default_factory=list)


EVENT_PAYLOADS: dict[str, type[EventPayload]] = {
    FIGMA_TO_STORYBLOK_READY: FigmaToStoryblokReady,
    STORYBLOK_EDITOR_COMPLETED: StoryblokEditorCompleted,
    RELEASE_READY: ReleaseReady,
    APPROVAL_GRANTED: ApprovalGranted,
    APPROVAL_REJECTED: ApprovalRejected,
    PIPELINE_UNHANDLED: PipelineUnhandled,
}
