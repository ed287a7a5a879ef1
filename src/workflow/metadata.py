# src/workflow/metadata.py — v1
"""Typed pipeline metadata: the only state carried across the approval gap.

Each continuation gets its own payload model, discriminated by ``kind``.
Initiators validate the payload before writing it to the store and the
orchestrator parses it again on resumption, so a pipeline created by an
older process (or edited by hand) fails loudly instead of half-running.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Mapping, Union

from pydantic import BaseModel, Field, TypeAdapter, ValidationError, field_validator, model_validator


class PipelineMetadataError(Exception):
    """Raised when stored pipeline metadata does not match any known shape."""


class CmsCreateMetadata(BaseModel):
    """New CMS document produced by the design-to-CMS agent."""

    kind: Literal["cms-create"] = "cms-create"
    story: dict[str, Any]
    story_name: str
    story_slug: str
    figma_file_name: str = ""
    component_count: int = 0
    node_count: int = 0
    space_id: str = ""
    irf_result: Any = None


class CmsUpdateMetadata(BaseModel):
    """Edit of an existing CMS document produced by the editor agent."""

    kind: Literal["cms-update"] = "cms-update"
    original_story: dict[str, Any]
    edited_story: dict[str, Any]
    story_name: str
    story_slug: str
    space_id: str = ""
    transformation_time: str = ""
    original_component_count: int = 0
    final_component_count: int = 0
    irf: Any = None
    diff: Any = None
    diff_summary: str = ""

    @model_validator(mode="after")
    def require_original_id(self) -> CmsUpdateMetadata:
        if not str(self.original_story.get("id") or "").strip():
            raise ValueError("original_story must carry a non-empty 'id'")
        return self

    @property
    def original_story_id(self) -> str:
        return str(self.original_story["id"])


class ChangelogMetadata(BaseModel):
    """Release changelog awaiting approval."""

    kind: Literal["changelog"] = "changelog"
    repo_owner: str
    repo_name: str
    pr_number: str
    pr_title: str | None = None
    summary: str | None = None
    commits: list[Any] = Field(default_factory=list)
    pr_details: dict[str, Any] | None = None

    @field_validator("pr_number", mode="before")
    @classmethod
    def coerce_pr_number(cls, v: Any) -> Any:  # noqa: N805
        return str(v) if isinstance(v, int) else v


PipelineMetadata = Annotated[
    Union[CmsCreateMetadata, CmsUpdateMetadata, ChangelogMetadata],
    Field(discriminator="kind"),
]

_ADAPTER: TypeAdapter[Any] = TypeAdapter(PipelineMetadata)


def parse_pipeline_metadata(raw: Mapping[str, Any] | None) -> PipelineMetadata:
    """Parse a stored metadata bag into its typed shape.

    Raises:
        PipelineMetadataError: If the bag is empty, has an unknown ``kind``
            or fails validation.
    """
    if not raw:
        raise PipelineMetadataError("Pipeline metadata is empty")
    try:
        return _ADAPTER.validate_python(dict(raw))
    except ValidationError as exc:
        raise PipelineMetadataError(f"Invalid pipeline metadata: {exc}") from exc


def dump_metadata(metadata: PipelineMetadata) -> dict[str, Any]:
    """Serialize typed metadata into the store's key/value bag."""
    return metadata.model_dump()
