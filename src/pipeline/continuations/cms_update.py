# src/pipeline/continuations/cms_update.py — v1
"""Write an approved edit back onto the existing CMS document."""

from __future__ import annotations

import logging

from thegrid.integrations.base import BaseCmsClient
from thegrid.pipeline.continuations.base import (
    BaseContinuation,
    ContinuationContext,
    ContinuationError,
    ContinuationResult,
)
from thegrid.workflow.metadata import CmsUpdateMetadata

logger = logging.getLogger(__name__)

# Document fields copied from the edited version; everything else is left alone.
_PATCH_FIELDS = ("name", "slug", "content", "tag_list", "is_startpage", "parent_id", "position")


class CmsUpdateContinuation(BaseContinuation):
    """cms-publication / storyblok-editor."""

    notify_description = "Sending notifications about successful story update"

    @property
    def name(self) -> str:
        return "cms-update"

    async def resume(self, ctx: ContinuationContext) -> ContinuationResult:
        meta = ctx.metadata
        if not isinstance(meta, CmsUpdateMetadata):
            raise ContinuationError(f"Expected cms-update metadata, got {meta.kind!r}")
        edited = meta.edited_story
        if not edited:
            raise ContinuationError("No edited CMS document found in pipeline metadata")

        cms: BaseCmsClient = ctx.collaborators.require("cms")
        patch = {key: edited.get(key) for key in _PATCH_FIELDS}

        step = await ctx.steps.open(
            "Update Existing Storyblok Story",
            "Updating existing story in Storyblok CMS with edited content",
        )
        try:
            response = await cms.update_document(
                meta.original_story_id,
                patch,
                force_update=True,
                publish=False,
                space_id=meta.space_id or ctx.settings.cms_default_space_id or None,
            )
        except Exception as exc:
            await ctx.steps.fail(step, exc)
            raise

        story_name = edited.get("name") or meta.story_name
        story_slug = edited.get("slug") or meta.story_slug
        logger.info("Updated CMS document %s ('%s')", meta.original_story_id, story_name)
        await ctx.steps.complete(
            step,
            metadata={
                "original_story_id": meta.original_story_id,
                "story_name": story_name,
                "story_slug": story_slug,
                "updated": True,
                "cms_response": response,
            },
        )

        return ContinuationResult(
            notification_message=f'Storyblok story "{meta.story_name}" updated successfully!',
            chat_message=(
                "✏️ *Storyblok Story Updated Successfully!*\n\n"
                f"*Story:* {meta.story_name}\n"
                f"*Slug:* {meta.story_slug}\n"
                f"*Components:* {meta.original_component_count} → {meta.final_component_count}\n"
                f"*Transformation Time:* {meta.transformation_time}\n\n"
                "✅ Successfully updated existing story in Storyblok CMS!"
            ),
            output={"document": response},
        )
