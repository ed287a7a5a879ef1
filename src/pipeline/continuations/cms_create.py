# src/pipeline/continuations/cms_create.py — v1
"""Publish a newly generated document to the CMS as a draft."""

from __future__ import annotations

import logging

from thegrid.integrations.base import BaseCmsClient, CmsDocumentSpec
from thegrid.pipeline.continuations.base import (
    BaseContinuation,
    ContinuationContext,
    ContinuationError,
    ContinuationResult,
)
from thegrid.workflow.metadata import CmsCreateMetadata

logger = logging.getLogger(__name__)


class CmsCreateContinuation(BaseContinuation):
    """cms-publication / figma-to-storyblok."""

    notify_description = "Sending notifications about successful publication"

    @property
    def name(self) -> str:
        return "cms-create"

    async def resume(self, ctx: ContinuationContext) -> ContinuationResult:
        meta = ctx.metadata
        if not isinstance(meta, CmsCreateMetadata):
            raise ContinuationError(f"Expected cms-create metadata, got {meta.kind!r}")
        story = meta.story
        if not story:
            raise ContinuationError("No CMS document found in pipeline metadata")

        cms: BaseCmsClient = ctx.collaborators.require("cms")
        space_id = meta.space_id or ctx.settings.cms_default_space_id or None
        spec = CmsDocumentSpec(
            name=story.get("name") or meta.story_name,
            slug=story.get("slug") or meta.story_slug,
            content=story.get("content"),
            published=False,
            tag_list=story.get("tag_list") or [],
            is_startpage=bool(story.get("is_startpage", False)),
        )

        step = await ctx.steps.open("Publish to Storyblok CMS", "Creating story in Storyblok CMS")
        try:
            response = await cms.create_document(spec, space_id=space_id)
        except Exception as exc:
            await ctx.steps.fail(step, exc)
            raise
        logger.info("Created CMS draft '%s' (%s)", spec.name, spec.slug)
        await ctx.steps.complete(
            step,
            metadata={
                "story_name": spec.name,
                "story_slug": spec.slug,
                "published": False,
                "cms_response": response,
            },
        )

        return ContinuationResult(
            notification_message=f'Storyblok page "{spec.name}" published successfully!',
            chat_message=(
                "🎉 *Storyblok Page Published!*\n\n"
                f"*Story:* {spec.name}\n"
                f"*Slug:* {spec.slug}\n"
                f"*Components:* {meta.component_count}\n\n"
                "✅ Successfully published to Storyblok CMS!"
            ),
            output={"document": response},
        )
