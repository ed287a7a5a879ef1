# src/pipeline/continuations/changelog.py — v1
"""Create a changelog entry for an approved release summary.

Fields arriving on the ``approval.granted`` event win over the values
stored at initiation, so an edited summary reaches the changelog.
"""

from __future__ import annotations

import logging

from thegrid.integrations.base import BaseChangelogStore, ChangelogEntryInput
from thegrid.pipeline.continuations.base import (
    BaseContinuation,
    ContinuationContext,
    ContinuationError,
    ContinuationResult,
)
from thegrid.pipeline.text_cleanup import clean_summary
from thegrid.workflow.metadata import ChangelogMetadata

logger = logging.getLogger(__name__)


class ChangelogContinuation(BaseContinuation):
    """changelog / any source."""

    notify_description = "Sending notifications to Slack and Horizon"

    @property
    def name(self) -> str:
        return "changelog"

    async def resume(self, ctx: ContinuationContext) -> ContinuationResult:
        meta = ctx.metadata
        if not isinstance(meta, ChangelogMetadata):
            raise ContinuationError(f"Expected changelog metadata, got {meta.kind!r}")
        event = ctx.event

        repo_owner = event.repo_owner or meta.repo_owner
        repo_name = event.repo_name or meta.repo_name
        pr_number = event.pr_number or meta.pr_number
        pr_details = event.pr_details if event.pr_details is not None else meta.pr_details
        raw_summary = event.summary if event.summary is not None else meta.summary
        summary = clean_summary(raw_summary) if isinstance(raw_summary, str) else ""

        title = None
        if pr_details and isinstance(pr_details.get("title"), str):
            title = pr_details["title"]
        elif meta.pr_title:
            title = meta.pr_title

        changelog: BaseChangelogStore = ctx.collaborators.require("changelog")
        step = await ctx.steps.open("Create Changelog", "Creating changelog entry in database")
        try:
            entry = await changelog.create_entry(
                ChangelogEntryInput(
                    repo_owner=repo_owner,
                    repo_name=repo_name,
                    pr_number=pr_number,
                    title=title,
                    summary=summary,
                    created_by=ctx.settings.changelog_created_by,
                )
            )
        except Exception as exc:
            await ctx.steps.fail(step, exc)
            raise
        await ctx.steps.complete(step)
        logger.info("Changelog created for %s/%s PR #%s", repo_owner, repo_name, pr_number)

        return ContinuationResult(
            notification_message=(
                f"Release changelog created for {repo_owner}/{repo_name} PR #{pr_number}"
            ),
            chat_message=clean_summary(
                "🚀 *New Release Changelog*\n\n"
                f"*Repository:* {repo_owner}/{repo_name}\n"
                f"*PR:* #{pr_number}\n"
                f"*Title:* {title}\n\n"
                f"*Summary:*\n{summary}"
            ),
            output={"entry": entry, "summary": summary},
        )
