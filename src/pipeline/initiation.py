# src/pipeline/initiation.py — v1
"""Phase A: turn a producer's "ready" event into a pipeline parked at an approval.

Each handler creates the pipeline, records the work that already
happened, parks an approval step with its pending approval and tells
people about it. Row creation for one pipeline is a single store
transaction, so a failure leaves no partial pipeline behind; it is
logged and reported through the notification fan-out instead of raised.
"""

from __future__ import annotations

import logging
import time
from datetime import timedelta
from typing import Any, Awaitable, TypeVar

from thegrid.config.settings import Settings
from thegrid.events.types import (
    FIGMA_TO_STORYBLOK_READY,
    RELEASE_READY,
    STORYBLOK_EDITOR_COMPLETED,
    FigmaToStoryblokReady,
    ReleaseReady,
    StoryblokEditorCompleted,
)
from thegrid.integrations.base import (
    BaseDiffService,
    BaseReleaseSummarizer,
    BaseRepositoryClient,
    Collaborators,
    DiffOptions,
)
from thegrid.logging.context import (
    set_event_context,
    set_pipeline_context,
    set_step_context,
)
from thegrid.notifications.fanout import NotificationFanout
from thegrid.pipeline.steps import StepRecorder
from thegrid.store.base_store import BasePipelineStore
from thegrid.workflow.metadata import (
    ChangelogMetadata,
    CmsCreateMetadata,
    CmsUpdateMetadata,
    dump_metadata,
)
from thegrid.workflow.models import Approval, NewApproval, NewPipeline, Risk
from thegrid.workflow.state_machine import format_duration

logger = logging.getLogger(__name__)

T = TypeVar("T")


class PipelineInitiator:
    """Phase A handlers, one per producer event.

    Args:
        store: Pipeline store.
        collaborators: External services (diff, repository, summarizer).
        fanout: Notification fan-out.
        settings: Application settings.
    """

    def __init__(
        self,
        store: BasePipelineStore,
        collaborators: Collaborators,
        fanout: NotificationFanout,
        settings: Settings,
    ) -> None:
        self._store = store
        self._collaborators = collaborators
        self._fanout = fanout
        self._settings = settings

    # ------------------------------------------------------------------
    # Design-to-CMS producer
    # ------------------------------------------------------------------

    async def handle_figma_ready(
        self, payload: FigmaToStoryblokReady | dict[str, Any]
    ) -> Approval | None:
        """Create a cms-publication pipeline for a newly generated document."""
        set_event_context(FIGMA_TO_STORYBLOK_READY)
        event = FigmaToStoryblokReady.model_validate(payload)
        meta = event.metadata
        try:
            metadata = CmsCreateMetadata(
                story=event.final_storyblok_story,
                story_name=meta.story_name,
                story_slug=meta.story_slug,
                figma_file_name=meta.figma_file_name,
                component_count=meta.component_count,
                node_count=meta.node_count,
                space_id=meta.space_id or self._settings.cms_default_space_id,
                irf_result=event.irf_result,
            )
            async with self._store.transaction():
                recorder = await self._create_pipeline(
                    NewPipeline(
                        name=f"Figma to Storyblok Pipeline - {meta.story_name}",
                        description="Creating Storyblok page from Figma design",
                        source="figma-to-storyblok",
                        type="cms-publication",
                        metadata=dump_metadata(metadata),
                    )
                )
                await recorder.record_completed(
                    "Figma to Storyblok Transformation",
                    "Converting Figma design to Storyblok components",
                    metadata={
                        "component_count": meta.component_count,
                        "node_count": meta.node_count,
                    },
                )
                approval = await self._park_for_approval(
                    recorder,
                    name="Approval: Storyblok CMS Publication",
                    description="Waiting for human approval before publishing to Storyblok CMS.",
                    step_metadata={
                        "story_name": meta.story_name,
                        "story_slug": meta.story_slug,
                        "final_story": event.final_storyblok_story,
                    },
                    approval_type="figma-to-storyblok",
                    risk="medium",
                )
        except Exception as exc:
            logger.exception("Error processing %s", FIGMA_TO_STORYBLOK_READY)
            await self._report_failure(
                f"Failed to create approval for Figma to Storyblok: {meta.story_name}: {exc}"
            )
            return None

        await self._fanout.fan_out(
            f'Figma to Storyblok transformation complete! Approval needed for "{meta.story_name}" publication.',
            chat_text=(
                "🎨 *Figma to Storyblok Ready for Approval*\n\n"
                f"*Story:* {meta.story_name}\n"
                f"*Slug:* {meta.story_slug}\n"
                f"*Components:* {meta.component_count}\n\n"
                "✅ Transformation complete! Awaiting approval for CMS publication."
            ),
        )
        return approval

    # ------------------------------------------------------------------
    # Editor producer
    # ------------------------------------------------------------------

    async def handle_editor_completed(
        self, payload: StoryblokEditorCompleted | dict[str, Any]
    ) -> Approval | None:
        """Create a cms-publication pipeline for an edit of an existing document.

        Returns:
            The pending approval, or None when initiation failed.
        """
        set_event_context(STORYBLOK_EDITOR_COMPLETED)
        event = StoryblokEditorCompleted.model_validate(payload)
        meta = event.metadata
        try:
            diff_service: BaseDiffService = self._collaborators.require("diff")
            logger.info("Generating diff between original and edited document")
            diff = await diff_service.generate_diff(
                event.original_storyblok, event.edited_storyblok, DiffOptions()
            )
            diff_summary = diff_service.summarize(diff)

            metadata = CmsUpdateMetadata(
                original_story=event.original_storyblok,
                edited_story=event.edited_storyblok,
                story_name=meta.story_name,
                story_slug=meta.story_slug,
                space_id=meta.space_id or self._settings.cms_default_space_id,
                transformation_time=meta.transformation_time,
                original_component_count=meta.original_component_count,
                final_component_count=meta.final_component_count,
                irf=event.irf,
                diff=diff,
                diff_summary=diff_summary,
            )
            async with self._store.transaction():
                recorder = await self._create_pipeline(
                    NewPipeline(
                        name=f"Storyblok Editor Pipeline - {meta.story_name}",
                        description="Editing Storyblok content via IRF transformation",
                        source="storyblok-editor",
                        type="cms-publication",
                        metadata=dump_metadata(metadata),
                    )
                )
                await recorder.record_completed(
                    "Storyblok Content Editing",
                    "Converting Storyblok to IRF, editing, and converting back",
                    duration=meta.transformation_time or None,
                    metadata={
                        "original_component_count": meta.original_component_count,
                        "final_component_count": meta.final_component_count,
                    },
                )
                approval = await self._park_for_approval(
                    recorder,
                    name="Approval: Storyblok Content Update",
                    description="Waiting for human approval before updating Storyblok content.",
                    step_metadata={
                        "story_name": meta.story_name,
                        "story_slug": meta.story_slug,
                        "diff_summary": diff_summary,
                    },
                    approval_type="storyblok-editor",
                    risk="low",
                )
        except Exception as exc:
            logger.exception("Error processing %s", STORYBLOK_EDITOR_COMPLETED)
            await self._report_failure(
                f"Failed to create approval for Storyblok editing: {meta.story_name}: {exc}"
            )
            return None

        await self._fanout.fan_out(
            f'Storyblok content editing complete! Approval needed for "{meta.story_name}" update.',
            chat_text=(
                "✏️ *Storyblok Editor Ready for Approval*\n\n"
                f"*Story:* {meta.story_name}\n"
                f"*Slug:* {meta.story_slug}\n"
                f"*Components:* {meta.original_component_count} → {meta.final_component_count}\n"
                f"*Transformation Time:* {meta.transformation_time}\n"
                f"*Changes:* {diff_summary}\n\n"
                "✅ Content editing complete! Awaiting approval for CMS update."
            ),
        )
        return approval

    # ------------------------------------------------------------------
    # Release producer
    # ------------------------------------------------------------------

    async def handle_release_ready(
        self, payload: ReleaseReady | dict[str, Any]
    ) -> Approval | None:
        """Create a changelog pipeline: fetch the PR, summarize, park for approval.

        Repository and summarizer calls run before any row is written; the
        rows are then created in one short transaction with the measured
        durations. No ready notification is sent; the approval list is the
        signal.
        """
        set_event_context(RELEASE_READY)
        event = ReleaseReady.model_validate(payload)
        owner, repo, pr_number = event.repo_owner, event.repo_name, event.pr_number
        try:
            repository: BaseRepositoryClient = self._collaborators.require("repository")
            summarizer: BaseReleaseSummarizer = self._collaborators.require("summarizer")

            set_step_context("Get PR Commits")
            commits, commits_took = await _timed(
                repository.get_pull_request_commits(owner, repo, pr_number)
            )
            set_step_context("Get PR Details")
            pr_details, details_took = await _timed(
                repository.get_pull_request_details(owner, repo, pr_number)
            )
            title = pr_details.get("title") if isinstance(pr_details, dict) else None
            set_step_context("Summarize Commits")
            summary, summary_took = await _timed(summarizer.summarize_commits(commits, title))

            async with self._store.transaction():
                recorder = await self._create_pipeline(
                    NewPipeline(
                        name=f"Release Pipeline for {owner}/{repo} PR #{pr_number}",
                        description="Creating and validating release changelog",
                        source="release",
                        type="changelog",
                        metadata=dump_metadata(
                            ChangelogMetadata(
                                repo_owner=owner,
                                repo_name=repo,
                                pr_number=pr_number,
                                pr_title=title if isinstance(title, str) else None,
                                summary=summary,
                                commits=commits,
                                pr_details=pr_details,
                            )
                        ),
                    )
                )
                await recorder.record_completed(
                    "Get PR Commits", "Fetching commits from the pull request",
                    duration=commits_took,
                )
                await recorder.record_completed(
                    "Get PR Details", "Fetching pull request details",
                    duration=details_took,
                )
                await recorder.record_completed(
                    "Summarize Commits", "Using AI to summarize the changes",
                    duration=summary_took, metadata={"summary": summary},
                )
                approval = await self._park_for_approval(
                    recorder,
                    name="Approval: Changelog Creation",
                    description="Waiting for human approval before creating changelog entry.",
                    step_metadata={"summary": summary},
                    approval_type="changelog",
                    risk="low",
                )
        except Exception as exc:
            logger.exception("Error processing %s", RELEASE_READY)
            await self._report_failure(
                f"Failed to create changelog for {owner}/{repo} PR #{pr_number}: {exc}"
            )
            return None

        logger.info("Changelog for %s/%s PR #%s awaiting approval", owner, repo, pr_number)
        return approval

    # ------------------------------------------------------------------
    # Shared
    # ------------------------------------------------------------------

    async def _create_pipeline(self, data: NewPipeline) -> StepRecorder:
        pipeline = await self._store.create_pipeline(data)
        set_pipeline_context(pipeline.id)
        logger.info("Created pipeline '%s' (%s/%s)", pipeline.name, pipeline.type, pipeline.source)
        return StepRecorder(self._store, pipeline.id)

    async def _park_for_approval(
        self,
        recorder: StepRecorder,
        name: str,
        description: str,
        step_metadata: dict[str, Any],
        approval_type: str,
        risk: Risk,
    ) -> Approval:
        step = await recorder.park(name, description, metadata=step_metadata)
        approval = await self._store.create_approval(
            NewApproval(pipeline_step_id=step.id, approval_type=approval_type, risk=risk)
        )
        logger.info("Pipeline parked at '%s' (approval %s, risk=%s)", name, approval.id, risk)
        return approval

    async def _report_failure(self, message: str) -> None:
        await self._fanout.fan_out(message, chat_text=f"❌ {message}")


async def _timed(call: Awaitable[T]) -> tuple[T, str]:
    """Await ``call`` and return its result with the elapsed time formatted."""
    started = time.monotonic()
    result = await call
    return result, format_duration(timedelta(seconds=time.monotonic() - started))
