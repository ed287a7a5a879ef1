# tests/unit/pipeline/test_continuations.py — v1
"""Tests for the built-in continuations (CMS create/update, changelog)."""

from __future__ import annotations

import pytest

from thegrid.events.types import ApprovalGranted
from thegrid.integrations.base import ChangelogEntryInput, CmsDocumentSpec, MissingCollaboratorError
from thegrid.pipeline.continuations.base import ContinuationContext, ContinuationError
from thegrid.pipeline.continuations.changelog import ChangelogContinuation
from thegrid.pipeline.continuations.cms_create import CmsCreateContinuation
from thegrid.pipeline.continuations.cms_update import CmsUpdateContinuation
from thegrid.pipeline.steps import StepRecorder
from thegrid.workflow.metadata import (
    ChangelogMetadata,
    CmsCreateMetadata,
    CmsUpdateMetadata,
    dump_metadata,
)
from thegrid.workflow.models import NewPipeline


async def _context(store, collaborators, settings, metadata, source, ptype, **event_fields):
    pipeline = await store.create_pipeline(
        NewPipeline(name="p", source=source, type=ptype, metadata=dump_metadata(metadata))
    )
    return ContinuationContext(
        pipeline=pipeline,
        metadata=metadata,
        event=ApprovalGranted(pipeline_id=pipeline.id, approval_step_id="s", **event_fields),
        steps=StepRecorder(store, pipeline.id),
        collaborators=collaborators,
        settings=settings,
    )


def _create_meta(**overrides) -> CmsCreateMetadata:
    fields = dict(
        story={"name": "Landing Page", "slug": "landing-page", "content": {"body": []},
               "tag_list": ["marketing"]},
        story_name="Landing Page",
        story_slug="landing-page",
        component_count=5,
    )
    fields.update(overrides)
    return CmsCreateMetadata(**fields)


class TestCmsCreateContinuation:
    @pytest.mark.asyncio
    async def test_creates_draft(self, store, collaborators, settings, cms):
        ctx = await _context(store, collaborators, settings, _create_meta(),
                             "figma-to-storyblok", "cms-publication")
        result = await CmsCreateContinuation().resume(ctx)

        cms.create_document.assert_awaited_once()
        spec = cms.create_document.await_args.args[0]
        assert isinstance(spec, CmsDocumentSpec)
        assert spec.name == "Landing Page"
        assert spec.published is False
        assert spec.tag_list == ["marketing"]
        assert cms.create_document.await_args.kwargs["space_id"] == "317084"
        assert result.notification_message == 'Storyblok page "Landing Page" published successfully!'
        assert "*Components:* 5" in result.chat_message

        pipeline = await store.get_pipeline(ctx.pipeline.id)
        step = pipeline.steps[-1]
        assert step.name == "Publish to Storyblok CMS"
        assert step.status == "completed"
        assert step.metadata["cms_response"] == {"id": 9001, "slug": "landing-page"}

    @pytest.mark.asyncio
    async def test_metadata_space_id_wins(self, store, collaborators, settings, cms):
        ctx = await _context(store, collaborators, settings, _create_meta(space_id="999"),
                             "figma-to-storyblok", "cms-publication")
        await CmsCreateContinuation().resume(ctx)
        assert cms.create_document.await_args.kwargs["space_id"] == "999"

    @pytest.mark.asyncio
    async def test_falls_back_to_metadata_names(self, store, collaborators, settings, cms):
        ctx = await _context(store, collaborators, settings,
                             _create_meta(story={"content": {}}),
                             "figma-to-storyblok", "cms-publication")
        await CmsCreateContinuation().resume(ctx)
        spec = cms.create_document.await_args.args[0]
        assert (spec.name, spec.slug) == ("Landing Page", "landing-page")

    @pytest.mark.asyncio
    async def test_cms_failure_fails_step(self, store, collaborators, settings, cms):
        cms.create_document.side_effect = RuntimeError("CMS 503")
        ctx = await _context(store, collaborators, settings, _create_meta(),
                             "figma-to-storyblok", "cms-publication")
        with pytest.raises(RuntimeError, match="CMS 503"):
            await CmsCreateContinuation().resume(ctx)
        step = (await store.get_pipeline(ctx.pipeline.id)).steps[-1]
        assert step.status == "failed"
        assert step.metadata["error"] == "CMS 503"

    @pytest.mark.asyncio
    async def test_empty_story_rejected(self, store, collaborators, settings):
        ctx = await _context(store, collaborators, settings, _create_meta(story={}),
                             "figma-to-storyblok", "cms-publication")
        with pytest.raises(ContinuationError):
            await CmsCreateContinuation().resume(ctx)

    @pytest.mark.asyncio
    async def test_wrong_metadata_kind(self, store, collaborators, settings):
        meta = ChangelogMetadata(repo_owner="a", repo_name="b", pr_number="1")
        ctx = await _context(store, collaborators, settings, meta, "release", "changelog")
        with pytest.raises(ContinuationError):
            await CmsCreateContinuation().resume(ctx)

    @pytest.mark.asyncio
    async def test_missing_cms_client(self, store, collaborators, settings):
        collaborators.cms = None
        ctx = await _context(store, collaborators, settings, _create_meta(),
                             "figma-to-storyblok", "cms-publication")
        with pytest.raises(MissingCollaboratorError):
            await CmsCreateContinuation().resume(ctx)


class TestCmsUpdateContinuation:
    @pytest.mark.asyncio
    async def test_updates_original_document(self, store, collaborators, settings, cms):
        meta = CmsUpdateMetadata(
            original_story={"id": 42, "name": "About"},
            edited_story={"name": "About us", "slug": "about", "content": {"body": []},
                          "parent_id": 7, "position": 3, "internal": "dropped"},
            story_name="About",
            story_slug="about",
            original_component_count=3,
            final_component_count=4,
            transformation_time="4s",
        )
        ctx = await _context(store, collaborators, settings, meta,
                             "storyblok-editor", "cms-publication")
        result = await CmsUpdateContinuation().resume(ctx)

        args = cms.update_document.await_args
        assert args.args[0] == "42"
        patch = args.args[1]
        assert patch["name"] == "About us"
        assert patch["parent_id"] == 7
        assert "internal" not in patch
        assert args.kwargs["force_update"] is True
        assert args.kwargs["publish"] is False
        assert result.notification_message == 'Storyblok story "About" updated successfully!'
        assert "3 → 4" in result.chat_message

        step = (await store.get_pipeline(ctx.pipeline.id)).steps[-1]
        assert step.name == "Update Existing Storyblok Story"
        assert step.metadata["original_story_id"] == "42"
        assert step.metadata["story_name"] == "About us"


class TestChangelogContinuation:
    @pytest.mark.asyncio
    async def test_event_fields_win_and_summary_cleaned(
        self, store, collaborators, settings, changelog
    ):
        meta = ChangelogMetadata(
            repo_owner="acme", repo_name="web", pr_number="7",
            pr_title="Stored title", summary="stored summary",
        )
        ctx = await _context(
            store, collaborators, settings, meta, "release", "changelog",
            summary='"Fixed bug\\nAdded feature"',
            pr_details={"title": "Release 1.2"},
        )
        result = await ChangelogContinuation().resume(ctx)

        entry = changelog.create_entry.await_args.args[0]
        assert isinstance(entry, ChangelogEntryInput)
        assert entry.summary == "Fixed bug\nAdded feature"
        assert entry.title == "Release 1.2"
        assert entry.pr_number == "7"
        assert entry.created_by == "system"
        assert result.notification_message == "Release changelog created for acme/web PR #7"
        assert result.output["entry"] == {"id": "cl_1"}
        step = (await store.get_pipeline(ctx.pipeline.id)).steps[-1]
        assert (step.name, step.status) == ("Create Changelog", "completed")

    @pytest.mark.asyncio
    async def test_falls_back_to_stored_metadata(self, store, collaborators, settings, changelog):
        meta = ChangelogMetadata(
            repo_owner="acme", repo_name="web", pr_number="7",
            pr_title="Stored title", summary="stored summary",
        )
        ctx = await _context(store, collaborators, settings, meta, "release", "changelog")
        await ChangelogContinuation().resume(ctx)
        entry = changelog.create_entry.await_args.args[0]
        assert entry.summary == "stored summary"
        assert entry.title == "Stored title"

    @pytest.mark.asyncio
    async def test_non_string_title_ignored(self, store, collaborators, settings, changelog):
        meta = ChangelogMetadata(repo_owner="acme", repo_name="web", pr_number="7")
        ctx = await _context(store, collaborators, settings, meta, "release", "changelog",
                             pr_details={"title": 123})
        await ChangelogContinuation().resume(ctx)
        assert changelog.create_entry.await_args.args[0].title is None

    @pytest.mark.asyncio
    async def test_store_failure(self, store, collaborators, settings, changelog):
        changelog.create_entry.side_effect = RuntimeError("db down")
        meta = ChangelogMetadata(repo_owner="acme", repo_name="web", pr_number="7", summary="s")
        ctx = await _context(store, collaborators, settings, meta, "release", "changelog")
        with pytest.raises(RuntimeError):
            await ChangelogContinuation().resume(ctx)
        step = (await store.get_pipeline(ctx.pipeline.id)).steps[-1]
        assert step.status == "failed"
        assert step.metadata["error"] == "db down"
