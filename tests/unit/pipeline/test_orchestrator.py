# tests/unit/pipeline/test_orchestrator.py — v1
"""Tests for pipeline/orchestrator.py — resumption after approval."""

from __future__ import annotations

import logging

import pytest

from thegrid.events.types import APPROVAL_GRANTED, PIPELINE_UNHANDLED, PipelineUnhandled
from thegrid.pipeline.orchestrator import PipelineOrchestrator
from thegrid.workflow.models import NewApproval, NewPipeline, NewPipelineStep


async def _parked_release(runtime, release_payload):
    approval = await runtime.orchestrator.handle_release_ready(release_payload)
    step = await runtime.store.get_pipeline_step(approval.pipeline_step_id)
    return approval, step


async def _parked_unknown(store, source="video-studio", ptype="video-render"):
    pipeline = await store.create_pipeline(
        NewPipeline(name="Render", source=source, type=ptype, metadata={"kind": "video"})
    )
    step = await store.create_pipeline_step(
        NewPipelineStep(pipeline_id=pipeline.id, name="Approve", status="waiting_approval")
    )
    await store.create_approval(NewApproval(pipeline_step_id=step.id, approval_type="video"))
    return pipeline, step


class TestRegistration:
    def test_register_is_idempotent(self, runtime):
        runtime.orchestrator.register()
        assert runtime.bus.subscriber_count(APPROVAL_GRANTED) == 1
        assert runtime.bus.list_event_names() == [
            "approval.granted",
            "figma-to-storyblok.ready",
            "release.ready",
            "storyblok-editor.completed",
        ]

    def test_unregister(self, runtime):
        runtime.orchestrator.unregister()
        assert runtime.bus.list_event_names() == []


class TestHandleApprovalGranted:
    @pytest.mark.asyncio
    async def test_completes_release_pipeline(self, runtime, release_payload, changelog, inbox):
        _, step = await _parked_release(runtime, release_payload)

        outcome = await runtime.orchestrator.handle_approval_granted(
            {"pipelineId": step.pipeline_id, "approvalStepId": step.id, "origin": "slack"}
        )

        assert outcome == "completed"
        pipeline = await runtime.store.get_pipeline(step.pipeline_id)
        assert pipeline.status == "completed"
        assert pipeline.resumed_at is not None
        names = [s.name for s in pipeline.steps]
        assert names[-2:] == ["Create Changelog", "Send Notifications"]
        assert all(s.status == "completed" for s in pipeline.steps)
        assert all(s.completed_at is not None for s in pipeline.steps)
        assert changelog.create_entry.await_args.args[0].summary == "Fixed bug\nAdded feature"
        assert inbox.list_for("1")[-1].message == "Release changelog created for acme/web PR #7"

    @pytest.mark.asyncio
    async def test_missing_pipeline(self, runtime, caplog):
        with caplog.at_level(logging.ERROR):
            outcome = await runtime.orchestrator.handle_approval_granted(
                {"pipelineId": "nope", "approvalStepId": "s"}
            )
        assert outcome == "missing"
        assert "Pipeline not found: nope" in caplog.text

    @pytest.mark.asyncio
    async def test_duplicate_delivery_is_ignored(self, runtime, release_payload, changelog):
        _, step = await _parked_release(runtime, release_payload)
        event = {"pipelineId": step.pipeline_id, "approvalStepId": step.id}

        assert await runtime.orchestrator.handle_approval_granted(event) == "completed"
        assert await runtime.orchestrator.handle_approval_granted(event) == "duplicate"
        assert changelog.create_entry.await_count == 1

    @pytest.mark.asyncio
    async def test_continuation_failure_marks_failed(self, runtime, release_payload, changelog):
        changelog.create_entry.side_effect = RuntimeError("db down")
        _, step = await _parked_release(runtime, release_payload)

        outcome = await runtime.orchestrator.handle_approval_granted(
            {"pipelineId": step.pipeline_id, "approvalStepId": step.id}
        )

        assert outcome == "failed"
        pipeline = await runtime.store.get_pipeline(step.pipeline_id)
        assert pipeline.status == "failed"
        failed = pipeline.steps[-1]
        assert failed.name == "Create Changelog"
        assert failed.metadata["error"] == "db down"
        assert "Send Notifications" not in [s.name for s in pipeline.steps]

    @pytest.mark.asyncio
    async def test_step_of_other_pipeline_leaves_pipeline_active(self, runtime, release_payload, changelog):
        _, step = await _parked_release(runtime, release_payload)
        outcome = await runtime.orchestrator.handle_approval_granted(
            {"pipelineId": step.pipeline_id, "approvalStepId": "unrelated"}
        )
        assert outcome == "stale"
        pipeline = await runtime.store.get_pipeline(step.pipeline_id)
        assert pipeline.status == "active"
        assert pipeline.resumed_at is None
        assert pipeline.step_by_id(step.id).status == "waiting_approval"

        # The real grant still resumes it.
        assert await runtime.orchestrator.handle_approval_granted(
            {"pipelineId": step.pipeline_id, "approvalStepId": step.id}
        ) == "completed"
        changelog.create_entry.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_step_without_approval_is_stale(self, runtime, release_payload, changelog):
        _, step = await _parked_release(runtime, release_payload)
        pipeline = await runtime.store.get_pipeline(step.pipeline_id)
        fetch = pipeline.steps[0]
        assert fetch.name == "Get PR Commits"
        outcome = await runtime.orchestrator.handle_approval_granted(
            {"pipelineId": pipeline.id, "approvalStepId": fetch.id}
        )
        assert outcome == "stale"
        assert (await runtime.store.get_pipeline(pipeline.id)).resumed_at is None
        changelog.create_entry.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_corrupt_metadata_marks_failed(self, runtime, release_payload):
        _, step = await _parked_release(runtime, release_payload)
        await runtime.store.update_pipeline_metadata(step.pipeline_id, {"kind": "bogus"})
        outcome = await runtime.orchestrator.handle_approval_granted(
            {"pipelineId": step.pipeline_id, "approvalStepId": step.id}
        )
        assert outcome == "failed"

    @pytest.mark.asyncio
    async def test_notification_errors_recorded(self, runtime, release_payload, inbox, monkeypatch):
        _, step = await _parked_release(runtime, release_payload)

        async def broken(*args, **kwargs):
            raise RuntimeError("inbox offline")

        monkeypatch.setattr(inbox, "create_notification", broken)
        outcome = await runtime.orchestrator.handle_approval_granted(
            {"pipelineId": step.pipeline_id, "approvalStepId": step.id}
        )

        assert outcome == "completed"
        notify = (await runtime.store.get_pipeline(step.pipeline_id)).steps[-1]
        assert notify.name == "Send Notifications"
        assert notify.status == "completed"
        assert notify.metadata["errors"] == {"notification": "inbox offline"}


class TestUnhandledPipelines:
    @pytest.mark.asyncio
    async def test_ignore_policy_keeps_active(self, runtime, caplog):
        pipeline, step = await _parked_unknown(runtime.store)
        seen: list[PipelineUnhandled] = []
        runtime.bus.subscribe(PIPELINE_UNHANDLED, seen.append)

        with caplog.at_level(logging.ERROR):
            outcome = await runtime.orchestrator.handle_approval_granted(
                {"pipelineId": pipeline.id, "approvalStepId": step.id}
            )

        assert outcome == "unhandled"
        loaded = await runtime.store.get_pipeline(pipeline.id)
        assert loaded.status == "active"
        assert loaded.resumed_at is None
        assert seen[0].type == "video-render"
        assert seen[0].policy == "ignore"
        assert "cms-publication/figma-to-storyblok" in seen[0].supported
        assert "video-render" in caplog.text

    @pytest.mark.asyncio
    async def test_unknown_cms_source_is_unhandled(self, runtime):
        pipeline, step = await _parked_unknown(
            runtime.store, source="wordpress", ptype="cms-publication"
        )
        outcome = await runtime.orchestrator.handle_approval_granted(
            {"pipelineId": pipeline.id, "approvalStepId": step.id}
        )
        assert outcome == "unhandled"

    @pytest.mark.asyncio
    async def test_fail_policy(self, store, bus, collaborators, settings):
        settings = settings.model_copy(update={"unhandled_pipeline_policy": "fail"})
        orchestrator = PipelineOrchestrator(store, bus, collaborators, settings)
        pipeline, step = await _parked_unknown(store)

        outcome = await orchestrator.handle_approval_granted(
            {"pipelineId": pipeline.id, "approvalStepId": step.id}
        )

        assert outcome == "unhandled"
        assert (await store.get_pipeline(pipeline.id)).status == "failed"
