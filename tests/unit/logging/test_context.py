# tests/unit/logging/test_context.py — v2
"""Tests for logging/context.py — contextual logging variables."""

from __future__ import annotations

import asyncio

import pytest

from thegrid.logging.context import (
    clear_context,
    get_context,
    set_event_context,
    set_pipeline_context,
    set_step_context,
)


class TestLogContext:
    def setup_method(self):
        clear_context()

    def teardown_method(self):
        clear_context()

    def test_initial_state(self):
        ctx = get_context()
        assert ctx.pipeline_id is None
        assert ctx.event is None
        assert ctx.step is None
        assert ctx.origin is None

    def test_set_event_context(self):
        set_event_context("approval.granted", "pipe-1")
        ctx = get_context()
        assert ctx.event == "approval.granted"
        assert ctx.pipeline_id == "pipe-1"

    def test_event_context_resets_pipeline(self):
        set_event_context("release.ready", "old")
        set_event_context("release.ready")
        assert get_context().pipeline_id is None

    def test_set_pipeline_context(self):
        set_event_context("release.ready")
        set_pipeline_context("pipe-2")
        assert get_context().pipeline_id == "pipe-2"

    def test_step_context_keeps_origin_when_omitted(self):
        set_step_context("Create Changelog", origin="slack")
        set_step_context("Send Notifications")
        ctx = get_context()
        assert ctx.step == "Send Notifications"
        assert ctx.origin == "slack"

    def test_as_dict_filters_none(self):
        set_event_context("release.ready", "pipe-1")
        d = get_context().as_dict()
        assert d == {"pipeline_id": "pipe-1", "event": "release.ready"}

    def test_clear(self):
        set_event_context("release.ready", "pipe-1")
        set_step_context("x", origin="api")
        clear_context()
        assert get_context().as_dict() == {}


class TestContextIsolation:
    @pytest.mark.asyncio
    async def test_tasks_do_not_leak_context(self):
        async def handler(pipeline_id: str) -> str | None:
            set_pipeline_context(pipeline_id)
            await asyncio.sleep(0)
            return get_context().pipeline_id

        results = await asyncio.gather(
            asyncio.create_task(handler("a")), asyncio.create_task(handler("b"))
        )
        assert results == ["a", "b"]
