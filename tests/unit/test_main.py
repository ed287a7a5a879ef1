# tests/unit/test_main.py — v2
"""Tests for main.py — CLI entry point."""

from __future__ import annotations

import asyncio

import pytest

from thegrid.main import _build_parser, main
from thegrid.store.sqlite_store import SqlitePipelineStore
from thegrid.workflow.models import NewApproval, NewPipeline, NewPipelineStep


# ---------------------------------------------------------------------------
# Parser tests
# ---------------------------------------------------------------------------

class TestBuildParser:
    def test_version_flag(self):
        parser = _build_parser()
        with pytest.raises(SystemExit) as exc_info:
            parser.parse_args(["--version"])
        assert exc_info.value.code == 0

    def test_pipelines_defaults(self):
        args = _build_parser().parse_args(["pipelines"])
        assert args.command == "pipelines"
        assert (args.limit, args.offset) == (20, 0)

    def test_show_subcommand(self):
        args = _build_parser().parse_args(["show", "abc"])
        assert args.pipeline_id == "abc"

    def test_approvals_status_choices(self):
        args = _build_parser().parse_args(["approvals", "--status", "pending"])
        assert args.status == "pending"
        with pytest.raises(SystemExit):
            _build_parser().parse_args(["approvals", "--status", "maybe"])

    def test_reject_requires_reason(self):
        with pytest.raises(SystemExit):
            _build_parser().parse_args(["reject", "a1"])


# ---------------------------------------------------------------------------
# Commands against a sqlite store
# ---------------------------------------------------------------------------

@pytest.fixture
def seeded_db(tmp_path, monkeypatch):
    db = tmp_path / "grid.db"
    monkeypatch.setenv("STORE_BACKEND", "sqlite")
    monkeypatch.setenv("STORE_SQLITE_PATH", str(db))
    monkeypatch.delenv("CHAT_WEBHOOK_URL", raising=False)
    monkeypatch.delenv("LOG_FILE", raising=False)

    async def seed():
        store = SqlitePipelineStore(db)
        try:
            pipeline = await store.create_pipeline(
                NewPipeline(name="Release Pipeline for acme/web PR #7",
                            source="release", type="changelog")
            )
            step = await store.create_pipeline_step(
                NewPipelineStep(pipeline_id=pipeline.id, name="Approval: Changelog Creation",
                                status="waiting_approval")
            )
            approval = await store.create_approval(
                NewApproval(pipeline_step_id=step.id, approval_type="changelog")
            )
            return pipeline.id, approval.id
        finally:
            store.close()

    return asyncio.run(seed())


class TestMain:
    def test_no_command_prints_help(self, capsys):
        assert main([]) == 1
        assert "usage: thegrid" in capsys.readouterr().out

    def test_pipelines(self, seeded_db, capsys):
        assert main(["pipelines"]) == 0
        out = capsys.readouterr().out
        assert "Pipelines (1 of 1)" in out
        assert "changelog/release" in out

    def test_show(self, seeded_db, capsys):
        pipeline_id, _ = seeded_db
        assert main(["show", pipeline_id]) == 0
        out = capsys.readouterr().out
        assert "Release Pipeline for acme/web PR #7" in out
        assert "waiting_approval" in out

    def test_show_missing(self, seeded_db):
        assert main(["show", "nope"]) == 1

    def test_approvals_and_reject(self, seeded_db, capsys):
        pipeline_id, approval_id = seeded_db
        assert main(["approvals", "--status", "pending"]) == 0
        assert approval_id in capsys.readouterr().out

        assert main(["reject", approval_id, "--reason", "Wrong PR"]) == 0
        assert f"Rejected approval {approval_id}" in capsys.readouterr().out

        assert main(["show", pipeline_id]) == 0
        assert "cancelled" in capsys.readouterr().out

    def test_reject_unknown_returns_error(self, seeded_db):
        assert main(["reject", "missing", "--reason", "x"]) == 1

    def test_log_file_from_settings(self, seeded_db, tmp_path, monkeypatch, capsys):
        log_file = tmp_path / "logs" / "cli.log"
        monkeypatch.setenv("LOG_FILE", str(log_file))
        monkeypatch.setenv("LOG_LEVEL", "INFO")
        assert main(["pipelines"]) == 0

        assert "Runtime ready" in log_file.read_text(encoding="utf-8")
        captured = capsys.readouterr()
        assert "Runtime ready" not in captured.out
        assert "Runtime ready" not in captured.err
        assert "Pipelines (1 of 1)" in captured.out

    def test_memory_backend_warns(self, tmp_path, monkeypatch, capsys):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("STORE_BACKEND", "memory")
        monkeypatch.delenv("CHAT_WEBHOOK_URL", raising=False)
        monkeypatch.delenv("LOG_FILE", raising=False)
        assert main(["pipelines"]) == 0
        captured = capsys.readouterr()
        assert "nothing persists between commands" in captured.err
        assert "nothing persists" not in captured.out
