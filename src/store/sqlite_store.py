# src/store/sqlite_store.py — v1
"""SQLite-based pipeline store (STORE_BACKEND=sqlite).

Uses stdlib sqlite3, no external dependency. The connection runs in
autocommit mode and every write goes through ``transaction()``, which
issues ``BEGIN IMMEDIATE`` / ``COMMIT`` / ``ROLLBACK`` explicitly.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from pathlib import Path
from typing import Any

from thegrid.store.base_store import (
    ApprovalNotFoundError,
    BasePipelineStore,
    PipelineNotFoundError,
    StepNotFoundError,
)
from thegrid.workflow.models import (
    Approval,
    ApprovalStatus,
    NewApproval,
    NewPipeline,
    NewPipelineStep,
    Origin,
    Pipeline,
    PipelineStatus,
    PipelineStep,
    StepPatch,
    utcnow,
)
from thegrid.workflow.state_machine import (
    apply_step_patch,
    check_approval_resolution,
    check_pipeline_transition,
    check_single_pending,
    initial_patch,
)

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS pipelines (
    seq INTEGER PRIMARY KEY AUTOINCREMENT,
    id TEXT NOT NULL UNIQUE,
    name TEXT NOT NULL,
    description TEXT,
    source TEXT NOT NULL,
    type TEXT NOT NULL,
    status TEXT NOT NULL,
    origin TEXT NOT NULL,
    metadata TEXT NOT NULL DEFAULT '{}',
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    resumed_at TEXT
);
CREATE TABLE IF NOT EXISTS pipeline_steps (
    seq INTEGER PRIMARY KEY AUTOINCREMENT,
    id TEXT NOT NULL UNIQUE,
    pipeline_id TEXT NOT NULL REFERENCES pipelines(id),
    name TEXT NOT NULL,
    description TEXT,
    status TEXT NOT NULL,
    started_at TEXT,
    completed_at TEXT,
    duration TEXT,
    metadata TEXT NOT NULL DEFAULT '{}',
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS approvals (
    seq INTEGER PRIMARY KEY AUTOINCREMENT,
    id TEXT NOT NULL UNIQUE,
    pipeline_step_id TEXT NOT NULL REFERENCES pipeline_steps(id),
    approval_type TEXT NOT NULL,
    risk TEXT NOT NULL,
    status TEXT NOT NULL,
    origin TEXT NOT NULL,
    reason TEXT,
    created_at TEXT NOT NULL,
    approved_at TEXT,
    rejected_at TEXT
);
CREATE INDEX IF NOT EXISTS idx_steps_pipeline ON pipeline_steps(pipeline_id);
CREATE INDEX IF NOT EXISTS idx_approvals_status ON approvals(status);
CREATE UNIQUE INDEX IF NOT EXISTS idx_approvals_one_pending
    ON approvals(pipeline_step_id) WHERE status = 'pending';
"""

_PIPELINE_COLS = (
    "id, name, description, source, type, status, origin, metadata, "
    "created_at, updated_at, resumed_at"
)
_STEP_COLS = (
    "id, pipeline_id, name, description, status, started_at, completed_at, "
    "duration, metadata, created_at, updated_at"
)
_APPROVAL_COLS = (
    "id, pipeline_step_id, approval_type, risk, status, origin, reason, "
    "created_at, approved_at, rejected_at"
)


class SqlitePipelineStore(BasePipelineStore):
    """SQLite-backed store that survives process restarts."""

    def __init__(self, db_path: Path | str) -> None:
        super().__init__()
        if str(db_path) == ":memory:":
            target = ":memory:"
        else:
            path = Path(db_path).expanduser()
            path.parent.mkdir(parents=True, exist_ok=True)
            target = str(path)
        self._db_path = target
        self._conn = sqlite3.connect(target, isolation_level=None)
        self._conn.row_factory = sqlite3.Row
        if target != ":memory:":
            self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA foreign_keys=ON")
        self._conn.executescript(_SCHEMA)

    def _begin(self) -> None:
        self._conn.execute("BEGIN IMMEDIATE")

    def _commit(self) -> None:
        self._conn.execute("COMMIT")

    def _rollback(self) -> None:
        if self._conn.in_transaction:
            self._conn.execute("ROLLBACK")
            logger.debug("Rolled back sqlite transaction on %s", self._db_path)

    # --- Pipelines ---

    async def create_pipeline(self, data: NewPipeline) -> Pipeline:
        pipeline = Pipeline(**data.model_dump())
        async with self.transaction():
            self._conn.execute(
                f"INSERT INTO pipelines ({_PIPELINE_COLS}) VALUES (?,?,?,?,?,?,?,?,?,?,?)",
                (
                    pipeline.id, pipeline.name, pipeline.description,
                    pipeline.source, pipeline.type, pipeline.status, pipeline.origin,
                    json.dumps(pipeline.metadata, default=str),
                    _ts(pipeline.created_at), _ts(pipeline.updated_at), None,
                ),
            )
        return pipeline

    async def get_pipeline(self, pipeline_id: str) -> Pipeline | None:
        row = self._conn.execute(
            f"SELECT {_PIPELINE_COLS} FROM pipelines WHERE id = ?", (pipeline_id,)
        ).fetchone()
        if row is None:
            return None
        return self._pipeline_with_steps(row)

    async def list_pipelines(
        self, limit: int = 20, offset: int = 0
    ) -> tuple[list[Pipeline], int]:
        total = self._conn.execute("SELECT COUNT(*) FROM pipelines").fetchone()[0]
        rows = self._conn.execute(
            f"SELECT {_PIPELINE_COLS} FROM pipelines "
            "ORDER BY created_at DESC, seq DESC LIMIT ? OFFSET ?",
            (limit, offset),
        ).fetchall()
        return [self._pipeline_with_steps(r) for r in rows], total

    async def update_pipeline_status(
        self, pipeline_id: str, status: PipelineStatus
    ) -> Pipeline:
        async with self.transaction():
            current = self._require_pipeline_row(pipeline_id)["status"]
            check_pipeline_transition(pipeline_id, current, status)
            if current != status:
                self._conn.execute(
                    "UPDATE pipelines SET status = ?, updated_at = ? WHERE id = ?",
                    (status, _ts(utcnow()), pipeline_id),
                )
        return await self._load_pipeline(pipeline_id)

    async def update_pipeline_metadata(
        self, pipeline_id: str, metadata: dict[str, Any], merge: bool = True
    ) -> Pipeline:
        async with self.transaction():
            row = self._require_pipeline_row(pipeline_id)
            merged = {**json.loads(row["metadata"]), **metadata} if merge else dict(metadata)
            self._conn.execute(
                "UPDATE pipelines SET metadata = ?, updated_at = ? WHERE id = ?",
                (json.dumps(merged, default=str), _ts(utcnow()), pipeline_id),
            )
        return await self._load_pipeline(pipeline_id)

    async def claim_resumption(self, pipeline_id: str) -> bool:
        now = _ts(utcnow())
        async with self.transaction():
            cursor = self._conn.execute(
                "UPDATE pipelines SET resumed_at = ?, updated_at = ? "
                "WHERE id = ? AND status = 'active' AND resumed_at IS NULL",
                (now, now, pipeline_id),
            )
        return cursor.rowcount == 1

    async def release_resumption(self, pipeline_id: str) -> None:
        async with self.transaction():
            self._require_pipeline_row(pipeline_id)
            self._conn.execute(
                "UPDATE pipelines SET resumed_at = NULL, updated_at = ? WHERE id = ?",
                (_ts(utcnow()), pipeline_id),
            )

    # --- Steps ---

    async def create_pipeline_step(self, data: NewPipelineStep) -> PipelineStep:
        step = PipelineStep(
            pipeline_id=data.pipeline_id,
            name=data.name,
            description=data.description,
            metadata=dict(data.metadata),
        )
        patch = initial_patch(data)
        if patch is not None:
            step = apply_step_patch(step, patch, step.created_at)
        async with self.transaction():
            self._require_pipeline_row(data.pipeline_id)
            self._conn.execute(
                f"INSERT INTO pipeline_steps ({_STEP_COLS}) VALUES (?,?,?,?,?,?,?,?,?,?,?)",
                _step_params(step),
            )
        return step

    async def get_pipeline_step(self, step_id: str) -> PipelineStep | None:
        row = self._conn.execute(
            f"SELECT {_STEP_COLS} FROM pipeline_steps WHERE id = ?", (step_id,)
        ).fetchone()
        return _row_to_step(row) if row else None

    async def update_pipeline_step(self, step_id: str, patch: StepPatch) -> PipelineStep:
        async with self.transaction():
            current = await self.get_pipeline_step(step_id)
            if current is None:
                raise StepNotFoundError(step_id)
            step = apply_step_patch(current, patch, utcnow())
            self._conn.execute(
                "UPDATE pipeline_steps SET status = ?, started_at = ?, completed_at = ?, "
                "duration = ?, metadata = ?, updated_at = ? WHERE id = ?",
                (
                    step.status, _ts(step.started_at), _ts(step.completed_at),
                    step.duration, json.dumps(step.metadata, default=str),
                    _ts(step.updated_at), step_id,
                ),
            )
        return step

    # --- Approvals ---

    async def create_approval(self, data: NewApproval) -> Approval:
        approval = Approval(**data.model_dump())
        async with self.transaction():
            if await self.get_pipeline_step(data.pipeline_step_id) is None:
                raise StepNotFoundError(data.pipeline_step_id)
            pending = self._conn.execute(
                f"SELECT {_APPROVAL_COLS} FROM approvals "
                "WHERE pipeline_step_id = ? AND status = 'pending'",
                (data.pipeline_step_id,),
            ).fetchall()
            check_single_pending(data.pipeline_step_id, [_row_to_approval(r) for r in pending])
            self._conn.execute(
                f"INSERT INTO approvals ({_APPROVAL_COLS}) VALUES (?,?,?,?,?,?,?,?,?,?)",
                (
                    approval.id, approval.pipeline_step_id, approval.approval_type,
                    approval.risk, approval.status, approval.origin, approval.reason,
                    _ts(approval.created_at), None, None,
                ),
            )
        return approval

    async def get_approval(self, approval_id: str) -> Approval | None:
        row = self._conn.execute(
            f"SELECT {_APPROVAL_COLS} FROM approvals WHERE id = ?", (approval_id,)
        ).fetchone()
        return _row_to_approval(row) if row else None

    async def get_approval_by_step(self, step_id: str) -> Approval | None:
        row = self._conn.execute(
            f"SELECT {_APPROVAL_COLS} FROM approvals WHERE pipeline_step_id = ? "
            "ORDER BY created_at DESC, seq DESC LIMIT 1",
            (step_id,),
        ).fetchone()
        return _row_to_approval(row) if row else None

    async def list_approvals(self, status: ApprovalStatus | None = None) -> list[Approval]:
        if status is None:
            rows = self._conn.execute(
                f"SELECT {_APPROVAL_COLS} FROM approvals ORDER BY created_at DESC, seq DESC"
            ).fetchall()
        else:
            rows = self._conn.execute(
                f"SELECT {_APPROVAL_COLS} FROM approvals WHERE status = ? "
                "ORDER BY created_at DESC, seq DESC",
                (status,),
            ).fetchall()
        return [_row_to_approval(r) for r in rows]

    async def resolve_approval(
        self,
        approval_id: str,
        status: ApprovalStatus,
        origin: Origin = "unknown",
        reason: str | None = None,
    ) -> Approval:
        async with self.transaction():
            approval = await self.get_approval(approval_id)
            if approval is None:
                raise ApprovalNotFoundError(approval_id)
            check_approval_resolution(approval, status)
            now = utcnow()
            stamp_col = "approved_at" if status == "approved" else "rejected_at"
            self._conn.execute(
                f"UPDATE approvals SET status = ?, origin = ?, reason = ?, {stamp_col} = ? "
                "WHERE id = ?",
                (status, origin, reason, _ts(now), approval_id),
            )
        return approval.model_copy(
            update={"status": status, "origin": origin, "reason": reason, stamp_col: now}
        )

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()

    # --- Internal ---

    def _require_pipeline_row(self, pipeline_id: str) -> sqlite3.Row:
        row = self._conn.execute(
            f"SELECT {_PIPELINE_COLS} FROM pipelines WHERE id = ?", (pipeline_id,)
        ).fetchone()
        if row is None:
            raise PipelineNotFoundError(pipeline_id)
        return row

    async def _load_pipeline(self, pipeline_id: str) -> Pipeline:
        pipeline = await self.get_pipeline(pipeline_id)
        if pipeline is None:
            raise PipelineNotFoundError(pipeline_id)
        return pipeline

    def _pipeline_with_steps(self, row: sqlite3.Row) -> Pipeline:
        steps = self._conn.execute(
            f"SELECT {_STEP_COLS} FROM pipeline_steps WHERE pipeline_id = ? "
            "ORDER BY created_at ASC, seq ASC",
            (row["id"],),
        ).fetchall()
        data = dict(row)
        data["metadata"] = json.loads(data["metadata"] or "{}")
        data["steps"] = [_row_to_step(s) for s in steps]
        return Pipeline(**data)


def _ts(value: Any) -> str | None:
    return value.isoformat(timespec="microseconds") if value is not None else None


def _step_params(step: PipelineStep) -> tuple:
    return (
        step.id, step.pipeline_id, step.name, step.description, step.status,
        _ts(step.started_at), _ts(step.completed_at), step.duration,
        json.dumps(step.metadata, default=str),
        _ts(step.created_at), _ts(step.updated_at),
    )


def _row_to_step(row: sqlite3.Row) -> PipelineStep:
    data = dict(row)
    data["metadata"] = json.loads(data["metadata"] or "{}")
    return PipelineStep(**data)


def _row_to_approval(row: sqlite3.Row) -> Approval:
    return Approval(**dict(row))
