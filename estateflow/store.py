from __future__ import annotations

import sqlite3
from pathlib import Path

from .models import ExecutionRecord
from .workflows import WorkflowDocument


class SQLiteStore:
    def __init__(self, db_path: str = "data/flows.db") -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS workflows (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    status TEXT NOT NULL,
                    definition TEXT NOT NULL,
                    created_at TEXT NOT NULL
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS executions (
                    id TEXT PRIMARY KEY,
                    flow_id TEXT NOT NULL,
                    status TEXT NOT NULL,
                    triggered_at TEXT NOT NULL,
                    record TEXT NOT NULL
                )
                """
            )
            conn.execute("CREATE INDEX IF NOT EXISTS idx_executions_flow ON executions (flow_id, triggered_at)")

    def create_workflow(self, workflow: WorkflowDocument) -> WorkflowDocument:
        with self._connect() as conn:
            conn.execute(
                "INSERT INTO workflows (id, name, status, definition, created_at) VALUES (?, ?, ?, ?, ?)",
                (
                    workflow.id,
                    workflow.name,
                    workflow.status,
                    workflow.model_dump_json(),
                    workflow.created_at.isoformat(),
                ),
            )
        return workflow

    def update_workflow(self, workflow_id: str, workflow: WorkflowDocument) -> WorkflowDocument | None:
        with self._connect() as conn:
            existing = conn.execute(
                "SELECT id FROM workflows WHERE id = ?",
                (workflow_id,),
            ).fetchone()
            if not existing:
                return None
            conn.execute(
                "UPDATE workflows SET name = ?, status = ?, definition = ? WHERE id = ?",
                (
                    workflow.name,
                    workflow.status,
                    workflow.model_dump_json(),
                    workflow_id,
                ),
            )
        return workflow

    def get_workflow(self, workflow_id: str) -> WorkflowDocument | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT definition FROM workflows WHERE id = ?",
                (workflow_id,),
            ).fetchone()

        if not row:
            return None
        return WorkflowDocument.model_validate_json(row["definition"])

    def list_workflows(self, status: str | None = None) -> list[WorkflowDocument]:
        with self._connect() as conn:
            if status is None:
                rows = conn.execute("SELECT definition FROM workflows ORDER BY created_at DESC").fetchall()
            else:
                rows = conn.execute(
                    "SELECT definition FROM workflows WHERE status = ? ORDER BY created_at DESC",
                    (status,),
                ).fetchall()

        return [WorkflowDocument.model_validate_json(row["definition"]) for row in rows]

    def save_execution(self, record: ExecutionRecord) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO executions (id, flow_id, status, triggered_at, record)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    record.id,
                    record.flow_id,
                    record.status,
                    record.triggered_at.isoformat(),
                    record.model_dump_json(),
                ),
            )

    def get_execution(self, execution_id: str) -> ExecutionRecord | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT record FROM executions WHERE id = ?",
                (execution_id,),
            ).fetchone()

        if not row:
            return None
        return ExecutionRecord.model_validate_json(row["record"])

    def list_executions(self, flow_id: str | None = None, limit: int = 50) -> list[ExecutionRecord]:
        """Most recent first."""
        with self._connect() as conn:
            if flow_id is None:
                rows = conn.execute(
                    "SELECT record FROM executions ORDER BY triggered_at DESC LIMIT ?",
                    (limit,),
                ).fetchall()
            else:
                rows = conn.execute(
                    "SELECT record FROM executions WHERE flow_id = ? ORDER BY triggered_at DESC LIMIT ?",
                    (flow_id, limit),
                ).fetchall()

        return [ExecutionRecord.model_validate_json(row["record"]) for row in rows]
