"""SQLite state persistence with WAL mode."""

from __future__ import annotations

import json

import aiosqlite

from .conversation import ConversationState
from .models import ReviewResult, Workflow, utcnow
from .serde import (
    conversation_from_dict,
    conversation_to_dict,
    implementation_to_dict,
    plan_to_dict,
    review_from_dict,
    review_to_dict,
    workflow_from_dict,
)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS workflows (
    id TEXT PRIMARY KEY,
    phase TEXT NOT NULL DEFAULT 'idle',
    requirement TEXT DEFAULT '',
    plan TEXT,
    implementation TEXT,
    iterations INTEGER DEFAULT 0,
    approved_at TEXT DEFAULT '',
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS conversations (
    workflow_id TEXT PRIMARY KEY REFERENCES workflows(id),
    turns TEXT NOT NULL DEFAULT '[]',
    pending TEXT,
    accepted_template TEXT,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS reviews (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    workflow_id TEXT NOT NULL REFERENCES workflows(id),
    confidence INTEGER NOT NULL,
    action TEXT NOT NULL,
    result TEXT NOT NULL,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS event_log (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    workflow_id TEXT NOT NULL,
    event TEXT NOT NULL,
    detail TEXT,
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_workflows_phase ON workflows(phase);
CREATE INDEX IF NOT EXISTS idx_reviews_workflow ON reviews(workflow_id);
CREATE INDEX IF NOT EXISTS idx_event_log_workflow ON event_log(workflow_id);
"""


def _dumps(value) -> str | None:
    return json.dumps(value, ensure_ascii=False) if value is not None else None


def _loads(value):
    return json.loads(value) if value else None


class Database:
    def __init__(self, db_path: str):
        self.db_path = db_path
        self._conn: aiosqlite.Connection | None = None

    async def init(self) -> None:
        self._conn = await aiosqlite.connect(self.db_path)
        self._conn.row_factory = aiosqlite.Row
        if self.db_path != ":memory:":
            await self._conn.execute("PRAGMA journal_mode=WAL")
        await self._conn.executescript(_SCHEMA)
        await self._conn.commit()

    async def close(self) -> None:
        if self._conn:
            await self._conn.close()
            self._conn = None

    # ---------------------------------------------------------------
    # Workflows
    # ---------------------------------------------------------------

    async def upsert_workflow(self, wf: Workflow, *, commit: bool = True) -> None:
        await self._conn.execute(
            """INSERT INTO workflows
               (id, phase, requirement, plan, implementation, iterations,
                approved_at, created_at, updated_at)
               VALUES (?,?,?,?,?,?,?,?,?)
               ON CONFLICT(id) DO UPDATE SET
                 phase=excluded.phase,
                 requirement=excluded.requirement,
                 plan=excluded.plan,
                 implementation=excluded.implementation,
                 iterations=excluded.iterations,
                 approved_at=excluded.approved_at,
                 created_at=excluded.created_at,
                 updated_at=excluded.updated_at
            """,
            (
                wf.id, wf.phase.value, wf.requirement,
                _dumps(plan_to_dict(wf.plan) if wf.plan else None),
                _dumps(implementation_to_dict(wf.implementation) if wf.implementation else None),
                wf.iterations, wf.approved_at, wf.created_at, wf.updated_at,
            ),
        )
        if commit:
            await self._conn.commit()

    async def get_workflow(self, workflow_id: str) -> Workflow | None:
        cursor = await self._conn.execute(
            "SELECT * FROM workflows WHERE id = ?", (workflow_id,)
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        reviews = await self.get_reviews(workflow_id)
        return workflow_from_dict(
            {
                "id": row["id"],
                "phase": row["phase"],
                "requirement": row["requirement"] or "",
                "plan": _loads(row["plan"]),
                "implementation": _loads(row["implementation"]),
                "iterations": row["iterations"],
                "approved_at": row["approved_at"] or "",
                "created_at": row["created_at"],
                "updated_at": row["updated_at"],
            },
            reviews,
        )

    async def list_workflows(self) -> list[Workflow]:
        cursor = await self._conn.execute("SELECT id FROM workflows ORDER BY created_at")
        rows = await cursor.fetchall()
        workflows = []
        for r in rows:
            wf = await self.get_workflow(r["id"])
            if wf is not None:
                workflows.append(wf)
        return workflows

    async def save_result(
        self,
        wf: Workflow,
        *,
        conversation: ConversationState | None = None,
        review: ReviewResult | None = None,
    ) -> None:
        """Write an operation's result in one transaction."""
        try:
            if review is not None:
                await self.add_review(wf.id, review, commit=False)
            await self.upsert_workflow(wf, commit=False)
            if conversation is not None:
                await self.save_conversation(wf.id, conversation, commit=False)
        except BaseException:
            await self._conn.rollback()
            raise
        await self._conn.commit()

    async def replace_workflow(self, wf: Workflow) -> None:
        """Overwrite the row for ``wf``; its reviews go and its conversation restarts empty."""
        try:
            await self._conn.execute("DELETE FROM reviews WHERE workflow_id = ?", (wf.id,))
            await self.upsert_workflow(wf, commit=False)
            await self.save_conversation(wf.id, ConversationState(), commit=False)
        except BaseException:
            await self._conn.rollback()
            raise
        await self._conn.commit()

    # ---------------------------------------------------------------
    # Conversations
    # ---------------------------------------------------------------

    async def save_conversation(
        self, workflow_id: str, state: ConversationState, *, commit: bool = True
    ) -> None:
        data = conversation_to_dict(state)
        await self._conn.execute(
            """INSERT INTO conversations
               (workflow_id, turns, pending, accepted_template, updated_at)
               VALUES (?,?,?,?,?)
               ON CONFLICT(workflow_id) DO UPDATE SET
                 turns=excluded.turns,
                 pending=excluded.pending,
                 accepted_template=excluded.accepted_template,
                 updated_at=excluded.updated_at
            """,
            (
                workflow_id,
                _dumps(data["turns"]),
                _dumps(data["pending"]),
                _dumps(data["accepted_template"]),
                utcnow(),
            ),
        )
        if commit:
            await self._conn.commit()

    async def get_conversation(self, workflow_id: str) -> ConversationState:
        cursor = await self._conn.execute(
            "SELECT * FROM conversations WHERE workflow_id = ?", (workflow_id,)
        )
        row = await cursor.fetchone()
        if row is None:
            return ConversationState()
        return conversation_from_dict({
            "turns": _loads(row["turns"]) or [],
            "pending": _loads(row["pending"]),
            "accepted_template": _loads(row["accepted_template"]),
        })

    # ---------------------------------------------------------------
    # Reviews
    # ---------------------------------------------------------------

    async def add_review(self, workflow_id: str, result: ReviewResult, *, commit: bool = True) -> None:
        await self._conn.execute(
            """INSERT INTO reviews (workflow_id, confidence, action, result, created_at)
               VALUES (?,?,?,?,?)""",
            (
                workflow_id, result.confidence,
                result.recommended_action.type.value,
                _dumps(review_to_dict(result)), result.created_at,
            ),
        )
        if commit:
            await self._conn.commit()

    async def get_reviews(self, workflow_id: str) -> list[ReviewResult]:
        cursor = await self._conn.execute(
            "SELECT result FROM reviews WHERE workflow_id = ? ORDER BY id",
            (workflow_id,),
        )
        rows = await cursor.fetchall()
        return [review_from_dict(json.loads(r["result"])) for r in rows]

    # ---------------------------------------------------------------
    # Event log
    # ---------------------------------------------------------------

    async def log_event(
        self, workflow_id: str, event: str, detail: dict | None = None
    ) -> None:
        await self._conn.execute(
            "INSERT INTO event_log (workflow_id, event, detail, created_at) VALUES (?,?,?,?)",
            (workflow_id, event, json.dumps(detail, ensure_ascii=False, default=str) if detail else None,
             utcnow()),
        )
        await self._conn.commit()

    async def get_logs(self, workflow_id: str) -> list[dict]:
        cursor = await self._conn.execute(
            "SELECT * FROM event_log WHERE workflow_id = ? ORDER BY id",
            (workflow_id,),
        )
        rows = await cursor.fetchall()
        return [
            {
                "event": r["event"],
                "detail": json.loads(r["detail"]) if r["detail"] else None,
                "created_at": r["created_at"],
            }
            for r in rows
        ]
