"""Workflow store: persistence behind per-workflow locks."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager, contextmanager
from typing import AsyncIterator, Iterator

import anyio

from .conversation import ConversationState
from .db import Database
from .errors import WorkflowDiscarded, WorkflowNotFound
from .models import ReviewResult, Workflow

logger = logging.getLogger("architecta.store")


class WorkflowStore:
    """Owns the database and the per-workflow locks.

    Operations on one workflow run one at a time inside ``session``; different
    workflows never contend. ``cancel`` interrupts the work running under
    ``cancellable`` and bumps the workflow's generation. Writes check the
    generation and commit in one shielded transaction, so a result is either
    stored whole before the cancel or not at all.
    """

    def __init__(self, db: Database):
        self.db = db
        self._locks: dict[str, anyio.Lock] = {}
        self._generations: dict[str, int] = {}
        self._scopes: dict[str, anyio.CancelScope] = {}

    def _lock(self, workflow_id: str) -> anyio.Lock:
        lock = self._locks.get(workflow_id)
        if lock is None:
            lock = self._locks[workflow_id] = anyio.Lock()
        return lock

    def generation(self, workflow_id: str) -> int:
        return self._generations.get(workflow_id, 0)

    @asynccontextmanager
    async def session(self, workflow_id: str) -> AsyncIterator[int]:
        """Hold the workflow's lock; yields the generation seen on entry."""
        async with self._lock(workflow_id):
            yield self.generation(workflow_id)

    @contextmanager
    def cancellable(self, workflow_id: str) -> Iterator[None]:
        """Run a block that ``cancel`` can interrupt. Use inside ``session``.

        An interrupted block raises WorkflowDiscarded.
        """
        with anyio.CancelScope() as scope:
            self._scopes[workflow_id] = scope
            try:
                yield
            finally:
                self._scopes.pop(workflow_id, None)
        if scope.cancelled_caught:
            raise WorkflowDiscarded("Workflow was discarded", workflow_id=workflow_id)

    def cancel(self, workflow_id: str) -> bool:
        """Invalidate pending results and interrupt in-flight work.

        Returns True when something was running.
        """
        self._generations[workflow_id] = self.generation(workflow_id) + 1
        scope = self._scopes.get(workflow_id)
        if scope is not None:
            scope.cancel()
        logger.info("Cancelled %s (in flight: %s)", workflow_id, scope is not None)
        return scope is not None

    def _check(self, wf: Workflow, generation: int) -> None:
        if generation != self.generation(wf.id):
            raise WorkflowDiscarded(
                "Workflow was discarded before its result could be saved",
                workflow_id=wf.id,
            )

    # ---------------------------------------------------------------
    # Reads
    # ---------------------------------------------------------------

    async def load(self, workflow_id: str) -> Workflow:
        wf = await self.db.get_workflow(workflow_id)
        if wf is None:
            raise WorkflowNotFound(f"Workflow '{workflow_id}' not found", workflow_id=workflow_id)
        return wf

    async def conversation(self, workflow_id: str) -> ConversationState:
        return await self.db.get_conversation(workflow_id)

    async def list(self) -> list[Workflow]:
        return await self.db.list_workflows()

    # ---------------------------------------------------------------
    # Writes
    # ---------------------------------------------------------------

    async def create(self, wf: Workflow) -> None:
        await self.db.save_result(wf, conversation=ConversationState())

    async def save(
        self,
        wf: Workflow,
        generation: int,
        *,
        conversation: ConversationState | None = None,
        review: ReviewResult | None = None,
    ) -> None:
        with anyio.CancelScope(shield=True):
            self._check(wf, generation)
            await self.db.save_result(wf, conversation=conversation, review=review)

    async def replace(self, wf: Workflow, generation: int) -> None:
        """Write ``wf`` over everything stored for its id, reviews included."""
        with anyio.CancelScope(shield=True):
            self._check(wf, generation)
            await self.db.replace_workflow(wf)

    async def clear_conversation(self, workflow_id: str) -> None:
        await self.db.save_conversation(workflow_id, ConversationState())

    async def log_event(self, workflow_id: str, event: str, detail: dict | None = None) -> None:
        await self.db.log_event(workflow_id, event, detail)
