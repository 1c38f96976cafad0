"""Orchestrator: the operation set over workflows.

Not an LLM. It sequences the conversation engine, the reviewer and the
router, applies state transitions, and persists the result only when an
operation succeeds.
"""

from __future__ import annotations

import logging
import secrets
from typing import Any, Awaitable, Callable, TypeVar

from . import state
from .config import Config
from .conversation import ConversationEngine, ConversationState, PendingCall, refine_message
from .errors import ArchitectaError, ConfigError, IllegalTransition, WorkflowNotFound
from .events import Emit, Event, EventBus, EventType
from .models import Implementation, Plan, ReviewResult, RouteDecision, Workflow
from .notifier import Notifier
from .plan import render_plan
from .providers import Agent, create_agent
from .reviewer import Reviewer
from .router import route_review
from .store import WorkflowStore

logger = logging.getLogger("architecta.orchestrator")

T = TypeVar("T")


def new_workflow_id() -> str:
    return "wfl_" + secrets.token_hex(12)


class Orchestrator:
    def __init__(
        self,
        config: Config,
        store: WorkflowStore,
        *,
        agent: Agent | None = None,
        reviewer_agent: Agent | None = None,
        bus: EventBus | None = None,
    ):
        self.config = config
        self.store = store
        self.bus = bus or EventBus()
        self._agent = agent
        self._reviewer_agent = reviewer_agent
        self.notifier = Notifier(config.notify.webhook_url, config.notify.events)
        self.bus.subscribe(self._record)
        if config.notify.webhook_url:
            self.bus.subscribe(self.notifier.notify)

    async def close(self) -> None:
        await self.notifier.close()

    # ---------------------------------------------------------------
    # Collaborators
    # ---------------------------------------------------------------

    @property
    def agent(self) -> Agent:
        if self._agent is None:
            self._agent = self._build_agent(self.config.agent)
        return self._agent

    @property
    def reviewer_agent(self) -> Agent:
        if self._reviewer_agent is None:
            self._reviewer_agent = self._build_agent(self.config.reviewer_agent())
        return self._reviewer_agent

    def _build_agent(self, settings) -> Agent:
        try:
            return create_agent(settings, self.config)
        except ValueError as exc:
            raise ConfigError(str(exc)) from exc

    def _engine(self, workflow_id: str, conversation: ConversationState, emit: Emit) -> ConversationEngine:
        return ConversationEngine(
            workflow_id,
            self.agent,
            conversation,
            emit=emit,
            max_text_retries=self.config.workflow.max_text_retries,
            timeout_sec=self.config.agent.timeout_sec,
            work_dir=self.config.work_dir,
        )

    async def _record(self, event: Event) -> None:
        await self.store.log_event(event.workflow_id, event.type.value, event.data)

    # ---------------------------------------------------------------
    # Operation wrapper
    # ---------------------------------------------------------------

    async def _phase_of(self, workflow_id: str) -> str | None:
        try:
            return (await self.store.load(workflow_id)).phase.value
        except WorkflowNotFound:
            return None

    async def _operate(
        self,
        workflow_id: str,
        name: str,
        body: Callable[[int, Emit], Awaitable[T]],
    ) -> T:
        """Run ``body`` under the workflow's lock.

        The error and completion events are published before the lock is
        released, so they never trail the events of a queued operation.
        """
        emit = self.bus.emitter(workflow_id)
        async with self.store.session(workflow_id) as generation:
            try:
                with self.store.cancellable(workflow_id):
                    return await body(generation, emit)
            except ArchitectaError as exc:
                exc.workflow_id = exc.workflow_id or workflow_id
                if exc.phase is None:
                    exc.phase = await self._phase_of(workflow_id)
                logger.error("%s failed: %s", name, exc)
                await emit(EventType.ERROR, {
                    "operation": name,
                    "error": exc.message,
                    "kind": type(exc).__name__,
                    "retryable": exc.retryable,
                    "phase": exc.phase,
                })
                raise
            finally:
                await emit(EventType.OPERATION_COMPLETE, {"operation": name})

    async def _commit(
        self,
        before: Workflow,
        after: Workflow,
        generation: int,
        emit: Emit,
        **kwargs: Any,
    ) -> None:
        await self.store.save(after, generation, **kwargs)
        if before.phase is not after.phase:
            logger.info("%s: %s -> %s", after.id, before.phase.value, after.phase.value)
            await emit(EventType.PHASE_CHANGED, {
                "from": before.phase.value,
                "to": after.phase.value,
            })

    async def _plan_step(
        self,
        before: Workflow,
        after: Workflow,
        engine: ConversationEngine,
        step: Callable[[], Awaitable[Plan | None]],
        generation: int,
        emit: Emit,
    ) -> Plan | None:
        plan = await step()
        if plan is not None:
            after = state.complete_planning(after, plan)
        await self._commit(before, after, generation, emit, conversation=engine.state)
        return plan

    # ---------------------------------------------------------------
    # Workflow lifecycle
    # ---------------------------------------------------------------

    async def create_workflow(self) -> Workflow:
        wf = state.create_workflow(new_workflow_id())
        await self.store.create(wf)
        logger.info("Created workflow %s", wf.id)
        return wf

    async def get_workflow(self, workflow_id: str) -> Workflow:
        return await self.store.load(workflow_id)

    async def list_workflows(self) -> list[Workflow]:
        return await self.store.list()

    async def pending_call(self, workflow_id: str) -> PendingCall:
        await self.store.load(workflow_id)
        return (await self.store.conversation(workflow_id)).pending

    async def reset(self, workflow_id: str) -> Workflow:
        """Start over under the same id: idle phase, empty conversation, no reviews."""
        async def body(generation: int, emit: Emit) -> Workflow:
            before = await self.store.load(workflow_id)
            fresh = state.create_workflow(workflow_id)
            await self.store.replace(fresh, generation)
            if before.phase is not fresh.phase:
                await emit(EventType.PHASE_CHANGED, {
                    "from": before.phase.value,
                    "to": fresh.phase.value,
                })
            return fresh

        return await self._operate(workflow_id, "reset", body)

    async def discard(self, workflow_id: str) -> bool:
        """Abandon the conversation and cancel any in-flight agent call.

        Returns True when an operation was interrupted. That operation
        reports WorkflowDiscarded before the discard's own events go out.
        """
        await self.store.load(workflow_id)
        cancelled = self.store.cancel(workflow_id)

        async def body(generation: int, emit: Emit) -> bool:
            await self.store.clear_conversation(workflow_id)
            return cancelled

        return await self._operate(workflow_id, "discard", body)

    # ---------------------------------------------------------------
    # Planning
    # ---------------------------------------------------------------

    async def submit_requirement(self, workflow_id: str, requirement: str) -> Plan | None:
        async def body(generation: int, emit: Emit) -> Plan | None:
            wf = await self.store.load(workflow_id)
            after = state.start_planning(wf, requirement)
            engine = self._engine(workflow_id, await self.store.conversation(workflow_id), emit)
            return await self._plan_step(
                wf, after, engine, lambda: engine.start(requirement), generation, emit
            )

        return await self._operate(workflow_id, "submit_requirement", body)

    async def answer_questions(self, workflow_id: str, answers: dict[str, Any]) -> Plan | None:
        async def body(generation: int, emit: Emit) -> Plan | None:
            wf = await self.store.load(workflow_id)
            engine = self._engine(workflow_id, await self.store.conversation(workflow_id), emit)
            return await self._plan_step(
                wf, wf, engine, lambda: engine.answer_questions(answers), generation, emit
            )

        return await self._operate(workflow_id, "answer_questions", body)

    async def accept_template(self, workflow_id: str) -> Plan | None:
        async def body(generation: int, emit: Emit) -> Plan | None:
            wf = await self.store.load(workflow_id)
            engine = self._engine(workflow_id, await self.store.conversation(workflow_id), emit)
            return await self._plan_step(wf, wf, engine, engine.accept_template, generation, emit)

        return await self._operate(workflow_id, "accept_template", body)

    async def reject_template(self, workflow_id: str, feedback: str) -> Plan | None:
        async def body(generation: int, emit: Emit) -> Plan | None:
            wf = await self.store.load(workflow_id)
            engine = self._engine(workflow_id, await self.store.conversation(workflow_id), emit)
            return await self._plan_step(
                wf, wf, engine, lambda: engine.reject_template(feedback), generation, emit
            )

        return await self._operate(workflow_id, "reject_template", body)

    async def refine_plan(self, workflow_id: str, feedback: str) -> Plan | None:
        async def body(generation: int, emit: Emit) -> Plan | None:
            wf = await self.store.load(workflow_id)
            after = state.resume_planning(wf)
            engine = self._engine(workflow_id, await self.store.conversation(workflow_id), emit)
            return await self._plan_step(
                wf, after, engine, lambda: engine.continue_with(refine_message(feedback)),
                generation, emit,
            )

        return await self._operate(workflow_id, "refine_plan", body)

    async def approve_plan(self, workflow_id: str) -> str:
        """Stamp approval and return the plan document for the execution system."""
        async def body(generation: int, emit: Emit) -> str:
            wf = await self.store.load(workflow_id)
            after = state.mark_approved(wf)
            await self._commit(wf, after, generation, emit)
            logger.info("%s: plan %r approved", workflow_id, after.plan.title)
            return render_plan(after.plan)

        return await self._operate(workflow_id, "approve_plan", body)

    # ---------------------------------------------------------------
    # Review and routing
    # ---------------------------------------------------------------

    async def submit_review(self, workflow_id: str, implementation: Implementation) -> ReviewResult:
        async def body(generation: int, emit: Emit) -> ReviewResult:
            wf = await self.store.load(workflow_id)
            after = state.start_review(wf, implementation)
            thresholds = self.config.workflow.confidence_thresholds
            reviewer = Reviewer(
                self.reviewer_agent,
                emit=emit,
                timeout_sec=self.config.reviewer_agent().timeout_sec,
                high=thresholds.high,
                medium=thresholds.medium,
            )
            result = await reviewer.review(after.plan, implementation)
            after = state.complete_review(after, result)
            await self._commit(wf, after, generation, emit, review=result)
            await emit(EventType.REVIEW_READY, {
                "confidence": result.confidence,
                "confidence_level": result.confidence_level.value,
                "recommended_action": result.recommended_action.type.value,
                "issues": list(result.issues),
            })
            return result

        return await self._operate(workflow_id, "submit_review", body)

    async def route_decision(
        self,
        workflow_id: str,
        result: ReviewResult | None = None,
    ) -> RouteDecision:
        """Route ``result``, or the workflow's latest review when omitted."""
        wf = await self.store.load(workflow_id)
        if result is None:
            if not wf.reviews:
                raise IllegalTransition(
                    "No review to route", workflow_id=workflow_id, phase=wf.phase.value
                )
            result = wf.reviews[-1]
        thresholds = self.config.workflow.confidence_thresholds
        return route_review(
            result,
            auto_approve=self.config.workflow.auto_approve_high_confidence,
            iterations=wf.iterations,
            max_iterations=self.config.workflow.max_iterations,
            high=thresholds.high,
            medium=thresholds.medium,
        )

    async def iterate(self, workflow_id: str, feedback: str = "") -> Plan | None:
        """Send the latest review back into planning. Counts against the budget."""
        async def body(generation: int, emit: Emit) -> Plan | None:
            wf = await self.store.load(workflow_id)
            after = state.start_iteration(wf, self.config.workflow.max_iterations)
            prompt = state.build_iteration_prompt(wf.reviews[-1], feedback)
            engine = self._engine(workflow_id, await self.store.conversation(workflow_id), emit)
            return await self._plan_step(
                wf, after, engine, lambda: engine.continue_with(prompt), generation, emit
            )

        return await self._operate(workflow_id, "iterate", body)

    async def complete(self, workflow_id: str) -> Workflow:
        async def body(generation: int, emit: Emit) -> Workflow:
            wf = await self.store.load(workflow_id)
            after = state.complete_workflow(wf)
            await self._commit(wf, after, generation, emit)
            return after

        return await self._operate(workflow_id, "complete", body)
