"""Resumable three-action planning conversation.

One invocation cycle appends user content, calls the agent with the full
transcript and the three action schemas, and dispatches on the single
structured call it returns. Asking questions or proposing a playbook
suspends the cycle; the matching resume call later answers that exact call
id and the same transcript continues.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Union

import anyio

from .actions import (
    ASK_QUESTIONS,
    CORRECTIVE_INSTRUCTION,
    EMIT_PLAN,
    PROPOSE_TEMPLATE,
    SYSTEM_PROMPT,
    TOOLS,
    parse_questions,
    parse_template,
)
from .errors import (
    AgentInvocationError,
    MalformedAgentOutput,
    ProtocolViolation,
    TextOnlyRetriesExceeded,
)
from .events import Emit, EventType
from .models import ClarifyingQuestion, Plan, Template
from .plan import assemble_plan, dangling_dependencies
from .providers.base import Agent, AgentResponse, ToolResult, Turn

logger = logging.getLogger("architecta.conversation")

NO_ANSWER = "No answer provided"
PLAN_ACK = "Plan received."


# -------------------------------------------------------------------
# Conversation state
# -------------------------------------------------------------------

@dataclass(frozen=True)
class AwaitingAnswers:
    call_id: str
    questions: tuple[ClarifyingQuestion, ...]


@dataclass(frozen=True)
class AwaitingTemplateDecision:
    call_id: str
    template: Template


PendingCall = Union[AwaitingAnswers, AwaitingTemplateDecision, None]


@dataclass
class ConversationState:
    """Transcript plus the single outstanding structured call, if any."""

    turns: list[Turn] = field(default_factory=list)
    pending: PendingCall = None
    accepted_template: Template | None = None

    def snapshot(self) -> ConversationState:
        return ConversationState(
            turns=list(self.turns),
            pending=self.pending,
            accepted_template=self.accepted_template,
        )

    def restore(self, snapshot: ConversationState) -> None:
        self.turns = list(snapshot.turns)
        self.pending = snapshot.pending
        self.accepted_template = snapshot.accepted_template

    def clear(self) -> None:
        self.turns = []
        self.pending = None
        self.accepted_template = None


# -------------------------------------------------------------------
# User-side messages
# -------------------------------------------------------------------

def initial_message(requirement: str, work_dir: str = "") -> str:
    if work_dir:
        return f"Working directory: {work_dir}\n\nRequirement: {requirement}"
    return f"Requirement: {requirement}"


def format_answers(
    questions: tuple[ClarifyingQuestion, ...],
    answers: dict[str, Any],
) -> str:
    """One ``question: label`` line per question, in the order they were asked.

    Values that match no option are passed through as given.
    """
    lines = []
    for q in questions:
        value = answers.get(q.id)
        values = value if isinstance(value, (list, tuple)) else [value]
        values = [str(v) for v in values if v is not None and str(v).strip()]
        if not values:
            lines.append(f"{q.question}: {NO_ANSWER}")
            continue
        labels = {opt.value: opt.label for opt in q.options}
        lines.append(f"{q.question}: {', '.join(labels.get(v, v) for v in values)}")

    unknown = set(answers) - {q.id for q in questions}
    if unknown:
        logger.warning("Ignoring answers for unknown questions: %s", sorted(unknown))

    formatted = "\n".join(lines)
    return (
        f"User's answers:\n{formatted}\n\n"
        "Please proceed with creating the plan based on these choices."
    )


def accept_message(template: Template) -> str:
    return (
        f'User has accepted the "{template.name}" playbook. Now create the detailed '
        f"implementation plan using the {EMIT_PLAN} tool."
    )


def reject_message(feedback: str) -> str:
    return (
        f"User rejected the playbook. Feedback: {feedback}\n\n"
        "Please propose a different playbook or ask clarifying questions."
    )


def refine_message(feedback: str) -> str:
    return f"Please refine the plan based on this feedback:\n\n{feedback}"


# -------------------------------------------------------------------
# Engine
# -------------------------------------------------------------------

async def _no_emit(event_type: EventType, data: dict[str, Any]) -> None:
    return None


class ConversationEngine:
    """Drives one workflow's planning conversation.

    Every public call either returns a Plan, returns ``None`` after storing a
    pending call, or raises. When it raises, the transcript and pending slot
    are exactly what they were before the call.
    """

    def __init__(
        self,
        workflow_id: str,
        agent: Agent,
        state: ConversationState | None = None,
        *,
        emit: Emit | None = None,
        max_text_retries: int = 3,
        timeout_sec: float | None = None,
        work_dir: str = "",
    ):
        self.workflow_id = workflow_id
        self.agent = agent
        self.state = state if state is not None else ConversationState()
        self.emit = emit or _no_emit
        self.max_text_retries = max_text_retries
        self.timeout_sec = timeout_sec
        self.work_dir = work_dir

    # ---------------------------------------------------------------
    # Entry points
    # ---------------------------------------------------------------

    async def start(self, requirement: str) -> Plan | None:
        return await self.continue_with(initial_message(requirement, self.work_dir))

    async def continue_with(self, text: str) -> Plan | None:
        """Append a plain user turn (refinement, iteration feedback) and run."""
        if self.state.pending is not None:
            raise ProtocolViolation(
                f"Cannot continue while {type(self.state.pending).__name__} is pending",
                workflow_id=self.workflow_id,
            )
        snapshot = self.state.snapshot()
        return await self._run(snapshot, Turn(role="user", text=text))

    async def answer_questions(self, answers: dict[str, Any]) -> Plan | None:
        snapshot = self.state.snapshot()
        pending = self._claim(AwaitingAnswers)
        content = format_answers(pending.questions, answers)
        return await self._run(snapshot, self._tool_result(pending.call_id, content))

    async def accept_template(self) -> Plan | None:
        snapshot = self.state.snapshot()
        pending = self._claim(AwaitingTemplateDecision)
        self.state.accepted_template = pending.template
        content = accept_message(pending.template)
        return await self._run(snapshot, self._tool_result(pending.call_id, content))

    async def reject_template(self, feedback: str) -> Plan | None:
        snapshot = self.state.snapshot()
        pending = self._claim(AwaitingTemplateDecision)
        content = reject_message(feedback)
        return await self._run(snapshot, self._tool_result(pending.call_id, content))

    # ---------------------------------------------------------------
    # Internals
    # ---------------------------------------------------------------

    def _claim(self, kind: type) -> Any:
        # Check and clear with no await in between.
        pending = self.state.pending
        if not isinstance(pending, kind):
            found = type(pending).__name__ if pending is not None else "nothing"
            raise ProtocolViolation(
                f"Expected a pending {kind.__name__}, found {found}",
                workflow_id=self.workflow_id,
            )
        self.state.pending = None
        logger.debug("%s claimed pending call %s", self.workflow_id, pending.call_id)
        return pending

    @staticmethod
    def _tool_result(call_id: str, content: str) -> Turn:
        return Turn(role="user", tool_result=ToolResult(call_id=call_id, content=content))

    async def _run(self, snapshot: ConversationState, turn: Turn) -> Plan | None:
        try:
            self.state.turns.append(turn)
            return await self._cycle()
        except BaseException:
            self.state.restore(snapshot)
            raise

    async def _invoke(self) -> AgentResponse:
        logger.info("%s: calling %s with %d turns",
                    self.workflow_id, self.agent.name, len(self.state.turns))
        turns = list(self.state.turns)
        if not self.timeout_sec:
            return await self.agent.respond(SYSTEM_PROMPT, turns, TOOLS)
        try:
            with anyio.fail_after(self.timeout_sec):
                return await self.agent.respond(SYSTEM_PROMPT, turns, TOOLS)
        except TimeoutError as exc:
            raise AgentInvocationError(
                f"{self.agent.name} did not answer within {self.timeout_sec}s",
                workflow_id=self.workflow_id,
            ) from exc

    async def _cycle(self) -> Plan | None:
        retries = 0
        while True:
            response = await self._invoke()
            if response.text:
                await self.emit(EventType.REASONING_UPDATE, {"text": response.text})

            calls = response.tool_calls
            if not calls:
                if retries >= self.max_text_retries:
                    raise TextOnlyRetriesExceeded(
                        f"Agent replied with text only {retries + 1} times in a row",
                        workflow_id=self.workflow_id,
                    )
                retries += 1
                logger.warning("%s: text-only reply, corrective retry %d/%d",
                               self.workflow_id, retries, self.max_text_retries)
                self.state.turns.append(response.as_turn())
                self.state.turns.append(Turn(role="user", text=CORRECTIVE_INSTRUCTION))
                continue

            if len(calls) > 1:
                raise MalformedAgentOutput(
                    f"Agent made {len(calls)} structured calls in one reply, expected one",
                    workflow_id=self.workflow_id,
                )
            call = calls[0]

            if call.name == ASK_QUESTIONS:
                questions = parse_questions(call.input)
                self.state.turns.append(response.as_turn())
                self.state.pending = AwaitingAnswers(call_id=call.id, questions=questions)
                logger.info("%s: awaiting answers to %d question(s)",
                            self.workflow_id, len(questions))
                await self.emit(EventType.QUESTIONS_POSTED, {
                    "call_id": call.id,
                    "questions": [asdict(q) for q in questions],
                })
                return None

            if call.name == PROPOSE_TEMPLATE:
                template = parse_template(call.input)
                self.state.turns.append(response.as_turn())
                self.state.pending = AwaitingTemplateDecision(call_id=call.id, template=template)
                logger.info("%s: awaiting decision on playbook %s",
                            self.workflow_id, template.type.value)
                await self.emit(EventType.TEMPLATE_PROPOSED, {
                    "call_id": call.id,
                    "template": asdict(template),
                })
                return None

            if call.name == EMIT_PLAN:
                plan = assemble_plan(call.input, self.state.accepted_template)
                for task_id, missing in dangling_dependencies(plan):
                    logger.warning("%s: task %d depends on unknown task %d",
                                   self.workflow_id, task_id, missing)
                self.state.turns.append(response.as_turn())
                self.state.turns.append(self._tool_result(call.id, PLAN_ACK))
                logger.info("%s: plan ready with %d task(s)", self.workflow_id, len(plan.tasks))
                await self.emit(EventType.PLAN_READY, {
                    "title": plan.title,
                    "template": plan.template.type.value,
                    "tasks": len(plan.tasks),
                })
                return plan

            raise MalformedAgentOutput(
                f"Agent called unknown action {call.name!r}",
                workflow_id=self.workflow_id,
            )
