"""Model <-> JSON-ready dict conversion for persistence."""

from __future__ import annotations

from typing import Any

from .conversation import AwaitingAnswers, AwaitingTemplateDecision, ConversationState, PendingCall
from .models import (
    ActionType,
    ClarifyingQuestion,
    ConfidenceLevel,
    CriterionResult,
    HumanActionType,
    HumanRole,
    Implementation,
    ImplementationKind,
    Level,
    Phase,
    Plan,
    QuestionOption,
    ReviewAction,
    ReviewResult,
    Task,
    TaskStatus,
    Template,
    TemplateType,
    Workflow,
)
from .providers.base import ToolCall, ToolResult, Turn


# -------------------------------------------------------------------
# Plan
# -------------------------------------------------------------------

def template_to_dict(t: Template) -> dict[str, Any]:
    return {
        "type": t.type.value,
        "name": t.name,
        "description": t.description,
        "reasoning": t.reasoning,
    }


def template_from_dict(d: dict[str, Any]) -> Template:
    return Template(
        type=TemplateType(d["type"]),
        name=d["name"],
        description=d.get("description", ""),
        reasoning=d.get("reasoning", ""),
    )


def task_to_dict(t: Task) -> dict[str, Any]:
    return {
        "id": t.id,
        "title": t.title,
        "description": t.description,
        "human_role": t.human_role.value,
        "human_action_type": t.human_action_type.value if t.human_action_type else None,
        "human_action_detail": t.human_action_detail,
        "risk": t.risk.value,
        "complexity": t.complexity.value,
        "depends_on": list(t.depends_on),
        "requirements": list(t.requirements),
        "acceptance_criteria": list(t.acceptance_criteria),
        "status": t.status.value if t.status else None,
    }


def task_from_dict(d: dict[str, Any]) -> Task:
    return Task(
        id=d["id"],
        title=d["title"],
        description=d.get("description", ""),
        human_role=HumanRole(d.get("human_role", HumanRole.MUST_VERIFY.value)),
        human_action_type=HumanActionType(d["human_action_type"]) if d.get("human_action_type") else None,
        human_action_detail=d.get("human_action_detail", ""),
        risk=Level(d.get("risk", Level.MEDIUM.value)),
        complexity=Level(d.get("complexity", Level.MEDIUM.value)),
        depends_on=tuple(d.get("depends_on", [])),
        requirements=tuple(d.get("requirements", [])),
        acceptance_criteria=tuple(d.get("acceptance_criteria", [])),
        status=TaskStatus(d["status"]) if d.get("status") else None,
    )


def plan_to_dict(p: Plan) -> dict[str, Any]:
    return {
        "title": p.title,
        "repo": p.repo,
        "flow": list(p.flow),
        "template": template_to_dict(p.template),
        "raw": p.raw,
        "tasks": [task_to_dict(t) for t in p.tasks],
    }


def plan_from_dict(d: dict[str, Any]) -> Plan:
    return Plan(
        title=d["title"],
        repo=d.get("repo", ""),
        flow=tuple(d.get("flow", [])),
        template=template_from_dict(d["template"]),
        raw=d.get("raw", ""),
        tasks=tuple(task_from_dict(t) for t in d.get("tasks", [])),
    )


# -------------------------------------------------------------------
# Review
# -------------------------------------------------------------------

def implementation_to_dict(i: Implementation) -> dict[str, Any]:
    return {
        "kind": i.kind.value,
        "identifier": i.identifier,
        "diff": i.diff,
        "files": list(i.files),
    }


def implementation_from_dict(d: dict[str, Any]) -> Implementation:
    return Implementation(
        kind=ImplementationKind(d["kind"]),
        identifier=d["identifier"],
        diff=d.get("diff"),
        files=list(d.get("files", [])),
    )


def review_to_dict(r: ReviewResult) -> dict[str, Any]:
    return {
        "plan_title": r.plan_title,
        "confidence": r.confidence,
        "confidence_level": r.confidence_level.value,
        "recommended_action": {
            "type": r.recommended_action.type.value,
            "issues": list(r.recommended_action.issues),
            "reason": r.recommended_action.reason,
        },
        "criteria_results": [
            {
                "task_id": c.task_id,
                "criterion": c.criterion,
                "passed": c.passed,
                "evidence": c.evidence,
            }
            for c in r.criteria_results
        ],
        "issues": list(r.issues),
        "summary": r.summary,
        "created_at": r.created_at,
    }


def review_from_dict(d: dict[str, Any]) -> ReviewResult:
    action = d["recommended_action"]
    return ReviewResult(
        plan_title=d["plan_title"],
        confidence=d["confidence"],
        confidence_level=ConfidenceLevel(d["confidence_level"]),
        recommended_action=ReviewAction(
            type=ActionType(action["type"]),
            issues=tuple(action.get("issues", [])),
            reason=action.get("reason", ""),
        ),
        criteria_results=tuple(
            CriterionResult(
                task_id=c["task_id"],
                criterion=c["criterion"],
                passed=c["passed"],
                evidence=c.get("evidence", ""),
            )
            for c in d.get("criteria_results", [])
        ),
        issues=tuple(d.get("issues", [])),
        summary=d.get("summary", ""),
        created_at=d["created_at"],
    )


# -------------------------------------------------------------------
# Workflow (reviews are stored in their own table)
# -------------------------------------------------------------------

def workflow_to_dict(wf: Workflow) -> dict[str, Any]:
    return {
        "id": wf.id,
        "phase": wf.phase.value,
        "requirement": wf.requirement,
        "plan": plan_to_dict(wf.plan) if wf.plan else None,
        "implementation": implementation_to_dict(wf.implementation) if wf.implementation else None,
        "iterations": wf.iterations,
        "approved_at": wf.approved_at,
        "created_at": wf.created_at,
        "updated_at": wf.updated_at,
    }


def workflow_from_dict(d: dict[str, Any], reviews: list[ReviewResult] | None = None) -> Workflow:
    return Workflow(
        id=d["id"],
        phase=Phase(d["phase"]),
        requirement=d.get("requirement", ""),
        plan=plan_from_dict(d["plan"]) if d.get("plan") else None,
        implementation=implementation_from_dict(d["implementation"]) if d.get("implementation") else None,
        reviews=list(reviews or []),
        iterations=d.get("iterations", 0),
        approved_at=d.get("approved_at", ""),
        created_at=d["created_at"],
        updated_at=d["updated_at"],
    )


# -------------------------------------------------------------------
# Conversation
# -------------------------------------------------------------------

def question_to_dict(q: ClarifyingQuestion) -> dict[str, Any]:
    return {
        "id": q.id,
        "question": q.question,
        "options": [
            {"value": o.value, "label": o.label, "description": o.description}
            for o in q.options
        ],
        "allow_multiple": q.allow_multiple,
    }


def question_from_dict(d: dict[str, Any]) -> ClarifyingQuestion:
    return ClarifyingQuestion(
        id=d["id"],
        question=d["question"],
        options=tuple(
            QuestionOption(value=o["value"], label=o["label"], description=o.get("description", ""))
            for o in d.get("options", [])
        ),
        allow_multiple=d.get("allow_multiple", False),
    )


def turn_to_dict(t: Turn) -> dict[str, Any]:
    return {
        "role": t.role,
        "text": t.text,
        "tool_calls": [{"id": c.id, "name": c.name, "input": c.input} for c in t.tool_calls],
        "tool_result": (
            {"call_id": t.tool_result.call_id, "content": t.tool_result.content}
            if t.tool_result else None
        ),
    }


def turn_from_dict(d: dict[str, Any]) -> Turn:
    result = d.get("tool_result")
    return Turn(
        role=d["role"],
        text=d.get("text", ""),
        tool_calls=[ToolCall(id=c["id"], name=c["name"], input=c.get("input", {}))
                    for c in d.get("tool_calls", [])],
        tool_result=ToolResult(call_id=result["call_id"], content=result["content"]) if result else None,
    )


def pending_to_dict(p: PendingCall) -> dict[str, Any] | None:
    if isinstance(p, AwaitingAnswers):
        return {
            "kind": "answers",
            "call_id": p.call_id,
            "questions": [question_to_dict(q) for q in p.questions],
        }
    if isinstance(p, AwaitingTemplateDecision):
        return {
            "kind": "template",
            "call_id": p.call_id,
            "template": template_to_dict(p.template),
        }
    return None


def pending_from_dict(d: dict[str, Any] | None) -> PendingCall:
    if not d:
        return None
    if d["kind"] == "answers":
        return AwaitingAnswers(
            call_id=d["call_id"],
            questions=tuple(question_from_dict(q) for q in d["questions"]),
        )
    if d["kind"] == "template":
        return AwaitingTemplateDecision(call_id=d["call_id"], template=template_from_dict(d["template"]))
    raise ValueError(f"Unknown pending call kind: {d['kind']!r}")


def conversation_to_dict(c: ConversationState) -> dict[str, Any]:
    return {
        "turns": [turn_to_dict(t) for t in c.turns],
        "pending": pending_to_dict(c.pending),
        "accepted_template": template_to_dict(c.accepted_template) if c.accepted_template else None,
    }


def conversation_from_dict(d: dict[str, Any]) -> ConversationState:
    accepted = d.get("accepted_template")
    return ConversationState(
        turns=[turn_from_dict(t) for t in d.get("turns", [])],
        pending=pending_from_dict(d.get("pending")),
        accepted_template=template_from_dict(accepted) if accepted else None,
    )
