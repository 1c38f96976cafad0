"""The three structured actions the planning agent may take."""

from __future__ import annotations

import logging
from typing import Any

from .errors import MalformedAgentOutput
from .models import (
    ClarifyingQuestion,
    HumanActionType,
    Level,
    QuestionOption,
    Template,
    TemplateType,
)
from .providers.base import ToolSpec

logger = logging.getLogger("architecta.actions")

ASK_QUESTIONS = "ask_clarifying_questions"
PROPOSE_TEMPLATE = "propose_playbook"
EMIT_PLAN = "output_plan"

ACTION_NAMES = (ASK_QUESTIONS, PROPOSE_TEMPLATE, EMIT_PLAN)

_LEVELS = [lvl.value for lvl in Level]

ASK_QUESTIONS_TOOL = ToolSpec(
    name=ASK_QUESTIONS,
    description=(
        "Ask the user clarifying questions before creating a plan. Use this when "
        "you need more information about requirements, preferences, or constraints."
    ),
    input_schema={
        "type": "object",
        "properties": {
            "questions": {
                "type": "array",
                "description": "List of questions to ask the user",
                "items": {
                    "type": "object",
                    "properties": {
                        "id": {"type": "string", "description": "Unique id, e.g. 'q1'"},
                        "question": {"type": "string"},
                        "options": {
                            "type": "array",
                            "description": "2-4 options for the user to choose from",
                            "items": {
                                "type": "object",
                                "properties": {
                                    "value": {"type": "string"},
                                    "label": {"type": "string"},
                                    "description": {"type": "string"},
                                },
                                "required": ["value", "label"],
                            },
                        },
                        "allowMultiple": {"type": "boolean"},
                    },
                    "required": ["id", "question", "options"],
                },
            },
        },
        "required": ["questions"],
    },
)

PROPOSE_TEMPLATE_TOOL = ToolSpec(
    name=PROPOSE_TEMPLATE,
    description=(
        "Propose a playbook (workflow template) once you know what kind of work "
        "this is. The user accepts or rejects it before detailed planning."
    ),
    input_schema={
        "type": "object",
        "properties": {
            "type": {"type": "string", "enum": [t.value for t in TemplateType]},
            "name": {"type": "string"},
            "description": {"type": "string"},
            "reasoning": {"type": "string"},
        },
        "required": ["type", "name", "description", "reasoning"],
    },
)

EMIT_PLAN_TOOL = ToolSpec(
    name=EMIT_PLAN,
    description="Output the final implementation plan after the user has accepted the playbook.",
    input_schema={
        "type": "object",
        "properties": {
            "title": {"type": "string"},
            "repo": {"type": "string"},
            "flow": {
                "type": "array",
                "items": {"type": "string"},
                "description": "Execution roles, e.g. ['builder', 'tester', 'reviewer']",
            },
            "tasks": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {
                        "id": {"type": "number"},
                        "title": {"type": "string"},
                        "description": {"type": "string"},
                        "humanRole": {"type": "string", "enum": ["must_do", "must_verify"]},
                        "humanActionType": {
                            "type": "string",
                            "enum": [a.value for a in HumanActionType],
                            "description": "Required for must_do tasks.",
                        },
                        "humanActionDetail": {
                            "type": "string",
                            "description": "Required for must_do tasks.",
                        },
                        "risk": {"type": "string", "enum": _LEVELS},
                        "complexity": {"type": "string", "enum": _LEVELS},
                        "dependsOn": {"type": "array", "items": {"type": "number"}},
                        "requirements": {"type": "array", "items": {"type": "string"}},
                        "acceptanceCriteria": {"type": "array", "items": {"type": "string"}},
                    },
                    "required": [
                        "id", "title", "description", "humanRole", "risk",
                        "complexity", "dependsOn", "requirements", "acceptanceCriteria",
                    ],
                },
            },
        },
        "required": ["title", "tasks"],
    },
)

TOOLS = [ASK_QUESTIONS_TOOL, PROPOSE_TEMPLATE_TOOL, EMIT_PLAN_TOOL]

SYSTEM_PROMPT = f"""You are the planning engine. Turn a requirement into a bulletproof,
risk-annotated implementation plan.

You have exactly three tools. Use them in this order:
1. {ASK_QUESTIONS} - ask questions to understand requirements
2. {PROPOSE_TEMPLATE} - after gathering info, propose a playbook (workflow template)
3. {EMIT_PLAN} - after the playbook is accepted, output the detailed plan

Every reply must call exactly one of these tools.

Playbook types:
- greenfield: new project from scratch
- new_feature: adding functionality to an existing project
- redesign: UI/UX overhaul of an existing feature
- refactor: improve code without changing behavior
- pivot: major architectural change
- hotfix: urgent production fix
- optimisation: performance improvements
- migration: moving between technologies or platforms
- integration: connecting external systems

For each task state risk, complexity, dependencies and whether the human must do it
(must_do, with humanActionType and humanActionDetail) or only verify it (must_verify).
Acceptance criteria must be testable."""

CORRECTIVE_INSTRUCTION = (
    f"Please use {ASK_QUESTIONS} if you need more information, {PROPOSE_TEMPLATE} "
    f"to suggest a workflow template, or {EMIT_PLAN} to provide the structured plan."
)


# -------------------------------------------------------------------
# Payload parsing
# -------------------------------------------------------------------

def parse_questions(payload: Any) -> tuple[ClarifyingQuestion, ...]:
    """Questions from an ``ask_clarifying_questions`` payload.

    Questions with fewer than two usable options are dropped; a payload with
    no usable question at all is malformed.
    """
    raw = payload.get("questions") if isinstance(payload, dict) else None
    if not isinstance(raw, list):
        raise MalformedAgentOutput(f"{ASK_QUESTIONS} payload has no question list")

    questions = []
    for index, item in enumerate(raw):
        if not isinstance(item, dict):
            continue
        text = str(item.get("question") or "").strip()
        options = tuple(
            QuestionOption(
                value=str(opt.get("value") or opt.get("label")).strip(),
                label=str(opt.get("label") or opt.get("value")).strip(),
                description=str(opt.get("description") or "").strip(),
            )
            for opt in item.get("options") or []
            if isinstance(opt, dict) and (opt.get("value") or opt.get("label"))
        )
        if not text or len(options) < 2:
            logger.warning("Dropping unusable question #%d: %r", index + 1, text)
            continue
        questions.append(ClarifyingQuestion(
            id=str(item.get("id") or f"q{index + 1}").strip(),
            question=text,
            options=options,
            allow_multiple=bool(item.get("allowMultiple", False)),
        ))

    if not questions:
        raise MalformedAgentOutput(f"{ASK_QUESTIONS} carried no usable question")
    return tuple(questions)


def parse_template(payload: Any) -> Template:
    if not isinstance(payload, dict):
        raise MalformedAgentOutput(f"{PROPOSE_TEMPLATE} payload must be an object")
    try:
        kind = TemplateType(str(payload.get("type", "")).strip().lower())
    except ValueError:
        logger.warning("Unknown playbook type %r, using new_feature", payload.get("type"))
        kind = TemplateType.NEW_FEATURE
    name = str(payload.get("name") or "").strip()
    return Template(
        type=kind,
        name=name or kind.value.replace("_", " ").title(),
        description=str(payload.get("description") or "").strip(),
        reasoning=str(payload.get("reasoning") or "").strip(),
    )
