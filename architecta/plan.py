"""Plan assembly from raw agent output, and the plan's textual document form.

``assemble_plan`` is pure: it never calls the agent and never mutates its
input, so running it twice on the same payload yields equal plans.
"""

from __future__ import annotations

import json
import re
from typing import Any

import yaml

from .errors import MalformedAgentOutput
from .models import (
    HumanActionType,
    HumanRole,
    Level,
    Plan,
    Task,
    TaskStatus,
    Template,
    TemplateType,
)

DEFAULT_TEMPLATE = Template(
    type=TemplateType.NEW_FEATURE,
    name="New Feature",
    description="Adding new functionality",
    reasoning="Default playbook",
)

DEFAULT_FLOW = ("builder", "tester", "reviewer")
DEFAULT_TITLE = "Untitled Plan"


# -------------------------------------------------------------------
# Coercion helpers
# -------------------------------------------------------------------

def _coerce(value: Any, enum_cls, default):
    if isinstance(value, enum_cls):
        return value
    if not isinstance(value, str):
        return default
    try:
        return enum_cls(value.strip().lower())
    except ValueError:
        return default


def _as_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return None


def _str_list(value: Any) -> tuple[str, ...]:
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list):
        return ()
    items = (str(v).strip() for v in value if v is not None)
    return tuple(i for i in items if i)


def _int_list(value: Any) -> tuple[int, ...]:
    if not isinstance(value, list):
        return ()
    ids = (_as_int(v) for v in value)
    return tuple(i for i in ids if i is not None)


def _text(value: Any, default: str = "") -> str:
    if value is None:
        return default
    return str(value).strip() or default


# -------------------------------------------------------------------
# Assembly
# -------------------------------------------------------------------

def _assemble_task(raw: Any, index: int) -> Task:
    if not isinstance(raw, dict):
        raise MalformedAgentOutput(
            f"Task #{index + 1} in plan output is {type(raw).__name__}, expected object"
        )

    task_id = _as_int(raw.get("id"))
    if task_id is None:
        task_id = index + 1

    description = _text(raw.get("description"))
    role = _coerce(raw.get("humanRole"), HumanRole, HumanRole.MUST_VERIFY)
    action_type = _coerce(raw.get("humanActionType"), HumanActionType, None)
    action_detail = _text(raw.get("humanActionDetail"))
    if role is HumanRole.MUST_DO:
        action_type = action_type or HumanActionType.OTHER
        action_detail = action_detail or description

    return Task(
        id=task_id,
        title=_text(raw.get("title"), f"Task {task_id}"),
        description=description,
        human_role=role,
        human_action_type=action_type,
        human_action_detail=action_detail,
        risk=_coerce(raw.get("risk"), Level, Level.MEDIUM),
        complexity=_coerce(raw.get("complexity"), Level, Level.MEDIUM),
        depends_on=_int_list(raw.get("dependsOn")),
        requirements=_str_list(raw.get("requirements")),
        acceptance_criteria=_str_list(raw.get("acceptanceCriteria")),
        status=TaskStatus.PENDING,
    )


def assemble_plan(raw: Any, template: Template | None = None) -> Plan:
    """Build a validated Plan from an ``output_plan`` payload.

    Omitted fields get their defaults: human role must_verify, risk and
    complexity medium, no dependencies. Task order is kept as given and
    every task starts out pending. ``template`` is the last accepted one;
    without it the generic new-feature template is attached.
    """
    if not isinstance(raw, dict):
        raise MalformedAgentOutput(
            f"Plan output is {type(raw).__name__}, expected object"
        )
    raw_tasks = raw.get("tasks", [])
    if raw_tasks is None:
        raw_tasks = []
    if not isinstance(raw_tasks, list):
        raise MalformedAgentOutput("Plan output field 'tasks' must be a list")

    tasks = tuple(_assemble_task(t, i) for i, t in enumerate(raw_tasks))

    seen: set[int] = set()
    for task in tasks:
        if task.id in seen:
            raise MalformedAgentOutput(f"Duplicate task id {task.id} in plan output")
        seen.add(task.id)

    flow = _str_list(raw.get("flow")) or DEFAULT_FLOW

    return Plan(
        title=_text(raw.get("title"), DEFAULT_TITLE),
        repo=_text(raw.get("repo")),
        flow=flow,
        template=template or DEFAULT_TEMPLATE,
        raw=json.dumps(raw, indent=2, ensure_ascii=False, default=str),
        tasks=tasks,
    )


def dangling_dependencies(plan: Plan) -> list[tuple[int, int]]:
    """(task_id, missing_id) pairs for dependencies on ids not in the plan.

    Assembly accepts these; callers decide whether to warn.
    """
    known = {t.id for t in plan.tasks}
    return [
        (task.id, dep)
        for task in plan.tasks
        for dep in task.depends_on
        if dep not in known
    ]


# -------------------------------------------------------------------
# Document form
# -------------------------------------------------------------------

_ROLE_TAGS = {HumanRole.MUST_DO: "MUST DO", HumanRole.MUST_VERIFY: "MUST VERIFY"}


def render_plan(plan: Plan) -> str:
    """Render the plan document handed to the execution system."""
    frontmatter = yaml.safe_dump(
        {"repo": plan.repo, "flow": list(plan.flow)},
        default_flow_style=None,
        sort_keys=False,
    )
    parts = [f"---\n{frontmatter}---\n\n# {plan.title}\n"]

    for task in plan.tasks:
        parts.append(f"\n## Task {task.id}: {task.title} [{_ROLE_TAGS[task.human_role]}]\n")
        if task.description:
            parts.append(f"\n{task.description}\n")
        if task.human_role is HumanRole.MUST_DO and task.human_action_type:
            parts.append(
                f"\nHuman action ({task.human_action_type.value}): {task.human_action_detail}\n"
            )
        if task.requirements:
            parts.append("\nRequirements:\n")
            parts.extend(f"- {r}\n" for r in task.requirements)
        if task.acceptance_criteria:
            parts.append("\nAcceptance Criteria:\n")
            parts.extend(f"- [ ] {c}\n" for c in task.acceptance_criteria)

    return "".join(parts)


_FM_RE = re.compile(r"^---\s*\n(.*?)\n---\s*\n(.*)", re.DOTALL)
_TITLE_RE = re.compile(r"^#\s+(.+)$", re.MULTILINE)
_TASK_HEADING_RE = re.compile(r"^##\s+Task\s+(\d+):\s*(.+)$", re.MULTILINE)
_ROLE_SUFFIX_RE = re.compile(r"\s*\[(MUST DO|MUST VERIFY)\]\s*$", re.IGNORECASE)
_HUMAN_ACTION_RE = re.compile(r"^Human action \((\w+)\):\s*(.*)$")
_CRITERION_RE = re.compile(r"^[-*]\s*\[[ xX]\]\s*(.+)$")
_BULLET_RE = re.compile(r"^[-*]\s+(.+)$")


def _parse_task_section(task_id: int, heading: str, body: str) -> Task:
    role = HumanRole.MUST_VERIFY
    suffix = _ROLE_SUFFIX_RE.search(heading)
    if suffix:
        role = HumanRole.MUST_DO if suffix.group(1).upper() == "MUST DO" else HumanRole.MUST_VERIFY
        heading = heading[: suffix.start()]

    description: list[str] = []
    requirements: list[str] = []
    criteria: list[str] = []
    action_type = None
    action_detail = ""
    section = "description"

    for raw_line in body.splitlines():
        line = raw_line.strip()
        if line == "Requirements:":
            section = "requirements"
            continue
        if line == "Acceptance Criteria:":
            section = "criteria"
            continue
        action = _HUMAN_ACTION_RE.match(line)
        if action and section == "description":
            action_type = _coerce(action.group(1), HumanActionType, HumanActionType.OTHER)
            action_detail = action.group(2).strip()
            continue
        if section == "criteria":
            m = _CRITERION_RE.match(line)
            if m:
                criteria.append(m.group(1).strip())
        elif section == "requirements":
            m = _BULLET_RE.match(line)
            if m:
                requirements.append(m.group(1).strip())
        else:
            description.append(raw_line)

    return Task(
        id=task_id,
        title=heading.strip(),
        description="\n".join(description).strip(),
        human_role=role,
        human_action_type=action_type,
        human_action_detail=action_detail,
        requirements=tuple(requirements),
        acceptance_criteria=tuple(criteria),
        status=TaskStatus.PENDING,
    )


def parse_plan_document(text: str, template: Template | None = None) -> Plan:
    """Read a rendered plan document back into a Plan.

    Risk, complexity and dependencies are not part of the document and come
    back as their defaults.
    """
    meta: dict = {}
    body = text
    match = _FM_RE.match(text)
    if match:
        loaded = yaml.safe_load(match.group(1))
        if isinstance(loaded, dict):
            meta = loaded
        body = match.group(2)

    title_match = _TITLE_RE.search(body)
    title = title_match.group(1).strip() if title_match else DEFAULT_TITLE

    headings = list(_TASK_HEADING_RE.finditer(body))
    tasks = []
    for i, heading in enumerate(headings):
        end = headings[i + 1].start() if i + 1 < len(headings) else len(body)
        section_body = body[heading.end():end]
        tasks.append(_parse_task_section(int(heading.group(1)), heading.group(2), section_body))

    return Plan(
        title=title,
        repo=_text(meta.get("repo")),
        flow=_str_list(meta.get("flow")) or DEFAULT_FLOW,
        template=template or DEFAULT_TEMPLATE,
        raw=text,
        tasks=tuple(tasks),
    )
