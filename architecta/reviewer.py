"""Review an implementation against a plan and score the narrative."""

from __future__ import annotations

import logging
import re
from typing import Any

import anyio

from .errors import AgentInvocationError
from .events import Emit, EventType
from .models import (
    ActionType,
    ConfidenceLevel,
    CriterionResult,
    Implementation,
    ImplementationKind,
    Plan,
    ReviewAction,
    ReviewResult,
)
from .plan import render_plan
from .providers.base import Agent

logger = logging.getLogger("architecta.reviewer")

MAX_DIFF_CHARS = 50_000
DEFAULT_CONFIDENCE = 50

REVIEW_SYSTEM_PROMPT = """You are the review engine. Verify an implementation against its plan.

You receive the plan (tasks, requirements and acceptance criteria) and the
implementation (a PR, a branch or local changes, with a diff when available).

Check every acceptance criterion and mark it PASS or FAIL with evidence
(file:line or an explanation). Look for missing functionality, bugs, security
issues, breaking changes and code-quality problems.

Score your confidence from 0 to 100:
- 90-100: all criteria pass, no issues found, safe to ship
- 70-89: most criteria pass, minor issues only
- 50-69: some criteria fail, notable issues
- 0-49: major issues, significant rework needed

Recommend APPROVE (90+), REQUEST_CHANGES (70-89), ITERATE (50-69) or
ESCALATE (<50).

Answer in exactly this structure:

## Review Summary

**Confidence Score:** [0-100]
**Recommendation:** [APPROVE | REQUEST_CHANGES | ITERATE | ESCALATE]

## Criteria Check

### Task 1: [Task Title]

| Criterion | Status | Evidence |
|-----------|--------|----------|
| [Criterion 1] | ✅ PASS | [file:line or explanation] |
| [Criterion 2] | ❌ FAIL | [what's missing/wrong] |

## Issues Found

1. **[Issue Type]**: [Description]

## Summary

[2-3 sentence summary of the implementation quality and what needs attention]"""

_KIND_LABELS = {
    ImplementationKind.PR: "Pull Request",
    ImplementationKind.BRANCH: "Branch",
    ImplementationKind.LOCAL: "Local changes in",
}


def build_review_prompt(plan: Plan, implementation: Implementation) -> str:
    parts = [f"## Plan\n\n{render_plan(plan)}\n\n", "## Implementation\n\n"]
    parts.append(f"{_KIND_LABELS[implementation.kind]}: {implementation.identifier}\n")
    if implementation.diff:
        diff = implementation.diff
        if len(diff) > MAX_DIFF_CHARS:
            logger.info("Truncating diff from %d to %d chars", len(diff), MAX_DIFF_CHARS)
            diff = diff[:MAX_DIFF_CHARS]
        parts.append(f"\n### Diff\n\n```diff\n{diff}\n```\n")
    if implementation.files:
        files = "\n".join(f"- {f}" for f in implementation.files)
        parts.append(f"\n### Changed Files\n\n{files}\n")
    parts.append(
        "\n## Your Task\n\n"
        "Review this implementation against the plan. Check each acceptance criterion, "
        "identify any issues, and provide a confidence score with your recommendation."
    )
    return "".join(parts)


# -------------------------------------------------------------------
# Narrative parsing
# -------------------------------------------------------------------

_CONFIDENCE_RE = re.compile(
    r"Confidence Score(?:\*\*)?\s*:?\s*(?:\*\*)?\s*\[?\s*(\d+)", re.IGNORECASE
)
_RECOMMENDATION_RE = re.compile(
    r"Recommendation(?:\*\*)?\s*:?\s*(?:\*\*)?\s*\[?\s*"
    r"(APPROVE|REQUEST_CHANGES|ITERATE|ESCALATE)\b",
    re.IGNORECASE,
)
_SUMMARY_RE = re.compile(r"^## Summary[ \t]*\n+(.*?)(?=\n##|\Z)", re.DOTALL | re.MULTILINE)
_ISSUE_RE = re.compile(r"\d+\.\s+\*\*([^*]+)\*\*:\s*([^\n]+)")
_PASS_RE = re.compile(r"\bPASS\b")
_CRITERION_KEY_LEN = 20


def confidence_level(confidence: int, high: int = 90, medium: int = 70) -> ConfidenceLevel:
    if confidence >= high:
        return ConfidenceLevel.HIGH
    if confidence >= medium:
        return ConfidenceLevel.MEDIUM
    return ConfidenceLevel.LOW


def _parse_confidence(narrative: str) -> int:
    match = _CONFIDENCE_RE.search(narrative)
    if not match:
        return DEFAULT_CONFIDENCE
    return max(0, min(100, int(match.group(1))))


def _parse_issues(narrative: str) -> tuple[str, ...]:
    return tuple(
        f"{m.group(1).strip()}: {m.group(2).strip()}"
        for m in _ISSUE_RE.finditer(narrative)
    )


def _line_passes(line: str) -> bool:
    if "✅" in line:
        return True
    return bool(_PASS_RE.search(line)) and "FAIL" not in line and "❌" not in line


def _evidence(line: str) -> str:
    if not line.strip().startswith("|"):
        return ""
    cells = [c.strip() for c in line.strip().strip("|").split("|")]
    return cells[-1] if len(cells) > 1 else ""


def _match_criteria(narrative: str, plan: Plan) -> tuple[CriterionResult, ...]:
    """Best-effort per-line match; a criterion nobody mentions did not pass."""
    lines = narrative.splitlines()
    lowered = [line.lower() for line in lines]
    results = []
    for task in plan.tasks:
        for criterion in task.acceptance_criteria:
            key = criterion.lower()[:_CRITERION_KEY_LEN]
            hits = [i for i, line in enumerate(lowered) if key and key in line]
            rows = [i for i in hits if lines[i].strip().startswith("|")]
            chosen = (rows or hits)[:1]
            if not chosen:
                results.append(CriterionResult(task.id, criterion, False))
                continue
            line = lines[chosen[0]]
            results.append(CriterionResult(
                task_id=task.id,
                criterion=criterion,
                passed=_line_passes(line),
                evidence=_evidence(line),
            ))
    return tuple(results)


def _recommended_action(keyword: str, issues: tuple[str, ...]) -> ReviewAction:
    kind = ActionType(keyword.lower())
    if kind is ActionType.APPROVE:
        return ReviewAction(type=kind)
    if kind is ActionType.REQUEST_CHANGES:
        return ReviewAction(type=kind, issues=issues)
    if kind is ActionType.ESCALATE:
        return ReviewAction(type=kind, reason=issues[0] if issues else "Major issues require human review")
    return ReviewAction(type=kind, reason=issues[0] if issues else "Issues found in review")


def parse_review(
    narrative: str,
    plan: Plan,
    high: int = 90,
    medium: int = 70,
) -> ReviewResult:
    """Extract a ReviewResult from a free-text review. Never raises on bad input."""
    confidence = _parse_confidence(narrative)
    match = _RECOMMENDATION_RE.search(narrative)
    keyword = match.group(1) if match else ActionType.ITERATE.value
    issues = _parse_issues(narrative)
    summary = _SUMMARY_RE.search(narrative)

    return ReviewResult(
        plan_title=plan.title,
        confidence=confidence,
        confidence_level=confidence_level(confidence, high, medium),
        recommended_action=_recommended_action(keyword, issues),
        criteria_results=_match_criteria(narrative, plan),
        issues=issues,
        summary=summary.group(1).strip() if summary else "",
    )


# -------------------------------------------------------------------
# Reviewer
# -------------------------------------------------------------------

async def _no_emit(event_type: EventType, data: dict[str, Any]) -> None:
    return None


class Reviewer:
    """One review pass: a single agent call, then pure parsing."""

    def __init__(
        self,
        agent: Agent,
        *,
        emit: Emit | None = None,
        timeout_sec: float | None = None,
        high: int = 90,
        medium: int = 70,
    ):
        self.agent = agent
        self.emit = emit or _no_emit
        self.timeout_sec = timeout_sec
        self.high = high
        self.medium = medium

    async def review(self, plan: Plan, implementation: Implementation) -> ReviewResult:
        prompt = build_review_prompt(plan, implementation)
        logger.info("Reviewing %s %s with %s",
                    implementation.kind.value, implementation.identifier, self.agent.name)
        await self.emit(EventType.REASONING_UPDATE, {"text": "Starting review session..."})
        if self.timeout_sec:
            try:
                with anyio.fail_after(self.timeout_sec):
                    narrative = await self.agent.complete(REVIEW_SYSTEM_PROMPT, prompt)
            except TimeoutError as exc:
                raise AgentInvocationError(
                    f"{self.agent.name} did not finish the review within {self.timeout_sec}s"
                ) from exc
        else:
            narrative = await self.agent.complete(REVIEW_SYSTEM_PROMPT, prompt)
        await self.emit(EventType.RAW_OUTPUT_CHUNK, {"text": narrative})
        return parse_review(narrative, plan, self.high, self.medium)
