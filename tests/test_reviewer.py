"""Tests for review prompt building and narrative parsing."""

import anyio
import pytest
from architecta.errors import AgentInvocationError
from architecta.events import EventType
from architecta.models import (
    ActionType,
    ConfidenceLevel,
    Implementation,
    ImplementationKind,
)
from architecta.plan import assemble_plan
from architecta.reviewer import (
    MAX_DIFF_CHARS,
    Reviewer,
    build_review_prompt,
    confidence_level,
    parse_review,
)

from fakes import FakeAgent

PLAN = assemble_plan({"title": "Add logout", "tasks": [
    {"id": 1, "title": "Button", "acceptanceCriteria": [
        "Logout button is visible in the header",
        "Clicking logout clears the session cookie",
    ]},
    {"id": 2, "title": "Docs", "acceptanceCriteria": ["README documents the logout flow"]},
]})

NARRATIVE = """## Review Summary

**Confidence Score:** 62
**Recommendation:** ITERATE

## Criteria Check

### Task 1: Button

| Criterion | Status | Evidence |
|-----------|--------|----------|
| Logout button is visible in the header | ✅ PASS | src/Header.tsx:42 |
| Clicking logout clears the session cookie | ❌ FAIL | cookie is never deleted |

## Issues Found

1. **Bug**: Session cookie survives logout
   - Severity: High
2. **Missing functionality**: No confirmation dialog

## Summary

The button exists but logout does not actually end the session.
"""


# --- Prompt ---

def test_prompt_for_pr():
    impl = Implementation(ImplementationKind.PR, "https://github.com/acme/web/pull/7",
                          diff="+ <button>Logout</button>", files=["src/Header.tsx"])
    prompt = build_review_prompt(PLAN, impl)
    assert "## Plan\n\n---" in prompt
    assert "# Add logout" in prompt
    assert "Pull Request: https://github.com/acme/web/pull/7" in prompt
    assert "```diff\n+ <button>Logout</button>\n```" in prompt
    assert "### Changed Files\n\n- src/Header.tsx" in prompt
    assert "## Your Task" in prompt


def test_prompt_labels():
    assert "Branch: feat/logout" in build_review_prompt(
        PLAN, Implementation(ImplementationKind.BRANCH, "feat/logout"))
    local = build_review_prompt(PLAN, Implementation(ImplementationKind.LOCAL, "/repo"))
    assert "Local changes in: /repo" in local
    assert "### Diff" not in local


def test_prompt_truncates_diff():
    impl = Implementation(ImplementationKind.LOCAL, "/repo", diff="x" * (MAX_DIFF_CHARS + 500))
    prompt = build_review_prompt(PLAN, impl)
    assert "x" * MAX_DIFF_CHARS in prompt
    assert "x" * (MAX_DIFF_CHARS + 1) not in prompt


# --- Parsing ---

def test_parse_full_narrative():
    result = parse_review(NARRATIVE, PLAN)
    assert result.plan_title == "Add logout"
    assert result.confidence == 62
    assert result.confidence_level is ConfidenceLevel.LOW
    assert result.recommended_action.type is ActionType.ITERATE
    assert result.recommended_action.reason == "Bug: Session cookie survives logout"
    assert result.issues == (
        "Bug: Session cookie survives logout",
        "Missing functionality: No confirmation dialog",
    )
    assert result.summary == "The button exists but logout does not actually end the session."


def test_criteria_matching():
    results = {c.criterion: c for c in parse_review(NARRATIVE, PLAN).criteria_results}
    visible = results["Logout button is visible in the header"]
    assert visible.passed and visible.task_id == 1
    assert visible.evidence == "src/Header.tsx:42"
    assert not results["Clicking logout clears the session cookie"].passed
    # never mentioned
    assert not results["README documents the logout flow"].passed


def test_unparseable_narrative_defaults():
    result = parse_review("I could not look at the code, sorry.", PLAN)
    assert result.confidence == 50
    assert result.recommended_action.type is ActionType.ITERATE
    assert result.recommended_action.reason == "Issues found in review"
    assert result.issues == ()
    assert result.summary == ""
    assert not any(c.passed for c in result.criteria_results)


@pytest.mark.parametrize("text,expected", [
    ("Confidence Score: 88", 88),
    ("**Confidence Score**: 91", 91),
    ("confidence score: 7", 7),
    ("**Confidence Score:** 250", 100),
    ("**Confidence Score:** [85]", 85),
])
def test_confidence_variants(text, expected):
    assert parse_review(text, PLAN).confidence == expected


def test_request_changes_carries_issues():
    text = "**Recommendation:** REQUEST_CHANGES\n\n1. **Style**: Rename helper\n"
    action = parse_review(text, PLAN).recommended_action
    assert action.type is ActionType.REQUEST_CHANGES
    assert action.issues == ("Style: Rename helper",)


def test_escalate_default_reason():
    action = parse_review("**Recommendation:** escalate", PLAN).recommended_action
    assert action.type is ActionType.ESCALATE
    assert action.reason == "Major issues require human review"


def test_confidence_level_thresholds():
    assert confidence_level(90) is ConfidenceLevel.HIGH
    assert confidence_level(70) is ConfidenceLevel.MEDIUM
    assert confidence_level(69) is ConfidenceLevel.LOW
    assert confidence_level(80, high=80, medium=60) is ConfidenceLevel.HIGH


# --- Reviewer ---

@pytest.mark.asyncio
async def test_reviewer_streams_and_parses():
    agent = FakeAgent(review=NARRATIVE)
    events = []

    async def emit(event_type, data):
        events.append((event_type, data))

    result = await Reviewer(agent, emit=emit).review(
        PLAN, Implementation(ImplementationKind.BRANCH, "feat/logout"))

    assert result.confidence == 62
    assert "Branch: feat/logout" in agent.prompts[0]
    assert (EventType.RAW_OUTPUT_CHUNK, {"text": NARRATIVE}) in events


@pytest.mark.asyncio
async def test_reviewer_timeout():
    class SlowAgent(FakeAgent):
        async def complete(self, system, prompt):
            await anyio.sleep(5)

    with pytest.raises(AgentInvocationError):
        await Reviewer(SlowAgent(), timeout_sec=0.05).review(
            PLAN, Implementation(ImplementationKind.LOCAL, "/repo"))
