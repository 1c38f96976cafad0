"""Tests for workflow phase transitions."""

import pytest
from architecta import state
from architecta.errors import IllegalTransition
from architecta.models import (
    ActionType,
    ConfidenceLevel,
    Implementation,
    ImplementationKind,
    Phase,
    ReviewAction,
    ReviewResult,
)
from architecta.plan import assemble_plan

PLAN = assemble_plan({"title": "Add logout", "tasks": [{"id": 1, "title": "Button"}]})
IMPL = Implementation(ImplementationKind.PR, "https://github.com/acme/web/pull/7")


def review(confidence=40, issues=("Bug: logout keeps the cookie",), summary="Needs work"):
    return ReviewResult(
        plan_title="Add logout",
        confidence=confidence,
        confidence_level=ConfidenceLevel.LOW,
        recommended_action=ReviewAction(ActionType.ITERATE, reason=issues[0] if issues else ""),
        issues=tuple(issues),
        summary=summary,
    )


def planned():
    wf = state.start_planning(state.create_workflow("wfl_1"), "Add a logout control")
    return state.complete_planning(wf, PLAN)


def reviewed():
    return state.complete_review(state.start_review(planned(), IMPL), review())


# --- Happy path ---

def test_full_lifecycle():
    wf = state.create_workflow("wfl_1")
    assert wf.phase is Phase.IDLE
    wf = state.start_planning(wf, "Add a logout control")
    assert wf.phase is Phase.PLANNING
    wf = state.complete_planning(wf, PLAN)
    wf = state.start_review(wf, IMPL)
    assert wf.phase is Phase.REVIEWING
    wf = state.complete_review(wf, review(confidence=95))
    wf = state.complete_workflow(wf)
    assert wf.phase is Phase.COMPLETE
    assert len(wf.reviews) == 1


def test_transitions_do_not_mutate():
    wf = planned()
    state.start_review(wf, IMPL)
    assert wf.phase is Phase.PLANNING
    assert wf.implementation is None


# --- Guards ---

def test_planning_only_from_idle():
    with pytest.raises(IllegalTransition):
        state.start_planning(planned(), "again")


def test_empty_requirement_rejected():
    with pytest.raises(IllegalTransition):
        state.start_planning(state.create_workflow("wfl_1"), "  ")


def test_review_requires_plan():
    wf = state.start_planning(state.create_workflow("wfl_1"), "x")
    with pytest.raises(IllegalTransition) as exc_info:
        state.start_review(wf, IMPL)
    assert exc_info.value.phase == "planning"


def test_review_from_idle_rejected():
    with pytest.raises(IllegalTransition):
        state.start_review(state.create_workflow("wfl_1"), IMPL)


def test_rereview_allowed():
    wf = state.start_review(reviewed(), IMPL)
    assert wf.phase is Phase.REVIEWING
    assert len(wf.reviews) == 1


def test_complete_requires_review():
    wf = state.start_review(planned(), IMPL)
    with pytest.raises(IllegalTransition):
        state.complete_workflow(wf)


def test_complete_only_from_reviewing():
    with pytest.raises(IllegalTransition):
        state.complete_workflow(planned())


def test_complete_review_requires_reviewing():
    with pytest.raises(IllegalTransition):
        state.complete_review(planned(), review())


# --- Iteration ---

def test_iteration_counts():
    wf = state.start_iteration(reviewed(), max_iterations=3)
    assert wf.phase is Phase.PLANNING
    assert wf.iterations == 1


def test_iteration_requires_review():
    with pytest.raises(IllegalTransition):
        state.start_iteration(planned(), max_iterations=3)


def test_iteration_budget():
    wf = reviewed()
    for _ in range(3):
        wf = state.start_iteration(wf, max_iterations=3)
        wf = state.start_review(wf, IMPL)
    assert wf.iterations == 3
    with pytest.raises(IllegalTransition):
        state.start_iteration(wf, max_iterations=3)


def test_refinement_is_not_an_iteration():
    wf = state.resume_planning(reviewed())
    assert wf.phase is Phase.PLANNING
    assert wf.iterations == 0


def test_refine_requires_plan():
    wf = state.start_planning(state.create_workflow("wfl_1"), "x")
    with pytest.raises(IllegalTransition):
        state.resume_planning(wf)


# --- Approval ---

def test_mark_approved():
    wf = state.mark_approved(planned())
    assert wf.approved_at
    assert wf.phase is Phase.PLANNING


def test_approve_without_plan():
    with pytest.raises(IllegalTransition):
        state.mark_approved(state.create_workflow("wfl_1"))


# --- Helpers ---

def test_can_transition_to():
    idle = state.create_workflow("wfl_1")
    assert state.can_transition_to(idle, Phase.PLANNING)
    assert not state.can_transition_to(idle, Phase.REVIEWING)
    assert not state.can_transition_to(planned(), Phase.IDLE)
    assert state.can_transition_to(planned(), Phase.REVIEWING)
    assert not state.can_transition_to(planned(), Phase.COMPLETE)
    assert state.can_transition_to(reviewed(), Phase.COMPLETE)


def test_state_summary():
    text = state.state_summary(reviewed())
    assert "Workflow: wfl_1" in text
    assert "Phase: reviewing" in text
    assert "Plan: Add logout" in text
    assert "Last Review: 40% confidence" in text
    assert "Recommendation: iterate" in text


def test_iteration_prompt():
    text = state.build_iteration_prompt(review(), "Also keep the menu order")
    assert text.startswith("The previous implementation was reviewed with 40% confidence.")
    assert "Issues found:\n- Bug: logout keeps the cookie\n" in text
    assert "Review summary: Needs work" in text
    assert "Additional feedback: Also keep the menu order" in text
    assert text.endswith("Please revise the plan to address these issues.")


def test_iteration_prompt_minimal():
    text = state.build_iteration_prompt(review(issues=(), summary=""))
    assert "Issues found" not in text
    assert "Additional feedback" not in text
