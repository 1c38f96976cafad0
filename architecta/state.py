"""Workflow phase transitions.

Every function returns a new Workflow and leaves its argument untouched.
A violated guard raises IllegalTransition.
"""

from __future__ import annotations

from dataclasses import replace

from .errors import IllegalTransition
from .models import Implementation, Phase, Plan, ReviewResult, Workflow, utcnow


def _guard(wf: Workflow, ok: bool, message: str) -> None:
    if not ok:
        raise IllegalTransition(message, workflow_id=wf.id, phase=wf.phase.value)


def _touch(wf: Workflow, **changes) -> Workflow:
    return replace(wf, updated_at=utcnow(), **changes)


def create_workflow(workflow_id: str) -> Workflow:
    return Workflow(id=workflow_id)


def start_planning(wf: Workflow, requirement: str) -> Workflow:
    _guard(wf, wf.phase is Phase.IDLE, "Planning can only start from idle")
    _guard(wf, bool(requirement.strip()), "Requirement must not be empty")
    return _touch(wf, phase=Phase.PLANNING, requirement=requirement)


def complete_planning(wf: Workflow, plan: Plan) -> Workflow:
    _guard(wf, wf.phase is Phase.PLANNING, "A plan can only be stored while planning")
    return _touch(wf, plan=plan)


def resume_planning(wf: Workflow) -> Workflow:
    """Re-enter planning to refine an existing plan. Not an iteration."""
    _guard(wf, wf.phase in (Phase.PLANNING, Phase.REVIEWING),
           "Refinement requires planning or reviewing")
    _guard(wf, wf.plan is not None, "There is no plan to refine")
    return _touch(wf, phase=Phase.PLANNING)


def start_review(wf: Workflow, implementation: Implementation) -> Workflow:
    _guard(wf, wf.phase in (Phase.PLANNING, Phase.REVIEWING),
           "Review requires planning or reviewing")
    _guard(wf, wf.plan is not None, "Cannot review without a plan")
    return _touch(wf, phase=Phase.REVIEWING, implementation=implementation)


def complete_review(wf: Workflow, result: ReviewResult) -> Workflow:
    _guard(wf, wf.phase is Phase.REVIEWING, "Review results are only accepted while reviewing")
    return _touch(wf, reviews=[*wf.reviews, result])


def start_iteration(wf: Workflow, max_iterations: int) -> Workflow:
    _guard(wf, wf.phase in (Phase.PLANNING, Phase.REVIEWING),
           "Iteration requires planning or reviewing")
    _guard(wf, wf.plan is not None, "Cannot iterate without a plan")
    _guard(wf, bool(wf.reviews), "Cannot iterate before a review")
    _guard(wf, wf.iterations < max_iterations,
           f"Iteration budget exhausted ({wf.iterations}/{max_iterations})")
    return _touch(wf, phase=Phase.PLANNING, iterations=wf.iterations + 1)


def complete_workflow(wf: Workflow) -> Workflow:
    _guard(wf, wf.phase is Phase.REVIEWING, "Only a workflow under review can complete")
    _guard(wf, bool(wf.reviews), "Cannot complete without a review")
    return _touch(wf, phase=Phase.COMPLETE)


def mark_approved(wf: Workflow) -> Workflow:
    _guard(wf, wf.plan is not None, "There is no plan to approve")
    _guard(wf, wf.phase is not Phase.COMPLETE, "Workflow is already complete")
    return _touch(wf, approved_at=utcnow())


def can_transition_to(wf: Workflow, phase: Phase) -> bool:
    if phase is Phase.IDLE:
        return False
    if phase is Phase.PLANNING:
        if wf.phase is Phase.IDLE:
            return True
        return wf.phase in (Phase.PLANNING, Phase.REVIEWING) and wf.plan is not None
    if phase is Phase.REVIEWING:
        return wf.phase in (Phase.PLANNING, Phase.REVIEWING) and wf.plan is not None
    if phase is Phase.COMPLETE:
        return wf.phase is Phase.REVIEWING and bool(wf.reviews)
    return False


def state_summary(wf: Workflow) -> str:
    lines = [
        f"Workflow: {wf.id}",
        f"Phase: {wf.phase.value}",
        f"Iterations: {wf.iterations}",
    ]
    if wf.requirement:
        requirement = wf.requirement if len(wf.requirement) <= 50 else wf.requirement[:50] + "..."
        lines.append(f"Requirement: {requirement}")
    if wf.plan:
        lines.append(f"Plan: {wf.plan.title}")
        lines.append(f"Tasks: {len(wf.plan.tasks)}")
    if wf.approved_at:
        lines.append(f"Approved: {wf.approved_at}")
    if wf.reviews:
        last = wf.reviews[-1]
        lines.append(f"Last Review: {last.confidence}% confidence")
        lines.append(f"Recommendation: {last.recommended_action.type.value}")
    return "\n".join(lines)


def build_iteration_prompt(review: ReviewResult, feedback: str = "") -> str:
    """User message that sends review findings back into planning."""
    parts = [f"The previous implementation was reviewed with {review.confidence}% confidence.\n\n"]
    if review.issues:
        parts.append("Issues found:\n")
        parts.extend(f"- {issue}\n" for issue in review.issues)
        parts.append("\n")
    if review.summary:
        parts.append(f"Review summary: {review.summary}\n\n")
    if feedback:
        parts.append(f"Additional feedback: {feedback}\n\n")
    parts.append("Please revise the plan to address these issues.")
    return "".join(parts)
