"""Tests for review routing."""

import pytest
from architecta.models import (
    ActionType,
    ConfidenceLevel,
    ReviewAction,
    ReviewResult,
    RouteAction,
)
from architecta.router import route, route_review


def decide(confidence, recommended="iterate", iterations=0, auto_approve=False, **kw):
    return route(confidence, auto_approve=auto_approve, iterations=iterations,
                 max_iterations=3, recommended=recommended, **kw)


def test_high_without_auto_approve_goes_to_human():
    assert decide(95, "approve").action is RouteAction.HUMAN_REVIEW


def test_high_with_auto_approve():
    assert decide(95, "approve", auto_approve=True).action is RouteAction.APPROVE


def test_medium_goes_to_human():
    assert decide(75, "request_changes", auto_approve=True).action is RouteAction.HUMAN_REVIEW


def test_low_iterates_with_feedback():
    decision = decide(40, iterations=1, issues=("Bug: cookie kept",))
    assert decision.action is RouteAction.ITERATE
    assert decision.feedback == ("Bug: cookie kept",)


def test_low_with_budget_spent_escalates():
    assert decide(40, iterations=3).action is RouteAction.ESCALATE


@pytest.mark.parametrize("confidence", [10, 75, 99])
def test_explicit_escalate_wins(confidence):
    decision = decide(confidence, "escalate", auto_approve=True)
    assert decision.action is RouteAction.ESCALATE


@pytest.mark.parametrize("confidence,expected", [
    (90, RouteAction.HUMAN_REVIEW),
    (89, RouteAction.HUMAN_REVIEW),
    (70, RouteAction.HUMAN_REVIEW),
    (69, RouteAction.ITERATE),
])
def test_tier_boundaries(confidence, expected):
    assert decide(confidence).action is expected


def test_custom_thresholds():
    assert decide(85, "approve", auto_approve=True, high=80, medium=60).action is RouteAction.APPROVE
    assert decide(55, high=80, medium=50).action is RouteAction.HUMAN_REVIEW


def test_deterministic():
    assert decide(40, iterations=1) == decide(40, iterations=1)


def test_route_review():
    result = ReviewResult(
        plan_title="p",
        confidence=30,
        confidence_level=ConfidenceLevel.LOW,
        recommended_action=ReviewAction(ActionType.ITERATE, reason="x"),
        issues=("Missing: tests",),
    )
    decision = route_review(result, auto_approve=False, iterations=0, max_iterations=3)
    assert decision.action is RouteAction.ITERATE
    assert decision.feedback == ("Missing: tests",)
