"""Deterministic routing of a review outcome."""

from __future__ import annotations

import logging

from .models import ActionType, ConfidenceLevel, ReviewResult, RouteAction, RouteDecision
from .reviewer import confidence_level

logger = logging.getLogger("architecta.router")


def route(
    confidence: int,
    *,
    auto_approve: bool,
    iterations: int,
    max_iterations: int,
    recommended: ActionType | str,
    issues: tuple[str, ...] = (),
    high: int = 90,
    medium: int = 70,
) -> RouteDecision:
    """Pick the next step for a review.

    An explicit escalate recommendation wins over any confidence tier.
    High confidence approves only when auto-approve is on; medium always
    goes to a human; low iterates until the budget is spent.
    """
    recommended = ActionType(recommended)
    tier = confidence_level(confidence, high, medium)

    if recommended is ActionType.ESCALATE:
        decision = RouteDecision(RouteAction.ESCALATE, "Reviewer recommended escalation")
    elif tier is ConfidenceLevel.HIGH:
        if auto_approve:
            decision = RouteDecision(RouteAction.APPROVE, f"High confidence ({confidence}%)")
        else:
            decision = RouteDecision(
                RouteAction.HUMAN_REVIEW,
                f"High confidence ({confidence}%) but auto-approve is disabled",
            )
    elif tier is ConfidenceLevel.MEDIUM:
        decision = RouteDecision(
            RouteAction.HUMAN_REVIEW, f"Medium confidence ({confidence}%), needs a quick look"
        )
    elif iterations < max_iterations:
        decision = RouteDecision(
            RouteAction.ITERATE,
            f"Low confidence ({confidence}%), iteration {iterations + 1}/{max_iterations}",
            feedback=tuple(issues),
        )
    else:
        decision = RouteDecision(
            RouteAction.ESCALATE,
            f"Low confidence ({confidence}%) after {iterations} iteration(s)",
        )

    logger.info("Routing %d%% (%s) -> %s", confidence, recommended.value, decision.action.value)
    return decision


def route_review(
    result: ReviewResult,
    *,
    auto_approve: bool,
    iterations: int,
    max_iterations: int,
    high: int = 90,
    medium: int = 70,
) -> RouteDecision:
    return route(
        result.confidence,
        auto_approve=auto_approve,
        iterations=iterations,
        max_iterations=max_iterations,
        recommended=result.recommended_action.type,
        issues=result.issues,
        high=high,
        medium=medium,
    )
