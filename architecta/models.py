"""Core data models for architecta."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum


def utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


class Phase(str, Enum):
    IDLE = "idle"
    PLANNING = "planning"
    REVIEWING = "reviewing"
    COMPLETE = "complete"


class ConfidenceLevel(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class Level(str, Enum):
    """Risk and complexity tiers."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class HumanRole(str, Enum):
    MUST_DO = "must_do"          # human performs the task
    MUST_VERIFY = "must_verify"  # agent performs, human checks


class HumanActionType(str, Enum):
    # Authentication & credentials
    EXTERNAL_AUTH = "external_auth"
    CREATE_OAUTH_APP = "create_oauth_app"
    GENERATE_API_KEY = "generate_api_key"
    OAUTH_CONSENT = "oauth_consent"
    CREATE_ACCOUNT = "create_account"
    MFA_SETUP = "mfa_setup"
    # Publishing & deployment
    FIRST_PUBLISH = "first_publish"
    DEPLOY_APPROVE = "deploy_approve"
    DOMAIN_SETUP = "domain_setup"
    SSL_SETUP = "ssl_setup"
    # Billing
    BILLING_SETUP = "billing_setup"
    PLAN_UPGRADE = "plan_upgrade"
    # Verification
    EMAIL_VERIFY = "email_verify"
    PHONE_VERIFY = "phone_verify"
    IDENTITY_VERIFY = "identity_verify"
    CAPTCHA = "captcha"
    # Access & permissions
    GRANT_ACCESS = "grant_access"
    ACCEPT_INVITE = "accept_invite"
    PERMISSION_REQUEST = "permission_request"
    # Review & approval
    DESIGN_DECISION = "design_decision"
    REVIEW_APPROVE = "review_approve"
    LEGAL_ACCEPT = "legal_accept"
    # Physical & network
    HARDWARE_SETUP = "hardware_setup"
    NETWORK_CONFIG = "network_config"
    # Other
    MANUAL_TEST = "manual_test"
    DATA_ENTRY = "data_entry"
    OTHER = "other"


class TemplateType(str, Enum):
    GREENFIELD = "greenfield"
    NEW_FEATURE = "new_feature"
    REDESIGN = "redesign"
    REFACTOR = "refactor"
    PIVOT = "pivot"
    HOTFIX = "hotfix"
    OPTIMISATION = "optimisation"
    MIGRATION = "migration"
    INTEGRATION = "integration"


class TaskStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    DONE = "done"


class ActionType(str, Enum):
    """Action recommended by a review narrative."""

    APPROVE = "approve"
    REQUEST_CHANGES = "request_changes"
    ITERATE = "iterate"
    ESCALATE = "escalate"


class RouteAction(str, Enum):
    """Action chosen by the router."""

    APPROVE = "approve"
    HUMAN_REVIEW = "human_review"
    ITERATE = "iterate"
    ESCALATE = "escalate"


class ImplementationKind(str, Enum):
    PR = "pr"
    BRANCH = "branch"
    LOCAL = "local"


@dataclass(frozen=True)
class Template:
    """A work-pattern classification proposed by the agent."""

    type: TemplateType
    name: str
    description: str
    reasoning: str = ""


@dataclass(frozen=True)
class QuestionOption:
    value: str
    label: str
    description: str = ""


@dataclass(frozen=True)
class ClarifyingQuestion:
    id: str
    question: str
    options: tuple[QuestionOption, ...] = ()
    allow_multiple: bool = False


@dataclass(frozen=True)
class Task:
    """A single unit of work within a plan."""

    id: int
    title: str
    description: str
    human_role: HumanRole = HumanRole.MUST_VERIFY
    human_action_type: HumanActionType | None = None
    human_action_detail: str = ""
    risk: Level = Level.MEDIUM
    complexity: Level = Level.MEDIUM
    depends_on: tuple[int, ...] = ()
    requirements: tuple[str, ...] = ()
    acceptance_criteria: tuple[str, ...] = ()
    status: TaskStatus | None = None


@dataclass(frozen=True)
class Plan:
    """Outcome of a completed negotiation. Refinement produces a new Plan."""

    title: str
    repo: str
    flow: tuple[str, ...]
    template: Template
    raw: str
    tasks: tuple[Task, ...] = ()


@dataclass(frozen=True)
class CriterionResult:
    task_id: int
    criterion: str
    passed: bool
    evidence: str = ""


@dataclass(frozen=True)
class ReviewAction:
    type: ActionType
    issues: tuple[str, ...] = ()
    reason: str = ""


@dataclass(frozen=True)
class ReviewResult:
    """Result of one review pass against a plan."""

    plan_title: str
    confidence: int
    confidence_level: ConfidenceLevel
    recommended_action: ReviewAction
    criteria_results: tuple[CriterionResult, ...] = ()
    issues: tuple[str, ...] = ()
    summary: str = ""
    created_at: str = field(default_factory=utcnow)


@dataclass(frozen=True)
class RouteDecision:
    action: RouteAction
    reason: str
    feedback: tuple[str, ...] = ()


@dataclass
class Implementation:
    """What gets reviewed: a PR, a branch, or local changes."""

    kind: ImplementationKind
    identifier: str
    diff: str | None = None
    files: list[str] = field(default_factory=list)


@dataclass
class Workflow:
    """One negotiation + review lifecycle."""

    id: str
    phase: Phase = Phase.IDLE
    requirement: str = ""
    plan: Plan | None = None
    implementation: Implementation | None = None
    reviews: list[ReviewResult] = field(default_factory=list)
    iterations: int = 0
    approved_at: str = ""
    created_at: str = field(default_factory=utcnow)
    updated_at: str = field(default_factory=utcnow)
