"""Error taxonomy."""

from __future__ import annotations


class ArchitectaError(Exception):
    """Base error. Carries the workflow id and phase once they are known."""

    retryable = False

    def __init__(
        self,
        message: str,
        *,
        workflow_id: str | None = None,
        phase: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.workflow_id = workflow_id
        self.phase = phase

    def __str__(self) -> str:
        context = []
        if self.workflow_id:
            context.append(f"workflow={self.workflow_id}")
        if self.phase:
            context.append(f"phase={self.phase}")
        if context:
            return f"{self.message} [{', '.join(context)}]"
        return self.message


class ProtocolViolation(ArchitectaError):
    """A resume was attempted that does not match the pending structured call."""


class AgentInvocationError(ArchitectaError):
    """The agent call failed: transport, timeout, or an unusable response."""

    retryable = True


class MalformedAgentOutput(AgentInvocationError):
    """The agent answered, but its structured output breaks the protocol."""


class TextOnlyRetriesExceeded(AgentInvocationError):
    """The agent kept replying with free text instead of a structured action."""


class IllegalTransition(ArchitectaError):
    """A workflow phase transition guard failed."""


class WorkflowNotFound(ArchitectaError):
    pass


class WorkflowDiscarded(ArchitectaError):
    """The workflow was discarded while an operation was in flight."""


class ConfigError(ArchitectaError):
    pass
