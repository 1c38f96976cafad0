"""Provider-neutral transcript types and the agent protocol."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol


@dataclass(frozen=True)
class ToolCall:
    id: str
    name: str
    input: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ToolResult:
    call_id: str
    content: str


@dataclass
class Turn:
    """One transcript entry. ``role`` is "user" or "assistant"."""

    role: str
    text: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)
    tool_result: ToolResult | None = None


@dataclass
class AgentResponse:
    text_blocks: list[str] = field(default_factory=list)
    tool_calls: list[ToolCall] = field(default_factory=list)
    stop_reason: str = ""

    @property
    def text(self) -> str:
        return "\n".join(t for t in self.text_blocks if t)

    def as_turn(self) -> Turn:
        return Turn(role="assistant", text=self.text, tool_calls=list(self.tool_calls))


@dataclass(frozen=True)
class ToolSpec:
    name: str
    description: str
    input_schema: dict[str, Any]


class Agent(Protocol):
    """A language model reachable over a request/response API.

    Implementations raise ``AgentInvocationError`` for transport and
    response-shape failures. They never retry on their own.
    """

    name: str

    async def respond(
        self,
        system: str,
        turns: list[Turn],
        tools: list[ToolSpec],
    ) -> AgentResponse: ...

    async def complete(self, system: str, prompt: str) -> str: ...


def merge_consecutive(turns: list[Turn]) -> list[list[Turn]]:
    """Group adjacent turns with the same role; chat APIs expect alternation."""
    groups: list[list[Turn]] = []
    for turn in turns:
        if groups and groups[-1][0].role == turn.role:
            groups[-1].append(turn)
        else:
            groups.append([turn])
    return groups
