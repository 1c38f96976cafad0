"""Agent providers — httpx-based tool-calling API clients."""

from __future__ import annotations

from ..config import AgentConfig, Config
from .anthropic import AnthropicAgent
from .base import Agent, AgentResponse, ToolCall, ToolResult, ToolSpec, Turn
from .openai_compat import ENDPOINTS as OPENAI_COMPAT_ENDPOINTS
from .openai_compat import OpenAICompatAgent

__all__ = [
    "Agent",
    "AgentResponse",
    "AnthropicAgent",
    "OpenAICompatAgent",
    "ToolCall",
    "ToolResult",
    "ToolSpec",
    "Turn",
    "create_agent",
]


def create_agent(settings: AgentConfig, config: Config) -> Agent:
    """Build an agent from an ``agent``/``reviewer`` config section."""
    provider = settings.provider
    api_key = config.api_key_for(provider)
    if provider == "anthropic":
        return AnthropicAgent(settings.model, api_key, max_tokens=settings.max_tokens)
    if provider in OPENAI_COMPAT_ENDPOINTS:
        return OpenAICompatAgent(provider, settings.model, api_key,
                                 max_tokens=settings.max_tokens)
    raise ValueError(f"Unknown provider: {provider}")
