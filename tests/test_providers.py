"""Tests for the tool-calling provider clients."""

import json

import httpx
import pytest
from architecta.actions import TOOLS
from architecta.config import AgentConfig, Config
from architecta.errors import AgentInvocationError
from architecta.providers import AnthropicAgent, OpenAICompatAgent, create_agent
from architecta.providers.anthropic import to_messages as anthropic_messages
from architecta.providers.base import ToolCall, ToolResult, Turn
from architecta.providers.openai_compat import to_messages as openai_messages

TRANSCRIPT = [
    Turn("user", text="Requirement: Add logout"),
    Turn("assistant", text="A question first.",
         tool_calls=[ToolCall("call_q", "ask_clarifying_questions", {"questions": []})]),
    Turn("user", tool_result=ToolResult("call_q", "Placement?: Header")),
    Turn("user", text="Please be brief."),
]


# --- Anthropic ---

@pytest.mark.asyncio
async def test_anthropic_request_format(httpx_mock):
    """Correct headers, system prompt and tool schemas."""
    httpx_mock.add_response(json={
        "content": [
            {"type": "text", "text": "Proposing a playbook."},
            {"type": "tool_use", "id": "toolu_1", "name": "propose_playbook",
             "input": {"type": "hotfix", "name": "Hotfix"}},
        ],
        "stop_reason": "tool_use",
    })
    agent = AnthropicAgent("claude-sonnet-4-5", "sk-test")
    response = await agent.respond("system prompt", TRANSCRIPT, TOOLS)

    assert response.text == "Proposing a playbook."
    assert response.tool_calls == [ToolCall("toolu_1", "propose_playbook",
                                            {"type": "hotfix", "name": "Hotfix"})]
    req = httpx_mock.get_request()
    assert req.headers["x-api-key"] == "sk-test"
    assert req.headers["anthropic-version"] == "2023-06-01"
    body = json.loads(req.content)
    assert body["system"] == "system prompt"
    assert [t["name"] for t in body["tools"]] == [t.name for t in TOOLS]
    assert "input_schema" in body["tools"][0]


def test_anthropic_merges_consecutive_user_turns():
    """tool_result and follow-up text land in one user message, result first."""
    messages = anthropic_messages(TRANSCRIPT)
    assert [m["role"] for m in messages] == ["user", "assistant", "user"]
    assistant = messages[1]["content"]
    assert assistant[0] == {"type": "text", "text": "A question first."}
    assert assistant[1]["type"] == "tool_use" and assistant[1]["id"] == "call_q"
    last = messages[2]["content"]
    assert last[0] == {"type": "tool_result", "tool_use_id": "call_q",
                       "content": "Placement?: Header"}
    assert last[1] == {"type": "text", "text": "Please be brief."}


@pytest.mark.asyncio
async def test_anthropic_complete(httpx_mock):
    httpx_mock.add_response(json={"content": [{"type": "text", "text": "review text"}]})
    result = await AnthropicAgent("m", "k").complete("sys", "usr")
    assert result == "review text"
    body = json.loads(httpx_mock.get_request().content)
    assert body["messages"] == [{"role": "user", "content": "usr"}]
    assert "tools" not in body


# --- OpenAI-compatible ---

@pytest.mark.asyncio
async def test_openai_request_format(httpx_mock):
    httpx_mock.add_response(json={"choices": [{
        "message": {"content": None, "tool_calls": [{
            "id": "call_1", "type": "function",
            "function": {"name": "output_plan", "arguments": '{"title": "T", "tasks": []}'},
        }]},
        "finish_reason": "tool_calls",
    }]})
    agent = OpenAICompatAgent("openai", "gpt-4o", "sk-oai")
    response = await agent.respond("sys", TRANSCRIPT, TOOLS)

    assert response.tool_calls[0].input == {"title": "T", "tasks": []}
    req = httpx_mock.get_request()
    assert "Bearer sk-oai" in req.headers["authorization"]
    body = json.loads(req.content)
    assert body["tools"][0]["type"] == "function"
    assert body["tools"][0]["function"]["name"] == TOOLS[0].name


def test_openai_message_translation():
    messages = openai_messages("sys", TRANSCRIPT)
    assert [m["role"] for m in messages] == ["system", "user", "assistant", "tool", "user"]
    assert messages[2]["tool_calls"][0]["function"]["name"] == "ask_clarifying_questions"
    assert json.loads(messages[2]["tool_calls"][0]["function"]["arguments"]) == {"questions": []}
    assert messages[3] == {"role": "tool", "tool_call_id": "call_q", "content": "Placement?: Header"}


@pytest.mark.asyncio
async def test_deepseek_endpoint(httpx_mock):
    httpx_mock.add_response(json={"choices": [{"message": {"content": "hi"}}]})
    result = await OpenAICompatAgent("deepseek", "deepseek-chat", "ds-key").complete("s", "u")
    assert result == "hi"
    assert "api.deepseek.com" in str(httpx_mock.get_request().url)


@pytest.mark.asyncio
async def test_invalid_tool_arguments(httpx_mock):
    httpx_mock.add_response(json={"choices": [{"message": {"tool_calls": [{
        "id": "c", "function": {"name": "output_plan", "arguments": "{not json"}}]}}]})
    with pytest.raises(AgentInvocationError):
        await OpenAICompatAgent("openai", "gpt-4o", "k").respond("s", TRANSCRIPT, TOOLS)


# --- Errors ---

@pytest.mark.asyncio
async def test_http_error_raises(httpx_mock):
    httpx_mock.add_response(status_code=529)
    with pytest.raises(AgentInvocationError) as exc_info:
        await AnthropicAgent("m", "k").respond("s", TRANSCRIPT, TOOLS)
    assert exc_info.value.retryable


@pytest.mark.asyncio
async def test_transport_error_raises(httpx_mock):
    httpx_mock.add_exception(httpx.ConnectError("unreachable"))
    with pytest.raises(AgentInvocationError):
        await OpenAICompatAgent("openai", "gpt-4o", "k").complete("s", "u")


@pytest.mark.asyncio
async def test_unexpected_shape_raises(httpx_mock):
    httpx_mock.add_response(json={"unexpected": True})
    with pytest.raises(AgentInvocationError):
        await AnthropicAgent("m", "k").respond("s", TRANSCRIPT, TOOLS)


def test_unknown_openai_compat_provider():
    with pytest.raises(ValueError):
        OpenAICompatAgent("google", "gemini", "k")


# --- Factory ---

def test_create_agent_uses_configured_key():
    config = Config()
    config.providers.openai.api_key = "sk-oai"
    agent = create_agent(AgentConfig(provider="openai", model="gpt-4o"), config)
    assert isinstance(agent, OpenAICompatAgent)
    assert agent.api_key == "sk-oai"
    assert agent.name == "openai/gpt-4o"


def test_create_agent_unknown_provider():
    with pytest.raises(ValueError):
        create_agent(AgentConfig(provider="nope"), Config())
