"""OpenAI-compatible chat completions agent (function calling)."""

from __future__ import annotations

import json
import logging
from typing import Any

import httpx

from ..errors import AgentInvocationError
from .base import AgentResponse, ToolCall, ToolSpec, Turn

ENDPOINTS: dict[str, str] = {
    "openai": "https://api.openai.com/v1/chat/completions",
    "deepseek": "https://api.deepseek.com/v1/chat/completions",
}

logger = logging.getLogger("architecta.providers.openai_compat")


def to_messages(system: str, turns: list[Turn]) -> list[dict[str, Any]]:
    messages: list[dict[str, Any]] = [{"role": "system", "content": system}]
    for turn in turns:
        if turn.role == "assistant":
            msg: dict[str, Any] = {"role": "assistant", "content": turn.text or None}
            if turn.tool_calls:
                msg["tool_calls"] = [
                    {
                        "id": c.id,
                        "type": "function",
                        "function": {"name": c.name, "arguments": json.dumps(c.input)},
                    }
                    for c in turn.tool_calls
                ]
            messages.append(msg)
            continue
        if turn.tool_result is not None:
            messages.append({
                "role": "tool",
                "tool_call_id": turn.tool_result.call_id,
                "content": turn.tool_result.content,
            })
        if turn.text:
            messages.append({"role": "user", "content": turn.text})
    return messages


def parse_response(data: dict[str, Any]) -> AgentResponse:
    choice = data["choices"][0]
    message = choice["message"]
    response = AgentResponse(stop_reason=choice.get("finish_reason") or "")
    if message.get("content"):
        response.text_blocks.append(message["content"])
    for call in message.get("tool_calls") or []:
        fn = call["function"]
        arguments = fn.get("arguments") or "{}"
        try:
            parsed = json.loads(arguments)
        except json.JSONDecodeError as exc:
            raise AgentInvocationError(
                f"Tool call {fn['name']} carried invalid JSON arguments"
            ) from exc
        response.tool_calls.append(
            ToolCall(id=call["id"], name=fn["name"], input=parsed if isinstance(parsed, dict) else {})
        )
    return response


class OpenAICompatAgent:
    """OpenAI / DeepSeek function-calling agent over httpx. No retry."""

    def __init__(self, provider: str, model: str, api_key: str, max_tokens: int = 4096):
        if provider not in ENDPOINTS:
            raise ValueError(f"Unknown provider: {provider}")
        self.provider = provider
        self.model = model
        self.api_key = api_key
        self.max_tokens = max_tokens

    @property
    def name(self) -> str:
        return f"{self.provider}/{self.model}"

    async def respond(
        self,
        system: str,
        turns: list[Turn],
        tools: list[ToolSpec],
    ) -> AgentResponse:
        body: dict[str, Any] = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "messages": to_messages(system, turns),
        }
        if tools:
            body["tools"] = [
                {
                    "type": "function",
                    "function": {
                        "name": t.name,
                        "description": t.description,
                        "parameters": t.input_schema,
                    },
                }
                for t in tools
            ]
        data = await self._post(body)
        try:
            return parse_response(data)
        except (KeyError, IndexError, TypeError) as exc:
            raise AgentInvocationError(f"Unexpected response from {self.name}: {exc!r}") from exc

    async def complete(self, system: str, prompt: str) -> str:
        data = await self._post({
            "model": self.model,
            "max_tokens": self.max_tokens,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": prompt},
            ],
        })
        try:
            return parse_response(data).text
        except (KeyError, IndexError, TypeError) as exc:
            raise AgentInvocationError(f"Unexpected response from {self.name}: {exc!r}") from exc

    async def _post(self, body: dict[str, Any]) -> dict[str, Any]:
        url = ENDPOINTS[self.provider]
        logger.debug("POST %s model=%s messages=%d", url, self.model, len(body["messages"]))
        try:
            async with httpx.AsyncClient(timeout=None) as client:
                resp = await client.post(
                    url,
                    headers={
                        "Authorization": f"Bearer {self.api_key}",
                        "Content-Type": "application/json",
                    },
                    json=body,
                )
                resp.raise_for_status()
                return resp.json()
        except httpx.HTTPError as exc:
            raise AgentInvocationError(f"{self.name} request failed: {exc}") from exc
        except ValueError as exc:
            raise AgentInvocationError(f"{self.name} returned invalid JSON") from exc
