"""Anthropic Messages API agent with native tool use."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from ..errors import AgentInvocationError
from .base import AgentResponse, ToolCall, ToolSpec, Turn, merge_consecutive

ENDPOINT = "https://api.anthropic.com/v1/messages"
API_VERSION = "2023-06-01"

logger = logging.getLogger("architecta.providers.anthropic")


def _user_blocks(turns: list[Turn]) -> list[dict[str, Any]]:
    # tool_result blocks must lead the user message
    results = [
        {
            "type": "tool_result",
            "tool_use_id": t.tool_result.call_id,
            "content": t.tool_result.content,
        }
        for t in turns
        if t.tool_result is not None
    ]
    texts = [{"type": "text", "text": t.text} for t in turns if t.text]
    return results + texts


def _assistant_blocks(turns: list[Turn]) -> list[dict[str, Any]]:
    blocks: list[dict[str, Any]] = []
    for t in turns:
        if t.text:
            blocks.append({"type": "text", "text": t.text})
        for call in t.tool_calls:
            blocks.append({
                "type": "tool_use",
                "id": call.id,
                "name": call.name,
                "input": call.input,
            })
    return blocks


def to_messages(turns: list[Turn]) -> list[dict[str, Any]]:
    """Translate transcript turns into Anthropic ``messages``."""
    messages = []
    for group in merge_consecutive(turns):
        role = group[0].role
        blocks = _user_blocks(group) if role == "user" else _assistant_blocks(group)
        if blocks:
            messages.append({"role": role, "content": blocks})
    return messages


def parse_response(data: dict[str, Any]) -> AgentResponse:
    response = AgentResponse(stop_reason=data.get("stop_reason") or "")
    for block in data["content"]:
        kind = block.get("type")
        if kind == "text":
            response.text_blocks.append(block.get("text", ""))
        elif kind == "tool_use":
            response.tool_calls.append(
                ToolCall(id=block["id"], name=block["name"], input=block.get("input") or {})
            )
    return response


class AnthropicAgent:
    """Anthropic agent over httpx. One request per call, no retry."""

    def __init__(self, model: str, api_key: str, max_tokens: int = 4096):
        self.model = model
        self.api_key = api_key
        self.max_tokens = max_tokens

    @property
    def name(self) -> str:
        return f"anthropic/{self.model}"

    async def respond(
        self,
        system: str,
        turns: list[Turn],
        tools: list[ToolSpec],
    ) -> AgentResponse:
        body: dict[str, Any] = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "system": system,
            "messages": to_messages(turns),
        }
        if tools:
            body["tools"] = [
                {"name": t.name, "description": t.description, "input_schema": t.input_schema}
                for t in tools
            ]
        data = await self._post(body)
        try:
            return parse_response(data)
        except (KeyError, TypeError) as exc:
            raise AgentInvocationError(f"Unexpected response from {self.name}: {exc!r}") from exc

    async def complete(self, system: str, prompt: str) -> str:
        data = await self._post({
            "model": self.model,
            "max_tokens": self.max_tokens,
            "system": system,
            "messages": [{"role": "user", "content": prompt}],
        })
        try:
            return parse_response(data).text
        except (KeyError, TypeError) as exc:
            raise AgentInvocationError(f"Unexpected response from {self.name}: {exc!r}") from exc

    async def _post(self, body: dict[str, Any]) -> dict[str, Any]:
        logger.debug("POST %s model=%s messages=%d", ENDPOINT, self.model,
                     len(body["messages"]))
        try:
            # Fresh client per call; the caller owns the timeout.
            async with httpx.AsyncClient(timeout=None) as client:
                resp = await client.post(
                    ENDPOINT,
                    headers={
                        "x-api-key": self.api_key,
                        "anthropic-version": API_VERSION,
                        "content-type": "application/json",
                    },
                    json=body,
                )
                resp.raise_for_status()
                return resp.json()
        except httpx.HTTPError as exc:
            raise AgentInvocationError(f"{self.name} request failed: {exc}") from exc
        except ValueError as exc:
            raise AgentInvocationError(f"{self.name} returned invalid JSON") from exc
