"""Streaming chat completions with tool calling over the OpenAI API."""
from __future__ import annotations

import json
import logging
from typing import Any, AsyncIterator, Sequence

import openai
from openai import AsyncOpenAI

from domain.entities import (
    ConversationTurn,
    ModelEvent,
    Role,
    StepFinish,
    TextDelta,
    ToolCallRequest,
    ToolDefinition,
)
from domain.errors import UpstreamFailure
from domain.interfaces import ChatModel

logger = logging.getLogger(__name__)


def to_openai_messages(system: str, turns: Sequence[ConversationTurn]) -> list[dict[str, Any]]:
    messages: list[dict[str, Any]] = [{"role": "system", "content": system}]
    for turn in turns:
        if turn.role is Role.TOOL:
            if not turn.tool_invocations:
                raise ValueError("A tool turn must name the call it answers.")
            messages.append(
                {
                    "role": "tool",
                    "tool_call_id": turn.tool_invocations[0].tool_call_id,
                    "content": turn.content,
                }
            )
        elif turn.role is Role.ASSISTANT and turn.tool_invocations:
            messages.append(
                {
                    "role": "assistant",
                    "content": turn.content or None,
                    "tool_calls": [
                        {
                            "id": invocation.tool_call_id,
                            "type": "function",
                            "function": {
                                "name": invocation.tool_name,
                                "arguments": json.dumps(invocation.arguments, ensure_ascii=False),
                            },
                        }
                        for invocation in turn.tool_invocations
                    ],
                }
            )
        else:
            messages.append({"role": turn.role.value, "content": turn.content})
    return messages


def to_openai_tools(tools: Sequence[ToolDefinition]) -> list[dict[str, Any]]:
    return [
        {
            "type": "function",
            "function": {"name": tool.name, "description": tool.description, "parameters": tool.parameters},
        }
        for tool in tools
    ]


class OpenAIChatModel(ChatModel):
    """Chat model adapter around ``AsyncOpenAI.chat.completions``."""

    def __init__(self, client: AsyncOpenAI, model: str = "gpt-4o-mini", temperature: float | None = None) -> None:
        self._client = client
        self._model = model
        self._temperature = temperature

    @property
    def model_id(self) -> str:
        return self._model

    async def stream(
        self,
        *,
        system: str,
        messages: Sequence[ConversationTurn],
        tools: Sequence[ToolDefinition],
        tool_choice: str = "auto",
    ) -> AsyncIterator[ModelEvent]:
        kwargs: dict[str, Any] = {
            "model": self._model,
            "messages": to_openai_messages(system, messages),
            "stream": True,
            "stream_options": {"include_usage": True},
        }
        if tools:
            kwargs["tools"] = to_openai_tools(tools)
            kwargs["tool_choice"] = tool_choice
        if self._temperature is not None:
            kwargs["temperature"] = self._temperature

        pending: dict[int, dict[str, Any]] = {}
        finish_reason = "unknown"
        prompt_tokens = 0
        completion_tokens = 0

        try:
            stream = await self._client.chat.completions.create(**kwargs)
            async with stream:
                async for chunk in stream:
                    if chunk.usage is not None:
                        prompt_tokens = chunk.usage.prompt_tokens or 0
                        completion_tokens = chunk.usage.completion_tokens or 0
                    if not chunk.choices:
                        continue
                    choice = chunk.choices[0]
                    delta = choice.delta
                    if delta is not None and delta.content:
                        yield TextDelta(text=delta.content)
                    if delta is not None and delta.tool_calls:
                        for fragment in delta.tool_calls:
                            slot = pending.setdefault(fragment.index, {"id": "", "name": "", "arguments": []})
                            if fragment.id:
                                slot["id"] = fragment.id
                            if fragment.function is not None:
                                if fragment.function.name:
                                    slot["name"] = fragment.function.name
                                if fragment.function.arguments:
                                    slot["arguments"].append(fragment.function.arguments)
                    if choice.finish_reason:
                        finish_reason = choice.finish_reason
        except openai.RateLimitError as exc:
            logger.warning("Chat model %s rate limited: %s", self._model, exc)
            raise UpstreamFailure(f"Rate limited by the chat provider: {exc}", retryable=True) from exc
        except openai.APIStatusError as exc:
            logger.error("Chat model %s returned HTTP %s: %s", self._model, exc.status_code, exc)
            raise UpstreamFailure(f"Chat provider error: {exc}", retryable=exc.status_code >= 500) from exc
        except openai.OpenAIError as exc:
            logger.error("Chat model %s failed: %s", self._model, exc)
            raise UpstreamFailure(f"Chat provider unavailable: {exc}", retryable=True) from exc

        for index in sorted(pending):
            slot = pending[index]
            yield ToolCallRequest(
                id=slot["id"] or f"call_{index}",
                name=slot["name"],
                arguments="".join(slot["arguments"]),
            )
        logger.debug(
            "Model step finished (%s): %d tool call(s), %d/%d tokens",
            finish_reason,
            len(pending),
            prompt_tokens,
            completion_tokens,
        )
        yield StepFinish(
            finish_reason=finish_reason.replace("_", "-"),
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
        )


__all__ = ["OpenAIChatModel", "to_openai_messages", "to_openai_tools"]
