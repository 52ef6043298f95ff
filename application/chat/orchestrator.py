"""Multi-step tool-calling loop between the chat model and the retrieval tools."""
from __future__ import annotations

import asyncio
import json
import logging
from contextlib import aclosing
from dataclasses import dataclass
from typing import Any, AsyncIterator, Sequence

from application.tools.registry import ToolOutcome, ToolRegistry
from domain.entities import (
    ChatEvent,
    ChatEventType,
    ConversationTurn,
    Role,
    StepFinish,
    TextDelta,
    ToolCallRequest,
    ToolDefinition,
    ToolInvocation,
)
from domain.errors import RequestTimeout
from domain.interfaces import ChatModel

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ChatSettings:
    system_prompt: str
    max_steps: int = 5
    request_timeout: float = 30.0

    def __post_init__(self) -> None:
        if self.max_steps < 1:
            raise ValueError("max_steps must be at least 1.")
        if self.request_timeout <= 0:
            raise ValueError("request_timeout must be positive.")


@dataclass(slots=True)
class _StepOutput:
    text: str
    calls: list[ToolCallRequest]
    finish: StepFinish


def _decode_arguments(raw: str) -> Any:
    try:
        return json.loads(raw) if raw else {}
    except json.JSONDecodeError:
        return raw


def _usage(prompt_tokens: int, completion_tokens: int) -> dict[str, int]:
    return {"promptTokens": prompt_tokens, "completionTokens": completion_tokens}


class ChatOrchestrator:
    """Streams one assistant reply, running tools between model steps.

    Each step streams the model; if it requested tools they are executed
    concurrently, their results are appended to the context in issue order
    and the model is called again. The last step of the budget offers no
    tool choice, so the reply always ends in text.
    """

    def __init__(self, chat_model: ChatModel, tools: ToolRegistry, settings: ChatSettings) -> None:
        self._chat_model = chat_model
        self._tools = tools
        self._settings = settings

    @property
    def settings(self) -> ChatSettings:
        return self._settings

    async def run(self, turns: Sequence[ConversationTurn]) -> AsyncIterator[ChatEvent]:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._settings.request_timeout
        context = list(turns)
        definitions = self._tools.definitions()
        prompt_tokens = 0
        completion_tokens = 0

        for step in range(1, self._settings.max_steps + 1):
            final_step = step == self._settings.max_steps
            logger.debug("Starting step %d/%d", step, self._settings.max_steps)

            output = _StepOutput(text="", calls=[], finish=StepFinish(finish_reason="unknown"))
            async with aclosing(self._stream_step(context, definitions, final_step, deadline, output)) as events:
                async for event in events:
                    yield event

            prompt_tokens += output.finish.prompt_tokens
            completion_tokens += output.finish.completion_tokens
            step_usage = _usage(output.finish.prompt_tokens, output.finish.completion_tokens)

            calls = output.calls
            finish_reason = output.finish.finish_reason
            if calls and final_step:
                logger.warning("Dropping %d tool call(s) requested on the final step", len(calls))
                calls = []
                finish_reason = "stop"

            if not calls:
                logger.info("Reply finished after %d step(s)", step)
                yield ChatEvent(
                    ChatEventType.STEP_FINISH,
                    {"finishReason": finish_reason, "usage": step_usage, "isContinued": False},
                )
                yield ChatEvent(
                    ChatEventType.FINISH,
                    {
                        "finishReason": finish_reason,
                        "usage": _usage(prompt_tokens, completion_tokens),
                    },
                )
                return

            for call in calls:
                yield ChatEvent(
                    ChatEventType.TOOL_CALL,
                    {"toolCallId": call.id, "toolName": call.name, "args": _decode_arguments(call.arguments)},
                )

            outcomes = await self._execute_tools(calls, deadline)

            context.append(
                ConversationTurn(
                    role=Role.ASSISTANT,
                    content=output.text,
                    tool_invocations=[
                        ToolInvocation(
                            tool_call_id=call.id,
                            tool_name=call.name,
                            arguments=outcome.arguments,
                            result=outcome.result,
                        )
                        for call, outcome in zip(calls, outcomes)
                    ],
                )
            )
            for outcome in outcomes:
                context.append(
                    ConversationTurn(
                        role=Role.TOOL,
                        content=json.dumps(outcome.result, ensure_ascii=False),
                        tool_invocations=[
                            ToolInvocation(
                                tool_call_id=outcome.tool_call_id,
                                tool_name=outcome.tool_name,
                                arguments=outcome.arguments,
                                result=outcome.result,
                            )
                        ],
                    )
                )
                yield ChatEvent(
                    ChatEventType.TOOL_RESULT,
                    {
                        "toolCallId": outcome.tool_call_id,
                        "toolName": outcome.tool_name,
                        "args": outcome.arguments,
                        "result": outcome.result,
                    },
                )

            yield ChatEvent(
                ChatEventType.STEP_FINISH,
                {"finishReason": "tool-calls", "usage": step_usage, "isContinued": True},
            )

    async def _stream_step(
        self,
        context: list[ConversationTurn],
        definitions: list[ToolDefinition],
        final_step: bool,
        deadline: float,
        output: _StepOutput,
    ) -> AsyncIterator[ChatEvent]:
        text_parts: list[str] = []
        stream = self._chat_model.stream(
            system=self._settings.system_prompt,
            messages=context,
            tools=definitions,
            tool_choice="none" if final_step else "auto",
        )
        async with aclosing(stream):
            while True:
                remaining = self._remaining(deadline)
                try:
                    event = await asyncio.wait_for(anext(stream), remaining)
                except StopAsyncIteration:
                    break
                except asyncio.TimeoutError:
                    raise RequestTimeout(self._timeout_message()) from None

                if isinstance(event, TextDelta):
                    if event.text:
                        text_parts.append(event.text)
                        yield ChatEvent(ChatEventType.TEXT_DELTA, {"text": event.text})
                elif isinstance(event, ToolCallRequest):
                    output.calls.append(event)
                elif isinstance(event, StepFinish):
                    output.finish = event
        output.text = "".join(text_parts)

    async def _execute_tools(self, calls: list[ToolCallRequest], deadline: float) -> list[ToolOutcome]:
        remaining = self._remaining(deadline)
        logger.info("Executing %d tool call(s): %s", len(calls), ", ".join(call.name for call in calls))
        batch = asyncio.gather(*(self._tools.execute(call) for call in calls))
        try:
            return list(await asyncio.wait_for(batch, remaining))
        except asyncio.TimeoutError:
            raise RequestTimeout(self._timeout_message()) from None

    def _remaining(self, deadline: float) -> float:
        remaining = deadline - asyncio.get_running_loop().time()
        if remaining <= 0:
            raise RequestTimeout(self._timeout_message())
        return remaining

    def _timeout_message(self) -> str:
        logger.warning("Chat request exceeded %.1f seconds", self._settings.request_timeout)
        return f"Request exceeded {self._settings.request_timeout:g} seconds."


__all__ = ["ChatSettings", "ChatOrchestrator"]
