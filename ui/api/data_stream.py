"""Encoder for the AI data-stream protocol consumed by the chat web client."""
from __future__ import annotations

import json
import logging
from contextlib import aclosing
from typing import Any, AsyncIterator
from uuid import uuid4

from domain.entities import ChatEvent, ChatEventType
from domain.errors import RequestTimeout, UpstreamFailure

logger = logging.getLogger(__name__)

DATA_STREAM_HEADERS = {"x-vercel-ai-data-stream": "v1"}

UPSTREAM_MESSAGE = "The assistant is temporarily unavailable. Please try again in a moment."
TIMEOUT_MESSAGE = "The request took too long to complete. Please try again."
UNEXPECTED_MESSAGE = "Something went wrong while answering. Please try again."

_EVENT_CODES = {
    ChatEventType.TEXT_DELTA: "0",
    ChatEventType.TOOL_CALL: "9",
    ChatEventType.TOOL_RESULT: "a",
    ChatEventType.STEP_FINISH: "e",
    ChatEventType.FINISH: "d",
}


def format_part(code: str, value: Any) -> str:
    return f"{code}:{json.dumps(value, ensure_ascii=False, separators=(',', ':'))}\n"


def encode_event(event: ChatEvent) -> str:
    code = _EVENT_CODES[event.type]
    if event.type is ChatEventType.TEXT_DELTA:
        return format_part(code, event.data["text"])
    if event.type is ChatEventType.TOOL_RESULT:
        return format_part(code, {"toolCallId": event.data["toolCallId"], "result": event.data["result"]})
    return format_part(code, event.data)


async def data_stream(events: AsyncIterator[ChatEvent], message_id: str | None = None) -> AsyncIterator[str]:
    """Frame orchestrator events; request-ending failures become an error part."""

    yield format_part("f", {"messageId": message_id or f"msg-{uuid4().hex}"})
    async with aclosing(events) as stream:
        try:
            async for event in stream:
                yield encode_event(event)
        except UpstreamFailure as exc:
            logger.warning("Chat request failed upstream (retryable=%s): %s", exc.retryable, exc)
            yield format_part("3", UPSTREAM_MESSAGE)
        except RequestTimeout as exc:
            logger.warning("Chat request timed out: %s", exc)
            yield format_part("3", TIMEOUT_MESSAGE)
        except Exception:
            logger.exception("Unexpected error while streaming a chat reply")
            yield format_part("3", UNEXPECTED_MESSAGE)


__all__ = [
    "DATA_STREAM_HEADERS",
    "UPSTREAM_MESSAGE",
    "TIMEOUT_MESSAGE",
    "format_part",
    "encode_event",
    "data_stream",
]
