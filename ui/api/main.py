"""FastAPI layer that exposes the streaming chat endpoint."""
from __future__ import annotations

import json
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Literal

from fastapi import FastAPI, Request
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, ConfigDict, Field

from domain.entities import ConversationTurn, Role, ToolInvocation
from infrastructure.config import Container, ContainerConfig, build_default_container
from ui.api.data_stream import DATA_STREAM_HEADERS, data_stream
from ui.logging_utils import setup_logging

logger = logging.getLogger(__name__)


class ToolInvocationPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    state: str = "result"
    tool_call_id: str = Field(alias="toolCallId")
    tool_name: str = Field(alias="toolName")
    args: dict[str, Any] = Field(default_factory=dict)
    result: Any = None


class MessagePayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    role: Literal["user", "assistant", "system"]
    content: str = ""
    tool_invocations: list[ToolInvocationPayload] | None = Field(default=None, alias="toolInvocations")


class ChatRequest(BaseModel):
    messages: list[MessagePayload] = Field(min_length=1)


class HealthResponse(BaseModel):
    status: str
    records: int


def to_turns(messages: list[MessagePayload]) -> list[ConversationTurn]:
    """Expand client messages into conversation turns.

    Completed tool invocations on an assistant message become an assistant
    turn with the calls, one tool turn per result, then the assistant's text.
    """

    turns: list[ConversationTurn] = []
    for message in messages:
        if message.role == "system":
            continue
        if message.role == "user":
            turns.append(ConversationTurn(role=Role.USER, content=message.content))
            continue

        completed = [item for item in message.tool_invocations or [] if item.state == "result"]
        if completed:
            invocations = [
                ToolInvocation(
                    tool_call_id=item.tool_call_id,
                    tool_name=item.tool_name,
                    arguments=item.args,
                    result=item.result,
                )
                for item in completed
            ]
            turns.append(ConversationTurn(role=Role.ASSISTANT, tool_invocations=invocations))
            for invocation in invocations:
                turns.append(
                    ConversationTurn(
                        role=Role.TOOL,
                        content=json.dumps(invocation.result, ensure_ascii=False),
                        tool_invocations=[invocation],
                    )
                )
        if message.content:
            turns.append(ConversationTurn(role=Role.ASSISTANT, content=message.content))
    return turns


def create_app(container: Container | None = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if getattr(app.state, "container", None) is None:
            setup_logging()
            app.state.container = build_default_container(ContainerConfig.from_env())
        yield

    app = FastAPI(title="ContextChat API", lifespan=lifespan)
    app.state.container = container

    @app.post("/api/chat")
    async def chat_endpoint(payload: ChatRequest, request: Request) -> StreamingResponse:
        active: Container = request.app.state.container
        turns = to_turns(payload.messages)
        logger.info("Chat request with %d turns", len(turns))
        return StreamingResponse(
            data_stream(active.orchestrator.run(turns)),
            media_type="text/plain; charset=utf-8",
            headers=DATA_STREAM_HEADERS,
        )

    @app.get("/api/health", response_model=HealthResponse)
    async def health_endpoint(request: Request) -> HealthResponse:
        active: Container = request.app.state.container
        return HealthResponse(status="ok", records=await active.store.count())

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("ui.api.main:app", host="0.0.0.0", port=8000)
