"""Domain entities for the ContextChat system."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


@dataclass(slots=True)
class Chunk:
    """A contiguous span of a submission treated as one retrievable unit."""

    content: str
    source_text: str


@dataclass(slots=True)
class EmbeddedChunk:
    """Chunk content paired with its embedding, ready to be stored."""

    content: str
    embedding: list[float]


@dataclass(frozen=True, slots=True)
class EmbeddingRecord:
    """A persisted fact in the knowledge base."""

    id: str
    content: str
    embedding: list[float]


@dataclass(slots=True)
class SimilarityResult:
    """A ranked retrieval hit computed for a single query."""

    id: str
    content: str
    similarity: float

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "content": self.content, "similarity": self.similarity}


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


@dataclass(slots=True)
class ToolInvocation:
    """A tool call issued by the model, with its result once executed."""

    tool_call_id: str
    tool_name: str
    arguments: dict[str, Any] = field(default_factory=dict)
    result: Any = None


@dataclass(slots=True)
class ConversationTurn:
    """One message in the ongoing exchange."""

    role: Role
    content: str = ""
    tool_invocations: list[ToolInvocation] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class ToolDefinition:
    """Name, description and JSON schema of a tool offered to the model."""

    name: str
    description: str
    parameters: dict[str, Any]


@dataclass(frozen=True, slots=True)
class TextDelta:
    text: str


@dataclass(frozen=True, slots=True)
class ToolCallRequest:
    """A tool call requested by the model; arguments are raw JSON text."""

    id: str
    name: str
    arguments: str


@dataclass(frozen=True, slots=True)
class StepFinish:
    finish_reason: str
    prompt_tokens: int = 0
    completion_tokens: int = 0


ModelEvent = TextDelta | ToolCallRequest | StepFinish


class ChatEventType(str, Enum):
    TEXT_DELTA = "text-delta"
    TOOL_CALL = "tool-call"
    TOOL_RESULT = "tool-result"
    STEP_FINISH = "step-finish"
    FINISH = "finish"


@dataclass(frozen=True, slots=True)
class ChatEvent:
    """Event produced by the orchestrator for the transcript consumer."""

    type: ChatEventType
    data: dict[str, Any]


__all__ = [
    "Chunk",
    "EmbeddedChunk",
    "EmbeddingRecord",
    "SimilarityResult",
    "Role",
    "ToolInvocation",
    "ConversationTurn",
    "ToolDefinition",
    "TextDelta",
    "ToolCallRequest",
    "StepFinish",
    "ModelEvent",
    "ChatEventType",
    "ChatEvent",
]
