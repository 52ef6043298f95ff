"""Error hierarchy shared by all ContextChat layers."""
from __future__ import annotations


class ContextChatError(Exception):
    """Base class for failures raised by the chat core."""


class EmbeddingFailure(ContextChatError):
    """The embedding provider failed or returned a malformed vector."""


class StoreUnavailable(ContextChatError):
    """The knowledge store could not be reached or rejected an operation."""


class QueryUnderstandingFailure(ContextChatError):
    """The structured query-understanding call failed or broke its schema."""


class UpstreamFailure(ContextChatError):
    """The chat-completion provider failed; the whole request is lost."""

    def __init__(self, message: str, *, retryable: bool = True) -> None:
        super().__init__(message)
        self.retryable = retryable


class RequestTimeout(ContextChatError):
    """A chat request exceeded its wall-clock budget."""


__all__ = [
    "ContextChatError",
    "EmbeddingFailure",
    "StoreUnavailable",
    "QueryUnderstandingFailure",
    "UpstreamFailure",
    "RequestTimeout",
]
