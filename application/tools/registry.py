"""Name-to-handler dispatch for model-issued tool calls."""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterable

from pydantic import BaseModel, ValidationError

from application.tools.schemas import ToolName
from domain.entities import SimilarityResult, ToolCallRequest, ToolDefinition
from domain.errors import ContextChatError

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ToolSpec:
    name: ToolName
    description: str
    args_model: type[BaseModel]
    handler: Callable[[Any], Awaitable[Any]]

    def definition(self) -> ToolDefinition:
        schema = self.args_model.model_json_schema(by_alias=True)
        schema.pop("title", None)
        for prop in schema.get("properties", {}).values():
            prop.pop("title", None)
        return ToolDefinition(name=self.name.value, description=self.description, parameters=schema)


@dataclass(slots=True)
class ToolOutcome:
    """Result of one tool call, ready to be fed back to the model."""

    tool_call_id: str
    tool_name: str
    arguments: dict[str, Any]
    result: Any
    is_error: bool = False


def to_payload(value: Any) -> Any:
    """Convert handler results into JSON-serialisable values."""
    if isinstance(value, SimilarityResult):
        return value.to_dict()
    if isinstance(value, BaseModel):
        return value.model_dump(by_alias=True)
    if isinstance(value, (list, tuple)):
        return [to_payload(item) for item in value]
    return value


class ToolRegistry:
    """Validates arguments against each tool's schema before dispatching."""

    def __init__(self, specs: Iterable[ToolSpec]) -> None:
        self._specs: dict[str, ToolSpec] = {spec.name.value: spec for spec in specs}

    def names(self) -> list[str]:
        return list(self._specs)

    def definitions(self) -> list[ToolDefinition]:
        return [spec.definition() for spec in self._specs.values()]

    async def execute(self, call: ToolCallRequest) -> ToolOutcome:
        spec = self._specs.get(call.name)
        if spec is None:
            return self._failure(call, {}, f"Unknown tool '{call.name}'.")

        try:
            raw_arguments = json.loads(call.arguments) if call.arguments else {}
        except json.JSONDecodeError as exc:
            return self._failure(call, {}, f"Arguments are not valid JSON: {exc.msg}.")
        if not isinstance(raw_arguments, dict):
            return self._failure(call, {}, "Arguments must be a JSON object.")

        try:
            arguments = spec.args_model.model_validate(raw_arguments)
        except ValidationError as exc:
            problems = "; ".join(
                f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}" for error in exc.errors()
            )
            return self._failure(call, raw_arguments, f"Invalid arguments: {problems}.")

        logger.info("Executing tool %s (call %s)", call.name, call.id)
        try:
            result = await spec.handler(arguments)
        except (ContextChatError, ValueError) as exc:
            logger.warning("Tool %s failed: %s", call.name, exc)
            return self._failure(call, raw_arguments, str(exc))
        except Exception as exc:
            logger.exception("Unexpected error executing tool %s", call.name)
            return self._failure(call, raw_arguments, f"Error executing {call.name}: {exc}")

        return ToolOutcome(
            tool_call_id=call.id,
            tool_name=call.name,
            arguments=raw_arguments,
            result=to_payload(result),
        )

    @staticmethod
    def _failure(call: ToolCallRequest, arguments: dict[str, Any], message: str) -> ToolOutcome:
        logger.debug("Tool call %s (%s) reported error: %s", call.id, call.name, message)
        return ToolOutcome(
            tool_call_id=call.id,
            tool_name=call.name,
            arguments=arguments,
            result={"error": message},
            is_error=True,
        )


__all__ = ["ToolSpec", "ToolOutcome", "ToolRegistry", "to_payload"]
