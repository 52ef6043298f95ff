"""LLM-powered query understanding that proposes similar questions."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Literal

import openai
import requests
from openai import AsyncOpenAI
from pydantic import BaseModel, Field, ValidationError

from domain.errors import QueryUnderstandingFailure
from domain.interfaces import QueryExpander

logger = logging.getLogger(__name__)


class ExpandedQueries(BaseModel):
    questions: list[str] = Field(
        max_length=3,
        description="similar questions to the user's query. be concise.",
    )


QUESTIONS_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "questions": {
            "type": "array",
            "items": {"type": "string"},
            "maxItems": 3,
            "description": "similar questions to the user's query. be concise.",
        }
    },
    "required": ["questions"],
    "additionalProperties": False,
}


@dataclass(slots=True)
class LLMQueryExpanderConfig:
    provider: Literal["openai", "ollama"] = "openai"
    model: str = "gpt-4o"
    max_query_length: int = 256
    ollama_url: str = "http://localhost:11434"
    persona_name: str = ""
    timeout: float = 60.0


def build_understanding_prompts(query: str, persona_name: str = "") -> tuple[str, str]:
    """Return the (system, user) prompts for one query."""
    system = "You are a query understanding assistant. Analyze the user query and generate similar questions"
    if persona_name:
        system += f", including questions about {persona_name}'s personal and professional details when relevant"
    system += "."

    prompt = f'Analyze this query: "{query}".\n'
    if persona_name:
        prompt += (
            f"If the query is about {persona_name} (personal details, meetings, background, etc.), "
            f'include questions like "Who is {persona_name}", "{persona_name} background", '
            f'"{persona_name} contact information", etc.\n'
        )
    prompt += "\nProvide 3 similar questions that could help answer the user's query"
    return system, prompt


class LLMQueryExpander(QueryExpander):
    """Generate up to three query variants with a structured-output LLM call."""

    def __init__(self, config: LLMQueryExpanderConfig, client: AsyncOpenAI | None = None) -> None:
        if config.provider == "openai" and client is None:
            raise ValueError("The openai query provider needs an AsyncOpenAI client.")
        self._config = config
        self._client = client

    async def expand(self, query: str) -> list[str]:
        system, prompt = build_understanding_prompts(query, self._config.persona_name)
        if self._config.provider == "openai":
            raw = await self._call_openai(system, prompt)
        else:
            raw = await asyncio.to_thread(self._call_ollama, system, prompt)

        try:
            parsed = ExpandedQueries.model_validate_json(raw)
        except ValidationError as exc:
            raise QueryUnderstandingFailure(f"Query understanding returned an invalid payload: {exc}") from exc

        questions = self._normalize(parsed.questions)
        logger.debug("Expanded %r into %s", query, questions)
        return questions

    async def _call_openai(self, system: str, prompt: str) -> str:
        if self._client is None:
            raise QueryUnderstandingFailure("No OpenAI client is configured for query understanding.")
        try:
            response = await self._client.chat.completions.create(
                model=self._config.model,
                messages=[
                    {"role": "system", "content": system},
                    {"role": "user", "content": prompt},
                ],
                response_format={
                    "type": "json_schema",
                    "json_schema": {"name": "similar_questions", "schema": QUESTIONS_SCHEMA},
                },
                timeout=self._config.timeout,
            )
        except openai.OpenAIError as exc:
            logger.warning("OpenAI query understanding failed: %s", exc)
            raise QueryUnderstandingFailure(f"Query understanding call failed: {exc}") from exc
        if not response.choices:
            raise QueryUnderstandingFailure("Query understanding returned no choices.")
        return response.choices[0].message.content or ""

    def _call_ollama(self, system: str, prompt: str) -> str:
        try:
            response = requests.post(
                f"{self._config.ollama_url}/api/generate",
                json={
                    "model": self._config.model,
                    "system": system,
                    "prompt": prompt,
                    "format": QUESTIONS_SCHEMA,
                    "stream": False,
                },
                timeout=self._config.timeout,
            )
            response.raise_for_status()
            payload = response.json()
        except (requests.RequestException, ValueError) as exc:
            logger.warning("Ollama query understanding failed: %s", exc)
            raise QueryUnderstandingFailure(f"Query understanding call failed: {exc}") from exc
        return payload.get("response", "") if isinstance(payload, dict) else ""

    def _normalize(self, candidates: list[str]) -> list[str]:
        normalized: list[str] = []
        for candidate in candidates:
            text = candidate.strip()
            if not text:
                continue
            text = text[: self._config.max_query_length]
            if text not in normalized:
                normalized.append(text)
        return normalized


__all__ = ["LLMQueryExpander", "LLMQueryExpanderConfig", "ExpandedQueries", "build_understanding_prompts"]
