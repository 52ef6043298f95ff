"""Dependency wiring for the ContextChat application."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Literal, Mapping, get_args

from openai import AsyncOpenAI

from application.chat.orchestrator import ChatOrchestrator, ChatSettings
from application.chat.prompts import Persona, build_system_prompt
from application.services.embedding_gateway import EmbeddingGateway
from application.tools.registry import ToolRegistry
from application.tools.retrieval_tools import RetrievalTools, build_tool_registry
from application.use_cases.find_relevant_content import RetrievalSettings
from domain.interfaces import ChatModel, ChunkSplitter, Embedder, KnowledgeStore, QueryExpander
from infrastructure.embedding.hash_embedder import HashEmbedder
from infrastructure.embedding.openai_embedder import OpenAIEmbedder
from infrastructure.llm.openai_chat_model import OpenAIChatModel
from infrastructure.query.llm_query_expander import LLMQueryExpander, LLMQueryExpanderConfig
from infrastructure.query.simple_query_expander import SimpleQueryExpander
from infrastructure.splitting.period_splitter import PeriodSplitter
from infrastructure.storage.in_memory_embedding_store import InMemoryEmbeddingStore
from infrastructure.storage.sqlite_embedding_store import SqliteEmbeddingStore

logger = logging.getLogger(__name__)

EmbedderName = Literal["openai", "sentence-transformers", "hash"]
StoreName = Literal["memory", "sqlite", "faiss"]
QueryProviderName = Literal["openai", "ollama", "none"]

ENV_PREFIX = "CONTEXTCHAT_"
DEFAULT_EMBEDDING_MODEL = "text-embedding-3-small"
DEFAULT_SENTENCE_TRANSFORMERS_MODEL = "sentence-transformers/all-MiniLM-L6-v2"


@dataclass(slots=True)
class Container:
    """Simple container bundling concrete infrastructure implementations."""

    config: ContainerConfig
    splitter: ChunkSplitter
    gateway: EmbeddingGateway
    store: KnowledgeStore
    query_expander: QueryExpander
    chat_model: ChatModel
    tools: ToolRegistry
    orchestrator: ChatOrchestrator


@dataclass(slots=True)
class ContainerConfig:
    """Configuration for selecting providers, storage and chat policy."""

    embedder: EmbedderName = "openai"
    embedding_model: str = DEFAULT_EMBEDDING_MODEL
    embedding_dimension: int = 1536
    store: StoreName = "sqlite"
    data_root: str = "data"
    chat_model: str = "gpt-4o-mini"
    query_provider: QueryProviderName = "openai"
    query_model: str = "gpt-4o"
    ollama_url: str = "http://localhost:11434"
    max_steps: int = 5
    request_timeout: float = 30.0
    retrieval: RetrievalSettings = field(default_factory=RetrievalSettings)
    persona: Persona = field(default_factory=Persona)
    openai_api_key: str | None = None
    openai_base_url: str | None = None

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> ContainerConfig:
        """Read ``CONTEXTCHAT_*`` variables, falling back to the defaults."""

        env = os.environ if environ is None else environ
        defaults = cls()

        def text(name: str, default: str) -> str:
            value = env.get(ENV_PREFIX + name)
            return value if value is not None and value.strip() else default

        def choice(name: str, default: str, allowed: tuple[str, ...]) -> str:
            value = text(name, default).strip().lower()
            if value not in allowed:
                raise ValueError(f"{ENV_PREFIX}{name} must be one of {', '.join(allowed)}; got '{value}'.")
            return value

        def number(name: str, default: float, cast: Callable[[str], float]) -> float:
            raw = text(name, "")
            if not raw:
                return default
            try:
                return cast(raw.strip())
            except ValueError as exc:
                raise ValueError(f"{ENV_PREFIX}{name} must be a number; got '{raw}'.") from exc

        retrieval = RetrievalSettings(
            candidate_limit=int(number("CANDIDATE_LIMIT", defaults.retrieval.candidate_limit, int)),
            similarity_threshold=number("SIMILARITY_THRESHOLD", defaults.retrieval.similarity_threshold, float),
            fallback_count=int(number("FALLBACK_COUNT", defaults.retrieval.fallback_count, int)),
            merged_limit=int(number("MERGED_LIMIT", defaults.retrieval.merged_limit, int)),
        )
        persona = Persona(
            name=text("PERSONA_NAME", defaults.persona.name),
            role=text("PERSONA_ROLE", defaults.persona.role),
            contact=text("PERSONA_CONTACT", defaults.persona.contact),
        )
        return cls(
            embedder=choice("EMBEDDER", defaults.embedder, get_args(EmbedderName)),
            embedding_model=text("EMBEDDING_MODEL", defaults.embedding_model),
            embedding_dimension=int(number("EMBEDDING_DIMENSION", defaults.embedding_dimension, int)),
            store=choice("STORE", defaults.store, get_args(StoreName)),
            data_root=text("DATA_ROOT", defaults.data_root),
            chat_model=text("CHAT_MODEL", defaults.chat_model),
            query_provider=choice("QUERY_PROVIDER", defaults.query_provider, get_args(QueryProviderName)),
            query_model=text("QUERY_MODEL", defaults.query_model),
            ollama_url=text("OLLAMA_URL", defaults.ollama_url).rstrip("/"),
            max_steps=int(number("MAX_STEPS", defaults.max_steps, int)),
            request_timeout=number("REQUEST_TIMEOUT", defaults.request_timeout, float),
            retrieval=retrieval,
            persona=persona,
            openai_api_key=env.get("OPENAI_API_KEY") or None,
            openai_base_url=env.get("OPENAI_BASE_URL") or None,
        )


def sentence_transformers_model(cfg: ContainerConfig) -> str:
    # The shared default is an OpenAI model name.
    if cfg.embedding_model == DEFAULT_EMBEDDING_MODEL:
        return DEFAULT_SENTENCE_TRANSFORMERS_MODEL
    return cfg.embedding_model


def _build_sentence_transformers(cfg: ContainerConfig, client: AsyncOpenAI) -> Embedder:
    from infrastructure.embedding.sentence_transformers_embedder import (
        SentenceTransformersConfig,
        SentenceTransformersEmbedder,
    )

    return SentenceTransformersEmbedder(SentenceTransformersConfig(model_name=sentence_transformers_model(cfg)))


_EMBEDDER_FACTORIES: dict[EmbedderName, Callable[[ContainerConfig, AsyncOpenAI], Embedder]] = {
    "openai": lambda cfg, client: OpenAIEmbedder(client, model=cfg.embedding_model, dimension=cfg.embedding_dimension),
    "sentence-transformers": _build_sentence_transformers,
    "hash": lambda cfg, client: HashEmbedder(dimension=cfg.embedding_dimension),
}


def _build_faiss(cfg: ContainerConfig, dimension: int) -> KnowledgeStore:
    from infrastructure.storage.faiss_embedding_store import FaissEmbeddingStore

    return FaissEmbeddingStore(dimension=dimension, index_dir=Path(cfg.data_root) / "faiss")


_STORE_FACTORIES: dict[StoreName, Callable[[ContainerConfig, int], KnowledgeStore]] = {
    "memory": lambda cfg, dimension: InMemoryEmbeddingStore(dimension=dimension),
    "sqlite": lambda cfg, dimension: SqliteEmbeddingStore(
        db_path=Path(cfg.data_root) / "contextchat.db", dimension=dimension
    ),
    "faiss": _build_faiss,
}


def _build_query_expander(cfg: ContainerConfig, client: AsyncOpenAI) -> QueryExpander:
    if cfg.query_provider == "none":
        return SimpleQueryExpander()
    return LLMQueryExpander(
        LLMQueryExpanderConfig(
            provider=cfg.query_provider,
            model=cfg.query_model,
            ollama_url=cfg.ollama_url,
            persona_name=cfg.persona.name,
        ),
        client=client,
    )


def build_default_container(
    config: ContainerConfig | None = None,
    *,
    client: AsyncOpenAI | None = None,
) -> Container:
    """Instantiate the default infrastructure stack."""

    cfg = config or ContainerConfig()
    if client is None:
        client = AsyncOpenAI(api_key=cfg.openai_api_key, base_url=cfg.openai_base_url)

    try:
        embedder = _EMBEDDER_FACTORIES[cfg.embedder](cfg, client)
    except KeyError as exc:
        raise ValueError(f"Unknown embedder '{cfg.embedder}'") from exc
    gateway = EmbeddingGateway(embedder)

    try:
        store = _STORE_FACTORIES[cfg.store](cfg, gateway.dimension)
    except KeyError as exc:
        raise ValueError(f"Unknown store '{cfg.store}'") from exc

    splitter = PeriodSplitter()
    query_expander = _build_query_expander(cfg, client)
    chat_model = OpenAIChatModel(client, model=cfg.chat_model)
    tools = build_tool_registry(
        RetrievalTools(
            splitter=splitter,
            gateway=gateway,
            store=store,
            query_expander=query_expander,
            settings=cfg.retrieval,
        )
    )
    orchestrator = ChatOrchestrator(
        chat_model,
        tools,
        ChatSettings(
            system_prompt=build_system_prompt(cfg.persona),
            max_steps=cfg.max_steps,
            request_timeout=cfg.request_timeout,
        ),
    )
    logger.info(
        "Container ready: embedder=%s (%s, dim=%d), store=%s, chat=%s, query=%s",
        cfg.embedder,
        gateway.model_id,
        gateway.dimension,
        cfg.store,
        cfg.chat_model,
        cfg.query_provider,
    )

    return Container(
        config=cfg,
        splitter=splitter,
        gateway=gateway,
        store=store,
        query_expander=query_expander,
        chat_model=chat_model,
        tools=tools,
        orchestrator=orchestrator,
    )


__all__ = [
    "DEFAULT_EMBEDDING_MODEL",
    "DEFAULT_SENTENCE_TRANSFORMERS_MODEL",
    "Container",
    "ContainerConfig",
    "build_default_container",
    "sentence_transformers_model",
]
