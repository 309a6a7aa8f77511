"""Builds a PipelineOrchestrator from environment configuration.

Every collaborator is constructed here and injected; no component keeps
a module-level client. ``PipelineOrchestrator.aclose()`` releases what
this function opened.
"""
import asyncio
import logging
import os
from typing import Any, List, Optional

from mindmesh.shared.database import ConnectionManager, DatabaseConfig
from mindmesh.shared.utils import configure_pii_salt, is_pii_salt_configured
from ..context_service import (
    ContextRetriever,
    EmbeddingClient,
    HashEmbeddingClient,
    HttpEmbeddingClient,
    InMemoryShortTermStore,
    InMemoryVectorStore,
    MemoryWriter,
    OpenAIEmbeddingClient,
    PostgresShortTermStore,
    QdrantVectorStore,
    RetrievalConfig,
    VectorMemoryStore,
)
from ..emotion_service import (
    EmotionAnalysisConfig,
    EmotionAnalyzer,
    LanguageUnderstandingClient,
)
from ..llm_service import BaseLLM, LLMConfig, create_llm
from ..recommendation_engine import (
    RecommendationEngine,
    RecommendationThresholds,
    SuggestionCatalog,
)
from ..response_service import ResponseConfig, ResponseGenerator
from ..safety_service import (
    InMemoryFlagStore,
    KinesisNotificationChannel,
    NotificationConfig,
    PostgresFlagStore,
    SafetyEscalator,
)
from .config import PipelineConfig
from .orchestrator import PipelineOrchestrator

logger = logging.getLogger(__name__)


def ensure_pii_salt() -> None:
    """Configure the PII salt from PII_HASH_SALT unless already configured.

    Raises:
        RuntimeError: If no salt is configured and the variable is unset
    """
    if is_pii_salt_configured():
        return
    salt = os.getenv("PII_HASH_SALT")
    if not salt:
        raise RuntimeError("PII_HASH_SALT must be set before building the pipeline")
    configure_pii_salt(salt)


def build_embedder(config: PipelineConfig) -> EmbeddingClient:
    if config.embedding_backend == "openai":
        return OpenAIEmbeddingClient(
            api_key=os.getenv("OPENAI_API_KEY", ""),
            model=os.getenv("EMBEDDING_MODEL", "text-embedding-3-small"),
            dimension=config.embedding_dimension,
        )
    if config.embedding_backend == "http":
        return HttpEmbeddingClient(
            base_url=config.embedding_service_url,
            model=config.embedding_model,
            dimension=config.embedding_dimension,
        )
    return HashEmbeddingClient(dimension=config.embedding_dimension)


def build_vector_store(config: PipelineConfig) -> VectorMemoryStore:
    if config.vector_backend == "qdrant":
        return QdrantVectorStore(
            url=config.qdrant_url,
            collection=config.qdrant_collection,
            embedding_dim=config.embedding_dimension,
            api_key=config.qdrant_api_key,
        )
    return InMemoryVectorStore(embedding_dim=config.embedding_dimension)


async def build_pipeline(
    config: Optional[PipelineConfig] = None,
    llm: Optional[BaseLLM] = None,
) -> PipelineOrchestrator:
    """Wire concrete collaborators into an orchestrator.

    Args:
        config: Pipeline configuration (default: from environment)
        llm: Model client override; by default built from LLM_* variables,
            and None when no model is configured

    Returns:
        Initialized PipelineOrchestrator
    """
    ensure_pii_salt()
    config = config or PipelineConfig.from_env()
    resources: List[Any] = []

    if llm is None:
        llm_config = LLMConfig.from_env()
        llm = create_llm(llm_config) if llm_config else None
    if llm is not None:
        resources.append(llm)

    embedder = build_embedder(config)
    resources.append(embedder)

    vector_store = build_vector_store(config)
    await vector_store.initialize()
    resources.append(vector_store)

    if config.store_backend == "postgres":
        connection_manager = ConnectionManager(DatabaseConfig.from_env())
        await asyncio.to_thread(connection_manager.initialize)
        resources.append(connection_manager)
        short_term = PostgresShortTermStore(connection_manager)
        flag_store = PostgresFlagStore(connection_manager)
        health = await asyncio.to_thread(
            connection_manager.health_check, short_term.table_names
        )
        if not health["healthy"]:
            # Context retrieval degrades to empty history until the tables exist
            logger.warning(
                "SHORT_TERM_STORE_NOT_READY",
                extra={
                    "status": health["status"],
                    "missing_tables": health.get("missing_tables", []),
                }
            )
    else:
        short_term = InMemoryShortTermStore()
        flag_store = InMemoryFlagStore()
    await flag_store.initialize()

    orchestrator = PipelineOrchestrator(
        emotion_analyzer=EmotionAnalyzer(
            LanguageUnderstandingClient(llm) if llm is not None else None,
            EmotionAnalysisConfig(model_timeout_seconds=config.emotion_timeout_seconds),
        ),
        context_retriever=ContextRetriever(
            short_term,
            vector_store,
            embedder,
            RetrievalConfig(
                top_k=config.top_k,
                leg_timeout_seconds=config.context_timeout_seconds,
            ),
        ),
        recommendation_engine=RecommendationEngine(RecommendationThresholds.from_env()),
        safety_escalator=SafetyEscalator(
            flag_store,
            KinesisNotificationChannel(NotificationConfig.from_env()),
        ),
        response_generator=ResponseGenerator(
            llm,
            SuggestionCatalog(),
            ResponseConfig(
                timeout_seconds=config.response_timeout_seconds,
                bypass_llm_on_crisis=config.bypass_llm_on_crisis,
            ),
        ),
        memory_writer=MemoryWriter(embedder, vector_store),
        resources=resources,
        drain_timeout_seconds=config.drain_timeout_seconds,
    )

    logger.info(
        "PIPELINE_BUILT",
        extra={
            "llm_enabled": llm is not None,
            "embedding_backend": config.embedding_backend,
            "vector_backend": config.vector_backend,
            "store_backend": config.store_backend,
        }
    )
    return orchestrator
