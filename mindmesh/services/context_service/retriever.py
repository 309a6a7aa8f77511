"""Context retriever - second stage of the message pipeline.

Runs the short-term queries and the long-term semantic search
concurrently. Every leg is independently bounded and fault-tolerant: a
failed leg becomes an empty slice and is named in ``failed_sources``.
Retrieval as a whole never raises.
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from mindmesh.shared.models import Context, MemoryMatch, ShortTermHistory
from mindmesh.shared.utils import hash_pii
from .config import RetrievalConfig
from .embeddings import EmbeddingClient
from .short_term_store import ShortTermStore
from .vector_store import VectorMemoryStore

logger = logging.getLogger(__name__)

JOURNALS = "journal_entries"
HABITS = "habits"
EMOTIONS = "recent_emotions"
SEMANTIC = "semantic_memory"


class ContextRetriever:
    """Aggregates short-term history and long-term memory for a user."""

    def __init__(
        self,
        short_term: ShortTermStore,
        vector_store: Optional[VectorMemoryStore] = None,
        embedder: Optional[EmbeddingClient] = None,
        config: Optional[RetrievalConfig] = None,
    ):
        """Initialize retriever.

        Args:
            short_term: Structured history store
            vector_store: Long-term memory index; None disables semantic search
            embedder: Used only when same-turn query embedding is enabled
            config: Limits and timeouts
        """
        self.short_term = short_term
        self.vector_store = vector_store
        self.embedder = embedder
        self.config = config or RetrievalConfig()

    async def retrieve(
        self,
        user_id: str,
        query_text: str,
        query_embedding: Optional[Sequence[float]] = None,
    ) -> Context:
        """Gather context for one message.

        The semantic leg runs only when a query embedding is supplied or
        when ``embed_query_for_retrieval`` is enabled; otherwise it is
        skipped, which is not a failure.

        Returns:
            Context holding whatever legs succeeded
        """
        legs: Dict[str, Callable[[], Awaitable[Any]]] = {
            JOURNALS: lambda: self.short_term.recent_journals(user_id, self.config.journal_limit),
            HABITS: lambda: self.short_term.active_habits(user_id, self.config.habit_limit),
            EMOTIONS: lambda: self.short_term.recent_emotions(user_id, self.config.emotion_limit),
        }
        if self._semantic_enabled(query_embedding):
            legs[SEMANTIC] = lambda: self._semantic_search(user_id, query_text, query_embedding)

        names = list(legs)
        results = await asyncio.gather(
            *(self._bounded(legs[name]) for name in names),
            return_exceptions=True,
        )

        values: Dict[str, List] = {}
        failed: List[str] = []
        for name, result in zip(names, results):
            if isinstance(result, BaseException):
                failed.append(name)
                logger.warning(
                    "CONTEXT_LEG_FAILED",
                    extra={
                        "user_id_hash": hash_pii(user_id),
                        "source": name,
                        "error": str(result) or type(result).__name__,
                        "error_type": type(result).__name__,
                    }
                )
                values[name] = []
            else:
                values[name] = list(result or [])

        context = Context(
            recent_records=ShortTermHistory(
                journal_entries=tuple(values[JOURNALS]),
                habits=tuple(values[HABITS]),
                recent_emotions=tuple(values[EMOTIONS]),
            ),
            semantic_matches=tuple(values.get(SEMANTIC, [])),
            failed_sources=tuple(failed),
        )

        if context.degraded:
            logger.warning(
                "CONTEXT_RETRIEVAL_DEGRADED",
                extra={
                    "user_id_hash": hash_pii(user_id),
                    "failed_sources": failed,
                    "all_empty": context.is_empty,
                }
            )
        else:
            logger.info(
                "CONTEXT_RETRIEVED",
                extra={
                    "user_id_hash": hash_pii(user_id),
                    "counts": context.recent_records.counts(),
                    "semantic_matches": len(context.semantic_matches),
                    "semantic_searched": SEMANTIC in legs,
                }
            )

        return context

    def _semantic_enabled(self, query_embedding: Optional[Sequence[float]]) -> bool:
        if self.vector_store is None or self.config.top_k == 0:
            return False
        if query_embedding is not None:
            return True
        return self.config.embed_query_for_retrieval and self.embedder is not None

    async def _bounded(self, leg: Callable[[], Awaitable[Any]]) -> Any:
        return await asyncio.wait_for(leg(), timeout=self.config.leg_timeout_seconds)

    async def _semantic_search(
        self,
        user_id: str,
        query_text: str,
        query_embedding: Optional[Sequence[float]],
    ) -> List[MemoryMatch]:
        if query_embedding is None:
            query_embedding = await self.embedder.embed(query_text)
        return await self.vector_store.search(user_id, query_embedding, self.config.top_k)
