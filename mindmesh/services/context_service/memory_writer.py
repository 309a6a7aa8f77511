"""Memory writer - persists each message as a long-term memory.

Runs detached after the reply is produced. It raises on failure; the
pipeline's background-task boundary logs and swallows the error so a slow
or failing embedding service never touches the user-facing response.
"""
import asyncio
import logging
import uuid
from datetime import datetime
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, Iterable, List, Optional

from mindmesh.shared.models import EmotionalSignal
from mindmesh.shared.utils import hash_pii
from .config import MemoryWriteConfig
from .embeddings import EmbeddingClient, EmbeddingError
from .vector_store import VectorMemoryStore

if TYPE_CHECKING:
    from mindmesh.services.pipeline.state import PipelineState

logger = logging.getLogger(__name__)


class MemoryWriter:
    """Embeds messages and upserts them into the vector memory store."""

    def __init__(
        self,
        embedder: EmbeddingClient,
        vector_store: VectorMemoryStore,
        config: Optional[MemoryWriteConfig] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.embedder = embedder
        self.vector_store = vector_store
        self.config = config or MemoryWriteConfig()
        self._sleep = sleep

    async def write(self, state: "PipelineState") -> str:
        """Persist the message of a completed pipeline run.

        Returns:
            The new memory id
        """
        return await self.remember(
            user_id=state.user_id,
            text=state.input_text,
            signal=state.emotional_signal,
        )

    async def remember(
        self,
        user_id: str,
        text: str,
        signal: Optional[EmotionalSignal] = None,
    ) -> str:
        """Embed ``text`` with retry and store it for ``user_id``.

        Raises:
            EmbeddingError: When every embedding attempt failed
            VectorStoreError: When the upsert failed
        """
        vector = await self._embed_with_retry(text)

        memory_id = f"mem_{uuid.uuid4()}"
        metadata: Dict[str, Any] = {
            "user_id": user_id,
            "content": text,
            "type": self.config.memory_type,
            "timestamp": datetime.utcnow().isoformat(),
        }
        if signal is not None:
            metadata["emotion_scores"] = dict(signal.scores)
            metadata["sentiment"] = signal.sentiment

        await self.vector_store.upsert(memory_id, vector, metadata)

        logger.info(
            "MEMORY_STORED",
            extra={
                "user_id_hash": hash_pii(user_id),
                "memory_id": memory_id,
                "dimension": len(vector),
            }
        )
        return memory_id

    async def forget(self, memory_ids: Iterable[str]) -> None:
        """Delete memories by id."""
        ids = list(memory_ids)
        await self.vector_store.delete(ids)
        logger.info("MEMORY_DELETED", extra={"count": len(ids)})

    async def _embed_with_retry(self, text: str) -> List[float]:
        last_error: Optional[Exception] = None

        for attempt in range(1, self.config.max_retries + 1):
            try:
                return await self.embedder.embed(text)
            except EmbeddingError as e:
                last_error = e
                if attempt == self.config.max_retries:
                    break

                delay = self.config.backoff_base_seconds * (2 ** (attempt - 1))
                logger.warning(
                    "MEMORY_EMBED_RETRY",
                    extra={
                        "attempt": attempt,
                        "max_retries": self.config.max_retries,
                        "delay_seconds": delay,
                        "error": str(e),
                    }
                )
                await self._sleep(delay)

        raise EmbeddingError(
            f"Embedding failed after {self.config.max_retries} attempts: {last_error}"
        ) from last_error
