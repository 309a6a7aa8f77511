"""Vector memory stores for long-term semantic context.

Memories are scoped by user: every point carries ``user_id`` in its
metadata and searches filter on it. Similarity metric is cosine.

Stores are constructed explicitly and passed to the retriever and the
memory writer; ``initialize()`` and ``close()`` bracket their lifetime.
"""
import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Dict, Iterable, List, Mapping, Optional, Sequence, TypeVar

from qdrant_client import AsyncQdrantClient, models

from mindmesh.shared.models import MemoryMatch

logger = logging.getLogger(__name__)

T = TypeVar("T")


class VectorStoreError(Exception):
    """Vector store rejected or failed an operation."""
    pass


def cosine_similarity(vec1: Sequence[float], vec2: Sequence[float]) -> float:
    """Cosine similarity; 0.0 for mismatched lengths or zero vectors."""
    if len(vec1) != len(vec2):
        return 0.0

    dot_product = sum(a * b for a, b in zip(vec1, vec2))
    norm1 = sum(a * a for a in vec1) ** 0.5
    norm2 = sum(b * b for b in vec2) ** 0.5

    if norm1 == 0 or norm2 == 0:
        return 0.0

    return dot_product / (norm1 * norm2)


class VectorMemoryStore(ABC):
    """Abstract long-term memory index."""

    async def initialize(self) -> None:
        return None

    @abstractmethod
    async def upsert(
        self,
        memory_id: str,
        vector: Sequence[float],
        metadata: Mapping[str, Any],
    ) -> None:
        """Insert or replace one memory. ``metadata`` must include ``user_id``."""
        pass

    @abstractmethod
    async def search(
        self,
        user_id: str,
        vector: Sequence[float],
        top_k: int,
    ) -> List[MemoryMatch]:
        """Top-k memories for one user ordered by similarity."""
        pass

    @abstractmethod
    async def delete(self, memory_ids: Iterable[str]) -> None:
        pass

    async def close(self) -> None:
        return None


@dataclass
class _StoredMemory:
    memory_id: str
    vector: List[float]
    metadata: Dict[str, Any]
    created_at: datetime = field(default_factory=datetime.utcnow)


class InMemoryVectorStore(VectorMemoryStore):
    """In-process vector store.

    Suitable for development, tests and single-process deployments.
    Production would use Qdrant (see QdrantVectorStore).
    """

    def __init__(self, embedding_dim: int = 384):
        """Initialize vector store.

        Args:
            embedding_dim: Dimension of embedding vectors
        """
        self.embedding_dim = embedding_dim
        self._memories: Dict[str, _StoredMemory] = {}
        self._user_index: Dict[str, List[str]] = {}  # user_id -> memory_ids

        logger.info(
            "VECTOR_STORE_INITIALIZED",
            extra={"backend": "memory", "embedding_dim": embedding_dim}
        )

    async def upsert(
        self,
        memory_id: str,
        vector: Sequence[float],
        metadata: Mapping[str, Any],
    ) -> None:
        if len(vector) != self.embedding_dim:
            raise VectorStoreError(
                f"Vector dimension {len(vector)} != store dimension {self.embedding_dim}"
            )
        user_id = metadata.get("user_id")
        if not user_id:
            raise VectorStoreError("metadata.user_id is required")

        if memory_id in self._memories:
            self._unindex(memory_id)

        self._memories[memory_id] = _StoredMemory(
            memory_id=memory_id,
            vector=list(vector),
            metadata=dict(metadata),
        )
        self._user_index.setdefault(user_id, []).append(memory_id)

    async def search(
        self,
        user_id: str,
        vector: Sequence[float],
        top_k: int,
    ) -> List[MemoryMatch]:
        memory_ids = self._user_index.get(user_id, [])
        candidates = [self._memories[mid] for mid in memory_ids if mid in self._memories]

        scored = [
            (memory, cosine_similarity(vector, memory.vector))
            for memory in candidates
        ]
        scored.sort(key=lambda x: x[1], reverse=True)

        return [
            MemoryMatch(
                memory_id=memory.memory_id,
                score=similarity,
                content=memory.metadata.get("content", ""),
                metadata=dict(memory.metadata),
            )
            for memory, similarity in scored[:top_k]
        ]

    async def delete(self, memory_ids: Iterable[str]) -> None:
        for memory_id in memory_ids:
            if memory_id in self._memories:
                self._unindex(memory_id)
                del self._memories[memory_id]

    def _unindex(self, memory_id: str) -> None:
        user_id = self._memories[memory_id].metadata.get("user_id")
        ids = self._user_index.get(user_id, [])
        if memory_id in ids:
            ids.remove(memory_id)

    @property
    def memory_count(self) -> int:
        return len(self._memories)


class QdrantVectorStore(VectorMemoryStore):
    """Qdrant collection accessed through ``qdrant_client.AsyncQdrantClient``.

    Qdrant point ids must be UUIDs, so each memory id is mapped to a
    deterministic uuid5 and the original id is kept in the payload.
    """

    def __init__(
        self,
        url: str,
        collection: str = "chat_memories",
        embedding_dim: int = 384,
        api_key: Optional[str] = None,
        timeout_seconds: float = 10.0,
        client: Optional[AsyncQdrantClient] = None,
    ):
        self.url = url
        self.collection = collection
        self.embedding_dim = embedding_dim
        self.api_key = api_key
        self.timeout_seconds = timeout_seconds
        self._client = client

        logger.info(
            "VECTOR_STORE_INITIALIZED",
            extra={
                "backend": "qdrant",
                "collection": collection,
                "embedding_dim": embedding_dim,
            }
        )

    @staticmethod
    def point_id(memory_id: str) -> str:
        return str(uuid.uuid5(uuid.NAMESPACE_URL, memory_id))

    @property
    def client(self) -> AsyncQdrantClient:
        """Lazily constructed client."""
        if self._client is None:
            self._client = AsyncQdrantClient(
                url=self.url,
                api_key=self.api_key,
                timeout=max(1, int(self.timeout_seconds)),
            )
        return self._client

    async def _call(self, operation: str, awaitable: Awaitable[T]) -> T:
        try:
            return await awaitable
        except Exception as e:
            logger.error(
                "VECTOR_STORE_OPERATION_FAILED",
                extra={
                    "backend": "qdrant",
                    "operation": operation,
                    "collection": self.collection,
                    "error": str(e),
                    "error_type": type(e).__name__,
                }
            )
            raise VectorStoreError(f"Qdrant {operation} failed: {e}") from e

    async def initialize(self) -> None:
        """Create the collection when it does not exist yet."""
        exists = await self._call(
            "collection_exists",
            self.client.collection_exists(collection_name=self.collection),
        )
        if exists:
            return

        await self._call(
            "create_collection",
            self.client.create_collection(
                collection_name=self.collection,
                vectors_config=models.VectorParams(
                    size=self.embedding_dim,
                    distance=models.Distance.COSINE,
                ),
            ),
        )
        logger.info(
            "VECTOR_COLLECTION_CREATED",
            extra={"collection": self.collection, "embedding_dim": self.embedding_dim}
        )

    async def upsert(
        self,
        memory_id: str,
        vector: Sequence[float],
        metadata: Mapping[str, Any],
    ) -> None:
        if not metadata.get("user_id"):
            raise VectorStoreError("metadata.user_id is required")

        payload = dict(metadata)
        payload["memory_id"] = memory_id
        point = models.PointStruct(
            id=self.point_id(memory_id),
            vector=list(vector),
            payload=payload,
        )
        await self._call(
            "upsert",
            self.client.upsert(collection_name=self.collection, points=[point]),
        )

    async def search(
        self,
        user_id: str,
        vector: Sequence[float],
        top_k: int,
    ) -> List[MemoryMatch]:
        user_filter = models.Filter(
            must=[
                models.FieldCondition(
                    key="user_id",
                    match=models.MatchValue(value=user_id),
                )
            ]
        )
        response = await self._call(
            "query_points",
            self.client.query_points(
                collection_name=self.collection,
                query=list(vector),
                query_filter=user_filter,
                limit=top_k,
                with_payload=True,
            ),
        )

        matches = []
        for point in response.points:
            payload = point.payload or {}
            matches.append(MemoryMatch(
                memory_id=payload.get("memory_id", str(point.id)),
                score=float(point.score),
                content=payload.get("content", ""),
                metadata=payload,
            ))
        return matches

    async def delete(self, memory_ids: Iterable[str]) -> None:
        points = [self.point_id(mid) for mid in memory_ids]
        if not points:
            return
        await self._call(
            "delete",
            self.client.delete(
                collection_name=self.collection,
                points_selector=models.PointIdsList(points=points),
            ),
        )

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
        self._client = None
