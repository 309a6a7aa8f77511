"""Pipeline wiring configuration."""
import os
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class PipelineConfig:
    """Collaborator selection and per-stage timeouts.

    Backends:
        embedding_backend: openai | http | hash
        vector_backend: memory | qdrant
        store_backend: memory | postgres (short-term store and flag store)
    """
    emotion_timeout_seconds: float = 3.0
    context_timeout_seconds: float = 2.0
    response_timeout_seconds: float = 5.0

    embedding_backend: str = "hash"
    embedding_service_url: str = "http://localhost:5002"
    embedding_model: str = "all-MiniLM-L6-v2"
    embedding_dimension: int = 384

    vector_backend: str = "memory"
    qdrant_url: str = "http://localhost:6333"
    qdrant_api_key: Optional[str] = None
    qdrant_collection: str = "chat_memories"
    top_k: int = 5

    store_backend: str = "memory"

    bypass_llm_on_crisis: bool = True

    # Grace period for detached memory writes at shutdown
    drain_timeout_seconds: float = 10.0

    def __post_init__(self):
        if self.embedding_backend not in ("openai", "http", "hash"):
            raise ValueError(f"Unknown embedding backend: {self.embedding_backend}")
        if self.vector_backend not in ("memory", "qdrant"):
            raise ValueError(f"Unknown vector backend: {self.vector_backend}")
        if self.store_backend not in ("memory", "postgres"):
            raise ValueError(f"Unknown store backend: {self.store_backend}")
        if self.embedding_dimension <= 0:
            raise ValueError("embedding_dimension must be positive")

    @classmethod
    def from_env(cls) -> "PipelineConfig":
        """Create config from environment variables.

        Environment variables:
            EMOTION_TIMEOUT_SECONDS, CONTEXT_TIMEOUT_SECONDS,
            RESPONSE_TIMEOUT_SECONDS: Stage timeouts
            EMBEDDING_BACKEND: openai | http | hash (default hash)
            EMBEDDING_SERVICE_URL: Embedding microservice base URL
            EMBEDDING_MODEL: Embedding model name
            EMBEDDING_DIMENSION: Vector size (default 384)
            VECTOR_BACKEND: memory | qdrant (default memory)
            QDRANT_URL, QDRANT_API_KEY, QDRANT_COLLECTION: Qdrant settings
            VECTOR_SEARCH_TOP_K: Memories per search (default 5)
            STORE_BACKEND: memory | postgres (default memory)
            RESPONSE_BYPASS_LLM_ON_CRISIS: "false" lets the model answer crises
        """
        defaults = cls()
        return cls(
            emotion_timeout_seconds=float(
                os.getenv("EMOTION_TIMEOUT_SECONDS", defaults.emotion_timeout_seconds)
            ),
            context_timeout_seconds=float(
                os.getenv("CONTEXT_TIMEOUT_SECONDS", defaults.context_timeout_seconds)
            ),
            response_timeout_seconds=float(
                os.getenv("RESPONSE_TIMEOUT_SECONDS", defaults.response_timeout_seconds)
            ),
            embedding_backend=os.getenv("EMBEDDING_BACKEND", defaults.embedding_backend).lower(),
            embedding_service_url=os.getenv("EMBEDDING_SERVICE_URL", defaults.embedding_service_url),
            embedding_model=os.getenv("EMBEDDING_MODEL", defaults.embedding_model),
            embedding_dimension=int(
                os.getenv("EMBEDDING_DIMENSION", defaults.embedding_dimension)
            ),
            vector_backend=os.getenv("VECTOR_BACKEND", defaults.vector_backend).lower(),
            qdrant_url=os.getenv("QDRANT_URL", defaults.qdrant_url),
            qdrant_api_key=os.getenv("QDRANT_API_KEY"),
            qdrant_collection=os.getenv("QDRANT_COLLECTION", defaults.qdrant_collection),
            top_k=int(os.getenv("VECTOR_SEARCH_TOP_K", defaults.top_k)),
            store_backend=os.getenv("STORE_BACKEND", defaults.store_backend).lower(),
            bypass_llm_on_crisis=(
                os.getenv("RESPONSE_BYPASS_LLM_ON_CRISIS", "true").lower() == "true"
            ),
        )
