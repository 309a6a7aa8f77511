"""Context Service - short-term history, long-term memory and memory writes.

ContextRetriever gathers both kinds of context concurrently for the
pipeline; MemoryWriter persists each message in the background so later
turns can find it by similarity.
"""
from .config import MemoryWriteConfig, RetrievalConfig
from .embeddings import (
    EmbeddingClient,
    EmbeddingError,
    HashEmbeddingClient,
    HttpEmbeddingClient,
    OpenAIEmbeddingClient,
    preprocess_text,
)
from .memory_writer import MemoryWriter
from .retriever import ContextRetriever
from .short_term_store import (
    InMemoryShortTermStore,
    PostgresShortTermStore,
    ShortTermStore,
)
from .vector_store import (
    InMemoryVectorStore,
    QdrantVectorStore,
    VectorMemoryStore,
    VectorStoreError,
    cosine_similarity,
)

__all__ = [
    "MemoryWriteConfig",
    "RetrievalConfig",
    "EmbeddingClient",
    "EmbeddingError",
    "HashEmbeddingClient",
    "HttpEmbeddingClient",
    "OpenAIEmbeddingClient",
    "preprocess_text",
    "MemoryWriter",
    "ContextRetriever",
    "InMemoryShortTermStore",
    "PostgresShortTermStore",
    "ShortTermStore",
    "InMemoryVectorStore",
    "QdrantVectorStore",
    "VectorMemoryStore",
    "VectorStoreError",
    "cosine_similarity",
]
