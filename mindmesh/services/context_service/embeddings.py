"""Embedding clients for long-term memory.

All clients share the same contract: ``embed(text)`` returns a vector of
exactly ``dimension`` floats or raises EmbeddingError. Retries live in the
MemoryWriter, not here.
"""
import hashlib
import logging
import re
from abc import ABC, abstractmethod
from typing import List, Optional

logger = logging.getLogger(__name__)

MAX_EMBED_CHARS = 5000

_WHITESPACE_RE = re.compile(r"\s+")


class EmbeddingError(Exception):
    """Embedding service failed or returned an unusable vector."""
    pass


def preprocess_text(text: str) -> str:
    """Trim, collapse whitespace and truncate text before embedding."""
    if not isinstance(text, str):
        return ""
    return _WHITESPACE_RE.sub(" ", text.strip())[:MAX_EMBED_CHARS]


class EmbeddingClient(ABC):
    """Abstract embedding service."""

    def __init__(self, dimension: int):
        if dimension <= 0:
            raise ValueError(f"Embedding dimension must be positive, got {dimension}")
        self.dimension = dimension

    @abstractmethod
    async def _embed(self, text: str) -> List[float]:
        """Provider call on preprocessed text."""
        pass

    async def embed(self, text: str) -> List[float]:
        """Embed one text.

        Raises:
            EmbeddingError: On empty input, provider failure or a vector of
                the wrong dimension
        """
        processed = preprocess_text(text)
        if not processed:
            raise EmbeddingError("Text must be a non-empty string")

        try:
            vector = await self._embed(processed)
        except EmbeddingError:
            raise
        except Exception as e:
            raise EmbeddingError(f"{type(self).__name__} failed: {e}") from e

        return self.validate_vector(vector)

    def validate_vector(self, vector) -> List[float]:
        if not isinstance(vector, (list, tuple)) or len(vector) != self.dimension:
            got = len(vector) if isinstance(vector, (list, tuple)) else type(vector).__name__
            raise EmbeddingError(
                f"Invalid embedding dimension: expected {self.dimension}, got {got}"
            )
        return [float(v) for v in vector]

    async def close(self) -> None:
        return None


class OpenAIEmbeddingClient(EmbeddingClient):
    """OpenAI embeddings endpoint."""

    def __init__(
        self,
        api_key: str,
        model: str = "text-embedding-3-small",
        dimension: int = 384,
    ):
        super().__init__(dimension)
        if not api_key:
            raise ValueError("OpenAI API key required")

        import openai
        self.client = openai.AsyncOpenAI(api_key=api_key)
        self.model = model

        logger.info(
            "EMBEDDING_CLIENT_INITIALIZED",
            extra={"backend": "openai", "model": model, "dimension": dimension}
        )

    async def _embed(self, text: str) -> List[float]:
        response = await self.client.embeddings.create(
            model=self.model,
            input=text,
            dimensions=self.dimension,
        )
        return list(response.data[0].embedding)

    async def close(self) -> None:
        await self.client.close()


class HttpEmbeddingClient(EmbeddingClient):
    """Sentence-embedding microservice reached over HTTP (``POST /embed``)."""

    def __init__(
        self,
        base_url: str = "http://localhost:5002",
        model: str = "all-MiniLM-L6-v2",
        dimension: int = 384,
        timeout_seconds: float = 30.0,
    ):
        super().__init__(dimension)
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.timeout_seconds = timeout_seconds
        self._session = None

        logger.info(
            "EMBEDDING_CLIENT_INITIALIZED",
            extra={"backend": "http", "model": model, "dimension": dimension}
        )

    def _get_session(self):
        import aiohttp

        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout_seconds)
            )
        return self._session

    async def _embed(self, text: str) -> List[float]:
        session = self._get_session()
        async with session.post(
            f"{self.base_url}/embed",
            json={"text": text, "model": self.model},
        ) as response:
            response.raise_for_status()
            body = await response.json()

        embedding = body.get("embedding") if isinstance(body, dict) else None
        if embedding is None:
            raise EmbeddingError("Invalid response from embedding service")
        return embedding

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None


class HashEmbeddingClient(EmbeddingClient):
    """Deterministic hash-based embedding for development and tests.

    Production would use a sentence-embedding model. Identical text maps to
    an identical vector; no semantic similarity is implied.
    """

    def __init__(self, dimension: int = 384, salt: Optional[str] = None):
        super().__init__(dimension)
        self.salt = salt or ""

    async def _embed(self, text: str) -> List[float]:
        embedding: List[float] = []
        counter = 0
        while len(embedding) < self.dimension:
            digest = hashlib.sha256(f"{self.salt}{counter}:{text}".encode()).digest()
            embedding.extend((byte - 128) / 128.0 for byte in digest)
            counter += 1
        return embedding[:self.dimension]
