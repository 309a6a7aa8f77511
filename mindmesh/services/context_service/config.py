"""Context retrieval and memory persistence configuration."""
from dataclasses import dataclass


@dataclass(frozen=True)
class RetrievalConfig:
    """Bounds for one context retrieval."""

    journal_limit: int = 5
    habit_limit: int = 5
    emotion_limit: int = 10

    # Long-term memories returned by similarity search
    top_k: int = 5

    # Each leg (short-term query or semantic search) gets this timeout
    leg_timeout_seconds: float = 2.0

    # Embed the current message for same-turn semantic search. Off by
    # default: only memories of earlier turns are searched unless the
    # caller supplies a query embedding.
    embed_query_for_retrieval: bool = False

    def __post_init__(self):
        for name in ("journal_limit", "habit_limit", "emotion_limit", "top_k"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be non-negative")
        if self.leg_timeout_seconds <= 0:
            raise ValueError("leg_timeout_seconds must be positive")


@dataclass(frozen=True)
class MemoryWriteConfig:
    """Retry policy for background memory writes."""

    max_retries: int = 3

    # Delay before retry n is base * 2**(n-1)
    backoff_base_seconds: float = 2.0

    memory_type: str = "chat_message"

    def __post_init__(self):
        if self.max_retries < 1:
            raise ValueError("max_retries must be at least 1")
        if self.backoff_base_seconds < 0:
            raise ValueError("backoff_base_seconds must be non-negative")
