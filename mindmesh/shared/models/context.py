"""Retrieved context domain models.

Short-term records come from the structured stores (journals, habits,
emotion readings); long-term matches come from the vector memory index.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Mapping, Optional, Tuple


@dataclass(frozen=True)
class JournalRecord:
    """A recent journal entry."""
    record_id: str
    title: str
    content: str
    mood: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class HabitRecord:
    """An active (non-archived) habit."""
    record_id: str
    name: str
    frequency: str = "daily"


@dataclass(frozen=True)
class EmotionReading:
    """A previously recorded emotion reading."""
    emotion: str
    confidence: float
    recorded_at: Optional[datetime] = None


@dataclass(frozen=True)
class ShortTermHistory:
    """Bounded recent history, each slice ordered most-recent-first."""
    journal_entries: Tuple[JournalRecord, ...] = ()
    habits: Tuple[HabitRecord, ...] = ()
    recent_emotions: Tuple[EmotionReading, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not (self.journal_entries or self.habits or self.recent_emotions)

    def counts(self) -> Dict[str, int]:
        return {
            "journal_entries": len(self.journal_entries),
            "habits": len(self.habits),
            "recent_emotions": len(self.recent_emotions),
        }


@dataclass(frozen=True)
class MemoryMatch:
    """One long-term memory returned by similarity search."""
    memory_id: str
    score: float
    content: str = ""
    metadata: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Context:
    """Aggregate of whatever retrieval legs succeeded.

    ``failed_sources`` names the legs that errored or timed out; their
    slices are empty rather than missing.
    """
    recent_records: ShortTermHistory = field(default_factory=ShortTermHistory)
    semantic_matches: Tuple[MemoryMatch, ...] = ()
    failed_sources: Tuple[str, ...] = ()
    retrieved_at: datetime = field(default_factory=datetime.utcnow)

    @classmethod
    def empty(cls, failed_sources: Tuple[str, ...] = ()) -> "Context":
        return cls(failed_sources=failed_sources)

    @property
    def is_empty(self) -> bool:
        return self.recent_records.is_empty and not self.semantic_matches

    @property
    def degraded(self) -> bool:
        return bool(self.failed_sources)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "recent_records": self.recent_records.counts(),
            "semantic_matches": [
                {"memory_id": m.memory_id, "score": round(m.score, 4)}
                for m in self.semantic_matches
            ],
            "failed_sources": list(self.failed_sources),
            "retrieved_at": self.retrieved_at.isoformat(),
        }
