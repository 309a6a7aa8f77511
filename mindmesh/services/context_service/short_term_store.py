"""Short-term structured history stores.

Three bounded read queries per user: recent journal entries, active
(non-archived) habits and recent emotion readings. Each returns records
most-recent-first and is called independently by the retriever, so one
failing query never affects the others.
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from mindmesh.shared.database import BaseRepository, ConnectionManager
from mindmesh.shared.models import EmotionReading, HabitRecord, JournalRecord

logger = logging.getLogger(__name__)


class ShortTermStore(ABC):
    """Bounded read access to a user's recent structured records."""

    @abstractmethod
    async def recent_journals(self, user_id: str, limit: int) -> List[JournalRecord]:
        pass

    @abstractmethod
    async def active_habits(self, user_id: str, limit: int) -> List[HabitRecord]:
        pass

    @abstractmethod
    async def recent_emotions(self, user_id: str, limit: int) -> List[EmotionReading]:
        pass


class InMemoryShortTermStore(ShortTermStore):
    """Dict-backed store for development and tests."""

    def __init__(self):
        self._journals: Dict[str, List[JournalRecord]] = {}
        self._habits: Dict[str, List[Tuple[HabitRecord, bool]]] = {}
        self._emotions: Dict[str, List[EmotionReading]] = {}

    def add_journal(self, user_id: str, record: JournalRecord) -> None:
        self._journals.setdefault(user_id, []).append(record)

    def add_habit(self, user_id: str, record: HabitRecord, archived: bool = False) -> None:
        self._habits.setdefault(user_id, []).append((record, archived))

    def add_emotion(self, user_id: str, reading: EmotionReading) -> None:
        self._emotions.setdefault(user_id, []).append(reading)

    async def recent_journals(self, user_id: str, limit: int) -> List[JournalRecord]:
        records = sorted(
            self._journals.get(user_id, []),
            key=lambda r: r.created_at or datetime.min,
            reverse=True,
        )
        return records[:limit]

    async def active_habits(self, user_id: str, limit: int) -> List[HabitRecord]:
        # Insertion order stands in for created_at
        active = [record for record, archived in self._habits.get(user_id, []) if not archived]
        return list(reversed(active))[:limit]

    async def recent_emotions(self, user_id: str, limit: int) -> List[EmotionReading]:
        readings = sorted(
            self._emotions.get(user_id, []),
            key=lambda r: r.recorded_at or datetime.min,
            reverse=True,
        )
        return readings[:limit]


class JournalRepository(BaseRepository[JournalRecord]):
    """Journal entries table."""

    def __init__(self, connection_manager: ConnectionManager):
        super().__init__(connection_manager, "journal_entries")

    def _row_to_entity(self, row: tuple) -> JournalRecord:
        return JournalRecord(
            record_id=str(row[0]),
            title=row[1] or "",
            content=row[2] or "",
            mood=row[3],
            created_at=row[4],
        )

    def recent(self, user_id: str, limit: int) -> List[JournalRecord]:
        return self._fetch_all(
            f"""
            SELECT id, title, content, mood, created_at
            FROM {self.table_name}
            WHERE user_id = %s
            ORDER BY created_at DESC
            LIMIT %s
            """,
            (user_id, limit),
        )


class HabitRepository(BaseRepository[HabitRecord]):
    """Habits table."""

    def __init__(self, connection_manager: ConnectionManager):
        super().__init__(connection_manager, "habits")

    def _row_to_entity(self, row: tuple) -> HabitRecord:
        return HabitRecord(record_id=str(row[0]), name=row[1], frequency=row[2] or "daily")

    def active(self, user_id: str, limit: int) -> List[HabitRecord]:
        return self._fetch_all(
            f"""
            SELECT id, name, frequency
            FROM {self.table_name}
            WHERE user_id = %s AND archived = false
            ORDER BY created_at DESC
            LIMIT %s
            """,
            (user_id, limit),
        )


class EmotionReadingRepository(BaseRepository[EmotionReading]):
    """Emotion readings table."""

    def __init__(self, connection_manager: ConnectionManager):
        super().__init__(connection_manager, "emotion_readings")

    def _row_to_entity(self, row: tuple) -> EmotionReading:
        return EmotionReading(emotion=row[0], confidence=float(row[1]), recorded_at=row[2])

    def recent(self, user_id: str, limit: int) -> List[EmotionReading]:
        return self._fetch_all(
            f"""
            SELECT emotion, confidence, recorded_at
            FROM {self.table_name}
            WHERE user_id = %s
            ORDER BY recorded_at DESC
            LIMIT %s
            """,
            (user_id, limit),
        )


class PostgresShortTermStore(ShortTermStore):
    """PostgreSQL-backed store.

    psycopg2 is blocking, so every query runs in a worker thread.
    """

    def __init__(
        self,
        connection_manager: ConnectionManager,
        journals: Optional[JournalRepository] = None,
        habits: Optional[HabitRepository] = None,
        emotions: Optional[EmotionReadingRepository] = None,
    ):
        self.connection_manager = connection_manager
        self.journals = journals or JournalRepository(connection_manager)
        self.habits = habits or HabitRepository(connection_manager)
        self.emotions = emotions or EmotionReadingRepository(connection_manager)

    @property
    def table_names(self) -> Tuple[str, ...]:
        return (self.journals.table_name, self.habits.table_name, self.emotions.table_name)

    async def recent_journals(self, user_id: str, limit: int) -> List[JournalRecord]:
        return await asyncio.to_thread(self.journals.recent, user_id, limit)

    async def active_habits(self, user_id: str, limit: int) -> List[HabitRecord]:
        return await asyncio.to_thread(self.habits.active, user_id, limit)

    async def recent_emotions(self, user_id: str, limit: int) -> List[EmotionReading]:
        return await asyncio.to_thread(self.emotions.recent, user_id, limit)
