"""Safety flag stores.

Both stores guarantee at most one ACTIVE flag per (user_id, flag_type):
``create`` raises DuplicateError when the pair already has one. The
in-memory store checks and inserts without yielding to the event loop;
the Postgres store relies on a partial unique index and
``INSERT ... ON CONFLICT DO NOTHING``.
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from mindmesh.shared.database import (
    BaseRepository,
    ConnectionManager,
    DuplicateError,
    NotFoundError,
)
from mindmesh.shared.models import AlertType, FlagSeverity, FlagStatus, SafetyFlag

logger = logging.getLogger(__name__)


def dedupe_active(flags: Iterable[SafetyFlag]) -> List[SafetyFlag]:
    """Newest active flag per flag type, newest first.

    Read-time guard against duplicates that slipped past creation.
    """
    newest: Dict[AlertType, SafetyFlag] = {}
    for flag in flags:
        if not flag.is_active:
            continue
        current = newest.get(flag.flag_type)
        if current is None or flag.created_at > current.created_at:
            newest[flag.flag_type] = flag
    return sorted(newest.values(), key=lambda f: f.created_at, reverse=True)


class FlagStore(ABC):
    """Persistence for SafetyFlags."""

    async def initialize(self) -> None:
        return None

    @abstractmethod
    async def find_active(self, user_id: str, flag_type: AlertType) -> Optional[SafetyFlag]:
        pass

    @abstractmethod
    async def create(self, flag: SafetyFlag) -> SafetyFlag:
        """Persist a new ACTIVE flag.

        Raises:
            DuplicateError: If the pair already has an active flag
        """
        pass

    @abstractmethod
    async def mark_notified(self, flag_id: str) -> SafetyFlag:
        pass

    @abstractmethod
    async def list_active(self, user_id: str) -> List[SafetyFlag]:
        """Active flags for a user, one per flag type, newest first."""
        pass

    @abstractmethod
    async def resolve(
        self,
        flag_id: str,
        resolved_by: str,
        notes: Optional[str] = None,
    ) -> SafetyFlag:
        pass


class InMemoryFlagStore(FlagStore):
    """Process-local flag store for development and tests."""

    def __init__(self):
        self._flags: Dict[str, SafetyFlag] = {}

    async def find_active(self, user_id: str, flag_type: AlertType) -> Optional[SafetyFlag]:
        return self._find_active_now(user_id, flag_type)

    def _find_active_now(self, user_id: str, flag_type: AlertType) -> Optional[SafetyFlag]:
        for flag in self._flags.values():
            if flag.user_id == user_id and flag.flag_type == flag_type and flag.is_active:
                return flag
        return None

    async def create(self, flag: SafetyFlag) -> SafetyFlag:
        # No await between the check and the insert
        if self._find_active_now(flag.user_id, flag.flag_type) is not None:
            raise DuplicateError(
                f"Active {flag.flag_type.value} flag already exists for user"
            )
        if flag.flag_id in self._flags:
            raise DuplicateError(f"Flag {flag.flag_id} already exists")
        self._flags[flag.flag_id] = flag
        return flag

    async def mark_notified(self, flag_id: str) -> SafetyFlag:
        flag = self._get(flag_id)
        updated = flag.mark_notified()
        self._flags[flag_id] = updated
        return updated

    async def list_active(self, user_id: str) -> List[SafetyFlag]:
        return dedupe_active(f for f in self._flags.values() if f.user_id == user_id)

    async def resolve(
        self,
        flag_id: str,
        resolved_by: str,
        notes: Optional[str] = None,
    ) -> SafetyFlag:
        updated = self._get(flag_id).mark_resolved(resolved_by, notes)
        self._flags[flag_id] = updated
        return updated

    def _get(self, flag_id: str) -> SafetyFlag:
        try:
            return self._flags[flag_id]
        except KeyError:
            raise NotFoundError(f"Flag {flag_id} not found") from None

    @property
    def all_flags(self) -> List[SafetyFlag]:
        return list(self._flags.values())


SAFETY_FLAGS_DDL = """
CREATE TABLE IF NOT EXISTS safety_flags (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    flag_type TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'active'
        CHECK (status IN ('active', 'investigating', 'resolved', 'escalated')),
    severity TEXT NOT NULL DEFAULT 'critical'
        CHECK (severity IN ('low', 'medium', 'high', 'critical')),
    details TEXT NOT NULL DEFAULT '' CHECK (char_length(details) <= 1000),
    confidence DOUBLE PRECISION NOT NULL DEFAULT 1.0
        CHECK (confidence >= 0 AND confidence <= 1),
    source_message_id TEXT,
    notified BOOLEAN NOT NULL DEFAULT false,
    notified_at TIMESTAMP,
    created_at TIMESTAMP NOT NULL DEFAULT now(),
    resolved_at TIMESTAMP,
    resolved_by TEXT,
    notes TEXT
);
CREATE UNIQUE INDEX IF NOT EXISTS safety_flags_one_active
    ON safety_flags (user_id, flag_type) WHERE status = 'active';
CREATE INDEX IF NOT EXISTS safety_flags_user_status
    ON safety_flags (user_id, status, created_at DESC);
"""

_COLUMNS = (
    "id, user_id, flag_type, status, severity, details, confidence, "
    "source_message_id, notified, notified_at, created_at, resolved_at, "
    "resolved_by, notes"
)


class SafetyFlagRepository(BaseRepository[SafetyFlag]):
    """Synchronous psycopg2 access to the safety_flags table."""

    def __init__(self, connection_manager: ConnectionManager):
        super().__init__(connection_manager, "safety_flags")

    def _row_to_entity(self, row: tuple) -> SafetyFlag:
        return SafetyFlag(
            flag_id=row[0],
            user_id=row[1],
            flag_type=AlertType(row[2]),
            status=FlagStatus(row[3]),
            severity=FlagSeverity(row[4]),
            details=row[5] or "",
            confidence=float(row[6]),
            source_message_id=row[7],
            notified=bool(row[8]),
            notified_at=row[9],
            created_at=row[10],
            resolved_at=row[11],
            resolved_by=row[12],
            notes=row[13],
        )

    def create_schema(self) -> None:
        self._execute(SAFETY_FLAGS_DDL)

    def find_active(self, user_id: str, flag_type: AlertType) -> Optional[SafetyFlag]:
        return self._fetch_one(
            f"""
            SELECT {_COLUMNS} FROM {self.table_name}
            WHERE user_id = %s AND flag_type = %s AND status = 'active'
            ORDER BY created_at DESC
            LIMIT 1
            """,
            (user_id, flag_type.value),
        )

    def insert_if_no_active(self, flag: SafetyFlag) -> Optional[SafetyFlag]:
        """Atomic check-then-create; None when an active flag already exists."""
        return self._write_returning(
            f"""
            INSERT INTO {self.table_name} ({_COLUMNS})
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            ON CONFLICT (user_id, flag_type) WHERE status = 'active' DO NOTHING
            RETURNING {_COLUMNS}
            """,
            (
                flag.flag_id,
                flag.user_id,
                flag.flag_type.value,
                flag.status.value,
                flag.severity.value,
                flag.details,
                flag.confidence,
                flag.source_message_id,
                flag.notified,
                flag.notified_at,
                flag.created_at,
                flag.resolved_at,
                flag.resolved_by,
                flag.notes,
            ),
        )

    def mark_notified(self, flag_id: str, at: datetime) -> Optional[SafetyFlag]:
        return self._write_returning(
            f"""
            UPDATE {self.table_name}
            SET notified = true, notified_at = %s
            WHERE id = %s
            RETURNING {_COLUMNS}
            """,
            (at, flag_id),
        )

    def list_active(self, user_id: str) -> List[SafetyFlag]:
        return self._fetch_all(
            f"""
            SELECT {_COLUMNS} FROM {self.table_name}
            WHERE user_id = %s AND status = 'active'
            ORDER BY created_at DESC
            """,
            (user_id,),
        )

    def resolve(
        self,
        flag_id: str,
        resolved_by: str,
        notes: Optional[str],
        at: datetime,
    ) -> Optional[SafetyFlag]:
        return self._write_returning(
            f"""
            UPDATE {self.table_name}
            SET status = 'resolved', resolved_at = %s, resolved_by = %s,
                notes = COALESCE(%s, notes)
            WHERE id = %s
            RETURNING {_COLUMNS}
            """,
            (at, resolved_by, notes, flag_id),
        )


class PostgresFlagStore(FlagStore):
    """PostgreSQL flag store; blocking calls run in worker threads."""

    def __init__(
        self,
        connection_manager: ConnectionManager,
        repository: Optional[SafetyFlagRepository] = None,
    ):
        self.repository = repository or SafetyFlagRepository(connection_manager)

    async def initialize(self) -> None:
        await asyncio.to_thread(self.repository.create_schema)
        logger.info("SAFETY_FLAG_SCHEMA_READY")

    async def find_active(self, user_id: str, flag_type: AlertType) -> Optional[SafetyFlag]:
        return await asyncio.to_thread(self.repository.find_active, user_id, flag_type)

    async def create(self, flag: SafetyFlag) -> SafetyFlag:
        if not flag.is_active:
            raise ValueError("Only active flags can be created")
        created = await asyncio.to_thread(self.repository.insert_if_no_active, flag)
        if created is None:
            raise DuplicateError(
                f"Active {flag.flag_type.value} flag already exists for user"
            )
        return created

    async def mark_notified(self, flag_id: str) -> SafetyFlag:
        updated = await asyncio.to_thread(
            self.repository.mark_notified, flag_id, datetime.utcnow()
        )
        if updated is None:
            raise NotFoundError(f"Flag {flag_id} not found")
        return updated

    async def list_active(self, user_id: str) -> List[SafetyFlag]:
        flags = await asyncio.to_thread(self.repository.list_active, user_id)
        return dedupe_active(flags)

    async def resolve(
        self,
        flag_id: str,
        resolved_by: str,
        notes: Optional[str] = None,
    ) -> SafetyFlag:
        updated = await asyncio.to_thread(
            self.repository.resolve, flag_id, resolved_by, notes, datetime.utcnow()
        )
        if updated is None:
            raise NotFoundError(f"Flag {flag_id} not found")
        return updated
