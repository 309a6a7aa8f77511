"""Base repository pattern for database operations.

Repositories here are synchronous (psycopg2); the async stores built on
them dispatch calls through ``asyncio.to_thread``.
"""
import logging
from abc import ABC, abstractmethod
from typing import Any, Generic, List, Optional, Sequence, TypeVar

from .connection import ConnectionManager

logger = logging.getLogger(__name__)

T = TypeVar('T')


class RepositoryError(Exception):
    """Base exception for repository errors."""
    pass


class NotFoundError(RepositoryError):
    """Entity not found in database."""
    pass


class DuplicateError(RepositoryError):
    """Duplicate entity already exists."""
    pass


class BaseRepository(ABC, Generic[T]):
    """Abstract base repository with common query helpers.

    Subclasses implement row mapping and entity-specific queries while
    inheriting connection handling and logging patterns.
    """

    def __init__(
        self,
        connection_manager: ConnectionManager,
        table_name: str,
    ):
        """Initialize repository.

        Args:
            connection_manager: Database connection manager
            table_name: Name of the database table
        """
        self.connection_manager = connection_manager
        self.table_name = table_name

        logger.info(
            "REPOSITORY_INITIALIZED",
            extra={"table_name": table_name}
        )

    @abstractmethod
    def _row_to_entity(self, row: tuple) -> T:
        """Convert database row to entity."""
        pass

    def _fetch_one(self, query: str, params: Sequence[Any] = ()) -> Optional[T]:
        with self.connection_manager.get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(query, tuple(params))
                row = cur.fetchone()
                return self._row_to_entity(row) if row is not None else None

    def _fetch_all(self, query: str, params: Sequence[Any] = ()) -> List[T]:
        with self.connection_manager.get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(query, tuple(params))
                return [self._row_to_entity(row) for row in cur.fetchall()]

    def _write_returning(self, query: str, params: Sequence[Any] = ()) -> Optional[T]:
        """Run a write and commit; returns the RETURNING row if any.

        Rolls back and re-raises on failure.
        """
        with self.connection_manager.get_connection() as conn:
            try:
                with conn.cursor() as cur:
                    cur.execute(query, tuple(params))
                    row = cur.fetchone()
                conn.commit()
            except Exception:
                conn.rollback()
                raise
            return self._row_to_entity(row) if row is not None else None

    def _execute(self, query: str, params: Sequence[Any] = ()) -> int:
        """Run a statement with no result set and commit; returns rowcount."""
        with self.connection_manager.get_connection() as conn:
            try:
                with conn.cursor() as cur:
                    cur.execute(query, tuple(params))
                    rowcount = cur.rowcount
                conn.commit()
            except Exception:
                conn.rollback()
                raise
            return rowcount

    def find_by_id(self, entity_id: str) -> Optional[T]:
        """Find entity by ID.

        Args:
            entity_id: Entity identifier

        Returns:
            Entity if found, None otherwise
        """
        return self._fetch_one(
            f"SELECT * FROM {self.table_name} WHERE id = %s",
            (entity_id,),
        )
