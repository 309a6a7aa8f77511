"""PostgreSQL pool shared by the short-term store and the safety flag store.

One ConnectionManager is built per pipeline and handed to every
repository. The pipeline factory opens it, checks that the tables the
stores read are present, and registers it for ``aclose()``.

Every session carries ``application_name`` and a ``statement_timeout`` so
a stuck query on the crisis path fails instead of holding a pool slot.
"""
import logging
import os
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Dict, List, Sequence

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DatabaseConfig:
    """Pool and session settings."""
    host: str
    port: int = 5432
    database: str = "mindmesh"
    username: str = ""
    password: str = ""
    min_connections: int = 2
    max_connections: int = 10
    connect_timeout: int = 10
    statement_timeout_ms: int = 5000
    application_name: str = "mindmesh-pipeline"
    ssl_mode: str = "require"

    def __post_init__(self):
        if self.min_connections < 1:
            raise ValueError("min_connections must be at least 1")
        if self.max_connections < self.min_connections:
            raise ValueError(
                f"max_connections ({self.max_connections}) is below "
                f"min_connections ({self.min_connections})"
            )
        if self.statement_timeout_ms <= 0:
            raise ValueError("statement_timeout_ms must be positive")

    @property
    def session_options(self) -> str:
        return f"-c statement_timeout={self.statement_timeout_ms}"

    @classmethod
    def from_env(cls) -> "DatabaseConfig":
        """Read DB_* variables.

        DB_HOST, DB_PORT, DB_NAME, DB_USER and DB_PASSWORD locate the
        server. DB_MIN_CONN / DB_MAX_CONN size the pool (2 / 10),
        DB_STATEMENT_TIMEOUT_MS bounds each query (5000) and DB_SSL_MODE
        defaults to require.
        """
        return cls(
            host=os.getenv("DB_HOST", "localhost"),
            port=int(os.getenv("DB_PORT", "5432")),
            database=os.getenv("DB_NAME", "mindmesh"),
            username=os.getenv("DB_USER", ""),
            password=os.getenv("DB_PASSWORD", ""),
            min_connections=int(os.getenv("DB_MIN_CONN", "2")),
            max_connections=int(os.getenv("DB_MAX_CONN", "10")),
            statement_timeout_ms=int(os.getenv("DB_STATEMENT_TIMEOUT_MS", "5000")),
            ssl_mode=os.getenv("DB_SSL_MODE", "require"),
        )


class ConnectionManager:
    """psycopg2 ThreadedConnectionPool with an explicit open/close lifecycle.

    Methods are blocking; the async stores call into repositories through
    ``asyncio.to_thread``.
    """

    def __init__(self, config: DatabaseConfig):
        self.config = config
        self._pool = None
        self._initialized = False

        logger.info(
            "CONNECTION_MANAGER_CREATED",
            extra={
                "host": config.host,
                "database": config.database,
                "max_connections": config.max_connections,
                "application_name": config.application_name,
            }
        )

    def initialize(self) -> None:
        """Open the pool. Repeated calls are no-ops."""
        if self._initialized:
            return

        from psycopg2 import pool

        try:
            self._pool = pool.ThreadedConnectionPool(
                minconn=self.config.min_connections,
                maxconn=self.config.max_connections,
                host=self.config.host,
                port=self.config.port,
                database=self.config.database,
                user=self.config.username,
                password=self.config.password,
                connect_timeout=self.config.connect_timeout,
                sslmode=self.config.ssl_mode,
                application_name=self.config.application_name,
                options=self.config.session_options,
            )
        except Exception as e:
            logger.error(
                "CONNECTION_POOL_INIT_FAILED",
                extra={"host": self.config.host, "error": str(e)}
            )
            raise

        self._initialized = True
        logger.info(
            "CONNECTION_POOL_INITIALIZED",
            extra={
                "host": self.config.host,
                "database": self.config.database,
                "statement_timeout_ms": self.config.statement_timeout_ms,
            }
        )

    @contextmanager
    def get_connection(self):
        """Borrow a pooled connection; it goes back to the pool on exit."""
        if not self._initialized:
            self.initialize()

        conn = self._pool.getconn()
        try:
            yield conn
        finally:
            self._pool.putconn(conn)

    def missing_tables(self, table_names: Sequence[str]) -> List[str]:
        """Names from ``table_names`` that do not resolve in the search path."""
        missing = []
        with self.get_connection() as conn:
            with conn.cursor() as cur:
                for name in table_names:
                    cur.execute("SELECT to_regclass(%s)", (name,))
                    row = cur.fetchone()
                    if row is None or row[0] is None:
                        missing.append(name)
        return missing

    def health_check(self, required_tables: Sequence[str] = ()) -> Dict[str, Any]:
        """Connectivity and schema readiness.

        Args:
            required_tables: Tables the caller's stores query

        Returns:
            ``status`` is one of not_initialized, connected,
            schema_incomplete or error; ``healthy`` is True only for
            connected
        """
        if not self._initialized:
            return {"status": "not_initialized", "healthy": False}

        started = time.monotonic()
        try:
            with self.get_connection() as conn:
                with conn.cursor() as cur:
                    cur.execute("SELECT 1")
                    cur.fetchone()
            missing = self.missing_tables(required_tables) if required_tables else []
        except Exception as e:
            logger.error(
                "DATABASE_HEALTH_CHECK_FAILED",
                extra={"host": self.config.host, "error": str(e)}
            )
            return {"status": "error", "healthy": False, "error": str(e)}

        latency_ms = round((time.monotonic() - started) * 1000, 1)
        if missing:
            logger.warning(
                "DATABASE_SCHEMA_INCOMPLETE",
                extra={"database": self.config.database, "missing_tables": missing}
            )
            return {
                "status": "schema_incomplete",
                "healthy": False,
                "missing_tables": missing,
                "latency_ms": latency_ms,
            }

        return {
            "status": "connected",
            "healthy": True,
            "database": self.config.database,
            "latency_ms": latency_ms,
        }

    def close(self) -> None:
        if self._pool is not None:
            self._pool.closeall()
            self._pool = None
            logger.info("CONNECTION_POOL_CLOSED")

        self._initialized = False
