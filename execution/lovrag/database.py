"""
PostgreSQL connection management shared by the corpus and chat stores.

Wraps psycopg2 with optional connection pooling, RealDictCursor rows,
and a single reconnect-and-retry on stale connections.
"""

import os
import logging
from typing import Optional
from dataclasses import dataclass

import psycopg2
import psycopg2.extras
import psycopg2.pool

logger = logging.getLogger(__name__)


@dataclass
class DatabaseConfig:
    """Configuration for the PostgreSQL connection."""
    connection_string: Optional[str] = None
    pool_min_connections: int = 2
    pool_max_connections: int = 20
    use_pooling: bool = True  # Set to False for simple single-connection mode


class Database:
    """
    PostgreSQL connection holder.

    Usage:
        db = Database(DatabaseConfig(connection_string=url))
        db.connect()
        rows = db.execute_with_retry(lambda conn: ..., "label")
    """

    def __init__(self, config: Optional[DatabaseConfig] = None):
        self.config = config or DatabaseConfig()
        self._conn = None
        self._pool = None
        self._connection_string = (
            self.config.connection_string or
            os.getenv("POSTGRES_URL") or
            os.getenv("DATABASE_URL") or
            "postgresql://localhost:5432/lovrag"
        )

    def connect(self) -> None:
        """Establish database connection (with optional pooling)."""
        try:
            if self.config.use_pooling:
                self._pool = psycopg2.pool.ThreadedConnectionPool(
                    minconn=self.config.pool_min_connections,
                    maxconn=self.config.pool_max_connections,
                    dsn=self._connection_string,
                    cursor_factory=psycopg2.extras.RealDictCursor,
                )
                logger.info(
                    f"Connection pool initialized (min={self.config.pool_min_connections}, "
                    f"max={self.config.pool_max_connections})"
                )
            else:
                self._conn = psycopg2.connect(
                    self._connection_string,
                    cursor_factory=psycopg2.extras.RealDictCursor,
                )
                self._conn.autocommit = False
                logger.info("Connected to PostgreSQL (single connection)")
        except Exception as e:
            logger.error(f"Database connection failed: {e}")
            raise

    @property
    def is_connected(self) -> bool:
        """Check if we have an active connection (pool or single)."""
        return self._conn is not None or self._pool is not None

    def _get_connection(self):
        """Get a database connection (from pool or single connection)."""
        if not self.is_connected:
            self.connect()
        if self._pool:
            return self._pool.getconn()
        if self._conn.closed:
            logger.warning("Connection closed, reconnecting...")
            self.connect()
        return self._conn

    def _release_connection(self, conn) -> None:
        """Release a connection back to the pool (if pooling is enabled)."""
        if self._pool and conn:
            self._pool.putconn(conn)

    def _safe_rollback(self, conn) -> None:
        """Rollback a connection, ignoring errors if the connection is dead."""
        try:
            conn.rollback()
        except (psycopg2.InterfaceError, psycopg2.OperationalError):
            pass

    def execute_with_retry(self, operation, label="db_operation"):
        """Execute a DB operation with one retry on stale connection.

        Args:
            operation: Callable(conn) that performs the DB work and returns a result.
            label: Human-readable name for logging.

        Returns:
            Whatever ``operation`` returns.
        """
        for attempt in range(2):
            conn = self._get_connection()
            try:
                result = operation(conn)
                self._release_connection(conn)
                return result
            except (psycopg2.OperationalError, psycopg2.InterfaceError) as e:
                self._safe_rollback(conn)
                self._release_connection(conn)
                if attempt == 0:
                    logger.warning(f"{label}: stale conn, reconnecting: {e}")
                    self.connect()
                    continue
                raise
            except Exception:
                self._safe_rollback(conn)
                self._release_connection(conn)
                raise

    def execute_script(self, sql: str, label: str = "execute_script") -> None:
        """Run DDL and commit."""
        def _op(conn):
            with conn.cursor() as cur:
                cur.execute(sql)
                conn.commit()

        self.execute_with_retry(_op, label)

    def close(self) -> None:
        """Close database connection(s)."""
        if self._pool:
            self._pool.closeall()
            self._pool = None
            logger.info("Connection pool closed")
        if self._conn:
            self._conn.close()
            self._conn = None
