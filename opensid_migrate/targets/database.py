"""Connection wrapper for the PostgreSQL target database."""

import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional, Sequence

import psycopg2
import psycopg2.extras
from psycopg2 import sql
from psycopg2 import InterfaceError, OperationalError

from ..config import TargetDatabaseConfig
from ..errors import TargetConnectionError

logger = logging.getLogger(__name__)

CONNECTION_ERRORS = (OperationalError, InterfaceError)


class TargetDatabase:
    """
    Thin psycopg2 wrapper used by repositories, the backup manager and
    the validation engine.

    Work happens inside ``transaction()`` blocks which commit on success
    and roll back on any exception. Connection-level failures surface as
    TargetConnectionError; everything else is left to the caller.
    """

    def __init__(self, config: TargetDatabaseConfig):
        self.config = config
        self._connection = None

    @property
    def database_url(self) -> str:
        return self.config.database_url

    def connect(self):
        if self._connection is not None and not self._connection.closed:
            return self._connection

        try:
            self._connection = psycopg2.connect(
                self.config.database_url,
                connect_timeout=self.config.connect_timeout,
            )
        except CONNECTION_ERRORS as e:
            raise TargetConnectionError(f"Cannot connect to PostgreSQL: {e}") from e

        logger.debug("Connected to PostgreSQL target")
        return self._connection

    def close(self) -> None:
        if self._connection is not None and not self._connection.closed:
            self._connection.close()
        self._connection = None

    def __enter__(self) -> "TargetDatabase":
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    @contextmanager
    def transaction(self) -> Iterator[Any]:
        """Yield a RealDictCursor; commit on success, roll back on error."""
        conn = self.connect()
        try:
            with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cursor:
                yield cursor
            conn.commit()
        except CONNECTION_ERRORS as e:
            self._safe_rollback(conn)
            self._connection = None
            raise TargetConnectionError(f"PostgreSQL connection lost: {e}") from e
        except BaseException:
            self._safe_rollback(conn)
            raise

    def _safe_rollback(self, conn) -> None:
        if conn.closed:
            return
        try:
            conn.rollback()
        except CONNECTION_ERRORS as e:
            logger.debug(f"Rollback failed on a broken connection: {e}")

    def fetch_all(self, query, params: Optional[Sequence[Any]] = None) -> List[Dict[str, Any]]:
        with self.transaction() as cursor:
            cursor.execute(query, params)
            return [dict(row) for row in cursor.fetchall()]

    def fetch_one(self, query, params: Optional[Sequence[Any]] = None) -> Optional[Dict[str, Any]]:
        with self.transaction() as cursor:
            cursor.execute(query, params)
            row = cursor.fetchone()
            return dict(row) if row is not None else None

    def execute(self, query, params: Optional[Sequence[Any]] = None) -> int:
        with self.transaction() as cursor:
            cursor.execute(query, params)
            return cursor.rowcount

    def test_connection(self) -> bool:
        try:
            self.fetch_one("SELECT 1 AS ok")
            return True
        except TargetConnectionError as e:
            logger.error(f"PostgreSQL connection test failed: {e}")
            return False

    def table_names(self) -> List[str]:
        """User tables in the public schema."""
        rows = self.fetch_all(
            "SELECT tablename FROM pg_tables WHERE schemaname = 'public' ORDER BY tablename"
        )
        return [row["tablename"] for row in rows]

    def count_rows(self, table: str) -> int:
        query = sql.SQL("SELECT COUNT(*) AS total FROM {}").format(sql.Identifier(table))
        row = self.fetch_one(query)
        return int(row["total"]) if row else 0
