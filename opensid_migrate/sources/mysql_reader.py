"""Reader for the legacy OpenSID MySQL database."""

import logging
from typing import Any, Dict, List, Optional

import pymysql
import pymysql.cursors

from ..config import SourceDatabaseConfig
from ..errors import SourceConnectionError, SourceReadError
from .base import SourceReader, check_identifier

logger = logging.getLogger(__name__)

# Errors that mean the server is gone rather than the query being wrong
CONNECTION_ERRORS = (pymysql.err.OperationalError, pymysql.err.InterfaceError)


class MySQLSourceReader(SourceReader):
    """
    Paginated reads from OpenSID tables using PyMySQL.

    Rows come back as dicts (DictCursor) in primary-key order. The session
    runs in autocommit with a UTC time zone so every fetch is its own read.
    """

    def __init__(self, config: SourceDatabaseConfig, order_column: str = "id"):
        self.config = config
        self.order_column = check_identifier(order_column)
        self._connection: Optional[pymysql.connections.Connection] = None

    def connect(self) -> "pymysql.connections.Connection":
        if self._connection is not None and self._connection.open:
            return self._connection

        try:
            conn = pymysql.connect(
                host=self.config.host,
                port=self.config.port,
                user=self.config.user,
                password=self.config.password,
                database=self.config.database,
                connect_timeout=self.config.connect_timeout,
                charset="utf8mb4",
                autocommit=True,
                cursorclass=pymysql.cursors.DictCursor,
            )
            with conn.cursor() as cursor:
                cursor.execute("SET time_zone = '+00:00'")  # Use UTC
        except CONNECTION_ERRORS as e:
            raise SourceConnectionError(
                f"Cannot connect to MySQL at {self.config.host}:{self.config.port}: {e}",
                {"host": self.config.host, "database": self.config.database},
            ) from e

        logger.debug(f"Connected to MySQL database {self.config.database}")
        self._connection = conn
        return conn

    def close(self) -> None:
        if self._connection is not None:
            try:
                self._connection.close()
            except pymysql.err.Error as e:
                logger.debug(f"Ignoring error while closing MySQL connection: {e}")
            self._connection = None

    def __enter__(self) -> "MySQLSourceReader":
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def _execute(self, sql: str, params: tuple = ()) -> List[Dict[str, Any]]:
        conn = self.connect()
        try:
            with conn.cursor() as cursor:
                cursor.execute(sql, params)
                return list(cursor.fetchall())
        except CONNECTION_ERRORS as e:
            self._connection = None
            raise SourceConnectionError(f"MySQL query failed: {e}") from e
        except pymysql.err.Error as e:
            raise SourceReadError(f"MySQL query failed: {e}", {"query": sql}) from e

    def test_connection(self) -> bool:
        try:
            self._execute("SELECT 1 AS ok")
            return True
        except (SourceConnectionError, SourceReadError) as e:
            logger.error(f"MySQL connection test failed: {e}")
            return False

    def count(self, table: str) -> int:
        table = check_identifier(table)
        rows = self._execute(f"SELECT COUNT(*) AS total FROM `{table}`")
        return int(rows[0]["total"]) if rows else 0

    def fetch(self, table: str, limit: int, offset: int) -> List[Dict[str, Any]]:
        table = check_identifier(table)
        sql = (
            f"SELECT * FROM `{table}` "
            f"ORDER BY `{self.order_column}` LIMIT %s OFFSET %s"
        )
        return self._execute(sql, (int(limit), int(offset)))
