from unittest.mock import MagicMock, call

import pymysql
import pytest

from opensid_migrate.config import SourceDatabaseConfig
from opensid_migrate.errors import SourceConnectionError, SourceReadError
from opensid_migrate.sources import mysql_reader
from opensid_migrate.sources.mysql_reader import MySQLSourceReader


@pytest.fixture
def cursor():
    return MagicMock()


@pytest.fixture
def connection(cursor):
    conn = MagicMock()
    conn.open = True
    conn.cursor.return_value.__enter__.return_value = cursor
    return conn


@pytest.fixture
def connect(monkeypatch, connection):
    fake = MagicMock(return_value=connection)
    monkeypatch.setattr(mysql_reader.pymysql, "connect", fake)
    return fake


@pytest.fixture
def reader():
    return MySQLSourceReader(SourceDatabaseConfig(host="legacy", database="opensid"))


def test_connect_uses_dict_rows_and_utc(reader, connect, cursor):
    reader.connect()

    kwargs = connect.call_args.kwargs
    assert kwargs["host"] == "legacy"
    assert kwargs["charset"] == "utf8mb4"
    assert kwargs["autocommit"] is True
    assert kwargs["cursorclass"] is pymysql.cursors.DictCursor
    cursor.execute.assert_called_once_with("SET time_zone = '+00:00'")


def test_fetch_pages_in_primary_key_order(reader, connect, cursor):
    cursor.fetchall.return_value = ({"id": 201}, {"id": 202})

    rows = reader.fetch("tweb_penduduk", limit=100, offset=200)

    assert rows == [{"id": 201}, {"id": 202}]
    assert cursor.execute.call_args == call(
        "SELECT * FROM `tweb_penduduk` ORDER BY `id` LIMIT %s OFFSET %s", (100, 200)
    )


def test_count(reader, connect, cursor):
    cursor.fetchall.return_value = [{"total": 42}]

    assert reader.count("tweb_keluarga") == 42
    assert cursor.execute.call_args == call("SELECT COUNT(*) AS total FROM `tweb_keluarga`", ())


def test_rejects_unsafe_table_names(reader, connect):
    with pytest.raises(ValueError, match="Invalid table name"):
        reader.fetch("user; DROP TABLE user", limit=10, offset=0)
    with pytest.raises(ValueError):
        reader.count("`user`")

    connect.assert_not_called()


def test_unreachable_server(reader, monkeypatch):
    monkeypatch.setattr(
        mysql_reader.pymysql, "connect",
        MagicMock(side_effect=pymysql.err.OperationalError(2003, "Can't connect to MySQL server")),
    )

    with pytest.raises(SourceConnectionError, match="legacy:3306"):
        reader.count("user")
    assert reader.test_connection() is False


def test_missing_table_is_a_read_error(reader, connect, cursor):
    reader.connect()
    cursor.execute.side_effect = pymysql.err.ProgrammingError(
        1146, "Table 'opensid.setting_aplikasi' doesn't exist"
    )

    with pytest.raises(SourceReadError, match="setting_aplikasi"):
        reader.count("setting_aplikasi")
    assert connect.call_count == 1


def test_lost_connection_reconnects_on_next_query(reader, connect, cursor):
    reader.connect()
    cursor.execute.side_effect = pymysql.err.OperationalError(2013, "Lost connection")

    with pytest.raises(SourceConnectionError):
        reader.count("user")

    cursor.execute.side_effect = None
    cursor.fetchall.return_value = [{"total": 3}]
    assert reader.count("user") == 3
    assert connect.call_count == 2


def test_context_manager_closes(reader, connect, connection):
    with reader as r:
        assert r is reader

    connection.close.assert_called_once()
