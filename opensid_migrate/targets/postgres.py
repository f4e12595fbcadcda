"""PostgreSQL repositories for the new schema tables."""

import logging
from typing import Any, Dict, Optional

import psycopg2
from psycopg2 import sql

from ..errors import ForeignKeyError
from ..models.record import (
    MappedRecord,
    UserMappedRecord,
    CitizenMappedRecord,
    UpsertOutcome,
    UpsertResult,
)
from .base import TargetRepository
from .database import TargetDatabase

logger = logging.getLogger(__name__)


class PostgresRepository(TargetRepository):
    """
    Natural-key upserts into one PostgreSQL table.

    Each upsert runs in its own transaction:
    INSERT ... ON CONFLICT (<key>) DO UPDATE ... RETURNING id, (xmax = 0).
    The xmax trick tells a fresh insert apart from an update.
    """

    table: str = ""
    key_column: str = ""

    def __init__(self, db: TargetDatabase):
        self.db = db

    @property
    def entity(self) -> str:
        return self.table

    def exists(self, natural_key: Any) -> bool:
        query = sql.SQL("SELECT 1 AS found FROM {} WHERE {} = %s LIMIT 1").format(
            sql.Identifier(self.table),
            sql.Identifier(self.key_column),
        )
        return self.db.fetch_one(query, (natural_key,)) is not None

    def count(self) -> int:
        return self.db.count_rows(self.table)

    def resolve_relations(self, cursor, record: MappedRecord) -> Dict[str, Any]:
        """Extra foreign-key columns for the row. Raises ForeignKeyError."""
        return {}

    def build_upsert(self, row: Dict[str, Any]) -> sql.Composed:
        columns = list(row.keys())
        updates = [c for c in columns if c != self.key_column]
        return sql.SQL(
            "INSERT INTO {table} ({columns}) VALUES ({values}) "
            "ON CONFLICT ({key}) DO UPDATE SET {updates} "
            "RETURNING id, (xmax = 0) AS inserted"
        ).format(
            table=sql.Identifier(self.table),
            columns=sql.SQL(", ").join(sql.Identifier(c) for c in columns),
            values=sql.SQL(", ").join(sql.Placeholder() for _ in columns),
            key=sql.Identifier(self.key_column),
            updates=sql.SQL(", ").join(
                sql.SQL("{col} = EXCLUDED.{col}").format(col=sql.Identifier(c))
                for c in updates
            ),
        )

    def upsert(self, natural_key: Any, record: MappedRecord) -> UpsertResult:
        row = record.to_row()
        row[self.key_column] = natural_key

        try:
            with self.db.transaction() as cursor:
                row.update(self.resolve_relations(cursor, record))
                cursor.execute(self.build_upsert(row), list(row.values()))
                result = cursor.fetchone()
        except ForeignKeyError as e:
            return UpsertResult.failed(e.message)
        except psycopg2.Error as e:
            message = (e.pgerror or str(e)).strip().splitlines()[0]
            logger.debug(f"Upsert into {self.table} failed for {natural_key!r}: {message}")
            return UpsertResult.failed(message)

        outcome = UpsertOutcome.CREATED if result["inserted"] else UpsertOutcome.UPDATED
        return UpsertResult(outcome=outcome, target_id=result["id"])


class RoleRepository(PostgresRepository):
    table = "roles"
    key_column = "slug"


class UserRepository(PostgresRepository):
    table = "users"
    key_column = "username"

    def resolve_relations(self, cursor, record: UserMappedRecord) -> Dict[str, Any]:
        cursor.execute("SELECT id FROM roles WHERE slug = %s", (record.role_slug,))
        role = cursor.fetchone()
        if role is None:
            raise ForeignKeyError(
                f"Role not found: {record.role_slug}",
                {"table": "roles", "slug": record.role_slug},
            )
        return {"role_id": role["id"]}


class SettingRepository(PostgresRepository):
    table = "settings"
    key_column = "key"


class FamilyRepository(PostgresRepository):
    table = "families"
    key_column = "family_number"


class CitizenRepository(PostgresRepository):
    """Citizens reference their family by legacy id and a creating user."""
    table = "citizens"
    key_column = "nik"

    def __init__(self, db: TargetDatabase):
        super().__init__(db)
        self._created_by_id: Optional[Any] = None

    def _creator_id(self, cursor) -> Any:
        if self._created_by_id is None:
            cursor.execute("SELECT id FROM users ORDER BY id LIMIT 1")
            user = cursor.fetchone()
            if user is None:
                raise ForeignKeyError("No users found for created_by_id reference")
            self._created_by_id = user["id"]
        return self._created_by_id

    def resolve_relations(self, cursor, record: CitizenMappedRecord) -> Dict[str, Any]:
        family_id = None
        if record.family_legacy_id is not None:
            cursor.execute(
                "SELECT id FROM families WHERE legacy_id = %s",
                (record.family_legacy_id,),
            )
            family = cursor.fetchone()
            if family is None:
                raise ForeignKeyError(
                    f"Family not found for legacy id {record.family_legacy_id}",
                    {"table": "families", "legacy_id": record.family_legacy_id},
                )
            family_id = family["id"]

        return {
            "family_id": family_id,
            "created_by_id": self._creator_id(cursor),
        }


REPOSITORY_CLASSES = {
    cls.table: cls
    for cls in (RoleRepository, UserRepository, SettingRepository, FamilyRepository, CitizenRepository)
}


def build_repositories(db: TargetDatabase) -> Dict[str, TargetRepository]:
    """One repository per target table, sharing a connection."""
    return {table: cls(db) for table, cls in REPOSITORY_CLASSES.items()}
