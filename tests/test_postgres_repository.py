from contextlib import contextmanager
from datetime import date
from unittest.mock import MagicMock

import psycopg2
import pytest

from opensid_migrate.errors import TargetConnectionError
from opensid_migrate.models.record import (
    CitizenMappedRecord,
    RoleMappedRecord,
    UpsertOutcome,
    UserMappedRecord,
)
from opensid_migrate.targets.postgres import (
    CitizenRepository,
    RoleRepository,
    UserRepository,
    build_repositories,
)


class FakeDB:
    """Hands out one scripted cursor per transaction."""

    def __init__(self, fetchone_results=(), execute_error=None):
        self.cursor = MagicMock()
        self.cursor.fetchone.side_effect = list(fetchone_results)
        if execute_error is not None:
            self.cursor.execute.side_effect = execute_error
        self.transactions = 0

    @contextmanager
    def transaction(self):
        self.transactions += 1
        yield self.cursor

    def executed_params(self):
        return [c.args[1] if len(c.args) > 1 else None for c in self.cursor.execute.call_args_list]


def make_citizen(**overrides):
    values = dict(legacy_id=5, nik="3507011234567890", name="Siti", birth_date=date(1990, 1, 1))
    values.update(overrides)
    return CitizenMappedRecord(**values)


def test_role_upsert_created():
    db = FakeDB([{"id": 1, "inserted": True}])
    role = RoleMappedRecord(legacy_id=2, slug="admin-desa", name="Admin Desa")

    result = RoleRepository(db).upsert(role.natural_key, role)

    assert result.outcome == UpsertOutcome.CREATED
    assert result.target_id == 1
    assert db.executed_params()[0] == [2, "admin-desa", "Admin Desa"]


def test_role_upsert_updated():
    db = FakeDB([{"id": 1, "inserted": False}])
    role = RoleMappedRecord(legacy_id=2, slug="admin-desa", name="Admin Desa")

    result = RoleRepository(db).upsert("admin-desa", role)

    assert result.outcome == UpsertOutcome.UPDATED
    assert result.success


def test_user_role_resolved_by_slug():
    db = FakeDB([{"id": 3}, {"id": 10, "inserted": True}])
    user = UserMappedRecord(legacy_id=1, username="budi", email="budi@desa.id", name="Budi", role_slug="operator")

    result = UserRepository(db).upsert("budi", user)

    assert result.outcome == UpsertOutcome.CREATED
    lookup, insert = db.executed_params()
    assert lookup == ("operator",)
    assert insert[-1] == 3  # role_id appended after the mapped columns


def test_user_missing_role_fails_record():
    db = FakeDB([None])
    user = UserMappedRecord(legacy_id=1, username="budi", email="budi@desa.id", name="Budi", role_slug="viewer")

    result = UserRepository(db).upsert("budi", user)

    assert result.outcome == UpsertOutcome.FAILED
    assert result.error == "Role not found: viewer"


def test_citizen_resolves_family_and_creator():
    db = FakeDB([{"id": 40}, {"id": 1}, {"id": 99, "inserted": True}])

    result = CitizenRepository(db).upsert("3507011234567890", make_citizen(family_legacy_id=7))

    assert result.outcome == UpsertOutcome.CREATED
    params = db.executed_params()
    assert params[0] == (7,)
    assert params[-1][-2:] == [40, 1]


def test_citizen_creator_is_cached():
    db = FakeDB([{"id": 1}, {"id": 99, "inserted": True}, {"id": 100, "inserted": True}])
    repo = CitizenRepository(db)

    repo.upsert("3507011234567890", make_citizen())
    repo.upsert("3507011234567891", make_citizen(nik="3507011234567891"))

    queries = [c.args[0] for c in db.cursor.execute.call_args_list]
    assert sum(1 for q in queries if q == "SELECT id FROM users ORDER BY id LIMIT 1") == 1


def test_citizen_without_users_fails():
    db = FakeDB([None])

    result = CitizenRepository(db).upsert("3507011234567890", make_citizen())

    assert result.error == "No users found for created_by_id reference"


def test_citizen_unknown_family_fails():
    db = FakeDB([None])

    result = CitizenRepository(db).upsert("3507011234567890", make_citizen(family_legacy_id=404))

    assert result.outcome == UpsertOutcome.FAILED
    assert "legacy id 404" in result.error


def test_constraint_violation_fails_record():
    db = FakeDB(execute_error=psycopg2.IntegrityError("null value in column \"name\""))
    role = RoleMappedRecord(legacy_id=2, slug="admin-desa", name="")

    result = RoleRepository(db).upsert("admin-desa", role)

    assert result.outcome == UpsertOutcome.FAILED
    assert "null value" in result.error


def test_connection_loss_propagates():
    db = FakeDB(execute_error=TargetConnectionError("server closed the connection"))
    role = RoleMappedRecord(legacy_id=2, slug="admin-desa", name="Admin")

    with pytest.raises(TargetConnectionError):
        RoleRepository(db).upsert("admin-desa", role)


def test_build_repositories_covers_all_tables():
    repos = build_repositories(FakeDB())
    assert set(repos) == {"roles", "users", "settings", "families", "citizens"}
    assert repos["citizens"].key_column == "nik"
