"""In-memory stand-ins for the source reader and target repositories."""

from typing import Any, Callable, Dict, Iterable, List, Optional

from opensid_migrate.errors import SourceConnectionError, TargetConnectionError
from opensid_migrate.models.record import (
    MappedRecord,
    UpsertOutcome,
    UpsertResult,
)
from opensid_migrate.sources.base import SourceReader
from opensid_migrate.targets.base import TargetRepository


class InMemorySourceReader(SourceReader):
    """Legacy tables held as lists of row dicts."""

    def __init__(
        self,
        tables: Optional[Dict[str, List[Dict[str, Any]]]] = None,
        connected: bool = True,
        fail_fetch_at: Optional[Dict[str, int]] = None,
        fail_count: Iterable[str] = ()
    ):
        self.tables = tables or {}
        self.connected = connected
        self.fail_fetch_at = fail_fetch_at or {}
        self.fail_count = set(fail_count)
        self.fetch_calls: List[tuple] = []

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return None

    def test_connection(self) -> bool:
        return self.connected

    def count(self, table: str) -> int:
        if table in self.fail_count:
            raise SourceConnectionError(f"lost connection counting {table}")
        return len(self.tables.get(table, []))

    def fetch(self, table: str, limit: int, offset: int) -> List[Dict[str, Any]]:
        self.fetch_calls.append((table, limit, offset))
        if self.fail_fetch_at.get(table) == offset:
            raise SourceConnectionError(f"lost connection reading {table}")
        rows = sorted(self.tables.get(table, []), key=lambda r: r.get("id") or 0)
        return [dict(r) for r in rows[offset:offset + limit]]


class InMemoryRepository(TargetRepository):
    """Target table keyed by natural key."""

    def __init__(
        self,
        entity: str,
        fail_keys: Iterable[Any] = (),
        lose_connection_on: Optional[Any] = None,
        on_upsert: Optional[Callable[[Any], None]] = None
    ):
        self.entity = entity
        self.rows: Dict[Any, MappedRecord] = {}
        self.fail_keys = set(fail_keys)
        self.lose_connection_on = lose_connection_on
        self.on_upsert = on_upsert
        self.upserted: List[Any] = []

    def exists(self, natural_key: Any) -> bool:
        return natural_key in self.rows

    def upsert(self, natural_key: Any, record: MappedRecord) -> UpsertResult:
        if natural_key == self.lose_connection_on:
            raise TargetConnectionError("server closed the connection unexpectedly")
        if natural_key in self.fail_keys:
            return UpsertResult.failed(f"duplicate key value violates unique constraint ({natural_key})")

        outcome = UpsertOutcome.UPDATED if natural_key in self.rows else UpsertOutcome.CREATED
        self.rows[natural_key] = record
        self.upserted.append(natural_key)
        if self.on_upsert:
            self.on_upsert(natural_key)
        return UpsertResult(outcome=outcome, target_id=len(self.rows))

    def count(self) -> int:
        return len(self.rows)


def citizen_row(id: int, nik: Optional[str] = None, **overrides) -> Dict[str, Any]:
    row = {
        "id": id,
        "nik": nik if nik is not None else f"35070112345{id:05d}",
        "nama": f"Warga {id}",
        "id_kk": 1,
        "kk_level": 1 if id == 1 else 4,
        "sex": 1,
        "tempatlahir": "Malang",
        "tanggallahir": "1990-01-01",
        "agama_id": 1,
        "status_dasar": 1,
    }
    row.update(overrides)
    return row


def family_row(id: int, **overrides) -> Dict[str, Any]:
    row = {
        "id": id,
        "no_kk": f"35070100000{id:05d}",
        "nik_kepala": f"35070112345{id:05d}",
        "kelas_sosial": 1,
        "alamat": "Jl. Merdeka",
    }
    row.update(overrides)
    return row


def user_row(id: int, **overrides) -> Dict[str, Any]:
    row = {
        "id": id,
        "username": f"user{id}",
        "password": "$2y$10$hash",
        "nama": f"User {id}",
        "email": f"user{id}@desa.id",
        "id_grup": 3,
        "active": 1,
    }
    row.update(overrides)
    return row


def legacy_tables(citizens: int = 3, families: int = 1) -> Dict[str, List[Dict[str, Any]]]:
    """A small but complete legacy database."""
    return {
        "user_grup": [{"id": i, "nama": n} for i, n in enumerate(
            ["Administrator", "Admin Desa", "Operator", "Viewer"], start=1)],
        "user": [user_row(1, id_grup=1), user_row(2)],
        "setting_aplikasi": [
            {"id": 1, "key": "sebutan_desa", "value": "desa", "jenis": "text"},
            {"id": 2, "key": "offline_mode", "value": "0", "jenis": "boolean"},
        ],
        "tweb_keluarga": [family_row(i) for i in range(1, families + 1)],
        "tweb_penduduk": [citizen_row(i) for i in range(1, citizens + 1)],
    }


def memory_repositories(**overrides) -> Dict[str, InMemoryRepository]:
    repos = {
        name: InMemoryRepository(name)
        for name in ("roles", "users", "settings", "families", "citizens")
    }
    repos.update(overrides)
    return repos
