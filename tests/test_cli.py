import json

import pytest

from opensid_migrate import cli

from fakes import InMemorySourceReader, legacy_tables, memory_repositories

DATABASE_URL = "postgresql://migrator@localhost/desa"


class FakeTargetDatabase:
    def __init__(self, config):
        self.config = config
        self.closed = False

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.closed = True


@pytest.fixture(autouse=True)
def quiet_logging(monkeypatch):
    monkeypatch.setattr(cli, "setup_logging", lambda verbose=False, log_file=None: None)


@pytest.fixture
def legacy(monkeypatch):
    tables = legacy_tables()
    monkeypatch.setattr(cli, "MySQLSourceReader", lambda config: InMemorySourceReader(tables))
    monkeypatch.setattr(cli, "TargetDatabase", FakeTargetDatabase)
    monkeypatch.setattr(cli, "build_repositories", lambda db: memory_repositories())
    return tables


def test_migrate_defaults():
    args = cli.build_parser().parse_args(["migrate"])

    assert args.batch_size == 1000
    assert args.skip_existing is True
    assert args.no_validate is False
    assert args.no_backup is False
    assert args.tables is None


def test_migrate_flags():
    args = cli.build_parser().parse_args(
        ["migrate", "--batch-size", "50", "--no-skip-existing", "--tables", "roles", "users"]
    )

    assert args.batch_size == 50
    assert args.skip_existing is False
    assert args.tables == ["roles", "users"]


def test_missing_command_prints_help():
    assert cli.main([]) == 2


def test_backup_without_subcommand():
    assert cli.main(["backup"]) == 2


def test_migrate_without_database_url(monkeypatch):
    monkeypatch.delenv("DATABASE_URL", raising=False)

    assert cli.main(["migrate", "--no-backup"]) == 1


def test_migrate_end_to_end(legacy, tmp_path, capsys):
    logs_dir = tmp_path / "logs"

    code = cli.main([
        "migrate", "--database-url", DATABASE_URL,
        "--no-backup", "--no-validate", "--logs-dir", str(logs_dir),
    ])

    assert code == 0
    assert "MIGRATION COMPLETE" in capsys.readouterr().out
    report = json.loads(next(logs_dir.glob("migration-report-*.json")).read_text())
    assert report["overall_status"] == "success"


def test_migrate_partial_run_exits_nonzero(legacy, tmp_path):
    legacy["tweb_penduduk"][0]["nik"] = "not-a-nik"

    code = cli.main([
        "migrate", "--database-url", DATABASE_URL,
        "--no-backup", "--no-validate", "--logs-dir", str(tmp_path),
    ])

    assert code == 1


def test_pre_validation(legacy, capsys):
    assert cli.main(["validate", "--pre"]) == 0
    assert "Overall: pass" in capsys.readouterr().out
