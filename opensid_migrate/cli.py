"""Command-line interface for the OpenSID migration toolkit."""

import argparse
import logging
import os
import signal
import sys
from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError

from .backup import DEFAULT_COMMAND_TIMEOUT, BackupManager
from .config import MigrationConfig, SourceDatabaseConfig, TargetDatabaseConfig
from .errors import MigrationError
from .models.backup import BackupInfo
from .models.migration import MigrationReport
from .models.validation import ValidationReport
from .orchestrator import DEPENDENCY_ORDER, MigrationOrchestrator
from .services.integrity import ValidationEngine
from .sources.mysql_reader import MySQLSourceReader
from .targets.database import TargetDatabase
from .targets.postgres import build_repositories

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(verbose: bool = False, log_file: Optional[str] = None) -> None:
    log_level = logging.DEBUG if verbose else logging.INFO
    handlers: List[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))
    logging.basicConfig(level=log_level, format=LOG_FORMAT, handlers=handlers, force=True)


def _source_config(args) -> SourceDatabaseConfig:
    return SourceDatabaseConfig.from_env(
        host=args.mysql_host,
        port=args.mysql_port,
        user=args.mysql_user,
        password=args.mysql_password,
        database=args.mysql_database,
    )


def _backup_manager(args, db: TargetDatabase) -> BackupManager:
    return BackupManager(
        db,
        backup_dir=Path(args.backup_dir),
        command_timeout=args.timeout,
    )


def print_report(report: MigrationReport) -> None:
    print("\n" + "=" * 60)
    print("MIGRATION COMPLETE" if not report.cancelled else "MIGRATION CANCELLED")
    print("=" * 60)
    print(f"Status: {report.overall_status.value}")
    print(f"Duration: {report.total_duration_ms / 1000:.2f} seconds")
    if report.backup:
        print(f"Backup: {report.backup.id}")
    print("-" * 60)
    for result in report.results:
        print(
            f"{result.table_name:<10} {result.status.value:<8} "
            f"{result.migrated_records}/{result.total_records} migrated, "
            f"{result.skipped_records} skipped, {result.error_records} errors"
        )
        for error in result.errors:
            print(f"    - {error}")
    print("-" * 60)
    summary = report.summary
    print(
        f"Tables: {summary.successful_tables} successful, {summary.partial_tables} partial, "
        f"{summary.failed_tables} failed"
    )
    print(
        f"Records: {summary.migrated_records}/{summary.total_records} migrated, "
        f"{summary.skipped_records} skipped, {summary.error_records} errors"
    )
    if report.validation:
        print(f"Validation: {report.validation.overall_status.value}")


def print_validation(report: ValidationReport) -> None:
    print(f"\n=== {report.phase.capitalize()}-migration Validation ===")
    for result in report.results:
        mark = "PASS" if result.passed else result.severity.value.upper()
        print(f"[{mark:<7}] {result.message}")
    if report.summary:
        print("\nCounts: " + ", ".join(f"{k}={v}" for k, v in report.summary.items()))
    print(f"\nOverall: {report.overall_status.value}")


def print_backup(info: BackupInfo) -> None:
    print(f"{info.id}  {info.created_at.isoformat()}  {info.size_bytes / 1024:.1f} KB")
    if info.description:
        print(f"    {info.description}")
    if info.base_backup_id:
        print(f"    base: {info.base_backup_id}")


def run_migrate(args) -> int:
    """Run a full migration."""
    config = MigrationConfig(
        batch_size=args.batch_size,
        skip_existing=args.skip_existing,
        validate_data=not args.no_validate,
        create_backup=not args.no_backup,
        tables=tuple(args.tables) if args.tables else None,
    )
    target_config = TargetDatabaseConfig.from_env(args.database_url)

    with MySQLSourceReader(_source_config(args)) as source, TargetDatabase(target_config) as db:
        orchestrator = MigrationOrchestrator(
            config=config,
            source=source,
            repositories=build_repositories(db),
            backup_manager=_backup_manager(args, db) if config.create_backup else None,
            validator=ValidationEngine(db=db, source=source, batch_size=config.batch_size),
            logs_dir=Path(args.logs_dir),
        )

        # Ctrl-C stops after the current batch instead of mid-record
        previous = signal.signal(signal.SIGINT, lambda signum, frame: orchestrator.cancel())
        try:
            report = orchestrator.run()
        finally:
            signal.signal(signal.SIGINT, previous)

    print_report(report)
    return 0 if report.success else 1


def run_validate(args) -> int:
    """Run pre- or post-migration validation on its own."""
    if args.pre:
        with MySQLSourceReader(_source_config(args)) as source:
            report = ValidationEngine(source=source).validate_pre_migration()
    else:
        target_config = TargetDatabaseConfig.from_env(args.database_url)
        with TargetDatabase(target_config) as db:
            report = ValidationEngine(db=db).validate_post_migration()

    print_validation(report)
    return 0 if report.is_valid else 1


def run_backup(args) -> int:
    """Backup management subcommands."""
    target_config = TargetDatabaseConfig.from_env(args.database_url)

    with TargetDatabase(target_config) as db:
        manager = _backup_manager(args, db)

        if args.backup_command == "create":
            info = manager.create_backup(" ".join(args.description) or None)
            print(f"Backup created: {info.filepath}")
            print(f"Checksum: {info.checksum}")
        elif args.backup_command == "list":
            backups = manager.list_backups()
            if not backups:
                print("No backups found")
            for info in backups:
                print_backup(info)
        elif args.backup_command == "restore":
            result = manager.restore_backup(args.backup_id)
            print(f"Restored {args.backup_id}")
            for warning in result.warnings:
                print(f"  warning: {warning}")
        elif args.backup_command == "delete":
            if not manager.delete_backup(args.backup_id):
                print(f"Backup not found: {args.backup_id}")
                return 1
            print(f"Deleted {args.backup_id}")
        elif args.backup_command == "incremental":
            info = manager.create_incremental_backup(args.base_id)
            if info.id == args.base_id:
                print(f"No changes since {args.base_id}")
            else:
                print(f"Incremental backup created: {info.filepath}")
        elif args.backup_command == "cleanup":
            removed = manager.cleanup_old_backups(args.retention_days)
            print(f"Removed {len(removed)} backup(s) older than {args.retention_days} days")

    return 0


def build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--verbose", "-v", action="store_true", help="Verbose output")
    common.add_argument("--log-file", help="Also write logs to this file")

    target = argparse.ArgumentParser(add_help=False)
    target.add_argument("--database-url", help="PostgreSQL URL (default: $DATABASE_URL)")

    source = argparse.ArgumentParser(add_help=False)
    source.add_argument("--mysql-host", help="Legacy MySQL host (default: $MYSQL_HOST or localhost)")
    source.add_argument("--mysql-port", type=int, help="Legacy MySQL port (default: $MYSQL_PORT or 3306)")
    source.add_argument("--mysql-user", help="Legacy MySQL user (default: $MYSQL_USER or root)")
    source.add_argument("--mysql-password", help="Legacy MySQL password (default: $MYSQL_PASSWORD)")
    source.add_argument("--mysql-database", help="Legacy database (default: $MYSQL_DATABASE or opensid)")

    backups = argparse.ArgumentParser(add_help=False)
    backups.add_argument(
        "--backup-dir",
        default=os.environ.get("BACKUP_DIR", "./backups"),
        help="Directory for SQL dumps and metadata",
    )
    backups.add_argument(
        "--timeout",
        type=float,
        default=DEFAULT_COMMAND_TIMEOUT,
        help="Seconds to wait for pg_dump/psql",
    )

    parser = argparse.ArgumentParser(
        prog="opensid-migrate",
        description="OpenSID Migration Tool - Move legacy MySQL data to PostgreSQL",
    )
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # Migrate
    migrate_parser = subparsers.add_parser(
        "migrate", parents=[common, source, target, backups], help="Run the migration"
    )
    migrate_parser.add_argument("--batch-size", type=int, default=1000, help="Records per batch")
    migrate_parser.add_argument(
        "--skip-existing",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="Skip records whose natural key already exists",
    )
    migrate_parser.add_argument("--no-validate", action="store_true", help="Skip post-migration validation")
    migrate_parser.add_argument("--no-backup", action="store_true", help="Skip the pre-migration backup")
    migrate_parser.add_argument(
        "--tables",
        nargs="+",
        metavar="TABLE",
        help=f"Only migrate these tables ({', '.join(DEPENDENCY_ORDER)})",
    )
    migrate_parser.add_argument("--logs-dir", default="./logs", help="Directory for migration reports")

    # Validate
    validate_parser = subparsers.add_parser(
        "validate", parents=[common, source, target], help="Run data-integrity checks"
    )
    validate_parser.add_argument("--pre", action="store_true", help="Check the legacy source instead")

    # Backup
    backup_parser = subparsers.add_parser("backup", help="Manage backups")
    backup_sub = backup_parser.add_subparsers(dest="backup_command", help="Backup commands")
    backup_parents = [common, target, backups]

    create_parser = backup_sub.add_parser("create", parents=backup_parents, help="Create a backup")
    create_parser.add_argument("description", nargs="*", help="Optional description")

    backup_sub.add_parser("list", parents=backup_parents, help="List backups, newest first")

    restore_parser = backup_sub.add_parser("restore", parents=backup_parents, help="Restore a backup")
    restore_parser.add_argument("backup_id")

    delete_parser = backup_sub.add_parser("delete", parents=backup_parents, help="Delete a backup")
    delete_parser.add_argument("backup_id")

    incremental_parser = backup_sub.add_parser(
        "incremental", parents=backup_parents, help="Back up if anything changed since a base backup"
    )
    incremental_parser.add_argument("base_id")

    cleanup_parser = backup_sub.add_parser(
        "cleanup", parents=backup_parents, help="Delete backups past the retention window"
    )
    cleanup_parser.add_argument("--retention-days", type=int, default=30)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging(getattr(args, "verbose", False), getattr(args, "log_file", None))

    handlers = {
        "migrate": run_migrate,
        "validate": run_validate,
        "backup": run_backup,
    }
    handler = handlers.get(args.command)
    if handler is None or (args.command == "backup" and not args.backup_command):
        parser.print_help()
        return 2

    try:
        return handler(args)
    except MigrationError as e:
        logger.error(f"{type(e).__name__}: {e.message}")
        print(f"\nError: {e.message}", file=sys.stderr)
        return 1
    except (ValueError, ValidationError) as e:
        logger.error(f"Invalid configuration: {e}")
        print(f"\nError: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
