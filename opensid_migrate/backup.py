"""
Database backup and restore for safe migrations.

Backups are plain-SQL pg_dump files with a JSON metadata sidecar holding
the table list, per-table row counts and a SHA-256 checksum. A restore
refuses to run if the dump no longer matches its checksum.

Features:
- Timestamped full backups before migration
- Checksum-verified restore with row-count comparison
- Incremental backups (skipped when no table's row count changed)
- Retention-based cleanup of old backups
"""

import hashlib
import logging
import os
import subprocess
from datetime import datetime, timedelta
from pathlib import Path
from typing import Dict, List, Optional, Tuple
from urllib.parse import urlparse, urlunparse

import psycopg2

from .errors import (
    BackupError,
    BackupCommandError,
    BackupNotFoundError,
    BackupTimeoutError,
    ChecksumMismatchError,
    MigrationError,
)
from .models.backup import METADATA_SUFFIX, BackupInfo, RestoreResult
from .targets.database import TargetDatabase

logger = logging.getLogger(__name__)

DEFAULT_COMMAND_TIMEOUT = 600  # seconds
CHUNK_SIZE = 1024 * 1024

# Written by every backup, so its row count says nothing about the data
UNTRACKED_TABLES = frozenset({"backup_logs"})


def compute_checksum(path: Path) -> str:
    """SHA-256 of a file, read in chunks."""
    digest = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()


def split_database_url(database_url: str) -> Tuple[str, Dict[str, str]]:
    """
    Strip the password out of a connection URL.

    Returns:
        (url without password, extra environment for libpq tools)
    """
    parsed = urlparse(database_url)
    env = {}
    if parsed.password:
        env["PGPASSWORD"] = parsed.password
        netloc = parsed.hostname or ""
        if parsed.username:
            netloc = f"{parsed.username}@{netloc}"
        if parsed.port:
            netloc = f"{netloc}:{parsed.port}"
        parsed = parsed._replace(netloc=netloc)
    return urlunparse(parsed), env


class BackupManager:
    """
    Manages pg_dump backups of the target database.

    Creates verified, restorable snapshots before a migration so a failed
    run can be rolled back to a known state.
    """

    def __init__(
        self,
        db: TargetDatabase,
        backup_dir: Path = Path("./backups"),
        command_timeout: float = DEFAULT_COMMAND_TIMEOUT,
        pg_dump_bin: str = "pg_dump",
        psql_bin: str = "psql"
    ):
        """
        Initialize backup manager.

        Args:
            db: Target database (connection URL, table list, row counts)
            backup_dir: Directory to store backups
            command_timeout: Seconds to wait for pg_dump/psql
            pg_dump_bin: pg_dump executable
            psql_bin: psql executable
        """
        self.db = db
        self.backup_dir = Path(backup_dir)
        self.command_timeout = command_timeout
        self.pg_dump_bin = pg_dump_bin
        self.psql_bin = psql_bin

        self.backup_dir.mkdir(parents=True, exist_ok=True)

    def _dump_path(self, backup_id: str) -> Path:
        return self.backup_dir / f"{backup_id}.sql"

    def _metadata_path(self, backup_id: str) -> Path:
        return Path(str(self._dump_path(backup_id)) + METADATA_SUFFIX)

    def _run(self, args: List[str]) -> subprocess.CompletedProcess:
        """Run a libpq client tool against the target database."""
        url, extra_env = split_database_url(self.db.database_url)
        env = dict(os.environ)
        env.update(extra_env)
        command = args[0]

        try:
            return subprocess.run(
                args + ["--dbname", url],
                env=env,
                capture_output=True,
                text=True,
                timeout=self.command_timeout,
                check=True,
            )
        except subprocess.TimeoutExpired as e:
            raise BackupTimeoutError(command, self.command_timeout) from e
        except subprocess.CalledProcessError as e:
            raise BackupCommandError(command, e.returncode, e.stderr or "") from e
        except FileNotFoundError as e:
            raise BackupError(f"{command} not found; is the PostgreSQL client installed?") from e

    def _tracked_tables(self) -> List[str]:
        return [t for t in self.db.table_names() if t not in UNTRACKED_TABLES]

    def _record_counts(self, tables: List[str]) -> Dict[str, int]:
        """Row counts per table. Tables that cannot be counted are left out."""
        counts = {}
        for table in tables:
            try:
                counts[table] = self.db.count_rows(table)
            except (psycopg2.Error, MigrationError) as e:
                logger.warning(f"Could not count rows in {table}: {e}")
        return counts

    def create_backup(
        self,
        description: Optional[str] = None,
        base_backup_id: Optional[str] = None
    ) -> BackupInfo:
        """
        Dump the target database to a new backup.

        Args:
            description: Free-text note stored with the backup
            base_backup_id: Backup this one was taken relative to

        Returns:
            BackupInfo with backup details
        """
        started_at = datetime.utcnow()
        backup_id = f"backup_{started_at.strftime('%Y%m%d_%H%M%S_%f')}"
        dump_path = self._dump_path(backup_id)

        logger.info(f"Creating backup: {backup_id}")

        try:
            self._run([
                self.pg_dump_bin,
                "--no-owner",
                "--no-privileges",
                "--clean",
                "--if-exists",
                "--file", str(dump_path),
            ])
        except BackupError:
            dump_path.unlink(missing_ok=True)
            raise

        # Table list and counts are read together, right after the dump
        tables = self._tracked_tables()
        info = BackupInfo(
            id=backup_id,
            filename=dump_path.name,
            filepath=str(dump_path),
            size_bytes=dump_path.stat().st_size,
            created_at=started_at,
            tables=tables,
            record_counts=self._record_counts(tables),
            checksum=compute_checksum(dump_path),
            description=description,
            base_backup_id=base_backup_id,
        )
        info.save()
        self._log_backup(info, started_at)

        logger.info(f"Backup created: {dump_path}")
        logger.info(f"  Tables: {len(tables)}, Size: {info.size_bytes / 1024:.1f} KB")

        return info

    def _log_backup(self, info: BackupInfo, started_at: datetime) -> None:
        """Record the backup in backup_logs. Failure here is not fatal."""
        try:
            self.db.execute(
                "INSERT INTO backup_logs "
                "(filename, size, type, status, started_at, completed_at, checksum, location) "
                "VALUES (%s, %s, %s, %s, %s, %s, %s, %s)",
                (
                    info.filename,
                    info.size_bytes,
                    "INCREMENTAL" if info.base_backup_id else "FULL",
                    "COMPLETED",
                    started_at,
                    datetime.utcnow(),
                    info.checksum,
                    info.filepath,
                ),
            )
        except (psycopg2.Error, MigrationError) as e:
            logger.warning(f"Could not write backup log entry for {info.id}: {e}")

    def get_backup(self, backup_id: str) -> Optional[BackupInfo]:
        return BackupInfo.load(self._metadata_path(backup_id))

    def restore_backup(self, backup_id: str) -> RestoreResult:
        """
        Restore the target database from a backup.

        The dump's checksum is verified before anything is executed.

        Args:
            backup_id: ID of the backup to restore

        Returns:
            RestoreResult with any row-count warnings
        """
        info = self.get_backup(backup_id)
        if info is None:
            raise BackupNotFoundError(backup_id)

        dump_path = Path(info.filepath)
        if not dump_path.exists():
            raise BackupNotFoundError(backup_id, f"dump file missing: {dump_path}")

        actual = compute_checksum(dump_path)
        if actual != info.checksum:
            logger.error(f"Checksum mismatch for {backup_id}: expected {info.checksum}, got {actual}")
            raise ChecksumMismatchError(backup_id, info.checksum, actual)

        logger.info(f"Restoring from backup: {backup_id}")
        self._run([
            self.psql_bin,
            "-v", "ON_ERROR_STOP=1",
            "--quiet",
            "--file", str(dump_path),
        ])

        result = RestoreResult(backup_id=backup_id)
        for table, expected in info.record_counts.items():
            if table in UNTRACKED_TABLES:
                continue
            try:
                restored = self.db.count_rows(table)
            except (psycopg2.Error, MigrationError) as e:
                result.warnings.append(f"{table}: could not count rows after restore ({e})")
                continue
            if restored != expected:
                result.warnings.append(
                    f"{table}: expected {expected} rows, found {restored}"
                )

        for warning in result.warnings:
            logger.warning(f"Restore of {backup_id}: {warning}")
        logger.info(f"Restore complete: {backup_id}")

        return result

    def list_backups(self) -> List[BackupInfo]:
        """
        List all available backups.

        Returns:
            BackupInfo for backups whose dump still exists, newest first
        """
        backups = []

        for meta_file in self.backup_dir.glob(f"*{METADATA_SUFFIX}"):
            try:
                info = BackupInfo.load(meta_file)
            except (OSError, ValueError, KeyError, TypeError) as e:
                logger.warning(f"Skipping unreadable backup metadata {meta_file}: {e}")
                continue
            if info and Path(info.filepath).exists():
                backups.append(info)

        backups.sort(key=lambda b: b.created_at, reverse=True)
        return backups

    def get_latest_backup(self) -> Optional[BackupInfo]:
        """Get the most recent backup."""
        backups = self.list_backups()
        return backups[0] if backups else None

    def delete_backup(self, backup_id: str) -> bool:
        """
        Delete a backup's metadata and dump.

        Returns:
            True if deleted, False if not found
        """
        info = self.get_backup(backup_id)
        if info is None:
            return False

        # Metadata first so a half-deleted backup is never listed
        info.metadata_path.unlink(missing_ok=True)
        Path(info.filepath).unlink(missing_ok=True)

        logger.info(f"Deleted backup: {backup_id}")
        return True

    def create_incremental_backup(self, base_backup_id: str) -> BackupInfo:
        """
        Back up again only if row counts moved since the base backup.

        Changes that leave every table's row count unchanged are not
        detected.

        Returns:
            The base backup when nothing changed, otherwise a new backup
        """
        base = self.get_backup(base_backup_id)
        if base is None:
            raise BackupNotFoundError(base_backup_id)

        tables = self._tracked_tables()
        current = self._record_counts(tables)
        uncounted = set(tables) - set(current)
        if uncounted:
            logger.warning(f"Not comparing uncounted tables: {', '.join(sorted(uncounted))}")

        changed = sorted(
            t for t in set(current) | set(base.record_counts)
            if t not in uncounted
            and t not in UNTRACKED_TABLES
            and current.get(t) != base.record_counts.get(t)
        )
        if not changed:
            logger.info(f"No changes since {base_backup_id}; reusing it")
            return base

        logger.info(f"Row counts changed since {base_backup_id}: {', '.join(changed)}")

        return self.create_backup(
            description=f"Incremental backup based on {base_backup_id}",
            base_backup_id=base_backup_id,
        )

    def cleanup_old_backups(self, retention_days: int = 30) -> List[str]:
        """Remove backups older than ``retention_days``. Returns deleted IDs."""
        cutoff = datetime.utcnow() - timedelta(days=retention_days)
        removed = []

        for info in self.list_backups():
            if info.created_at < cutoff and self.delete_backup(info.id):
                removed.append(info.id)
                logger.info(f"Cleaned up old backup: {info.id}")

        return removed
