"""Migration orchestrator - coordinates the complete migration process."""

import json
import logging
import threading
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

from .backup import BackupManager
from .config import MigrationConfig
from .errors import SourceConnectionError
from .migrator import TABLE_SPECS, TableMigrator
from .models.migration import MigrationReport, MigrationStatus
from .models.validation import ValidationReport
from .services.integrity import ValidationEngine
from .services.validator import RecordValidator
from .sources.base import SourceReader
from .targets.base import TargetRepository

logger = logging.getLogger(__name__)

# Parents before children: users need roles, citizens need families and users
DEPENDENCY_ORDER = ["roles", "users", "settings", "families", "citizens"]


class MigrationOrchestrator:
    """
    Orchestrates the complete migration process.

    Handles:
    - Source connectivity check
    - Pre-migration backup of the target
    - Table migration in dependency order
    - Post-migration validation
    - Report generation
    """

    def __init__(
        self,
        config: MigrationConfig,
        source: SourceReader,
        repositories: Dict[str, TargetRepository],
        backup_manager: Optional[BackupManager] = None,
        validator: Optional[ValidationEngine] = None,
        logs_dir: Path = Path("./logs"),
        cancel_event: Optional[threading.Event] = None
    ):
        """
        Initialize the orchestrator.

        Args:
            config: Migration configuration
            source: Reader for the legacy database
            repositories: Target repositories keyed by target table name
            backup_manager: Required when config.create_backup is set
            validator: Validation engine for pre/post checks
            logs_dir: Directory for migration reports
            cancel_event: Set from another thread to stop the run
        """
        self.config = config
        self.source = source
        self.repositories = repositories
        self.backup_manager = backup_manager
        self.validator = validator
        self.logs_dir = Path(logs_dir)
        self.cancel_event = cancel_event or threading.Event()
        self.table_migrator = TableMigrator(
            source=source,
            repositories=repositories,
            config=config,
            record_validator=RecordValidator(),
            cancel_event=self.cancel_event,
        )

        # Runtime state
        self.report: Optional[MigrationReport] = None

    def cancel(self) -> None:
        """Stop after the current batch."""
        logger.warning("Cancellation requested")
        self.cancel_event.set()

    def tables_to_migrate(self) -> List[str]:
        """Requested tables in dependency order; unknown names go last."""
        if not self.config.tables:
            return list(DEPENDENCY_ORDER)
        requested = list(dict.fromkeys(self.config.tables))
        ordered = [t for t in DEPENDENCY_ORDER if t in requested]
        return ordered + [t for t in requested if t not in DEPENDENCY_ORDER]

    def run(self) -> MigrationReport:
        """
        Run the complete migration.

        Returns:
            MigrationReport with per-table results and overall status
        """
        self.report = MigrationReport()

        logger.info("=== PHASE 1: CONNECTIVITY ===")
        if not self.source.test_connection():
            raise SourceConnectionError("Source database connection test failed")

        if self.config.create_backup:
            logger.info("=== PHASE 2: BACKUP ===")
            if self.backup_manager is None:
                raise ValueError("create_backup is set but no backup manager was provided")
            # A failed backup aborts the run before anything is written
            self.report.backup = self.backup_manager.create_backup(
                description=f"Pre-migration backup {self.report.start_time.isoformat()}"
            )

        logger.info("=== PHASE 3: MIGRATION ===")
        for table in self.tables_to_migrate():
            if self.cancel_event.is_set():
                logger.warning(f"Cancelled before {table}; remaining tables not started")
                break
            self.report.results.append(self.table_migrator.migrate(table))

        self.report.cancelled = self.cancel_event.is_set()

        if self.config.validate_data and self.validator is None:
            logger.warning("validate_data is set but no validation engine was provided")
        elif self.config.validate_data and not self.report.cancelled:
            logger.info("=== PHASE 4: VALIDATION ===")
            self.report.validation = self.validate_post_migration(
                source_counts={r.table_name: r.total_records for r in self.report.results
                               if r.table_name in TABLE_SPECS}
            )

        self.report.finalize()
        self._save_report()
        self._log_summary()

        return self.report

    def validate_pre_migration(self) -> ValidationReport:
        return self._engine().validate_pre_migration()

    def validate_post_migration(
        self,
        source_counts: Optional[Dict[str, int]] = None
    ) -> ValidationReport:
        return self._engine().validate_post_migration(source_counts)

    def _engine(self) -> ValidationEngine:
        if self.validator is None:
            raise ValueError("No validation engine configured")
        return self.validator

    def _save_report(self) -> Path:
        """Save the migration report."""
        self.logs_dir.mkdir(parents=True, exist_ok=True)
        timestamp = self.report.start_time.strftime('%Y%m%d_%H%M%S')
        filepath = self.logs_dir / f"migration-report-{timestamp}.json"
        with open(filepath, 'w') as f:
            json.dump(self.report.to_dict(), f, indent=2, default=str)
        logger.info(f"Saved migration report to {filepath}")
        return filepath

    def _log_summary(self) -> None:
        summary = self.report.summary
        logger.info(
            f"Migration {self.report.overall_status.value}: "
            f"{summary.successful_tables} successful, {summary.partial_tables} partial, "
            f"{summary.failed_tables} failed tables; "
            f"{summary.migrated_records}/{summary.total_records} records migrated, "
            f"{summary.skipped_records} skipped, {summary.error_records} errors "
            f"in {self.report.total_duration_ms} ms"
        )
        if self.report.overall_status != MigrationStatus.SUCCESS:
            for result in self.report.results:
                for error in result.errors:
                    logger.warning(f"  {result.table_name}: {error}")
