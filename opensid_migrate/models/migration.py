"""Migration execution models."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from enum import Enum
from datetime import datetime

from .backup import BackupInfo
from .validation import ValidationReport

# Record error messages kept per table; error_records keeps the full count
MAX_RECORDED_ERRORS = 10


class MigrationStatus(str, Enum):
    """Outcome of a table migration or of a whole run."""
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"


@dataclass
class TableMigrationResult:
    """Counters and errors for one migrated table."""
    table_name: str
    total_records: int = 0
    migrated_records: int = 0
    skipped_records: int = 0
    error_records: int = 0
    errors: List[str] = field(default_factory=list)
    duration_ms: int = 0
    status: MigrationStatus = MigrationStatus.SUCCESS

    @property
    def processed_records(self) -> int:
        return self.migrated_records + self.skipped_records + self.error_records

    def record_error(self, message: str) -> None:
        """Count a per-record error, keeping only the first few messages."""
        self.error_records += 1
        if len(self.errors) < MAX_RECORDED_ERRORS:
            self.errors.append(message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "table_name": self.table_name,
            "total_records": self.total_records,
            "migrated_records": self.migrated_records,
            "skipped_records": self.skipped_records,
            "error_records": self.error_records,
            "errors": self.errors,
            "duration_ms": self.duration_ms,
            "status": self.status.value,
        }


@dataclass
class MigrationSummary:
    total_tables: int = 0
    successful_tables: int = 0
    partial_tables: int = 0
    failed_tables: int = 0
    total_records: int = 0
    migrated_records: int = 0
    skipped_records: int = 0
    error_records: int = 0

    @classmethod
    def from_results(cls, results: List[TableMigrationResult]) -> "MigrationSummary":
        summary = cls(total_tables=len(results))
        for result in results:
            if result.status == MigrationStatus.SUCCESS:
                summary.successful_tables += 1
            elif result.status == MigrationStatus.PARTIAL:
                summary.partial_tables += 1
            else:
                summary.failed_tables += 1
            summary.total_records += result.total_records
            summary.migrated_records += result.migrated_records
            summary.skipped_records += result.skipped_records
            summary.error_records += result.error_records
        return summary

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_tables": self.total_tables,
            "successful_tables": self.successful_tables,
            "partial_tables": self.partial_tables,
            "failed_tables": self.failed_tables,
            "total_records": self.total_records,
            "migrated_records": self.migrated_records,
            "skipped_records": self.skipped_records,
            "error_records": self.error_records,
        }


def overall_status(results: List[TableMigrationResult]) -> MigrationStatus:
    """Worst status across tables: any failed wins, then any partial."""
    statuses = {r.status for r in results}
    if MigrationStatus.FAILED in statuses:
        return MigrationStatus.FAILED
    if MigrationStatus.PARTIAL in statuses:
        return MigrationStatus.PARTIAL
    return MigrationStatus.SUCCESS


@dataclass
class MigrationReport:
    """A complete migration run."""
    start_time: datetime = field(default_factory=datetime.utcnow)
    end_time: Optional[datetime] = None
    results: List[TableMigrationResult] = field(default_factory=list)
    overall_status: MigrationStatus = MigrationStatus.SUCCESS
    summary: MigrationSummary = field(default_factory=MigrationSummary)
    backup: Optional[BackupInfo] = None
    validation: Optional[ValidationReport] = None
    cancelled: bool = False

    @property
    def total_duration_ms(self) -> int:
        if self.end_time is None:
            return 0
        return int((self.end_time - self.start_time).total_seconds() * 1000)

    @property
    def success(self) -> bool:
        return self.overall_status == MigrationStatus.SUCCESS

    def finalize(self) -> None:
        """Stamp the end time and derive summary and overall status."""
        self.end_time = datetime.utcnow()
        self.summary = MigrationSummary.from_results(self.results)
        self.overall_status = overall_status(self.results)
        if self.cancelled and self.overall_status == MigrationStatus.SUCCESS:
            self.overall_status = MigrationStatus.PARTIAL

    def to_dict(self) -> Dict[str, Any]:
        return {
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "total_duration_ms": self.total_duration_ms,
            "overall_status": self.overall_status.value,
            "cancelled": self.cancelled,
            "summary": self.summary.to_dict(),
            "results": [r.to_dict() for r in self.results],
            "backup": self.backup.to_dict() if self.backup else None,
            "validation": self.validation.to_dict() if self.validation else None,
        }
