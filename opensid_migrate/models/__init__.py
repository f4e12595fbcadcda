"""Data models for the migration toolkit."""

from .record import (
    SourceRecord,
    RoleSourceRecord,
    UserSourceRecord,
    FamilySourceRecord,
    CitizenSourceRecord,
    SettingSourceRecord,
    MappedRecord,
    RoleMappedRecord,
    UserMappedRecord,
    FamilyMappedRecord,
    CitizenMappedRecord,
    SettingMappedRecord,
    UpsertOutcome,
    UpsertResult,
)
from .migration import (
    MigrationStatus,
    TableMigrationResult,
    MigrationSummary,
    MigrationReport,
)
from .backup import BackupInfo, RestoreResult
from .validation import (
    Severity,
    ValidationStatus,
    ValidationRule,
    RuleResult,
    ValidationReport,
)

__all__ = [
    "SourceRecord",
    "RoleSourceRecord",
    "UserSourceRecord",
    "FamilySourceRecord",
    "CitizenSourceRecord",
    "SettingSourceRecord",
    "MappedRecord",
    "RoleMappedRecord",
    "UserMappedRecord",
    "FamilyMappedRecord",
    "CitizenMappedRecord",
    "SettingMappedRecord",
    "UpsertOutcome",
    "UpsertResult",
    "MigrationStatus",
    "TableMigrationResult",
    "MigrationSummary",
    "MigrationReport",
    "BackupInfo",
    "RestoreResult",
    "Severity",
    "ValidationStatus",
    "ValidationRule",
    "RuleResult",
    "ValidationReport",
]
