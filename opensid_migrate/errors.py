"""Exception hierarchy for the OpenSID migration tool."""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(str, Enum):
    """Machine-readable error categories."""
    UNKNOWN = "unknown_error"
    SOURCE_CONNECTION = "source_connection_error"
    SOURCE_READ = "source_read_error"
    TARGET_CONNECTION = "target_connection_error"
    MAPPING = "mapping_error"
    VALIDATION = "validation_error"
    FOREIGN_KEY = "foreign_key_error"
    UNKNOWN_TABLE = "unknown_table"
    BACKUP = "backup_error"
    BACKUP_NOT_FOUND = "backup_not_found"
    CHECKSUM_MISMATCH = "checksum_mismatch"
    TIMEOUT = "timeout"


class MigrationError(Exception):
    """Base class for all migration tool exceptions."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.UNKNOWN,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code.value,
            "message": self.message,
            "details": self.details,
        }


class ConnectivityError(MigrationError):
    """A database became unreachable. Fatal for the current table."""


class SourceConnectionError(ConnectivityError):
    """Raised when the legacy MySQL database cannot be reached."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, ErrorCode.SOURCE_CONNECTION, details)


class TargetConnectionError(ConnectivityError):
    """Raised when the PostgreSQL target cannot be reached."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, ErrorCode.TARGET_CONNECTION, details)


class SourceReadError(MigrationError):
    """A legacy query failed while the server stayed up (missing table, bad column)."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, ErrorCode.SOURCE_READ, details)


class RecordError(MigrationError):
    """A problem local to one record. Never stops a table."""


class MappingError(RecordError):
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, ErrorCode.MAPPING, details)


class RecordValidationError(RecordError):
    """Raised when a mapped record violates a target constraint."""

    def __init__(self, message: str, errors: Optional[list] = None):
        super().__init__(message, ErrorCode.VALIDATION, {"errors": errors or []})
        self.errors = errors or []


class ForeignKeyError(RecordError):
    """Raised when a referenced parent row does not exist in the target."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, ErrorCode.FOREIGN_KEY, details)


class UnknownTableError(MigrationError):
    def __init__(self, table_name: str):
        super().__init__(
            f"No mapping defined for table: {table_name}",
            ErrorCode.UNKNOWN_TABLE,
            {"table": table_name},
        )
        self.table_name = table_name


class BackupError(MigrationError):
    """Raised when a backup or restore operation fails."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.BACKUP,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, code, details)


class BackupNotFoundError(BackupError):
    def __init__(self, backup_id: str, reason: str = "metadata not found"):
        super().__init__(
            f"Backup {backup_id}: {reason}",
            ErrorCode.BACKUP_NOT_FOUND,
            {"backup_id": backup_id},
        )
        self.backup_id = backup_id


class ChecksumMismatchError(BackupError):
    """The dump on disk no longer matches the checksum taken at creation."""

    def __init__(self, backup_id: str, expected: str, actual: str):
        super().__init__(
            f"Backup {backup_id} failed checksum verification",
            ErrorCode.CHECKSUM_MISMATCH,
            {"backup_id": backup_id, "expected": expected, "actual": actual},
        )
        self.expected = expected
        self.actual = actual


class BackupTimeoutError(BackupError):
    def __init__(self, command: str, timeout: float):
        super().__init__(
            f"{command} did not finish within {timeout:g} seconds",
            ErrorCode.TIMEOUT,
            {"command": command, "timeout": timeout},
        )


class BackupCommandError(BackupError):
    """An external dump/restore command exited with a non-zero status."""

    def __init__(self, command: str, returncode: int, stderr: str = ""):
        super().__init__(
            f"{command} exited with status {returncode}: {stderr.strip()}",
            ErrorCode.BACKUP,
            {"command": command, "returncode": returncode},
        )
        self.returncode = returncode
