"""Batched migration of a single legacy table into its target table."""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple, Type

from .config import MigrationConfig
from .errors import (
    ConnectivityError,
    MappingError,
    RecordError,
    RecordValidationError,
    UnknownTableError,
)
from .models.migration import MigrationStatus, TableMigrationResult
from .models.record import (
    SourceRecord,
    MappedRecord,
    RoleSourceRecord,
    UserSourceRecord,
    FamilySourceRecord,
    CitizenSourceRecord,
    SettingSourceRecord,
)
from .services import field_mapper
from .services.validator import RecordValidator
from .sources.base import SourceReader
from .targets.base import TargetRepository

logger = logging.getLogger(__name__)

MAX_ERROR_LENGTH = 200


@dataclass(frozen=True)
class TableSpec:
    """How one target table is fed from a legacy table."""
    target_table: str
    source_table: str
    source_type: Type[SourceRecord]
    mapper: Callable[[SourceRecord], MappedRecord]


TABLE_SPECS: Dict[str, TableSpec] = {
    spec.target_table: spec
    for spec in (
        TableSpec("roles", "user_grup", RoleSourceRecord, field_mapper.map_role),
        TableSpec("users", "user", UserSourceRecord, field_mapper.map_user),
        TableSpec("settings", "setting_aplikasi", SettingSourceRecord, field_mapper.map_setting),
        TableSpec("families", "tweb_keluarga", FamilySourceRecord, field_mapper.map_family),
        TableSpec("citizens", "tweb_penduduk", CitizenSourceRecord, field_mapper.map_citizen),
    )
}


def derive_status(migrated: int, errors: int, aborted: bool = False) -> MigrationStatus:
    """
    Status of a table from its counters.

    An aborted table (batch failure or cancellation) is never a success.
    """
    if aborted or errors > 0:
        return MigrationStatus.FAILED if migrated == 0 else MigrationStatus.PARTIAL
    return MigrationStatus.SUCCESS


def _truncate(message: str, limit: int = MAX_ERROR_LENGTH) -> str:
    message = " ".join(str(message).split())
    return message if len(message) <= limit else message[:limit - 3] + "..."


class TableMigrator:
    """
    Migrates one table: read a batch, map, check constraints, upsert.

    Per-record problems are counted and the table carries on. A failed
    batch read or a lost connection stops the table with the counters it
    has accumulated so far.
    """

    def __init__(
        self,
        source: SourceReader,
        repositories: Dict[str, TargetRepository],
        config: MigrationConfig,
        record_validator: Optional[RecordValidator] = None,
        cancel_event: Optional[threading.Event] = None,
        table_specs: Optional[Dict[str, TableSpec]] = None
    ):
        """
        Initialize the table migrator.

        Args:
            source: Reader for the legacy database
            repositories: Target repositories keyed by target table name
            config: Migration configuration
            record_validator: Constraint checks for mapped records
            cancel_event: Set to stop between batches
            table_specs: Table mapping registry (defaults to TABLE_SPECS)
        """
        self.source = source
        self.repositories = repositories
        self.config = config
        self.validator = record_validator or RecordValidator()
        self.cancel_event = cancel_event or threading.Event()
        self.table_specs = table_specs if table_specs is not None else TABLE_SPECS

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def migrate(self, table_name: str) -> TableMigrationResult:
        """Migrate one target table and return its result."""
        started = time.monotonic()
        result = TableMigrationResult(table_name=table_name)

        try:
            spec, repository = self._resolve(table_name)
        except UnknownTableError as e:
            result.errors.append(e.message)
            result.status = MigrationStatus.FAILED
            logger.error(f"Cannot migrate {table_name}: no mapping defined")
            return self._finish(result, started)

        try:
            result.total_records = self.source.count(spec.source_table)
        except Exception as e:
            # Any reader failure fails this table only
            result.errors.append(f"Failed to count {spec.source_table}: {_truncate(e)}")
            result.status = MigrationStatus.FAILED
            logger.error(f"Failed to count {spec.source_table}: {e}")
            return self._finish(result, started)

        logger.info(f"Migrating {spec.source_table} -> {table_name}: {result.total_records} records")
        if result.total_records == 0:
            return self._finish(result, started)

        aborted = False
        batch_size = self.config.batch_size
        for offset in range(0, result.total_records, batch_size):
            if self.cancelled:
                result.errors.append(f"Migration cancelled at offset {offset}")
                logger.warning(f"Migration of {table_name} cancelled at offset {offset}")
                aborted = True
                break

            try:
                rows = self.source.fetch(spec.source_table, limit=batch_size, offset=offset)
                for row in rows:
                    self._migrate_row(row, spec, repository, result)
            except Exception as e:
                # Reader errors and ConnectivityError from _migrate_row
                result.errors.append(f"Batch error at offset {offset}: {_truncate(e)}")
                logger.error(f"Batch error migrating {table_name} at offset {offset}: {e}")
                aborted = True
                break

            logger.info(
                f"{table_name}: {min(offset + batch_size, result.total_records)}"
                f"/{result.total_records} processed "
                f"({result.migrated_records} migrated, {result.skipped_records} skipped, "
                f"{result.error_records} errors)"
            )

        result.status = derive_status(result.migrated_records, result.error_records, aborted)
        return self._finish(result, started)

    def _resolve(self, table_name: str) -> Tuple[TableSpec, TargetRepository]:
        spec = self.table_specs.get(table_name)
        repository = self.repositories.get(table_name)
        if spec is None or repository is None:
            raise UnknownTableError(table_name)
        return spec, repository

    def _map(self, spec: TableSpec, source_record: SourceRecord) -> MappedRecord:
        try:
            return spec.mapper(source_record)
        except (ValueError, TypeError, KeyError, AttributeError) as e:
            raise MappingError(
                f"Cannot map {spec.source_table} row: {e}",
                {"table": spec.source_table, "id": source_record.record_id},
            ) from e

    def _migrate_row(
        self,
        row: dict,
        spec: TableSpec,
        repository: TargetRepository,
        result: TableMigrationResult
    ) -> None:
        source_record = spec.source_type.from_row(row)
        record_id = source_record.record_id

        try:
            mapped = self._map(spec, source_record)

            violations = self.validator.validate(mapped)
            if violations:
                raise RecordValidationError("; ".join(violations), violations)

            key = mapped.natural_key
            if self.config.skip_existing and repository.exists(key):
                result.skipped_records += 1
                return

            upserted = repository.upsert(key, mapped)
            if upserted.success:
                result.migrated_records += 1
            else:
                result.record_error(f"Record {record_id}: {_truncate(upserted.error or 'upsert failed')}")
        except ConnectivityError:
            raise
        except RecordError as e:
            result.record_error(f"Record {record_id}: {_truncate(e.message)}")
        except Exception as e:
            # Anything else is local to this record
            logger.debug(f"Record {record_id} of {spec.source_table} failed", exc_info=True)
            result.record_error(f"Record {record_id}: {_truncate(e)}")

    def _finish(self, result: TableMigrationResult, started: float) -> TableMigrationResult:
        result.duration_ms = int((time.monotonic() - started) * 1000)
        logger.info(
            f"Finished {result.table_name}: {result.status.value} "
            f"({result.migrated_records}/{result.total_records} migrated, "
            f"{result.error_records} errors, {result.duration_ms} ms)"
        )
        return result
