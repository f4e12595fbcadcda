#!/usr/bin/env python3
"""
Example: OpenSID MySQL to PostgreSQL Migration

This script demonstrates how to use the opensid_migrate package
programmatically instead of through the opensid-migrate CLI.

Usage:
    # Preview how legacy rows are mapped (no database needed)
    python run_migration.py --demo

    # Full migration (reads MYSQL_* and DATABASE_URL from the environment)
    python run_migration.py

    # Only some tables, without the pre-migration backup
    python run_migration.py --tables roles users --no-backup
"""

import argparse
import json
import logging
import sys
from pathlib import Path

from opensid_migrate.backup import BackupManager
from opensid_migrate.config import MigrationConfig, SourceDatabaseConfig, TargetDatabaseConfig
from opensid_migrate.errors import MigrationError
from opensid_migrate.migrator import TABLE_SPECS
from opensid_migrate.orchestrator import MigrationOrchestrator
from opensid_migrate.services.integrity import ValidationEngine
from opensid_migrate.services.validator import RecordValidator
from opensid_migrate.sources.mysql_reader import MySQLSourceReader
from opensid_migrate.targets.database import TargetDatabase
from opensid_migrate.targets.postgres import build_repositories

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.StreamHandler(),
        logging.FileHandler('migration.log')
    ]
)
logger = logging.getLogger(__name__)

OUTPUT_DIR = Path(__file__).parent / "output"


def run_migration(config: MigrationConfig):
    """Run the migration against the databases named in the environment."""
    source_config = SourceDatabaseConfig.from_env()
    target_config = TargetDatabaseConfig.from_env()

    logger.info("=" * 60)
    logger.info("STARTING MIGRATION")
    logger.info("=" * 60)
    logger.info(f"Source: {source_config.user}@{source_config.host}/{source_config.database}")
    logger.info(f"Batch Size: {config.batch_size}")
    logger.info(f"Backup: {config.create_backup}")

    with MySQLSourceReader(source_config) as source, TargetDatabase(target_config) as db:
        orchestrator = MigrationOrchestrator(
            config=config,
            source=source,
            repositories=build_repositories(db),
            backup_manager=BackupManager(db, backup_dir=OUTPUT_DIR / "backups"),
            validator=ValidationEngine(db=db, source=source),
            logs_dir=OUTPUT_DIR / "logs",
        )

        pre = orchestrator.validate_pre_migration()
        if not pre.is_valid:
            logger.warning("Source data has integrity errors; migrating anyway")

        report = orchestrator.run()

    logger.info(f"Status: {report.overall_status.value}")
    logger.info(f"Migrated: {report.summary.migrated_records}/{report.summary.total_records}")
    if report.summary.error_records:
        logger.warning(f"Errors: {report.summary.error_records} records failed")

    return report


def demo_with_sample_data():
    """
    Map sample legacy rows without touching a database.

    Shows how OpenSID codes become the new schema's enum values
    and which records the constraint checks would reject.
    """
    logger.info("Running demo with sample data...")

    samples = {
        "citizens": [
            {
                "id": 101,
                "nik": "3507012345678901",
                "nama": "Siti Aminah",
                "sex": 2,
                "tempatlahir": "Malang",
                "tanggallahir": "1988-04-12",
                "agama_id": 1,
                "pendidikan_kk_id": 5,
                "pekerjaan_id": 9,
                "status_kawin": 2,
                "warganegara_id": 1,
                "golongan_darah_id": 3,
                "kk_level": 3,
                "id_kk": 12,
                "status_dasar": 1,
            },
            {
                # Short NIK, zero date: padded and rejected on length
                "id": 102,
                "nik": "35070123",
                "nama": "Budi",
                "sex": 1,
                "tanggallahir": "0000-00-00",
                "status_dasar": 2,
            },
        ],
        "families": [
            {"id": 12, "no_kk": "3507010101010012", "kelas_sosial": 2, "tgl_daftar": "2015-06-01"},
        ],
        "roles": [{"id": 2, "nama": "Admin Desa"}, {"id": 7, "nama": "Kader Posyandu"}],
    }

    validator = RecordValidator()

    for table, rows in samples.items():
        spec = TABLE_SPECS[table]
        logger.info(f"\n=== {spec.source_table} -> {table} ===")
        for row in rows:
            record = spec.mapper(spec.source_type.from_row(row))
            errors = validator.validate(record)
            logger.info(json.dumps(record.to_dict(), indent=2))
            if errors:
                logger.warning(f"Rejected: {'; '.join(errors)}")

    logger.info("\nDemo complete!")


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="OpenSID MySQL to PostgreSQL Migration"
    )
    parser.add_argument(
        "--demo",
        action="store_true",
        help="Map sample rows without any database"
    )
    parser.add_argument(
        "--tables",
        nargs="+",
        help="Only migrate these target tables"
    )
    parser.add_argument(
        "--no-backup",
        action="store_true",
        help="Skip the pre-migration backup"
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Verbose output"
    )

    args = parser.parse_args()

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    if args.demo:
        demo_with_sample_data()
        return

    config = MigrationConfig(
        tables=tuple(args.tables) if args.tables else None,
        create_backup=not args.no_backup,
    )

    try:
        report = run_migration(config)
    except (MigrationError, ValueError) as e:
        logger.error(f"Migration aborted: {e}")
        sys.exit(1)

    sys.exit(0 if report.success else 1)


if __name__ == "__main__":
    main()
