"""Data-integrity checks over the legacy source and the migrated target."""

import logging
from collections import Counter
from datetime import date
from typing import Any, Callable, Dict, List, Optional, Set

import psycopg2

from ..errors import MigrationError
from ..models.validation import (
    Severity,
    ValidationRule,
    RuleResult,
    ValidationReport,
)
from ..sources.base import SourceReader
from ..targets.database import TargetDatabase
from .field_mapper import normalize_nik, to_date
from .validator import ValidationRules

logger = logging.getLogger(__name__)

MAX_SAMPLES = 5
EARLIEST_BIRTH_DATE = date(1900, 1, 1)

# Source table names used by the pre-migration scan
CITIZEN_TABLE = "tweb_penduduk"
FAMILY_TABLE = "tweb_keluarga"

PRE_MIGRATION_RULES = [
    ValidationRule("duplicate_niks", "Citizens sharing the same NIK", Severity.ERROR, 0),
    ValidationRule("invalid_nik_format", "NIKs that are not 16 digits", Severity.WARNING, 10),
    ValidationRule("missing_family_heads", "Families without a head of family", Severity.WARNING, 5),
    ValidationRule("orphaned_citizens", "Citizens referencing a missing family", Severity.ERROR, 0),
    ValidationRule("invalid_birth_dates", "Birth dates in the future or before 1900", Severity.WARNING, 5),
]

POST_MIGRATION_RULES = [
    ValidationRule(
        "duplicate_niks",
        "Citizens sharing the same NIK",
        Severity.ERROR,
        0,
        "SELECT nik AS key, COUNT(*) AS occurrences FROM citizens "
        "GROUP BY nik HAVING COUNT(*) > 1",
    ),
    ValidationRule(
        "duplicate_family_numbers",
        "Families sharing the same family card number",
        Severity.ERROR,
        0,
        "SELECT family_number AS key, COUNT(*) AS occurrences FROM families "
        "GROUP BY family_number HAVING COUNT(*) > 1",
    ),
    ValidationRule(
        "duplicate_usernames",
        "Users sharing the same username",
        Severity.ERROR,
        0,
        "SELECT username AS key, COUNT(*) AS occurrences FROM users "
        "GROUP BY username HAVING COUNT(*) > 1",
    ),
    ValidationRule(
        "orphaned_citizens",
        "Citizens whose family no longer exists",
        Severity.ERROR,
        0,
        "SELECT c.nik AS key FROM citizens c LEFT JOIN families f ON c.family_id = f.id "
        "WHERE c.family_id IS NOT NULL AND f.id IS NULL",
    ),
    ValidationRule(
        "citizens_missing_creator",
        "Citizens whose creating user does not exist",
        Severity.ERROR,
        0,
        "SELECT c.nik AS key FROM citizens c LEFT JOIN users u ON c.created_by_id = u.id "
        "WHERE u.id IS NULL",
    ),
    ValidationRule(
        "users_missing_role",
        "Users whose role does not exist",
        Severity.ERROR,
        0,
        "SELECT u.username AS key FROM users u LEFT JOIN roles r ON u.role_id = r.id "
        "WHERE r.id IS NULL",
    ),
    ValidationRule(
        "families_without_head",
        "Families without a head of family",
        Severity.WARNING,
        0,
        "SELECT f.family_number AS key FROM families f WHERE NOT EXISTS "
        "(SELECT 1 FROM citizens c WHERE c.family_id = f.id AND c.is_head_of_family)",
    ),
]

SUMMARY_TABLES = ["roles", "users", "settings", "families", "citizens"]


def _evaluate(rule: ValidationRule, offenders: List[Any], count: Optional[int] = None) -> RuleResult:
    if count is None:
        count = len(offenders)
    passed = count <= rule.threshold
    if passed:
        message = f"{rule.description}: {count} (threshold {rule.threshold})"
    else:
        message = f"{rule.description}: {count} found (threshold {rule.threshold})"
    return RuleResult(
        rule=rule.name,
        description=rule.description,
        severity=rule.severity,
        passed=passed,
        count=count,
        threshold=rule.threshold,
        message=message,
        samples=offenders[:MAX_SAMPLES],
    )


def _broken(rule: ValidationRule, error: Exception) -> RuleResult:
    return RuleResult(
        rule=rule.name,
        description=rule.description,
        severity=rule.severity,
        passed=False,
        message=f"Rule {rule.name} could not be evaluated: {error}",
    )


class ValidationEngine:
    """
    Runs integrity rules and reports pass/warning/fail.

    Post-migration rules are read-only SQL against the target. The
    pre-migration scan pages through the legacy tables with a source
    reader. Neither run raises; a rule that cannot be evaluated is
    reported as failed.
    """

    def __init__(
        self,
        db: Optional[TargetDatabase] = None,
        source: Optional[SourceReader] = None,
        batch_size: int = 1000
    ):
        self.db = db
        self.source = source
        self.batch_size = batch_size

    def validate_post_migration(
        self,
        source_counts: Optional[Dict[str, int]] = None
    ) -> ValidationReport:
        """
        Check the migrated target for integrity problems.

        Args:
            source_counts: Legacy row counts per target table; when given,
                each table is also checked for missing rows

        Returns:
            ValidationReport for the target
        """
        report = ValidationReport(phase="post")
        if self.db is None:
            raise ValueError("Post-migration validation needs a target database")

        for rule in POST_MIGRATION_RULES:
            report.results.append(self._run_sql_rule(rule))

        report.summary = self._target_summary()

        for table, expected in (source_counts or {}).items():
            rule = ValidationRule(
                f"count_match_{table}",
                f"Rows missing from {table} compared to source",
                Severity.WARNING,
                0,
            )
            actual = report.summary.get(table)
            if actual is None:
                report.results.append(_broken(rule, MigrationError(f"could not count {table}")))
                continue
            missing = max(expected - actual, 0)
            report.results.append(
                _evaluate(rule, [{"source": expected, "target": actual}], count=missing)
            )

        self._log_report(report)
        return report

    def _run_sql_rule(self, rule: ValidationRule) -> RuleResult:
        try:
            rows = self.db.fetch_all(rule.query)
        except (psycopg2.Error, MigrationError) as e:
            logger.error(f"Validation rule {rule.name} failed to run: {e}")
            return _broken(rule, e)
        return _evaluate(rule, [row.get("key") for row in rows])

    def _target_summary(self) -> Dict[str, int]:
        summary = {}
        for table in SUMMARY_TABLES:
            try:
                summary[table] = self.db.count_rows(table)
            except (psycopg2.Error, MigrationError) as e:
                logger.warning(f"Could not count {table}: {e}")
        return summary

    def validate_pre_migration(self) -> ValidationReport:
        """Scan the legacy citizen and family tables before migrating."""
        report = ValidationReport(phase="pre")
        if self.source is None:
            raise ValueError("Pre-migration validation needs a source reader")

        try:
            families = self._collect(FAMILY_TABLE, lambda row: row.get("id"))
            citizens = self._collect(CITIZEN_TABLE, lambda row: row)
        except (MigrationError, ValueError) as e:
            logger.error(f"Pre-migration scan failed: {e}")
            for rule in PRE_MIGRATION_RULES:
                report.results.append(_broken(rule, e))
            return report

        family_ids: Set[Any] = {fid for fid in families if fid is not None}
        report.summary = {"families": len(families), "citizens": len(citizens)}

        checks: Dict[str, Callable[[], List[Any]]] = {
            "duplicate_niks": lambda: self._duplicate_niks(citizens),
            "invalid_nik_format": lambda: [
                c.get("nik") for c in citizens
                if ValidationRules.nik(normalize_nik(c.get("nik")))
            ],
            "missing_family_heads": lambda: self._families_without_head(family_ids, citizens),
            "orphaned_citizens": lambda: [
                c.get("id") for c in citizens
                if c.get("id_kk") not in (None, 0, "0", "") and c.get("id_kk") not in family_ids
            ],
            "invalid_birth_dates": lambda: [
                c.get("id") for c in citizens if self._bad_birth_date(c.get("tanggallahir"))
            ],
        }

        for rule in PRE_MIGRATION_RULES:
            report.results.append(_evaluate(rule, checks[rule.name]()))

        self._log_report(report)
        return report

    def _collect(self, table: str, extract: Callable[[Dict[str, Any]], Any]) -> List[Any]:
        items = []
        for batch in self.source.stream(table, batch_size=self.batch_size):
            items.extend(extract(row) for row in batch)
        return items

    def _duplicate_niks(self, citizens: List[Dict[str, Any]]) -> List[str]:
        counts = Counter(
            normalize_nik(c.get("nik")) for c in citizens if normalize_nik(c.get("nik"))
        )
        return [nik for nik, n in counts.items() if n > 1]

    def _families_without_head(self, family_ids: Set[Any], citizens: List[Dict[str, Any]]) -> List[Any]:
        headed = {
            c.get("id_kk") for c in citizens
            if str(c.get("kk_level") or "").strip() == "1"
        }
        return sorted((fid for fid in family_ids if fid not in headed), key=str)

    def _bad_birth_date(self, value: Any) -> bool:
        birth = to_date(value)
        if birth is None:
            return False
        return birth > date.today() or birth < EARLIEST_BIRTH_DATE

    def _log_report(self, report: ValidationReport) -> None:
        status = report.overall_status.value
        logger.info(f"{report.phase.capitalize()}-migration validation: {status}")
        for issue in report.issues:
            logger.warning(f"  {issue}")
