from datetime import date, timedelta

import psycopg2
import pytest

from opensid_migrate.models.validation import Severity, ValidationStatus
from opensid_migrate.services.integrity import ValidationEngine

from fakes import InMemorySourceReader, citizen_row, family_row


class FakeTargetDB:
    """Answers rule queries by matching a fragment of the SQL."""

    def __init__(self, responses=None, counts=None, broken=()):
        self.responses = responses or {}
        self.counts = counts or {}
        self.broken = broken
        self.queries = []

    def fetch_all(self, query, params=None):
        self.queries.append(query)
        for fragment in self.broken:
            if fragment in query:
                raise psycopg2.ProgrammingError(f'relation "{fragment}" does not exist')
        for fragment, rows in self.responses.items():
            if fragment in query:
                return rows
        return []

    def count_rows(self, table):
        return self.counts.get(table, 0)


def results_by_rule(report):
    return {r.rule: r for r in report.results}


def test_clean_target_passes():
    db = FakeTargetDB(counts={"citizens": 3, "families": 1})

    report = ValidationEngine(db=db).validate_post_migration()

    assert report.overall_status == ValidationStatus.PASS
    assert report.is_valid
    assert report.issues == []
    assert report.summary["citizens"] == 3
    assert all(q.lstrip().upper().startswith("SELECT") for q in db.queries)


def test_duplicate_niks_fail_validation():
    db = FakeTargetDB(responses={
        "FROM citizens GROUP BY nik": [{"key": "3507011234567890", "occurrences": 2}],
    })

    report = ValidationEngine(db=db).validate_post_migration()

    rule = results_by_rule(report)["duplicate_niks"]
    assert not rule.passed
    assert rule.count == 1
    assert rule.samples == ["3507011234567890"]
    assert report.overall_status == ValidationStatus.FAIL
    assert not report.is_valid
    assert any("same NIK" in issue for issue in report.issues)


def test_families_without_head_is_a_warning():
    db = FakeTargetDB(responses={"c.is_head_of_family": [{"key": "3507010000000001"}]})

    report = ValidationEngine(db=db).validate_post_migration()

    assert results_by_rule(report)["families_without_head"].severity == Severity.WARNING
    assert report.overall_status == ValidationStatus.WARNING
    assert report.is_valid


def test_broken_rule_is_reported_not_raised():
    db = FakeTargetDB(broken=["LEFT JOIN roles"])

    report = ValidationEngine(db=db).validate_post_migration()

    rule = results_by_rule(report)["users_missing_role"]
    assert not rule.passed
    assert "could not be evaluated" in rule.message
    assert len(report.results) == 7


def test_count_match_against_source():
    db = FakeTargetDB(counts={"citizens": 8, "families": 2})

    report = ValidationEngine(db=db).validate_post_migration({"citizens": 10, "families": 2})

    rules = results_by_rule(report)
    assert rules["count_match_citizens"].passed is False
    assert rules["count_match_citizens"].count == 2
    assert rules["count_match_families"].passed is True
    assert report.overall_status == ValidationStatus.WARNING


def test_post_validation_requires_database():
    with pytest.raises(ValueError):
        ValidationEngine().validate_post_migration()


def pre_source(citizens, families):
    return InMemorySourceReader({"tweb_penduduk": citizens, "tweb_keluarga": families})


def test_clean_source_passes():
    source = pre_source([citizen_row(1), citizen_row(2)], [family_row(1)])

    report = ValidationEngine(source=source, batch_size=1).validate_pre_migration()

    assert report.phase == "pre"
    assert report.overall_status == ValidationStatus.PASS
    assert report.summary == {"families": 1, "citizens": 2}


def test_source_duplicates_and_orphans_fail():
    citizens = [
        citizen_row(1),
        citizen_row(2, nik=citizen_row(1)["nik"]),
        citizen_row(3, id_kk=99),
    ]

    report = ValidationEngine(source=pre_source(citizens, [family_row(1)])).validate_pre_migration()

    rules = results_by_rule(report)
    assert rules["duplicate_niks"].count == 1
    assert rules["orphaned_citizens"].samples == [3]
    assert report.overall_status == ValidationStatus.FAIL


def test_source_warnings_respect_thresholds():
    future = (date.today() + timedelta(days=30)).isoformat()
    citizens = [citizen_row(1, tanggallahir=future)] + [
        citizen_row(i, nik=f"12AB{i}") for i in range(2, 14)
    ]
    families = [family_row(1)] + [family_row(i) for i in range(2, 9)]

    report = ValidationEngine(source=pre_source(citizens, families)).validate_pre_migration()

    rules = results_by_rule(report)
    assert rules["invalid_birth_dates"].count == 1
    assert rules["invalid_birth_dates"].passed
    assert rules["invalid_nik_format"].count == 12
    assert not rules["invalid_nik_format"].passed
    assert rules["missing_family_heads"].count == 7
    assert not rules["missing_family_heads"].passed
    assert report.overall_status == ValidationStatus.WARNING


def test_short_numeric_nik_is_not_flagged():
    # Padded to 16 digits on migration
    citizens = [citizen_row(1, nik="3507011234"), citizen_row(2, nik="35070112345000.0")]

    report = ValidationEngine(source=pre_source(citizens, [family_row(1)])).validate_pre_migration()

    assert results_by_rule(report)["invalid_nik_format"].count == 0


def test_source_scan_failure_reported():
    source = InMemorySourceReader({}, fail_fetch_at={"tweb_keluarga": 0})

    report = ValidationEngine(source=source).validate_pre_migration()

    assert report.overall_status == ValidationStatus.FAIL
    assert all(not r.passed for r in report.results)
