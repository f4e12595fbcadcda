"""Shared fixtures for the migration toolkit tests."""

import pytest

from opensid_migrate.config import MigrationConfig

from fakes import InMemorySourceReader, legacy_tables, memory_repositories


@pytest.fixture
def config():
    return MigrationConfig(batch_size=10, skip_existing=False, validate_data=False, create_backup=False)


@pytest.fixture
def source():
    return InMemorySourceReader(legacy_tables())


@pytest.fixture
def repositories():
    return memory_repositories()
