"""Writers for the new PostgreSQL schema."""

from .base import TargetRepository
from .database import TargetDatabase
from .postgres import (
    PostgresRepository,
    RoleRepository,
    UserRepository,
    SettingRepository,
    FamilyRepository,
    CitizenRepository,
    build_repositories,
)

__all__ = [
    "TargetRepository",
    "TargetDatabase",
    "PostgresRepository",
    "RoleRepository",
    "UserRepository",
    "SettingRepository",
    "FamilyRepository",
    "CitizenRepository",
    "build_repositories",
]
