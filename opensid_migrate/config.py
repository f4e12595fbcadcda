"""Configuration models for migration runs and database connections."""

import os
from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator


class SourceDatabaseConfig(BaseModel):
    """Connection settings for the legacy OpenSID MySQL database."""
    host: str = "localhost"
    port: int = Field(3306, gt=0, lt=65536)
    user: str = "root"
    password: str = ""
    database: str = "opensid"
    connect_timeout: int = Field(10, gt=0)

    @classmethod
    def from_env(cls, **overrides) -> "SourceDatabaseConfig":
        """Build from MYSQL_* environment variables; explicit overrides win."""
        values = {
            "host": os.environ.get("MYSQL_HOST", "localhost"),
            "port": int(os.environ.get("MYSQL_PORT", "3306")),
            "user": os.environ.get("MYSQL_USER", "root"),
            "password": os.environ.get("MYSQL_PASSWORD", ""),
            "database": os.environ.get("MYSQL_DATABASE", "opensid"),
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)


class TargetDatabaseConfig(BaseModel):
    """Connection settings for the new PostgreSQL database."""
    database_url: str
    connect_timeout: int = Field(10, gt=0)

    @field_validator("database_url")
    @classmethod
    def _check_scheme(cls, value: str) -> str:
        if not value.startswith(("postgres://", "postgresql://")):
            raise ValueError("database_url must be a postgresql:// URL")
        return value

    @classmethod
    def from_env(cls, database_url: Optional[str] = None) -> "TargetDatabaseConfig":
        url = database_url or os.environ.get("DATABASE_URL")
        if not url:
            raise ValueError("DATABASE_URL is not set")
        return cls(database_url=url)


class MigrationConfig(BaseModel):
    """Options for a single migration run. Immutable once the run starts."""
    model_config = ConfigDict(frozen=True)

    batch_size: int = Field(1000, gt=0)
    skip_existing: bool = True
    validate_data: bool = True
    create_backup: bool = True
    tables: Optional[Tuple[str, ...]] = None
