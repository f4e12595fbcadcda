"""Service layer for the migration toolkit."""

from .integrity import ValidationEngine
from .validator import RecordValidator, ValidationRules

__all__ = [
    "ValidationEngine",
    "RecordValidator",
    "ValidationRules",
]
