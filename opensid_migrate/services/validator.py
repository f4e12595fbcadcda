"""Constraint checks for mapped records before they reach the target."""

import re
import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..models.record import MappedRecord

logger = logging.getLogger(__name__)

Rule = Callable[[Any], Optional[str]]


class ValidationRules:
    """Common validation rules that can be composed."""

    @staticmethod
    def required(value: Any) -> Optional[str]:
        if value is None or (isinstance(value, str) and not value.strip()):
            return "Required field is missing"
        return None

    @staticmethod
    def nik(value: Any) -> Optional[str]:
        """Validate a 16-digit Indonesian national ID number."""
        if value is None:
            return None
        if not re.fullmatch(r"\d{16}", str(value)):
            return f"Invalid NIK format: {value!r} (expected 16 digits)"
        return None

    @staticmethod
    def email(value: Any) -> Optional[str]:
        """Validate email format."""
        if value is None:
            return None

        email_pattern = r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$"
        if not re.match(email_pattern, str(value)):
            return f"Invalid email format: {value!r}"
        return None

    @staticmethod
    def max_length(limit: int) -> Rule:
        def check(value: Any) -> Optional[str]:
            if isinstance(value, str) and len(value) > limit:
                return f"Value exceeds max length of {limit}"
            return None
        return check


R = ValidationRules

# entity -> [(field, rules)]
ENTITY_RULES: Dict[str, List[Tuple[str, List[Rule]]]] = {
    "roles": [
        ("slug", [R.required, R.max_length(50)]),
        ("name", [R.required, R.max_length(100)]),
    ],
    "users": [
        ("username", [R.required, R.max_length(100)]),
        ("email", [R.required, R.email]),
        ("name", [R.required]),
    ],
    "settings": [
        ("key", [R.required, R.max_length(100)]),
    ],
    "families": [
        ("family_number", [R.required, R.max_length(16)]),
    ],
    "citizens": [
        ("nik", [R.required, R.nik]),
        ("name", [R.required, R.max_length(100)]),
        ("birth_date", [R.required]),
        ("email", [R.email]),
    ],
}


class RecordValidator:
    """
    Validator for mapped records before loading.

    Supports:
    - Required field validation
    - Format validation (NIK, email)
    - Max length validation
    - Custom validation rules per entity
    """

    def __init__(self):
        """Initialize the validator."""
        self._custom_validators: Dict[str, List[Tuple[str, Rule]]] = {}

    def register_validator(self, entity: str, field_name: str, func: Rule) -> None:
        """Register a custom validation function for an entity field."""
        self._custom_validators.setdefault(entity, []).append((field_name, func))

    def validate(self, record: MappedRecord) -> List[str]:
        """
        Validate a mapped record against the target constraints.

        Args:
            record: The mapped record to validate

        Returns:
            List of "field: message" strings, empty when the record is valid
        """
        errors = []

        for field_name, rules in ENTITY_RULES.get(record.entity, []):
            value = getattr(record, field_name, None)
            for rule in rules:
                message = rule(value)
                if message:
                    errors.append(f"{field_name}: {message}")
                    break  # No point checking further

        for field_name, func in self._custom_validators.get(record.entity, []):
            message = func(getattr(record, field_name, None))
            if message:
                errors.append(f"{field_name}: {message}")

        return errors

    def is_valid(self, record: MappedRecord) -> bool:
        """Quick check if a record is valid."""
        return not self.validate(record)
