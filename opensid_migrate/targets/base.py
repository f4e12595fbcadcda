"""Base target repository interface."""

from abc import ABC, abstractmethod
from typing import Any

from ..models.record import MappedRecord, UpsertResult


class TargetRepository(ABC):
    """
    Upsert access to one table of the new schema, keyed by natural key.

    Implementations resolve foreign keys themselves and report constraint
    problems as failed results. Only connectivity loss is raised.
    """

    entity: str = ""

    @abstractmethod
    def exists(self, natural_key: Any) -> bool:
        pass

    @abstractmethod
    def upsert(self, natural_key: Any, record: MappedRecord) -> UpsertResult:
        """
        Insert or update the row identified by ``natural_key``.

        Args:
            natural_key: Value of the entity's unique business key
            record: Mapped record to store

        Returns:
            UpsertResult with created/updated/failed outcome
        """
        pass

    @abstractmethod
    def count(self) -> int:
        pass
