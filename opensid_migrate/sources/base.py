"""Base source reader interface."""

from abc import ABC, abstractmethod
from typing import Any, Dict, Iterator, List
import logging
import re

logger = logging.getLogger(__name__)

IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def check_identifier(name: str) -> str:
    """Reject table names that could not be a plain SQL identifier."""
    if not IDENTIFIER_RE.match(name or ""):
        raise ValueError(f"Invalid table name: {name!r}")
    return name


class SourceReader(ABC):
    """
    Base class for legacy data readers.

    Readers give ordered, paginated read access to legacy tables. Each
    fetch is independent; no transaction spans batches.
    """

    @abstractmethod
    def count(self, table: str) -> int:
        """Number of rows in a legacy table."""
        pass

    @abstractmethod
    def fetch(self, table: str, limit: int, offset: int) -> List[Dict[str, Any]]:
        """
        Fetch a page of rows ordered by primary key.

        Args:
            table: Legacy table name
            limit: Maximum rows to return
            offset: Rows to skip

        Returns:
            List of column -> value mappings
        """
        pass

    def test_connection(self) -> bool:
        return True

    def close(self) -> None:
        pass

    def stream(self, table: str, batch_size: int = 1000) -> Iterator[List[Dict[str, Any]]]:
        """
        Stream rows in batches.

        Args:
            table: Legacy table name
            batch_size: Size of each batch

        Yields:
            Batches of rows
        """
        offset = 0

        while True:
            batch = self.fetch(table, limit=batch_size, offset=offset)
            if not batch:
                break

            yield batch
            offset += len(batch)

            if len(batch) < batch_size:
                break
