"""Readers for the legacy OpenSID database."""

from .base import SourceReader
from .mysql_reader import MySQLSourceReader

__all__ = [
    "SourceReader",
    "MySQLSourceReader",
]
