"""Backup metadata models."""

import json
import os
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

METADATA_SUFFIX = ".metadata.json"


@dataclass
class BackupInfo:
    """Metadata for a database dump, stored next to it as JSON."""
    id: str
    filename: str
    filepath: str
    size_bytes: int
    created_at: datetime
    tables: List[str] = field(default_factory=list)
    record_counts: Dict[str, int] = field(default_factory=dict)
    checksum: str = ""
    description: Optional[str] = None
    base_backup_id: Optional[str] = None

    @property
    def metadata_path(self) -> Path:
        return Path(self.filepath + METADATA_SUFFIX)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "filename": self.filename,
            "filepath": self.filepath,
            "size_bytes": self.size_bytes,
            "created_at": self.created_at.isoformat(),
            "tables": self.tables,
            "record_counts": self.record_counts,
            "checksum": self.checksum,
            "description": self.description,
            "base_backup_id": self.base_backup_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BackupInfo":
        data = dict(data)
        data["created_at"] = datetime.fromisoformat(data["created_at"])
        return cls(**data)

    def save(self) -> None:
        """Write metadata atomically so a crash never leaves half a file."""
        path = self.metadata_path
        tmp_path = path.with_name(path.name + ".tmp")
        with open(tmp_path, "w") as f:
            json.dump(self.to_dict(), f, indent=2)
        os.replace(tmp_path, path)

    @classmethod
    def load(cls, filepath: Path) -> Optional["BackupInfo"]:
        """Load metadata from JSON file."""
        if not filepath.exists():
            return None
        with open(filepath, "r") as f:
            return cls.from_dict(json.load(f))


@dataclass
class RestoreResult:
    """Outcome of a restore; count mismatches are reported, not raised."""
    backup_id: str
    restored_at: datetime = field(default_factory=datetime.utcnow)
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "backup_id": self.backup_id,
            "restored_at": self.restored_at.isoformat(),
            "warnings": self.warnings,
        }
