from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass
class ImageRecord:
    """In-memory representation of a row in the `images` table.

    Attributes:
        id: Primary key (None for records not yet inserted).
        url: Public URL of the stored blob.
        name: Original filename provided by the uploader.
        description: Generated caption or the unavailable sentinel.
        created_at: UTC insertion time, defaulted by the database.
    """

    id: Optional[int]
    url: str
    name: str
    description: Optional[str] = None
    created_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "url": self.url,
            "name": self.name,
            "description": self.description,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


@dataclass
class InsertResult:
    """Outcome of a repository insert.

    `ok` is False for soft failures where the statement ran but no row was
    written. `rejected` marks constraint violations that will never succeed
    on a second attempt.
    """

    ok: bool
    id: Optional[int] = None
    rejected: bool = False
    error: Optional[str] = None
