"""Async Data Access Layer for the `images` table.

Provides ImageDAL class with the insert/list operations the ingestion
pipeline needs, compatible with `utils.database_init.AsyncDatabaseInitializer`.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional, Sequence

import aiosqlite

from models.image_record import ImageRecord, InsertResult
from utils.database_init import AsyncDatabaseInitializer


def format_timestamp(value: datetime) -> str:
    """Render a datetime the way SQLite's `strftime('%Y-%m-%d %H:%M:%f')` does (UTC)."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.isoformat(sep=" ", timespec="milliseconds")


def parse_timestamp(value: object) -> Optional[datetime]:
    """Parse a stored `created_at` column into a UTC-aware datetime."""
    if value is None:
        return None
    parsed = datetime.fromisoformat(str(value))
    return parsed.replace(tzinfo=timezone.utc) if parsed.tzinfo is None else parsed


class ImageDAL:
    """Data access layer for image metadata records.

    The constructor accepts an `AsyncDatabaseInitializer` (or any object
    exposing an async `connection()` context manager that yields an
    `aiosqlite.Connection`).
    """

    _COLUMNS = ("id", "url", "name", "description", "created_at")
    _COLUMN_LIST = ", ".join(_COLUMNS)

    def __init__(self, db_initializer: AsyncDatabaseInitializer) -> None:
        self._db = db_initializer

    async def insert_image(
        self,
        url: str,
        name: str,
        description: Optional[str],
        created_at: Optional[datetime] = None,
    ) -> InsertResult:
        """Insert a new image row.

        Args:
            url: Public URL of the stored blob.
            name: Original filename.
            description: Caption text (or sentinel) to store.
            created_at: Optional explicit insertion time; the column default
                is used when omitted.

        Returns:
            InsertResult with `ok=True` and the new id when a row was written.
            Constraint violations come back as `ok=False, rejected=True`.
            Any other database error propagates.
        """
        if created_at is None:
            sql = "INSERT INTO images (url, name, description) VALUES (?, ?, ?)"
            params: tuple = (url, name, description)
        else:
            sql = "INSERT INTO images (url, name, description, created_at) VALUES (?, ?, ?, ?)"
            params = (url, name, description, format_timestamp(created_at))

        async with self._db.connection() as conn:
            try:
                cur = await conn.execute(sql, params)
                await conn.commit()
            except aiosqlite.IntegrityError as exc:
                await conn.rollback()
                return InsertResult(ok=False, rejected=True, error=str(exc))

            if cur.rowcount != 1 or cur.lastrowid is None:
                return InsertResult(ok=False, error="No row was inserted.")
            return InsertResult(ok=True, id=cur.lastrowid)

    async def list_images(self) -> List[ImageRecord]:
        """List every image row, newest first."""
        async with self._db.connection() as conn:
            cur = await conn.execute(
                f"SELECT {self._COLUMN_LIST} FROM images ORDER BY created_at DESC, id DESC"
            )
            rows = await cur.fetchall()
            return [self._row_to_record(r) for r in rows]

    @staticmethod
    def _row_to_record(row: Sequence[object]) -> ImageRecord:
        """Convert a DB row tuple into an ImageRecord."""
        return ImageRecord(
            id=row[0],
            url=row[1],
            name=row[2],
            description=row[3],
            created_at=parse_timestamp(row[4]),
        )
