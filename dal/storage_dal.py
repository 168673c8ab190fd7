"""Async Data Access Layer for the STORAGE key/value table.

The session keeps two fixed slots here (`history` and `image`). Writes are
best-effort from the caller's point of view, so every failure surfaces as a
`StorageError` the SessionStore can contain.
"""

from __future__ import annotations

import time
from typing import Optional

import aiosqlite

from models.errors import StorageError, StorageQuotaExceeded
from utils.database_init import AsyncDatabaseInitializer


class StorageDAL:
    """Data access layer for STORAGE slots.

    Args:
        db_initializer: Provider of an async `connection()` context manager.
        quota_bytes: Largest UTF-8 size accepted for a single value; None disables the check.
    """

    def __init__(self, db_initializer: AsyncDatabaseInitializer, quota_bytes: Optional[int] = None) -> None:
        self._db = db_initializer
        self.quota_bytes = quota_bytes

    async def get(self, key: str) -> Optional[str]:
        """Return the stored value for `key`, or None if the slot is empty."""
        try:
            async with self._db.connection() as conn:
                cur = await conn.execute("SELECT value FROM STORAGE WHERE key = ?", (key,))
                row = await cur.fetchone()
        except aiosqlite.Error as exc:
            raise StorageError(f"Failed to read storage slot {key!r}") from exc
        return row[0] if row else None

    async def set(self, key: str, value: str) -> None:
        """Write `value` into the slot, replacing any previous value.

        Raises:
            StorageQuotaExceeded: If `value` is larger than the quota.
            StorageError: If the database write fails.
        """
        size = len(value.encode("utf-8"))
        if self.quota_bytes is not None and size > self.quota_bytes:
            raise StorageQuotaExceeded(
                f"Value for {key!r} is {size} bytes, quota is {self.quota_bytes} bytes"
            )
        try:
            async with self._db.connection() as conn:
                await conn.execute(
                    "INSERT INTO STORAGE (key, value, updated_at) VALUES (?, ?, ?) "
                    "ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at",
                    (key, value, int(time.time())),
                )
                await conn.commit()
        except aiosqlite.Error as exc:
            raise StorageError(f"Failed to write storage slot {key!r}") from exc

    async def remove(self, key: str) -> bool:
        """Delete the slot. Returns True if a value was removed."""
        try:
            async with self._db.connection() as conn:
                cur = await conn.execute("DELETE FROM STORAGE WHERE key = ?", (key,))
                await conn.commit()
                return cur.rowcount > 0
        except aiosqlite.Error as exc:
            raise StorageError(f"Failed to remove storage slot {key!r}") from exc
