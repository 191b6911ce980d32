"""
Keygate Stores - SQLite record store via aiosqlite.

Features:
- WAL journal mode for concurrent reads
- Unique index on verifier, plain indexes on fingerprint, item_key, expires_at
- Conditional usage increment (a single guarded UPDATE)
- Instants stored as UTC epoch seconds (REAL)

SQLite has no TTL index, so expired rows are removed by ``delete_expired``,
driven periodically by ``ExpirySweeper``.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
from collections import Counter
from datetime import datetime, timezone
from typing import Any, Optional, Sequence

import aiosqlite

from ..credentials.core import CredentialRecord
from ..faults import DuplicateFault, StoreFault
from .base import StoreStats

logger = logging.getLogger("keygate.stores.sqlite")

__all__ = ["SQLiteRecordStore"]

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS api_keys (
        id TEXT PRIMARY KEY,
        fingerprint TEXT NOT NULL,
        verifier TEXT NOT NULL UNIQUE,
        item_key TEXT NOT NULL,
        permissions TEXT NOT NULL,
        published_at REAL NOT NULL,
        expires_at REAL NOT NULL,
        used_count INTEGER NOT NULL DEFAULT 0 CHECK (used_count >= 0),
        max_uses INTEGER NOT NULL CHECK (max_uses >= 1)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_api_keys_fingerprint ON api_keys (fingerprint)",
    "CREATE INDEX IF NOT EXISTS idx_api_keys_item_key ON api_keys (item_key)",
    "CREATE INDEX IF NOT EXISTS idx_api_keys_expires_at ON api_keys (expires_at)",
)

_COLUMNS = (
    "id, fingerprint, verifier, item_key, permissions, "
    "published_at, expires_at, used_count, max_uses"
)


def _to_epoch(value: datetime) -> float:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.timestamp()


def _from_epoch(value: float) -> datetime:
    return datetime.fromtimestamp(value, tz=timezone.utc)


class SQLiteRecordStore:
    """
    Durable record store on a single SQLite database file.

    Writes go through one connection and are serialized by an asyncio.Lock,
    which makes the guarded UPDATE followed by its SELECT atomic from the
    point of view of every other coroutine in the process.
    """

    def __init__(self, url: str = "sqlite:///keygate.db"):
        self.url = url
        self._path = self._parse_url(url)
        self._connection: Optional[aiosqlite.Connection] = None
        self._lock = asyncio.Lock()

    async def initialize(self) -> None:
        if self._connection is not None:
            return
        async with self._lock:
            if self._connection is not None:
                return
            connection = await aiosqlite.connect(self._path)
            if self._path != ":memory:":
                await connection.execute("PRAGMA journal_mode=WAL")
            connection.row_factory = aiosqlite.Row
            for statement in _SCHEMA:
                await connection.execute(statement)
            await connection.commit()
            self._connection = connection
            logger.info(f"SQLite record store connected: {self._path}")

    async def shutdown(self) -> None:
        async with self._lock:
            if self._connection is not None:
                await self._connection.close()
                self._connection = None
                logger.info("SQLite record store disconnected")

    async def health_check(self) -> bool:
        if self._connection is None:
            return False
        try:
            await self._fetch_one("SELECT 1 AS ok")
            return True
        except (sqlite3.Error, ValueError) as e:
            logger.warning(f"SQLite health check failed: {e}")
            return False

    # ── Writes ──────────────────────────────────────────────────────

    async def create(self, record: CredentialRecord) -> CredentialRecord:
        conn = self._require()
        async with self._lock:
            try:
                await conn.execute(
                    f"INSERT INTO api_keys ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    (
                        record.id,
                        record.fingerprint,
                        record.verifier,
                        record.item_key,
                        json.dumps(list(record.permissions)),
                        _to_epoch(record.published_at),
                        _to_epoch(record.expires_at),
                        record.used_count,
                        record.max_uses,
                    ),
                )
                await conn.commit()
            except sqlite3.IntegrityError as e:
                await conn.rollback()
                if "UNIQUE" in str(e) or "PRIMARY KEY" in str(e):
                    raise DuplicateFault() from e
                raise StoreFault("create", str(e)) from e
        logger.debug(f"Stored record {record.id}")
        return record

    async def increment_usage(self, verifier: str, now: datetime) -> CredentialRecord | None:
        conn = self._require()
        async with self._lock:
            cursor = await conn.execute(
                "UPDATE api_keys SET used_count = used_count + 1 "
                "WHERE verifier = ? AND expires_at > ? AND used_count < max_uses",
                (verifier, _to_epoch(now)),
            )
            changed = cursor.rowcount
            await conn.commit()
            if changed != 1:
                return None
            row = await self._fetch_one(
                f"SELECT {_COLUMNS} FROM api_keys WHERE verifier = ?", (verifier,)
            )
        return self._row_to_record(row) if row else None

    async def revoke(self, ref: str, now: datetime) -> CredentialRecord | None:
        conn = self._require()
        async with self._lock:
            cursor = await conn.execute(
                "UPDATE api_keys SET expires_at = ? WHERE verifier = ? OR id = ?",
                (_to_epoch(now), ref, ref),
            )
            changed = cursor.rowcount
            await conn.commit()
            if changed == 0:
                return None
        return await self.find_by_ref(ref)

    async def delete_expired(self, now: datetime) -> int:
        conn = self._require()
        async with self._lock:
            cursor = await conn.execute(
                "DELETE FROM api_keys WHERE expires_at <= ?", (_to_epoch(now),)
            )
            deleted = cursor.rowcount
            await conn.commit()
        if deleted:
            logger.debug(f"Removed {deleted} expired records")
        return deleted

    # ── Reads ───────────────────────────────────────────────────────

    async def exists(self, verifier: str) -> bool:
        row = await self._fetch_one(
            "SELECT 1 AS found FROM api_keys WHERE verifier = ?", (verifier,)
        )
        return row is not None

    async def find_by_fingerprint(self, fingerprint: str) -> list[CredentialRecord]:
        rows = await self._fetch_all(
            f"SELECT {_COLUMNS} FROM api_keys WHERE fingerprint = ? "
            "ORDER BY published_at, rowid",
            (fingerprint,),
        )
        return [self._row_to_record(row) for row in rows]

    async def find_by_verifier(self, verifier: str) -> CredentialRecord | None:
        row = await self._fetch_one(
            f"SELECT {_COLUMNS} FROM api_keys WHERE verifier = ?", (verifier,)
        )
        return self._row_to_record(row) if row else None

    async def find_by_ref(self, ref: str) -> CredentialRecord | None:
        row = await self._fetch_one(
            f"SELECT {_COLUMNS} FROM api_keys WHERE verifier = ? OR id = ? LIMIT 1",
            (ref, ref),
        )
        return self._row_to_record(row) if row else None

    async def find_by_item_key(self, item_key: str) -> list[CredentialRecord]:
        rows = await self._fetch_all(
            f"SELECT {_COLUMNS} FROM api_keys WHERE item_key = ? "
            "ORDER BY published_at DESC, id",
            (item_key,),
        )
        return [self._row_to_record(row) for row in rows]

    async def stats(self, now: datetime, top: int = 10) -> StoreStats:
        epoch = _to_epoch(now)
        row = await self._fetch_one(
            "SELECT "
            "COUNT(*) AS total, "
            "COALESCE(SUM(CASE WHEN expires_at <= ? THEN 1 ELSE 0 END), 0) AS expired, "
            "COALESCE(SUM(CASE WHEN used_count >= max_uses THEN 1 ELSE 0 END), 0) AS exhausted, "
            "COALESCE(SUM(CASE WHEN expires_at > ? AND used_count < max_uses "
            "THEN 1 ELSE 0 END), 0) AS active "
            "FROM api_keys",
            (epoch, epoch),
        )
        top_rows = await self._fetch_all(
            "SELECT item_key, COUNT(*) AS key_count FROM api_keys "
            "GROUP BY item_key ORDER BY key_count DESC, item_key LIMIT ?",
            (top,),
        )
        return StoreStats(
            total_keys=row["total"],
            active_keys=row["active"],
            expired_keys=row["expired"],
            exhausted_keys=row["exhausted"],
            top_items=[
                {"item_key": r["item_key"], "key_count": r["key_count"]}
                for r in top_rows
            ],
        )

    # ── Internals ───────────────────────────────────────────────────

    def _require(self) -> aiosqlite.Connection:
        if self._connection is None:
            raise StoreFault("connect", "store not initialized")
        return self._connection

    async def _fetch_one(
        self, sql: str, params: Sequence[Any] = ()
    ) -> Optional[dict[str, Any]]:
        cursor = await self._require().execute(sql, params)
        row = await cursor.fetchone()
        return dict(row) if row is not None else None

    async def _fetch_all(self, sql: str, params: Sequence[Any] = ()) -> list[dict[str, Any]]:
        cursor = await self._require().execute(sql, params)
        rows = await cursor.fetchall()
        return [dict(row) for row in rows]

    @staticmethod
    def _row_to_record(row: dict[str, Any]) -> CredentialRecord:
        try:
            permissions = json.loads(row["permissions"])
        except (TypeError, ValueError) as e:
            raise StoreFault("decode", f"corrupt permissions for {row['id']}") from e
        return CredentialRecord(
            id=row["id"],
            fingerprint=row["fingerprint"],
            verifier=row["verifier"],
            item_key=row["item_key"],
            permissions=permissions,
            published_at=_from_epoch(row["published_at"]),
            expires_at=_from_epoch(row["expires_at"]),
            used_count=row["used_count"],
            max_uses=row["max_uses"],
        )

    @staticmethod
    def _parse_url(url: str) -> str:
        """Extract file path from sqlite URL."""
        for prefix in ("sqlite:///", "sqlite://"):
            if url.startswith(prefix):
                path = url[len(prefix):]
                return path or ":memory:"
        return url.replace("sqlite:", "").lstrip("/") or ":memory:"
