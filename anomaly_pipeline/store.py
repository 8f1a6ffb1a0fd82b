from __future__ import annotations

import time
from typing import Dict, Optional

import aiosqlite

from .errors import StoreError
from .models import AlertSuppressionRecord


class SuppressionStore:
    """
    "Last alerted at" per device. Reads and writes are keyed by device id;
    writes are last-write-wins, no cross-key transaction is needed.
    """

    async def open(self) -> None:
        pass

    async def close(self) -> None:
        pass

    async def get(self, device_id: str) -> Optional[AlertSuppressionRecord]:
        raise NotImplementedError

    async def put(self, record: AlertSuppressionRecord) -> None:
        raise NotImplementedError


class MemorySuppressionStore(SuppressionStore):
    def __init__(self) -> None:
        self._rows: Dict[str, float] = {}

    async def get(self, device_id: str) -> Optional[AlertSuppressionRecord]:
        ts = self._rows.get(device_id)
        return None if ts is None else AlertSuppressionRecord(device_id, ts)

    async def put(self, record: AlertSuppressionRecord) -> None:
        self._rows[record.device_id] = float(record.last_alerted_at)


class SqliteSuppressionStore(SuppressionStore):
    def __init__(self, db_path: str):
        self.db_path = db_path
        self.db: Optional[aiosqlite.Connection] = None

    async def open(self) -> None:
        try:
            self.db = await aiosqlite.connect(self.db_path)
            await self.db.execute("PRAGMA journal_mode=WAL;")
            await self.db.execute("PRAGMA synchronous=NORMAL;")
            await self._init_schema()
        except aiosqlite.Error as e:
            raise StoreError(f"cannot open suppression store {self.db_path}: {e}") from e

    async def close(self) -> None:
        if self.db:
            await self.db.close()
            self.db = None

    async def _init_schema(self) -> None:
        assert self.db is not None
        await self.db.executescript(
            """
            CREATE TABLE IF NOT EXISTS alert_suppression (
              device_id TEXT PRIMARY KEY,
              last_alerted_ts REAL NOT NULL,
              updated_ts REAL NOT NULL
            );
            """
        )
        await self.db.commit()

    def _conn(self) -> aiosqlite.Connection:
        if self.db is None:
            raise StoreError("suppression store is not open")
        return self.db

    async def get(self, device_id: str) -> Optional[AlertSuppressionRecord]:
        db = self._conn()
        try:
            cur = await db.execute("SELECT last_alerted_ts FROM alert_suppression WHERE device_id=?", (device_id,))
            row = await cur.fetchone()
            await cur.close()
        except aiosqlite.Error as e:
            raise StoreError(f"read failed for device {device_id}: {e}") from e
        if not row:
            return None
        return AlertSuppressionRecord(device_id, float(row[0]))

    async def put(self, record: AlertSuppressionRecord) -> None:
        db = self._conn()
        try:
            await db.execute(
                "INSERT INTO alert_suppression(device_id, last_alerted_ts, updated_ts) VALUES(?,?,?) "
                "ON CONFLICT(device_id) DO UPDATE SET last_alerted_ts=excluded.last_alerted_ts, updated_ts=excluded.updated_ts",
                (record.device_id, float(record.last_alerted_at), time.time()),
            )
            await db.commit()
        except aiosqlite.Error as e:
            raise StoreError(f"write failed for device {record.device_id}: {e}") from e


def build_store(db_path: str) -> SuppressionStore:
    return SqliteSuppressionStore(db_path) if db_path else MemorySuppressionStore()
