"""SQLite-backed persistence layer for scan cycles and completed positions."""
from __future__ import annotations

import asyncio
import sqlite3
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Optional

from analysis.models import Position
from constants import DEFAULT_DB_PATH
from storage.models import PositionRecord, ScanCycleRecord

ISO_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


def _serialize_list(values: Iterable[str]) -> str:
    return ",".join(sorted(set(values)))


def _format_timestamp(epoch_seconds: float) -> str:
    return datetime.fromtimestamp(epoch_seconds, tz=timezone.utc).strftime(ISO_FORMAT)


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.strptime(value, ISO_FORMAT)


class SQLiteRepository:
    """Provides async-friendly helpers for persisting engine activity."""

    def __init__(self, db_path: Path | str = Path(DEFAULT_DB_PATH)) -> None:
        self.db_path = Path(db_path)
        if self.db_path != Path(":memory:"):
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._connection = sqlite3.connect(
            str(self.db_path),
            detect_types=sqlite3.PARSE_DECLTYPES,
            check_same_thread=False,
        )
        self._connection.row_factory = sqlite3.Row
        self._configure()
        self._create_schema()

    def _configure(self) -> None:
        with self._lock:
            cursor = self._connection.cursor()
            try:
                cursor.execute("PRAGMA journal_mode=WAL;")
            except sqlite3.DatabaseError:
                pass
            cursor.execute("PRAGMA foreign_keys=ON;")
            cursor.close()

    def _create_schema(self) -> None:
        statements = [
            """
            CREATE TABLE IF NOT EXISTS scan_cycle (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                started_at TEXT NOT NULL,
                finished_at TEXT,
                strategy TEXT NOT NULL,
                tokens TEXT NOT NULL,
                opportunities_found INTEGER NOT NULL DEFAULT 0
            );
            """,
            """
            CREATE TABLE IF NOT EXISTS position_record (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                position_id TEXT NOT NULL UNIQUE,
                opportunity_id TEXT NOT NULL,
                strategy TEXT NOT NULL,
                token TEXT NOT NULL,
                output_token TEXT,
                amount REAL NOT NULL,
                entry_price REAL NOT NULL,
                exit_price REAL,
                profit REAL NOT NULL,
                gas_used REAL NOT NULL,
                net_profit REAL NOT NULL,
                status TEXT NOT NULL,
                exit_reason TEXT,
                synthetic INTEGER NOT NULL DEFAULT 0,
                created_at TEXT NOT NULL,
                completed_at TEXT NOT NULL
            );
            """,
            """
            CREATE INDEX IF NOT EXISTS idx_position_record_completed
                ON position_record(completed_at);
            """,
            """
            CREATE INDEX IF NOT EXISTS idx_position_record_status
                ON position_record(status, completed_at);
            """,
        ]

        with self._lock:
            cursor = self._connection.cursor()
            for statement in statements:
                cursor.execute(statement)
            self._connection.commit()
            cursor.close()

    async def record_scan_cycle_start(self, strategy: str, tokens: Iterable[str]) -> int:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None,
            self._record_scan_cycle_start_sync,
            strategy,
            list(tokens),
        )

    def _record_scan_cycle_start_sync(self, strategy: str, tokens: list[str]) -> int:
        started_at = datetime.now(timezone.utc).strftime(ISO_FORMAT)
        with self._lock:
            cursor = self._connection.cursor()
            cursor.execute(
                """
                INSERT INTO scan_cycle (started_at, strategy, tokens)
                VALUES (?, ?, ?)
                """,
                (started_at, strategy, _serialize_list(tokens)),
            )
            self._connection.commit()
            cycle_id = cursor.lastrowid
            cursor.close()
        return cycle_id

    async def record_scan_cycle_finish(self, scan_cycle_id: int, opportunities_found: int) -> None:
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(
            None,
            self._record_scan_cycle_finish_sync,
            scan_cycle_id,
            opportunities_found,
        )

    def _record_scan_cycle_finish_sync(self, scan_cycle_id: int, opportunities_found: int) -> None:
        finished_at = datetime.now(timezone.utc).strftime(ISO_FORMAT)
        with self._lock:
            cursor = self._connection.cursor()
            cursor.execute(
                """
                UPDATE scan_cycle
                SET finished_at = ?, opportunities_found = ?
                WHERE id = ?
                """,
                (finished_at, opportunities_found, scan_cycle_id),
            )
            self._connection.commit()
            cursor.close()

    async def fetch_scan_cycle(self, scan_cycle_id: int) -> Optional[ScanCycleRecord]:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._fetch_scan_cycle_sync, scan_cycle_id)

    def _fetch_scan_cycle_sync(self, scan_cycle_id: int) -> Optional[ScanCycleRecord]:
        with self._lock:
            cursor = self._connection.cursor()
            cursor.execute("SELECT * FROM scan_cycle WHERE id = ?", (scan_cycle_id,))
            row = cursor.fetchone()
            cursor.close()
        if row is None:
            return None
        return ScanCycleRecord(
            id=row["id"],
            started_at=_parse_timestamp(row["started_at"]),
            finished_at=_parse_timestamp(row["finished_at"]),
            strategy=row["strategy"],
            tokens=row["tokens"].split(",") if row["tokens"] else [],
            opportunities_found=row["opportunities_found"],
        )

    async def record_position(
        self,
        position: Position,
        *,
        strategy: str,
        output_token: Optional[str] = None,
        completed_at: Optional[datetime] = None,
    ) -> int:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None,
            self._record_position_sync,
            position,
            strategy,
            output_token,
            completed_at or datetime.now(timezone.utc),
        )

    def _record_position_sync(
        self,
        position: Position,
        strategy: str,
        output_token: Optional[str],
        completed_at: datetime,
    ) -> int:
        if not position.status.is_terminal:
            raise ValueError(f"Position {position.id} is still {position.status.value}")
        with self._lock:
            cursor = self._connection.cursor()
            cursor.execute(
                """
                INSERT INTO position_record (
                    position_id,
                    opportunity_id,
                    strategy,
                    token,
                    output_token,
                    amount,
                    entry_price,
                    exit_price,
                    profit,
                    gas_used,
                    net_profit,
                    status,
                    exit_reason,
                    synthetic,
                    created_at,
                    completed_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    position.id,
                    position.opportunity_id,
                    strategy,
                    position.token,
                    output_token,
                    position.amount,
                    position.entry_price,
                    position.exit_price,
                    position.profit,
                    position.gas_used,
                    position.net_profit,
                    position.status.value,
                    position.exit_reason,
                    1 if position.synthetic else 0,
                    _format_timestamp(position.timestamp_created),
                    completed_at.strftime(ISO_FORMAT),
                ),
            )
            self._connection.commit()
            record_id = cursor.lastrowid
            cursor.close()
        return record_id

    async def fetch_recent_positions(self, limit: int = 50, status: Optional[str] = None) -> list[PositionRecord]:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._fetch_recent_positions_sync, limit, status)

    def _fetch_recent_positions_sync(self, limit: int, status: Optional[str]) -> list[PositionRecord]:
        with self._lock:
            cursor = self._connection.cursor()
            cursor.execute(
                """
                SELECT * FROM position_record
                WHERE (? IS NULL OR status = ?)
                ORDER BY completed_at DESC, id DESC
                LIMIT ?
                """,
                (status, status, limit),
            )
            rows = cursor.fetchall()
            cursor.close()
        records: list[PositionRecord] = []
        for row in rows:
            records.append(
                PositionRecord(
                    id=row["id"],
                    position_id=row["position_id"],
                    opportunity_id=row["opportunity_id"],
                    strategy=row["strategy"],
                    token=row["token"],
                    output_token=row["output_token"],
                    amount=row["amount"],
                    entry_price=row["entry_price"],
                    exit_price=row["exit_price"],
                    profit=row["profit"],
                    gas_used=row["gas_used"],
                    net_profit=row["net_profit"],
                    status=row["status"],
                    exit_reason=row["exit_reason"],
                    synthetic=bool(row["synthetic"]),
                    created_at=_parse_timestamp(row["created_at"]),
                    completed_at=_parse_timestamp(row["completed_at"]),
                )
            )
        return records

    async def close(self) -> None:
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._close_sync)

    def _close_sync(self) -> None:
        with self._lock:
            self._connection.commit()
            self._connection.close()


__all__ = ["SQLiteRepository", "ScanCycleRecord", "PositionRecord"]
