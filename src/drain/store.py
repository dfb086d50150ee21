"""
SQLite persistence for the drain ledger.

Every mutating operation runs inside one ``BEGIN IMMEDIATE`` transaction, so
its reads and writes commit together or not at all, and concurrent writers
(threads or processes) are serialized.
"""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from .models import RequestStatus, StateFields, WithdrawalRequest
from .storage import ensure_private_dir


DEFAULT_STATE_PATH = Path.home() / ".drain" / "state.sqlite3"


class LedgerStore:
    """Tables: drain_state, allowed_wallets, asset_budgets, wallets, withdrawal_requests.

    u64 amounts exceed SQLite's signed INTEGER range and are stored as
    decimal text.
    """

    def __init__(self, db_path: Optional[Path] = None):
        self.db_path = db_path or DEFAULT_STATE_PATH
        ensure_private_dir(self.db_path.parent)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, timeout=30.0, isolation_level=None)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        conn = self._connect()
        try:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA synchronous=FULL")
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS drain_state (
                    id INTEGER PRIMARY KEY CHECK (id = 1),
                    admin_address TEXT NOT NULL,
                    resource_address TEXT NOT NULL,
                    paused INTEGER NOT NULL DEFAULT 0,
                    initialized_at INTEGER NOT NULL
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS allowed_wallets (
                    wallet TEXT PRIMARY KEY,
                    verified_owner TEXT NOT NULL,
                    allowed_at INTEGER NOT NULL
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS asset_budgets (
                    wallet TEXT NOT NULL,
                    asset TEXT NOT NULL,
                    remaining TEXT NOT NULL,
                    PRIMARY KEY (wallet, asset)
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS wallets (
                    wallet TEXT PRIMARY KEY,
                    request_count INTEGER NOT NULL DEFAULT 0
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS withdrawal_requests (
                    wallet TEXT NOT NULL,
                    request_id INTEGER NOT NULL,
                    receiver TEXT NOT NULL,
                    asset TEXT NOT NULL,
                    amount TEXT NOT NULL,
                    status TEXT NOT NULL,
                    payload BLOB NOT NULL,
                    created_at INTEGER NOT NULL,
                    executed_at INTEGER NOT NULL DEFAULT 0,
                    PRIMARY KEY (wallet, request_id)
                )
                """
            )
        finally:
            conn.close()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Exclusive write transaction; rolls back on any exception."""
        conn = self._connect()
        try:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")
        finally:
            conn.close()

    @contextmanager
    def reader(self) -> Iterator[sqlite3.Connection]:
        conn = self._connect()
        try:
            yield conn
        finally:
            conn.close()

    # ── drain_state ────────────────────────────────────────────────

    def load_state(self, conn: sqlite3.Connection) -> Optional[StateFields]:
        row = conn.execute("SELECT * FROM drain_state WHERE id = 1").fetchone()
        if row is None:
            return None
        return StateFields(
            admin_address=row["admin_address"],
            resource_address=row["resource_address"],
            paused=bool(row["paused"]),
            initialized_at=row["initialized_at"],
        )

    def insert_state(
        self,
        conn: sqlite3.Connection,
        admin_address: str,
        resource_address: str,
        now: int,
    ) -> None:
        conn.execute(
            """
            INSERT INTO drain_state (id, admin_address, resource_address, paused, initialized_at)
            VALUES (1, ?, ?, 0, ?)
            """,
            (admin_address, resource_address, now),
        )

    # ── allowed_wallets ────────────────────────────────────────────

    def is_allowed(self, conn: sqlite3.Connection, wallet: str) -> bool:
        row = conn.execute(
            "SELECT 1 FROM allowed_wallets WHERE wallet = ?", (wallet,)
        ).fetchone()
        return row is not None

    def add_allowed(self, conn: sqlite3.Connection, wallet: str, owner: str, now: int) -> None:
        conn.execute(
            "INSERT INTO allowed_wallets (wallet, verified_owner, allowed_at) VALUES (?, ?, ?)",
            (wallet, owner, now),
        )

    def remove_allowed(self, conn: sqlite3.Connection, wallet: str) -> bool:
        cur = conn.execute("DELETE FROM allowed_wallets WHERE wallet = ?", (wallet,))
        return cur.rowcount > 0

    def list_allowed(self, conn: sqlite3.Connection) -> list[str]:
        rows = conn.execute("SELECT wallet FROM allowed_wallets ORDER BY allowed_at, wallet").fetchall()
        return [r["wallet"] for r in rows]

    # ── asset_budgets ──────────────────────────────────────────────

    def has_any_budget(self, conn: sqlite3.Connection, wallet: str) -> bool:
        row = conn.execute(
            "SELECT 1 FROM asset_budgets WHERE wallet = ? LIMIT 1", (wallet,)
        ).fetchone()
        return row is not None

    def get_budget(self, conn: sqlite3.Connection, wallet: str, asset: str) -> Optional[int]:
        row = conn.execute(
            "SELECT remaining FROM asset_budgets WHERE wallet = ? AND asset = ?",
            (wallet, asset),
        ).fetchone()
        return None if row is None else int(row["remaining"])

    def set_budget(self, conn: sqlite3.Connection, wallet: str, asset: str, remaining: int) -> None:
        conn.execute(
            """
            INSERT INTO asset_budgets (wallet, asset, remaining) VALUES (?, ?, ?)
            ON CONFLICT (wallet, asset) DO UPDATE SET remaining = excluded.remaining
            """,
            (wallet, asset, str(remaining)),
        )

    # ── wallets / withdrawal_requests ──────────────────────────────

    def get_request_count(self, conn: sqlite3.Connection, wallet: str) -> Optional[int]:
        row = conn.execute(
            "SELECT request_count FROM wallets WHERE wallet = ?", (wallet,)
        ).fetchone()
        return None if row is None else row["request_count"]

    def ensure_wallet(self, conn: sqlite3.Connection, wallet: str) -> int:
        conn.execute(
            "INSERT OR IGNORE INTO wallets (wallet, request_count) VALUES (?, 0)",
            (wallet,),
        )
        count = self.get_request_count(conn, wallet)
        assert count is not None
        return count

    def set_request_count(self, conn: sqlite3.Connection, wallet: str, count: int) -> None:
        conn.execute(
            "UPDATE wallets SET request_count = ? WHERE wallet = ?",
            (count, wallet),
        )

    def _row_to_request(self, row: sqlite3.Row) -> WithdrawalRequest:
        return WithdrawalRequest(
            request_id=row["request_id"],
            receiver=row["receiver"],
            asset=row["asset"],
            amount=int(row["amount"]),
            status=RequestStatus(row["status"]),
            payload=bytes(row["payload"]),
            created_at=row["created_at"],
            executed_at=row["executed_at"],
        )

    def insert_request(self, conn: sqlite3.Connection, wallet: str, request: WithdrawalRequest) -> None:
        conn.execute(
            """
            INSERT INTO withdrawal_requests (
                wallet, request_id, receiver, asset, amount, status, payload, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                wallet,
                request.request_id,
                request.receiver,
                request.asset,
                str(request.amount),
                request.status.value,
                request.payload,
                request.created_at,
            ),
        )

    def get_request(
        self, conn: sqlite3.Connection, wallet: str, request_id: int
    ) -> Optional[WithdrawalRequest]:
        row = conn.execute(
            "SELECT * FROM withdrawal_requests WHERE wallet = ? AND request_id = ?",
            (wallet, request_id),
        ).fetchone()
        return None if row is None else self._row_to_request(row)

    def list_requests(self, conn: sqlite3.Connection, wallet: str) -> list[WithdrawalRequest]:
        rows = conn.execute(
            "SELECT * FROM withdrawal_requests WHERE wallet = ? ORDER BY request_id ASC",
            (wallet,),
        ).fetchall()
        return [self._row_to_request(r) for r in rows]

    def mark_executed(self, conn: sqlite3.Connection, wallet: str, request_id: int, now: int) -> None:
        cur = conn.execute(
            """
            UPDATE withdrawal_requests SET status = ?, executed_at = ?
            WHERE wallet = ? AND request_id = ? AND status = ?
            """,
            (
                RequestStatus.EXECUTED.value,
                now,
                wallet,
                request_id,
                RequestStatus.CREATED.value,
            ),
        )
        assert cur.rowcount == 1
