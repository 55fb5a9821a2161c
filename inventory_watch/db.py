"""SQLite persistence layer for inventory watch.

Two record kinds live here: per-provider observed state and per-user
subscriptions.  Every read-then-write goes through `Store.run_transaction`,
which holds SQLite's write lock (BEGIN IMMEDIATE) for the whole callback so
overlapping runs serialize on the same row instead of racing.  The lock is
database-wide, so callbacks must stay short and never wait on the network.
"""

from __future__ import annotations

import datetime as _dt
import json
import logging
import sqlite3
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Sequence, TypeVar

from .config import SQLITE_BUSY_TIMEOUT_SECONDS, SQLITE_DB_PATH

logger = logging.getLogger(__name__)

T = TypeVar("T")


class TransactionConflictError(Exception):
    """Raised when a transaction could not get the write lock in time."""


@dataclass
class ProviderState:
    provider_key: str
    updated_msg: Optional[str] = None
    product_links: Optional[List[str]] = None


@dataclass
class Subscription:
    user_id: str
    provider_key: str
    base: bool = False
    message_id: Optional[str] = None


def _now() -> str:
    return _dt.datetime.now(_dt.timezone.utc).isoformat()


def _is_lock_error(exc: sqlite3.OperationalError) -> bool:
    msg = str(exc).lower()
    return "locked" in msg or "busy" in msg


def _rollback(conn: sqlite3.Connection) -> None:
    if conn.in_transaction:
        conn.execute("ROLLBACK")


def _row_to_state(row: sqlite3.Row) -> ProviderState:
    links = row["product_links"]
    return ProviderState(
        provider_key=row["provider_key"],
        updated_msg=row["updated_msg"],
        product_links=json.loads(links) if links is not None else None,
    )


def _row_to_subscription(row: sqlite3.Row) -> Subscription:
    return Subscription(
        user_id=row["user_id"],
        provider_key=row["provider_key"],
        base=bool(row["base"]),
        message_id=row["message_id"],
    )


class Transaction:
    """Reads and writes available inside `Store.run_transaction`."""

    def __init__(self, conn: sqlite3.Connection):
        self._conn = conn

    # Provider state
    def get_provider_state(self, provider_key: str) -> Optional[ProviderState]:
        row = self._conn.execute(
            "SELECT * FROM provider_state WHERE provider_key = ?", (provider_key,)
        ).fetchone()
        return _row_to_state(row) if row else None

    def set_updated_msg(self, provider_key: str, updated_msg: str) -> None:
        self._conn.execute("""
            INSERT INTO provider_state (provider_key, updated_msg, updated_at)
            VALUES (?, ?, ?)
            ON CONFLICT(provider_key) DO UPDATE SET
                updated_msg = excluded.updated_msg,
                updated_at  = excluded.updated_at
        """, (provider_key, updated_msg, _now()))

    def set_product_links(self, provider_key: str, product_links: Sequence[str]) -> None:
        self._conn.execute("""
            INSERT INTO provider_state (provider_key, product_links, updated_at)
            VALUES (?, ?, ?)
            ON CONFLICT(provider_key) DO UPDATE SET
                product_links = excluded.product_links,
                updated_at    = excluded.updated_at
        """, (provider_key, json.dumps(list(product_links)), _now()))

    # Subscriptions
    def get_subscription(self, user_id: str, provider_key: str) -> Optional[Subscription]:
        row = self._conn.execute(
            "SELECT * FROM subscriptions WHERE user_id = ? AND provider_key = ?",
            (user_id, provider_key),
        ).fetchone()
        return _row_to_subscription(row) if row else None

    def claim_message_id(self, user_id: str, provider_key: str, message_id: str) -> bool:
        """Set the thread anchor unless one is already stored. True if this call set it."""
        cur = self._conn.execute(
            "UPDATE subscriptions SET message_id = ?"
            " WHERE user_id = ? AND provider_key = ? AND message_id IS NULL",
            (message_id, user_id, provider_key),
        )
        return cur.rowcount > 0

    def upsert_subscription(
        self, user_id: str, provider_key: str, *, base: bool, message_id: Optional[str] = None
    ) -> None:
        self._conn.execute("""
            INSERT INTO subscriptions (user_id, provider_key, base, message_id, created_at)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(user_id, provider_key) DO UPDATE SET
                base       = excluded.base,
                message_id = COALESCE(subscriptions.message_id, excluded.message_id)
        """, (user_id, provider_key, int(base), message_id, _now()))

    def delete_subscription(self, user_id: str, provider_key: str) -> bool:
        cur = self._conn.execute(
            "DELETE FROM subscriptions WHERE user_id = ? AND provider_key = ?",
            (user_id, provider_key),
        )
        return cur.rowcount > 0


class Store:
    """SQLite-backed document store with single-record transactions."""

    def __init__(self, db_path: str = SQLITE_DB_PATH, busy_timeout: float = SQLITE_BUSY_TIMEOUT_SECONDS):
        self.db_path = db_path
        self.busy_timeout = busy_timeout
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    def _get_connection(self) -> sqlite3.Connection:
        # isolation_level=None so BEGIN/COMMIT are issued explicitly below.
        conn = sqlite3.connect(self.db_path, timeout=self.busy_timeout, isolation_level=None)
        conn.row_factory = sqlite3.Row
        return conn

    def init_db(self) -> None:
        """Create tables if they don't exist."""
        conn = self._get_connection()
        try:
            conn.executescript("""
              CREATE TABLE IF NOT EXISTS provider_state (
                provider_key  TEXT PRIMARY KEY,
                updated_msg   TEXT,
                product_links TEXT,
                updated_at    TEXT NOT NULL
              );
              CREATE TABLE IF NOT EXISTS subscriptions (
                user_id      TEXT NOT NULL,
                provider_key TEXT NOT NULL,
                base         INTEGER NOT NULL DEFAULT 0,
                message_id   TEXT,
                created_at   TEXT NOT NULL,
                PRIMARY KEY (user_id, provider_key)
              );
            """)
        finally:
            conn.close()

    def run_transaction(self, fn: Callable[[Transaction], T]) -> T:
        """Run `fn` atomically and return its value.

        The write lock is taken up front, so a second transaction touching
        the same rows waits (up to `busy_timeout`) and then sees the first
        one's committed writes.  Losing that wait raises
        TransactionConflictError; nothing is retried here.
        """
        conn = self._get_connection()
        try:
            try:
                conn.execute("BEGIN IMMEDIATE")
            except sqlite3.OperationalError as e:
                if _is_lock_error(e):
                    raise TransactionConflictError(str(e)) from e
                raise
            try:
                result = fn(Transaction(conn))
                conn.execute("COMMIT")
            except sqlite3.OperationalError as e:
                _rollback(conn)
                if _is_lock_error(e):
                    raise TransactionConflictError(str(e)) from e
                raise
            except BaseException:
                _rollback(conn)
                raise
            return result
        finally:
            conn.close()

    # ---- read-only helpers --------------------------------------------------

    def get_provider_state(self, provider_key: str) -> Optional[ProviderState]:
        conn = self._get_connection()
        try:
            return Transaction(conn).get_provider_state(provider_key)
        finally:
            conn.close()

    def get_subscription(self, user_id: str, provider_key: str) -> Optional[Subscription]:
        conn = self._get_connection()
        try:
            return Transaction(conn).get_subscription(user_id, provider_key)
        finally:
            conn.close()

    def list_provider_states(self) -> List[ProviderState]:
        conn = self._get_connection()
        try:
            rows = conn.execute("SELECT * FROM provider_state ORDER BY provider_key").fetchall()
            return [_row_to_state(r) for r in rows]
        finally:
            conn.close()

    def list_subscriptions(self) -> List[Subscription]:
        """All subscription records in the order they were created."""
        conn = self._get_connection()
        try:
            rows = conn.execute("SELECT * FROM subscriptions ORDER BY rowid").fetchall()
            return [_row_to_subscription(r) for r in rows]
        finally:
            conn.close()

    # ---- admin helpers (CLI) ------------------------------------------------

    def add_subscription(
        self,
        user_id: str,
        provider_key: str,
        *,
        base: bool = True,
        message_id: str | None = None,
    ) -> None:
        """Insert or update a subscription. An existing message_id is never cleared."""
        self.run_transaction(
            lambda txn: txn.upsert_subscription(user_id, provider_key, base=base, message_id=message_id)
        )

    def remove_subscription(self, user_id: str, provider_key: str) -> bool:
        return self.run_transaction(lambda txn: txn.delete_subscription(user_id, provider_key))


__all__ = [
    "Store",
    "Transaction",
    "TransactionConflictError",
    "ProviderState",
    "Subscription",
]
