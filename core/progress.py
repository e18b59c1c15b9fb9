"""
SQLite-backed bulk-run progress, keyed by product id.
Lets an interrupted ``bulk`` run resume without redoing finished products.
"""

from __future__ import annotations

import json
import sqlite3
import threading
import time
from pathlib import Path
from typing import Any, Dict, List, Optional

from utils.log_config import get_logger

log = get_logger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS bulk_progress (
    product_id   TEXT PRIMARY KEY,
    status       TEXT NOT NULL DEFAULT 'pending',
    http_status  INTEGER,
    code         TEXT,
    error        TEXT,
    attempts     INTEGER DEFAULT 0,
    completed_at REAL,
    meta_json    TEXT
);

CREATE INDEX IF NOT EXISTS idx_bulk_status ON bulk_progress(status);
"""


class BulkProgress:
    """
    States: pending → done | failed → (rerun) → done
    A failed product never rolls back products that already succeeded.
    """

    def __init__(self, db_path: Path) -> None:
        self._db_path = db_path
        self._local = threading.local()
        self._init_lock = threading.Lock()
        self._ensure()

    @property
    def _conn(self) -> sqlite3.Connection:
        conn = getattr(self._local, "conn", None)
        if conn is None:
            conn = sqlite3.connect(str(self._db_path), timeout=10)
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA synchronous=NORMAL")
            self._local.conn = conn
        return conn

    def _ensure(self) -> None:
        with self._init_lock:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
            c = sqlite3.connect(str(self._db_path), timeout=10)
            c.executescript(_SCHEMA)
            c.close()

    def _attempts(self, product_id: str) -> int:
        row = self._conn.execute(
            "SELECT attempts FROM bulk_progress WHERE product_id = ?", (product_id,)
        ).fetchone()
        return (row["attempts"] + 1) if row else 1

    # ── queries ─────────────────────────────────────────────
    def is_done(self, product_id: str) -> bool:
        row = self._conn.execute(
            "SELECT status FROM bulk_progress WHERE product_id = ?", (product_id,)
        ).fetchone()
        return row is not None and row["status"] == "done"

    def mark_done(self, product_id: str, meta: Dict[str, Any]) -> None:
        self._conn.execute(
            """
            INSERT OR REPLACE INTO bulk_progress
                (product_id, status, http_status, code, error, attempts, completed_at, meta_json)
            VALUES (?, 'done', 200, NULL, NULL, ?, ?, ?)
            """,
            (product_id, self._attempts(product_id), time.time(), json.dumps(meta)),
        )
        self._conn.commit()

    def mark_failed(
        self,
        product_id: str,
        message: str,
        status: Optional[int] = None,
        code: Optional[str] = None,
    ) -> None:
        self._conn.execute(
            """
            INSERT OR REPLACE INTO bulk_progress
                (product_id, status, http_status, code, error, attempts, completed_at, meta_json)
            VALUES (?, 'failed', ?, ?, ?, ?, ?, NULL)
            """,
            (product_id, status, code, message, self._attempts(product_id), time.time()),
        )
        self._conn.commit()

    def failures(self) -> List[Dict[str, Any]]:
        rows = self._conn.execute(
            "SELECT product_id, http_status, code, error, attempts FROM bulk_progress "
            "WHERE status = 'failed' ORDER BY product_id"
        ).fetchall()
        return [dict(r) for r in rows]

    def stats(self) -> Dict[str, int]:
        rows = self._conn.execute(
            "SELECT status, COUNT(*) as c FROM bulk_progress GROUP BY status"
        ).fetchall()
        return {r["status"]: r["c"] for r in rows}

    def reset(self) -> None:
        self._conn.execute("DELETE FROM bulk_progress")
        self._conn.commit()
        log.info("Bulk progress reset")
