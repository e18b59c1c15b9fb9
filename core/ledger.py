"""
Append-only SQLite store of ``GenerationRecord`` rows.

Records are only ever INSERTed; there is no update or delete path.
"""

from __future__ import annotations

import sqlite3
import threading
from dataclasses import fields
from pathlib import Path
from typing import List, Optional

from core.models import GenerationRecord
from utils.log_config import get_logger

log = get_logger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS generation_records (
    record_id            TEXT PRIMARY KEY,
    product_id           TEXT NOT NULL,
    angle                TEXT NOT NULL,
    angle_index          INTEGER NOT NULL,
    generated_url        TEXT NOT NULL,
    source_urls          TEXT NOT NULL,
    source_hashes        TEXT NOT NULL,
    color_reference_url  TEXT,
    color_reference_hash TEXT,
    profile_id           TEXT NOT NULL,
    profile_label        TEXT NOT NULL,
    profile_description  TEXT NOT NULL,
    model_used           TEXT NOT NULL,
    output_format        TEXT NOT NULL,
    quality              TEXT NOT NULL,
    input_fidelity       TEXT NOT NULL,
    prompt               TEXT NOT NULL,
    revised_prompt       TEXT,
    custom_prompt        TEXT,
    target_color         TEXT,
    anchor_url           TEXT,
    bg_removed           INTEGER NOT NULL DEFAULT 0,
    created_by           TEXT,
    created_at           REAL NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_records_product ON generation_records(product_id, created_at);
"""

_COLUMNS = [f.name for f in fields(GenerationRecord)]
_INSERT = (
    f"INSERT INTO generation_records ({', '.join(_COLUMNS)}) "
    f"VALUES ({', '.join(':' + c for c in _COLUMNS)})"
)


class GenerationLedger:

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
            self._local.conn = conn
        return conn

    def _ensure(self) -> None:
        with self._init_lock:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
            c = sqlite3.connect(str(self._db_path), timeout=10)
            c.executescript(_SCHEMA)
            c.close()

    # ── writes ──────────────────────────────────────────────
    def append(self, record: GenerationRecord) -> None:
        self._conn.execute(_INSERT, record.to_row())
        self._conn.commit()
        log.debug("Ledger ← %s %s (%s)", record.product_id, record.angle, record.record_id)

    # ── reads ───────────────────────────────────────────────
    def for_product(self, product_id: str, limit: Optional[int] = None) -> List[GenerationRecord]:
        sql = "SELECT * FROM generation_records WHERE product_id = ? ORDER BY created_at, angle_index"
        params: tuple = (product_id,)
        if limit:
            sql += " LIMIT ?"
            params += (limit,)
        rows = self._conn.execute(sql, params).fetchall()
        return [GenerationRecord.from_row(dict(r)) for r in rows]

    def recent(self, limit: int = 20) -> List[GenerationRecord]:
        rows = self._conn.execute(
            "SELECT * FROM generation_records ORDER BY created_at DESC LIMIT ?", (limit,)
        ).fetchall()
        return [GenerationRecord.from_row(dict(r)) for r in rows]

    def count(self, product_id: Optional[str] = None) -> int:
        if product_id is None:
            row = self._conn.execute("SELECT COUNT(*) AS c FROM generation_records").fetchone()
        else:
            row = self._conn.execute(
                "SELECT COUNT(*) AS c FROM generation_records WHERE product_id = ?", (product_id,)
            ).fetchone()
        return row["c"] if row else 0

    def close(self) -> None:
        conn = getattr(self._local, "conn", None)
        if conn is not None:
            conn.close()
            self._local.conn = None
