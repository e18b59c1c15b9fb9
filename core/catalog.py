"""
Minimal SQLite product store.

Holds what generation needs from a product (name, category, colors,
gallery, reference URL) and receives the recomputed gallery.  Gallery
writes are plain overwrites: the last writer wins.
"""

from __future__ import annotations

import json
import sqlite3
import threading
import time
from pathlib import Path
from typing import List

from core.models import ProductContext
from utils.exceptions import NotFoundError
from utils.log_config import get_logger

log = get_logger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS products (
    product_id     TEXT PRIMARY KEY,
    name           TEXT,
    category       TEXT,
    colors_json    TEXT NOT NULL DEFAULT '[]',
    images_json    TEXT NOT NULL DEFAULT '[]',
    reference_url  TEXT,
    updated_at     REAL
);
"""


class ProductCatalog:

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

    def upsert(self, product: ProductContext) -> None:
        self._conn.execute(
            """
            INSERT OR REPLACE INTO products
                (product_id, name, category, colors_json, images_json, reference_url, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                product.product_id,
                product.name,
                product.category,
                json.dumps(product.colors),
                json.dumps(product.images),
                product.reference_url,
                time.time(),
            ),
        )
        self._conn.commit()

    def get(self, product_id: str) -> ProductContext:
        row = self._conn.execute(
            "SELECT * FROM products WHERE product_id = ?", (product_id,)
        ).fetchone()
        if row is None:
            raise NotFoundError("Product not found", details={"productId": product_id})
        return ProductContext(
            product_id=row["product_id"],
            name=row["name"],
            category=row["category"],
            colors=json.loads(row["colors_json"] or "[]"),
            images=json.loads(row["images_json"] or "[]"),
            reference_url=row["reference_url"],
        )

    def update_images(self, product_id: str, images: List[str]) -> None:
        cur = self._conn.execute(
            "UPDATE products SET images_json = ?, updated_at = ? WHERE product_id = ?",
            (json.dumps(images), time.time(), product_id),
        )
        self._conn.commit()
        if cur.rowcount == 0:
            raise NotFoundError("Product not found", details={"productId": product_id})
        log.debug("Gallery of %s ← %d images", product_id, len(images))

    def ids(self) -> List[str]:
        rows = self._conn.execute("SELECT product_id FROM products ORDER BY product_id").fetchall()
        return [r["product_id"] for r in rows]

    def close(self) -> None:
        conn = getattr(self._local, "conn", None)
        if conn is not None:
            conn.close()
            self._local.conn = None
