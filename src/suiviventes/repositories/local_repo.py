from __future__ import annotations

import json
import logging
import shutil
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Optional

from suiviventes.domain.models import Sale, StockItem, StockMovement

log = logging.getLogger("suiviventes.storage")

SALES_KEY = "suiviventes-data"
STOCK_KEY = "suiviventes-stock"
STOCK_MOVEMENTS_KEY = "suiviventes-stock-movements"
READ_ONLY_KEY = "suiviventes-readonly"
MIGRATION_KEY = "suiviventes-migrated"

COLLECTION_KEYS = (SALES_KEY, STOCK_KEY, STOCK_MOVEMENTS_KEY)


class LocalStore:
    """Fallback storage: one JSON blob per collection in a SQLite file."""

    def __init__(self, db_path: Path | str):
        self.db_path = str(db_path)

    def _conn(self) -> sqlite3.Connection:
        return sqlite3.connect(self.db_path)

    def init_db(self) -> None:
        self.run_migrations()

    def run_migrations(self) -> None:
        conn = self._conn()
        backup_path = self._create_pre_migration_backup()
        try:
            cur = conn.cursor()
            cur.execute("BEGIN")
            cur.execute("CREATE TABLE IF NOT EXISTS schema_migrations (version INTEGER PRIMARY KEY, applied_at TEXT NOT NULL)")
            cur.execute("SELECT COALESCE(MAX(version), 0) FROM schema_migrations")
            current_version = int(cur.fetchone()[0])

            migrations = [
                (1, self._migration_v1_blob_store),
            ]

            for version, migration in migrations:
                if version <= current_version:
                    continue
                migration(cur)
                cur.execute(
                    "INSERT INTO schema_migrations (version, applied_at) VALUES (?, datetime('now'))",
                    (version,),
                )
            conn.commit()
        except Exception as exc:
            conn.rollback()
            self._restore_pre_migration_backup(backup_path)
            raise RuntimeError(
                "Local store migration failed. Original database restored from automatic backup."
            ) from exc
        finally:
            conn.close()

    def _create_pre_migration_backup(self) -> Path | None:
        db_file = Path(self.db_path)
        if not db_file.exists() or db_file.stat().st_size == 0:
            return None
        backup_file = db_file.with_name(f"{db_file.stem}.pre_migration_{datetime.now().strftime('%Y%m%d%H%M%S')}.bak")
        shutil.copy2(db_file, backup_file)
        return backup_file

    def _restore_pre_migration_backup(self, backup_path: Path | None) -> None:
        if backup_path is None or not backup_path.exists():
            return
        shutil.copy2(backup_path, self.db_path)

    def _migration_v1_blob_store(self, cur: sqlite3.Cursor) -> None:
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS local_store (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                updated_at TEXT NOT NULL DEFAULT (datetime('now'))
            )
            """
        )

    # ---------- Raw keys ----------
    def get_raw(self, key: str) -> Optional[str]:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute("SELECT value FROM local_store WHERE key = ?", (key,))
        row = cur.fetchone()
        conn.close()
        return str(row[0]) if row else None

    def set_raw(self, key: str, value: str) -> None:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(
            """
            INSERT INTO local_store (key, value, updated_at) VALUES (?, ?, datetime('now'))
            ON CONFLICT(key) DO UPDATE SET value=excluded.value, updated_at=excluded.updated_at
            """,
            (key, value),
        )
        conn.commit()
        conn.close()

    def remove(self, key: str) -> None:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute("DELETE FROM local_store WHERE key = ?", (key,))
        conn.commit()
        conn.close()

    def _load_list(self, key: str) -> list[dict]:
        raw = self.get_raw(key)
        if raw is None:
            return []
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            log.error("local_blob_corrupt key=%s error=%s", key, exc)
            return []
        if not isinstance(data, list):
            log.error("local_blob_corrupt key=%s error=not a list", key)
            return []
        return data

    def _save_list(self, key: str, rows: list[dict]) -> None:
        self.set_raw(key, json.dumps(rows, ensure_ascii=False))

    # ---------- Flags ----------
    def get_flag(self, key: str) -> bool:
        return self.get_raw(key) == "true"

    def set_flag(self, key: str, enabled: bool) -> None:
        self.set_raw(key, "true" if enabled else "false")

    # ---------- Collections ----------
    def load_sales(self) -> list[Sale]:
        return [Sale.from_dict(r) for r in self._load_list(SALES_KEY)]

    def save_sales(self, sales: list[Sale]) -> None:
        self._save_list(SALES_KEY, [s.to_dict() for s in sales])

    def load_stock(self) -> list[StockItem]:
        return [StockItem.from_dict(r) for r in self._load_list(STOCK_KEY)]

    def save_stock(self, items: list[StockItem]) -> None:
        self._save_list(STOCK_KEY, [i.to_dict() for i in items])

    def load_movements(self) -> list[StockMovement]:
        return [StockMovement.from_dict(r) for r in self._load_list(STOCK_MOVEMENTS_KEY)]

    def save_movements(self, movements: list[StockMovement]) -> None:
        self._save_list(STOCK_MOVEMENTS_KEY, [m.to_dict() for m in movements])

    def clear_collections(self) -> None:
        for key in (*COLLECTION_KEYS, MIGRATION_KEY):
            self.remove(key)

    def integrity_check(self) -> str:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute("PRAGMA integrity_check")
        row = cur.fetchone()
        conn.close()
        return str(row[0]) if row else "unknown"
