from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Callable, Iterable, TypeVar

from suiviventes.domain.errors import AuthenticationError, ReadOnlyModeError, RemoteBackendError
from suiviventes.domain.models import Sale, StockItem, StockMovement, new_id
from suiviventes.repositories.local_repo import LocalStore, MIGRATION_KEY, READ_ONLY_KEY

log = logging.getLogger("suiviventes.storage")

T = TypeVar("T")

READ_ONLY_MESSAGE = "Application is in read-only mode."

SAMPLE_STOCK = (
    StockItem("1", "Fanta Orange", "Boissons", "Sodas", 48, 5, 100, 1.5),
    StockItem("2", "Coca-Cola", "Boissons", "Sodas", 77, 5, 150, 1.5),
    StockItem("3", "Sandwich Jambon", "Alimentation", "Sandwichs", 35, 5, 80, 3.5),
    StockItem("4", "Eau Minérale", "Boissons", "Eaux", 113, 5, 200, 1.0),
)


@dataclass(frozen=True)
class FallbackEvent:
    operation: str
    kind: str
    error: str
    at: str


class StorageFacade:
    """Uniform access to sales, stock and movements over two backends.

    The remote backend is used while the user is authenticated, the local
    store otherwise. Remote read failures fall back to local data. Remote
    write failures raise unless ``write_fallback`` is enabled, in which case
    the write lands locally and a ``FallbackEvent`` records the divergence.
    """

    def __init__(self, local: LocalStore, remote=None, auth=None, write_fallback: bool = False):
        self.local = local
        self.remote = remote
        self.auth = auth
        self.write_fallback = write_fallback
        self.fallback_events: list[FallbackEvent] = []

    # ---------- Policy ----------
    def use_remote(self) -> bool:
        if self.remote is None or self.auth is None:
            return False
        return bool(self.auth.is_authenticated())

    @property
    def has_diverged(self) -> bool:
        return any(e.kind == "write" for e in self.fallback_events)

    def _record(self, operation: str, kind: str, exc: Exception) -> None:
        event = FallbackEvent(
            operation=operation,
            kind=kind,
            error=str(exc),
            at=datetime.now().replace(microsecond=0).isoformat(),
        )
        self.fallback_events.append(event)
        log.warning("remote_fallback operation=%s kind=%s error=%s", operation, kind, exc)

    def _read(self, operation: str, remote_call: Callable[[], T], local_call: Callable[[], T]) -> T:
        if self.use_remote():
            try:
                return remote_call()
            except (RemoteBackendError, AuthenticationError) as exc:
                self._record(operation, "read", exc)
        return local_call()

    def _write(self, operation: str, remote_call: Callable[[], None], local_call: Callable[[], None]) -> None:
        self._guard_read_only()
        if self.use_remote():
            try:
                remote_call()
                return
            except (RemoteBackendError, AuthenticationError) as exc:
                if not self.write_fallback:
                    log.error("remote_write_failed operation=%s error=%s", operation, exc)
                    if isinstance(exc, RemoteBackendError):
                        raise
                    raise RemoteBackendError(str(exc)) from exc
                self._record(operation, "write", exc)
        local_call()

    def _guard_read_only(self) -> None:
        if self.is_read_only():
            raise ReadOnlyModeError(READ_ONLY_MESSAGE)

    # ---------- Sales ----------
    def get_sales(self) -> list[Sale]:
        return self._read("get_sales", lambda: self.remote.list_sales(), self.local.load_sales)

    def add_sale(self, sale: Sale) -> None:
        self.add_sales([sale])

    def add_sales(self, sales: Iterable[Sale]) -> None:
        batch = list(sales)
        if not batch:
            return
        self._write(
            "add_sales",
            lambda: self.remote.insert_sales(batch),
            lambda: self.local.save_sales(self.local.load_sales() + batch),
        )

    def update_sale(self, sale: Sale) -> None:
        self._write(
            "update_sale",
            lambda: self.remote.update_sale(sale),
            lambda: self.local.save_sales([sale if s.id == sale.id else s for s in self.local.load_sales()]),
        )

    def delete_sale(self, sale_id: str) -> None:
        self._write(
            "delete_sale",
            lambda: self.remote.delete_sale(sale_id),
            lambda: self.local.save_sales([s for s in self.local.load_sales() if s.id != sale_id]),
        )

    # ---------- Stock ----------
    def get_stock(self) -> list[StockItem]:
        return self._read("get_stock", lambda: self.remote.list_stock(), self.local.load_stock)

    def add_stock_item(self, item: StockItem) -> None:
        self.add_stock_items([item])

    def add_stock_items(self, items: Iterable[StockItem]) -> None:
        batch = list(items)
        if not batch:
            return
        self._write(
            "add_stock_items",
            lambda: self.remote.insert_stock_items(batch),
            lambda: self.local.save_stock(self.local.load_stock() + batch),
        )

    def update_stock_item(self, item: StockItem) -> None:
        self._write(
            "update_stock_item",
            lambda: self.remote.update_stock_item(item),
            lambda: self.local.save_stock([item if i.id == item.id else i for i in self.local.load_stock()]),
        )

    def delete_stock_item(self, item_id: str) -> None:
        self._write(
            "delete_stock_item",
            lambda: self.remote.delete_stock_item(item_id),
            lambda: self.local.save_stock([i for i in self.local.load_stock() if i.id != item_id]),
        )

    # ---------- Movements ----------
    def get_stock_movements(self) -> list[StockMovement]:
        return self._read("get_stock_movements", lambda: self.remote.list_movements(), self.local.load_movements)

    def add_stock_movement(self, movement: StockMovement) -> None:
        self.add_stock_movements([movement])

    def add_stock_movements(self, movements: Iterable[StockMovement]) -> None:
        batch = list(movements)
        if not batch:
            return
        self._write(
            "add_stock_movements",
            lambda: self.remote.insert_movements(batch),
            lambda: self.local.save_movements(self.local.load_movements() + batch),
        )

    # ---------- Modes & maintenance ----------
    def is_read_only(self) -> bool:
        return self.local.get_flag(READ_ONLY_KEY)

    def set_read_only(self, enabled: bool) -> None:
        self.local.set_flag(READ_ONLY_KEY, enabled)
        log.info("read_only_mode enabled=%s", enabled)

    def clear_all_data(self) -> None:
        """Drop the local collections; remote rows are left untouched."""
        self._guard_read_only()
        self.local.clear_collections()
        log.warning("local_data_cleared")

    def initialize_storage(self) -> None:
        """Seed the local store with sample stock on first run.

        Never touches the remote backend. A failure is logged and ignored so
        that startup cannot block any command.
        """
        try:
            if self.local.load_stock():
                return
            self.local.save_stock([replace(item, id=new_id()) for item in SAMPLE_STOCK])
        except sqlite3.Error as exc:
            log.error("sample_stock_seed_failed error=%s", exc)
            return
        log.info("sample_stock_seeded items=%s", len(SAMPLE_STOCK))

    def migrate_local_to_remote(self) -> bool:
        """Copy local collections to the remote backend once per installation.

        Returns True when a migration ran.
        """
        if self.local.get_flag(MIGRATION_KEY):
            log.info("migration_skipped reason=already_migrated")
            return False
        if not self.use_remote():
            return False

        sales = self.local.load_sales()
        stock = self.local.load_stock()
        movements = self.local.load_movements()
        try:
            # movements reference stock items, so items go first; upserts
            # let a run that failed halfway be retried
            self.remote.insert_sales(sales, upsert=True)
            self.remote.insert_stock_items(stock, upsert=True)
            self.remote.insert_movements(movements, upsert=True)
        except AuthenticationError as exc:
            log.error("migration_failed error=%s", exc)
            raise RemoteBackendError(str(exc)) from exc
        except RemoteBackendError as exc:
            log.error("migration_failed error=%s", exc)
            raise

        self.local.set_flag(MIGRATION_KEY, True)
        log.info("migration_completed sales=%s stock=%s movements=%s", len(sales), len(stock), len(movements))
        return True

    def status(self) -> dict:
        return {
            "backend": "remote" if self.use_remote() else "local",
            "read_only": self.is_read_only(),
            "migrated": self.local.get_flag(MIGRATION_KEY),
            "write_fallback": self.write_fallback,
            "fallback_events": len(self.fallback_events),
            "local_integrity": self.local.integrity_check(),
        }


