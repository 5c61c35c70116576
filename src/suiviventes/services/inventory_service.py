from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime
from typing import Iterable, Optional

from suiviventes.domain.errors import NotFoundError, ValidationError
from suiviventes.domain.models import StockFilters, StockItem, StockMovement, new_id

log = logging.getLogger("suiviventes.inventory")

INITIAL_STOCK_REASON = "Stock initial"
MANUAL_RESTOCK_REASON = "Réapprovisionnement manuel"
AUTO_RESTOCK_REASON = "Réapprovisionnement automatique"
RESET_REASON = "Réinitialisation manuelle"

HIGH_STOCK_RATIO = 0.8


def _now_iso() -> str:
    return datetime.now().replace(microsecond=0).isoformat()


def _number_or_none(text: str) -> Optional[float]:
    text = (text or "").strip()
    if not text:
        return None
    try:
        return float(text.replace(",", "."))
    except ValueError:
        return None


def stock_status(item: StockItem) -> str:
    if item.current_stock <= item.alert_threshold:
        return "low"
    if item.current_stock > item.initial_stock * HIGH_STOCK_RATIO:
        return "high"
    return "normal"


def filter_items(items: Iterable[StockItem], filters: StockFilters, search: str = "") -> list[StockItem]:
    result = list(items)
    if search:
        term = search.lower()
        result = [
            i for i in result
            if term in i.name.lower() or term in i.category.lower() or term in i.subcategory.lower()
        ]
    if filters.product_name:
        result = [i for i in result if filters.product_name.lower() in i.name.lower()]
    if filters.category:
        result = [i for i in result if i.category == filters.category]
    if filters.subcategory:
        result = [i for i in result if i.subcategory == filters.subcategory]
    if filters.stock_status in {"low", "normal", "high"}:
        result = [i for i in result if stock_status(i) == filters.stock_status]
    return result


def filter_movements(movements: Iterable[StockMovement], filters: StockFilters, items: Iterable[StockItem]) -> list[StockMovement]:
    """Filter the movement history, newest first."""
    result = list(movements)
    if filters.start_date:
        result = [m for m in result if m.date >= filters.start_date]
    if filters.end_date:
        result = [m for m in result if m.date[:10] <= filters.end_date]
    if filters.register:
        result = [m for m in result if m.register == filters.register]
    if filters.seller:
        result = [m for m in result if m.seller == filters.seller]
    if filters.product_name:
        names = {i.id: i.name.lower() for i in items}
        term = filters.product_name.lower()
        result = [m for m in result if term in names.get(m.product_id, "")]

    min_qty = _number_or_none(filters.min_quantity)
    if min_qty is not None:
        result = [m for m in result if m.quantity >= min_qty]
    max_qty = _number_or_none(filters.max_quantity)
    if max_qty is not None:
        result = [m for m in result if m.quantity <= max_qty]
    return sorted(result, key=lambda m: m.date, reverse=True)


class InventoryService:
    def __init__(self, storage):
        self.storage = storage

    def list_items(self, filters: StockFilters | None = None, search: str = "") -> list[StockItem]:
        return filter_items(self.storage.get_stock(), filters or StockFilters(), search)

    def get_item(self, item_id: str) -> StockItem:
        for item in self.storage.get_stock():
            if item.id == item_id:
                return item
        raise NotFoundError("Stock item not found.")

    def low_stock_items(self) -> list[StockItem]:
        return [i for i in self.storage.get_stock() if stock_status(i) == "low"]

    def list_movements(self, filters: StockFilters | None = None) -> list[StockMovement]:
        return filter_movements(self.storage.get_stock_movements(), filters or StockFilters(), self.storage.get_stock())

    def add_item(
        self,
        name: str,
        category: str,
        subcategory: str = "",
        initial_stock: int = 0,
        alert_threshold: int = 5,
        unit_price: float = 0.0,
    ) -> StockItem:
        name = (name or "").strip()
        category = (category or "").strip()
        if not name or not category:
            raise ValidationError("Name and category are required.")
        if initial_stock < 0 or alert_threshold < 0:
            raise ValidationError("Stock values must be >= 0.")
        if unit_price < 0:
            raise ValidationError("Unit price must be >= 0.")

        item = StockItem(
            id=new_id(),
            name=name,
            category=category,
            subcategory=(subcategory or "").strip(),
            current_stock=int(initial_stock),
            alert_threshold=int(alert_threshold),
            initial_stock=int(initial_stock),
            unit_price=float(unit_price),
        )
        self.storage.add_stock_item(item)
        if item.initial_stock > 0:
            self.storage.add_stock_movement(self._movement(item, "in", item.initial_stock, INITIAL_STOCK_REASON))
        log.info("stock_item_created item_id=%s name=%r stock=%s", item.id, item.name, item.current_stock)
        return item

    def update_item(self, item_id: str, **changes) -> StockItem:
        current = self.get_item(item_id)
        allowed = {"name", "category", "subcategory", "current_stock", "alert_threshold", "initial_stock", "unit_price"}
        unknown = set(changes) - allowed
        if unknown:
            raise ValidationError(f"Unknown stock fields: {', '.join(sorted(unknown))}")
        for key in ("alert_threshold", "initial_stock"):
            if key in changes and int(changes[key]) < 0:
                raise ValidationError("Stock values must be >= 0.")
        if "unit_price" in changes and float(changes["unit_price"]) < 0:
            raise ValidationError("Unit price must be >= 0.")

        updated = replace(current, **changes)
        self.storage.update_stock_item(updated)
        log.info("stock_item_updated item_id=%s fields=%s", item_id, ",".join(sorted(changes)))
        return updated

    def delete_item(self, item_id: str) -> None:
        self.get_item(item_id)
        self.storage.delete_stock_item(item_id)
        log.info("stock_item_deleted item_id=%s", item_id)

    def restock(self, item_id: str) -> StockMovement:
        """Bring one item back to its initial stock."""
        item = self.get_item(item_id)
        missing = item.initial_stock - item.current_stock
        if missing <= 0:
            raise ValidationError("Stock is already at its maximum.")
        movement = self._refill(item, missing, MANUAL_RESTOCK_REASON)
        log.info("stock_restocked item_id=%s qty=%s", item.id, missing)
        return movement

    def restock_low_items(self) -> list[StockMovement]:
        movements = []
        for item in self.low_stock_items():
            missing = item.initial_stock - item.current_stock
            if missing > 0:
                movements.append(self._refill(item, missing, AUTO_RESTOCK_REASON))
        log.info("stock_auto_restocked items=%s", len(movements))
        return movements

    def reset_all(self) -> list[StockMovement]:
        """Reset every item to its initial stock with a signed movement."""
        movements = []
        for item in self.storage.get_stock():
            delta = item.initial_stock - item.current_stock
            if delta == 0:
                continue
            kind = "in" if delta > 0 else "out"
            movement = self._movement(item, kind, abs(delta), RESET_REASON)
            self.storage.update_stock_item(replace(item, current_stock=item.initial_stock))
            self.storage.add_stock_movement(movement)
            movements.append(movement)
        log.warning("stock_reset items=%s", len(movements))
        return movements

    def _refill(self, item: StockItem, qty: int, reason: str) -> StockMovement:
        movement = self._movement(item, "in", qty, reason)
        self.storage.update_stock_item(replace(item, current_stock=item.current_stock + qty))
        self.storage.add_stock_movement(movement)
        return movement

    @staticmethod
    def _movement(item: StockItem, kind: str, qty: int, reason: str) -> StockMovement:
        return StockMovement(
            id=new_id(),
            date=_now_iso(),
            product_id=item.id,
            type=kind,
            quantity=int(qty),
            reason=reason,
        )
