from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime
from typing import Iterable, Optional, Sequence

from suiviventes.domain.models import (
    ReconciliationResult,
    Sale,
    StockItem,
    StockMovement,
    UnmatchedProductWarning,
    new_id,
)

log = logging.getLogger("suiviventes.imports")


def _now_iso() -> str:
    return datetime.now().replace(microsecond=0).isoformat()


def _index_by_name(stock_items: Iterable[StockItem]) -> dict[str, StockItem]:
    index: dict[str, StockItem] = {}
    for item in stock_items:
        index.setdefault(item.name.lower(), item)
    return index


def plan_batch(sales: Sequence[Sale], stock_items: Sequence[StockItem], now: Optional[str] = None) -> ReconciliationResult:
    """Consolidate an imported batch into one ``out`` movement per product.

    Sales are grouped by lowercase product name in first-seen order. Groups
    without a stock item of the same name are reported as unmatched.
    """
    moment = now or _now_iso()
    groups: dict[str, list[Sale]] = {}
    for sale in sales:
        groups.setdefault(sale.product_name.lower(), []).append(sale)

    by_name = _index_by_name(stock_items)
    movements: list[StockMovement] = []
    updated: list[StockItem] = []
    unmatched: list[UnmatchedProductWarning] = []

    for key, group in groups.items():
        total = sum(int(s.quantity) for s in group)
        item = by_name.get(key)
        if item is None:
            unmatched.append(
                UnmatchedProductWarning(product_name=group[0].product_name, sales_count=len(group), quantity=total)
            )
            continue

        new_item = replace(item, current_stock=item.current_stock - total)
        by_name[key] = new_item
        updated.append(new_item)
        first = group[0]
        movements.append(
            StockMovement(
                id=new_id(),
                date=moment,
                product_id=item.id,
                type="out",
                quantity=total,
                reason=f"Import: {len(group)} vente(s)",
                register=first.register,
                seller=first.seller,
            )
        )

    return ReconciliationResult(movements=movements, updated_items=updated, unmatched=unmatched)


def plan_sale(sale: Sale, stock_items: Sequence[StockItem]) -> ReconciliationResult:
    item = _index_by_name(stock_items).get(sale.product_name.lower())
    if item is None:
        warning = UnmatchedProductWarning(product_name=sale.product_name, sales_count=1, quantity=int(sale.quantity))
        return ReconciliationResult(movements=[], updated_items=[], unmatched=[warning])

    movement = StockMovement(
        id=new_id(),
        date=sale.date,
        product_id=item.id,
        type="out",
        quantity=int(sale.quantity),
        reason=f"Vente #{sale.id}",
        register=sale.register,
        seller=sale.seller,
    )
    updated = replace(item, current_stock=item.current_stock - int(sale.quantity))
    return ReconciliationResult(movements=[movement], updated_items=[updated], unmatched=[])


class StockReconciler:
    """Applies reconciliation plans through the storage facade.

    Runs client-side for both backends, so a batch import always yields one
    consolidated movement per product and a single sale one movement.
    """

    def __init__(self, storage):
        self.storage = storage

    def apply_batch(self, sales: Sequence[Sale]) -> ReconciliationResult:
        if not sales:
            return ReconciliationResult(movements=[], updated_items=[], unmatched=[])
        result = plan_batch(sales, self.storage.get_stock())
        self._apply(result)
        log.info(
            "stock_reconciled products=%s sales=%s movements=%s unmatched=%s",
            len({s.product_name.lower() for s in sales}),
            len(sales),
            len(result.movements),
            len(result.unmatched),
        )
        return result

    def apply_sale(self, sale: Sale) -> ReconciliationResult:
        result = plan_sale(sale, self.storage.get_stock())
        self._apply(result)
        return result

    def _apply(self, result: ReconciliationResult) -> None:
        for item in result.updated_items:
            self.storage.update_stock_item(item)
        for movement in result.movements:
            self.storage.add_stock_movement(movement)
        for warning in result.unmatched:
            log.warning(
                "stock_unmatched_product product=%r sales=%s qty=%s",
                warning.product_name,
                warning.sales_count,
                warning.quantity,
            )
