from __future__ import annotations

import logging
from dataclasses import replace
from typing import Iterable, Optional

from suiviventes.domain.errors import NotFoundError, ValidationError
from suiviventes.domain.models import ReconciliationResult, Sale, SaleFilters, SortConfig, new_id
from suiviventes.services.parsing import parse_date

log = logging.getLogger("suiviventes.sales")

SORTABLE_FIELDS = {
    "date",
    "client_name",
    "product_name",
    "quantity",
    "unit_price",
    "total_amount",
    "payment_method",
    "seller",
    "register",
    "category",
}


def _float_or_none(text: str) -> Optional[float]:
    text = (text or "").strip()
    if not text:
        return None
    try:
        return float(text.replace(",", "."))
    except ValueError:
        return None


def _contains(haystack: Optional[str], needle: str) -> bool:
    return needle.lower() in (haystack or "").lower()


def filter_sales(sales: Iterable[Sale], filters: SaleFilters, search: str = "") -> list[Sale]:
    """Apply list filters. Dates compare as ISO strings; bad amount bounds are ignored."""
    result = list(sales)
    if search:
        result = [
            s for s in result
            if _contains(s.client_name, search) or _contains(s.product_name, search) or _contains(s.notes, search)
        ]
    if filters.start_date:
        result = [s for s in result if s.date >= filters.start_date]
    if filters.end_date:
        result = [s for s in result if s.date <= filters.end_date]
    if filters.client_name:
        result = [s for s in result if _contains(s.client_name, filters.client_name)]
    if filters.product_name:
        result = [s for s in result if _contains(s.product_name, filters.product_name)]

    min_amount = _float_or_none(filters.min_amount)
    if min_amount is not None:
        result = [s for s in result if s.total_amount >= min_amount]
    max_amount = _float_or_none(filters.max_amount)
    if max_amount is not None:
        result = [s for s in result if s.total_amount <= max_amount]

    if filters.seller:
        result = [s for s in result if s.seller == filters.seller]
    if filters.register:
        result = [s for s in result if s.register == filters.register]
    if filters.category:
        result = [s for s in result if s.category == filters.category]
    return result


def sort_sales(sales: Iterable[Sale], sort: SortConfig) -> list[Sale]:
    if sort.field not in SORTABLE_FIELDS:
        raise ValidationError(f"Cannot sort on {sort.field!r}.")

    def key(sale: Sale):
        value = getattr(sale, sort.field)
        # None sorts as the lowest value
        return (value is not None, value if value is not None else "")

    return sorted(sales, key=key, reverse=sort.direction == "desc")


class SalesService:
    def __init__(self, storage, reconciler):
        self.storage = storage
        self.reconciler = reconciler

    def list_sales(self, filters: SaleFilters | None = None, sort: SortConfig | None = None, search: str = "") -> list[Sale]:
        sales = filter_sales(self.storage.get_sales(), filters or SaleFilters(), search)
        return sort_sales(sales, sort or SortConfig())

    def get_sale(self, sale_id: str) -> Sale:
        for sale in self.storage.get_sales():
            if sale.id == sale_id:
                return sale
        raise NotFoundError("Sale not found.")

    def add_sale(
        self,
        *,
        date: str,
        client_name: str,
        product_name: str,
        quantity: int,
        unit_price: float,
        payment_method: str = "",
        total_amount: float | None = None,
        notes: str | None = None,
        seller: str | None = None,
        register: str | None = None,
        category: str | None = None,
    ) -> tuple[Sale, ReconciliationResult]:
        """Record one sale and take its quantity out of stock."""
        client_name = (client_name or "").strip()
        product_name = (product_name or "").strip()
        if not client_name or not product_name:
            raise ValidationError("Client and product are required.")
        if int(quantity) <= 0:
            raise ValidationError("Quantity must be > 0.")
        if float(unit_price) < 0:
            raise ValidationError("Unit price must be >= 0.")
        try:
            iso_date = parse_date(date)
        except ValueError as e:
            raise ValidationError(f"Invalid date: {date}") from e

        total = float(total_amount) if total_amount is not None else int(quantity) * float(unit_price)
        sale = Sale(
            id=new_id(),
            date=iso_date,
            client_name=client_name,
            product_name=product_name,
            quantity=int(quantity),
            unit_price=float(unit_price),
            total_amount=round(total, 2),
            payment_method=payment_method,
            notes=notes,
            seller=seller,
            register=register,
            category=category,
        )
        self.storage.add_sale(sale)
        reconciliation = self.reconciler.apply_sale(sale)
        log.info("sale_created sale_id=%s product=%r qty=%s total=%.2f", sale.id, sale.product_name, sale.quantity, sale.total_amount)
        return sale, reconciliation

    def update_sale(self, sale_id: str, **changes) -> Sale:
        """Edit a stored sale. Stock is not adjusted."""
        current = self.get_sale(sale_id)
        unknown = set(changes) - SORTABLE_FIELDS - {"notes"}
        if unknown:
            raise ValidationError(f"Unknown sale fields: {', '.join(sorted(unknown))}")
        if "quantity" in changes and int(changes["quantity"]) <= 0:
            raise ValidationError("Quantity must be > 0.")
        if "unit_price" in changes and float(changes["unit_price"]) < 0:
            raise ValidationError("Unit price must be >= 0.")
        if "date" in changes:
            try:
                changes["date"] = parse_date(changes["date"])
            except ValueError as e:
                raise ValidationError(f"Invalid date: {changes['date']}") from e

        updated = replace(current, **changes)
        if "total_amount" not in changes and ({"quantity", "unit_price"} & set(changes)):
            updated = replace(updated, total_amount=round(updated.quantity * updated.unit_price, 2))
        self.storage.update_sale(updated)
        log.info("sale_updated sale_id=%s fields=%s", sale_id, ",".join(sorted(changes)))
        return updated

    def delete_sale(self, sale_id: str) -> None:
        self.get_sale(sale_id)
        self.storage.delete_sale(sale_id)
        log.info("sale_deleted sale_id=%s", sale_id)
