from __future__ import annotations

import logging
from typing import Mapping, Sequence

from suiviventes.domain.models import RowError, Sale, StockItem, new_id
from suiviventes.services.header_mapping import map_row, normalize_headers
from suiviventes.services.parsing import (
    is_zero_literal,
    parse_amount,
    parse_date,
    parse_quantity,
)

log = logging.getLogger("suiviventes.imports")

UNSPECIFIED = "Non spécifié"
IMPORT_CLIENT = "Client Import"
DEFAULT_ALERT_THRESHOLD = 5

SALES_REQUIRED_FIELDS = ("product", "quantity", "amount", "date")
STOCK_REQUIRED_FIELDS = ("product", "type", "quantity")

# Optional stock columns are looked up by exact header name.
ALERT_THRESHOLD_KEYS = ("SeuilAlerte", "seuilAlerte", "AlertThreshold")
UNIT_PRICE_KEYS = ("PrixUnitaire", "prixUnitaire", "UnitPrice")
SUBCATEGORY_KEYS = ("SousType", "sousType", "Subcategory")

Row = Mapping[str, object]


def display_row_number(index: int) -> int:
    """Spreadsheet row shown to the user: header is row 1, data starts at 2."""
    return index + 2


def _first_present(row: Row, keys: Sequence[str]) -> object:
    for key in keys:
        value = row.get(key)
        if value is not None and value != "":
            return value
    return None


def _whole_number(value: float) -> int | None:
    if not float(value).is_integer():
        return None
    return int(value)


def _sale_quantity(mapped: dict) -> tuple[int | None, list[str]]:
    if "quantity" not in mapped:
        return None, ["Missing quantity"]
    number = parse_quantity(mapped["quantity"])
    if number is None:
        return None, ["Invalid quantity"]
    qty = _whole_number(number)
    if qty is None or qty <= 0:
        return None, ["Invalid quantity"]
    return qty, []


def validate_sales_rows(rows: Sequence[Row]) -> tuple[list[Sale], list[RowError]]:
    sales: list[Sale] = []
    errors: list[RowError] = []
    if not rows:
        return sales, errors

    mapping = normalize_headers(list(rows[0].keys()))
    missing = [f for f in SALES_REQUIRED_FIELDS if f not in mapping]
    if missing:
        log.warning("sales_import_missing_columns fields=%s", missing)
        errors.append(RowError(row=1, errors=(f"Missing columns in file: {', '.join(missing)}",)))
        return sales, errors

    for index, row in enumerate(rows):
        row_number = display_row_number(index)
        mapped = map_row(row, mapping)
        row_errors: list[str] = []

        if "date" not in mapped:
            row_errors.append("Missing date")
        if "product" not in mapped:
            row_errors.append("Missing product")

        quantity, qty_errors = _sale_quantity(mapped)
        row_errors.extend(qty_errors)

        total_amount = 0.0
        if "amount" not in mapped:
            row_errors.append("Missing amount")
        else:
            raw_amount = mapped["amount"]
            total_amount = parse_amount(raw_amount)
            numeric = isinstance(raw_amount, (int, float)) and not isinstance(raw_amount, bool)
            if total_amount == 0 and not numeric and not is_zero_literal(raw_amount):
                row_errors.append("Invalid amount")

        sale_date = None
        if "date" in mapped:
            try:
                sale_date = parse_date(mapped["date"])
            except ValueError:
                row_errors.append("Invalid date")

        if row_errors:
            log.info("sales_row_rejected row=%s errors=%s", row_number, row_errors)
            errors.append(RowError(row=row_number, errors=tuple(row_errors)))
            continue

        sales.append(
            Sale(
                id=new_id(),
                date=sale_date,
                client_name=IMPORT_CLIENT,
                product_name=str(mapped["product"]).strip(),
                quantity=quantity,
                unit_price=total_amount / quantity,
                total_amount=total_amount,
                payment_method=UNSPECIFIED,
                notes="",
                seller=str(mapped.get("seller", UNSPECIFIED)).strip(),
                register=str(mapped.get("register", UNSPECIFIED)).strip(),
                category=str(mapped.get("type", UNSPECIFIED)).strip(),
            )
        )

    log.info("sales_rows_validated valid=%s invalid=%s", len(sales), len(errors))
    return sales, errors


def validate_stock_rows(rows: Sequence[Row]) -> tuple[list[StockItem], list[RowError]]:
    items: list[StockItem] = []
    errors: list[RowError] = []
    if not rows:
        return items, errors

    mapping = normalize_headers(list(rows[0].keys()))

    for index, row in enumerate(rows):
        row_number = display_row_number(index)
        mapped = map_row(row, mapping)
        row_errors: list[str] = []

        if "product" not in mapped:
            row_errors.append("Missing product")
        if "type" not in mapped:
            row_errors.append("Missing type/category")

        quantity = None
        number = parse_quantity(mapped.get("quantity"))
        if number is not None:
            quantity = _whole_number(number)
        if quantity is None:
            row_errors.append("Invalid quantity")

        if row_errors:
            log.info("stock_row_rejected row=%s errors=%s", row_number, row_errors)
            errors.append(RowError(row=row_number, errors=tuple(row_errors)))
            continue

        threshold = parse_quantity(_first_present(row, ALERT_THRESHOLD_KEYS))
        items.append(
            StockItem(
                id=new_id(),
                name=str(mapped["product"]).strip(),
                category=str(mapped["type"]).strip(),
                subcategory=str(_first_present(row, SUBCATEGORY_KEYS) or "").strip(),
                current_stock=quantity,
                alert_threshold=int(threshold) if threshold else DEFAULT_ALERT_THRESHOLD,
                initial_stock=max(quantity, 0),
                unit_price=parse_amount(_first_present(row, UNIT_PRICE_KEYS)),
            )
        )

    log.info("stock_rows_validated valid=%s invalid=%s", len(items), len(errors))
    return items, errors
