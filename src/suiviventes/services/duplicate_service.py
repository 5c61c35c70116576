from __future__ import annotations

from typing import Iterable, Sequence

from suiviventes.domain.models import DuplicateInfo, Sale, StockItem
from suiviventes.services.row_validation import UNSPECIFIED

# Absorbs rounding differences between a stored total and its re-import.
AMOUNT_TOLERANCE = 0.01


def _optional(value) -> str:
    """Empty, missing and "Non spécifié" optional fields compare equal."""
    text = (value or "").strip()
    return "" if text == UNSPECIFIED else text


def is_duplicate_sale(candidate: Sale, existing: Sale) -> bool:
    return (
        existing.date == candidate.date
        and existing.product_name == candidate.product_name
        and existing.quantity == candidate.quantity
        and abs(existing.total_amount - candidate.total_amount) < AMOUNT_TOLERANCE
        and _optional(existing.seller) == _optional(candidate.seller)
        and _optional(existing.register) == _optional(candidate.register)
        and _optional(existing.category) == _optional(candidate.category)
    )


def is_duplicate_stock_item(candidate: StockItem, existing: StockItem) -> bool:
    return existing.name == candidate.name and existing.category == candidate.category


def find_sale_duplicates(candidates: Iterable[Sale], existing: Sequence[Sale]) -> list[DuplicateInfo]:
    out: list[DuplicateInfo] = []
    for sale in candidates:
        dup = any(is_duplicate_sale(sale, other) for other in existing)
        out.append(DuplicateInfo(item=sale, is_duplicate=dup, should_keep=not dup))
    return out


def find_stock_duplicates(candidates: Iterable[StockItem], existing: Sequence[StockItem]) -> list[DuplicateInfo]:
    out: list[DuplicateInfo] = []
    for item in candidates:
        dup = any(is_duplicate_stock_item(item, other) for other in existing)
        out.append(DuplicateInfo(item=item, is_duplicate=dup, should_keep=not dup))
    return out
