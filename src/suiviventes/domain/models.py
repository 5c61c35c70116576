from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass, field
from typing import Optional, Union


def new_id() -> str:
    return str(uuid.uuid4())


def _pick(data: dict, snake: str, camel: str | None = None, default=None):
    if snake in data:
        return data[snake]
    if camel and camel in data:
        return data[camel]
    return default


@dataclass(frozen=True)
class Sale:
    id: str
    date: str
    client_name: str
    product_name: str
    quantity: int
    unit_price: float
    total_amount: float
    payment_method: str
    notes: Optional[str] = None
    seller: Optional[str] = None
    register: Optional[str] = None
    category: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "Sale":
        return cls(
            id=str(data["id"]),
            date=str(data["date"]),
            client_name=str(_pick(data, "client_name", "clientName", "")),
            product_name=str(_pick(data, "product_name", "productName", "")),
            quantity=int(_pick(data, "quantity", default=0)),
            unit_price=float(_pick(data, "unit_price", "unitPrice", 0.0)),
            total_amount=float(_pick(data, "total_amount", "totalAmount", 0.0)),
            payment_method=str(_pick(data, "payment_method", "paymentMethod", "")),
            notes=_pick(data, "notes"),
            seller=_pick(data, "seller"),
            register=_pick(data, "register"),
            category=_pick(data, "category"),
        )


@dataclass(frozen=True)
class StockItem:
    id: str
    name: str
    category: str
    subcategory: str
    current_stock: int
    alert_threshold: int
    initial_stock: int
    unit_price: float

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "StockItem":
        return cls(
            id=str(data["id"]),
            name=str(data["name"]),
            category=str(_pick(data, "category", default="")),
            subcategory=str(_pick(data, "subcategory", default="") or ""),
            current_stock=int(_pick(data, "current_stock", "currentStock", 0)),
            alert_threshold=int(_pick(data, "alert_threshold", "alertThreshold", 5)),
            initial_stock=int(_pick(data, "initial_stock", "initialStock", 0)),
            unit_price=float(_pick(data, "unit_price", "unitPrice", 0.0)),
        )


@dataclass(frozen=True)
class StockMovement:
    id: str
    date: str
    product_id: str
    type: str
    quantity: int
    reason: str
    register: Optional[str] = None
    seller: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "StockMovement":
        return cls(
            id=str(data["id"]),
            date=str(data["date"]),
            product_id=str(_pick(data, "product_id", "productId")),
            type=str(data["type"]),
            quantity=int(data["quantity"]),
            reason=str(_pick(data, "reason", default="")),
            register=_pick(data, "register"),
            seller=_pick(data, "seller"),
        )


ImportItem = Union[Sale, StockItem]


@dataclass(frozen=True)
class RowError:
    row: int
    errors: tuple[str, ...]


@dataclass
class DuplicateInfo:
    item: ImportItem
    is_duplicate: bool
    should_keep: bool


@dataclass
class ImportPreview:
    kind: str
    data: list[DuplicateInfo]
    total_rows: int
    total_quantity: float
    duplicates_count: int
    invalid_rows: list[RowError] = field(default_factory=list)
    total_amount: Optional[float] = None

    @property
    def can_commit(self) -> bool:
        return not self.invalid_rows

    def kept_items(self) -> list[ImportItem]:
        return [info.item for info in self.data if info.should_keep]

    def toggle_keep(self, index: int) -> bool:
        info = self.data[index]
        info.should_keep = not info.should_keep
        return info.should_keep


@dataclass(frozen=True)
class UnmatchedProductWarning:
    """Imported product with no stock item of the same name."""

    product_name: str
    sales_count: int
    quantity: int


@dataclass(frozen=True)
class ReconciliationResult:
    movements: list[StockMovement]
    updated_items: list[StockItem]
    unmatched: list[UnmatchedProductWarning]


@dataclass(frozen=True)
class NamedAmount:
    name: str
    amount: float


@dataclass(frozen=True)
class DatedAmount:
    date: str
    amount: float


@dataclass(frozen=True)
class DashboardStats:
    total_sales: int
    total_revenue: float
    average_sale_value: float
    total_quantity: int
    current_stock: int
    sales_by_seller: list[NamedAmount]
    sales_by_register: list[NamedAmount]
    top_products: list[NamedAmount]
    top_clients: list[NamedAmount]
    sales_by_date: list[DatedAmount]


@dataclass(frozen=True)
class SaleFilters:
    start_date: str = ""
    end_date: str = ""
    client_name: str = ""
    product_name: str = ""
    min_amount: str = ""
    max_amount: str = ""
    seller: str = ""
    register: str = ""
    category: str = ""


@dataclass(frozen=True)
class StockFilters:
    product_name: str = ""
    category: str = ""
    subcategory: str = ""
    register: str = ""
    seller: str = ""
    start_date: str = ""
    end_date: str = ""
    min_quantity: str = ""
    max_quantity: str = ""
    stock_status: str = ""


@dataclass(frozen=True)
class DashboardFilters:
    start_date: str = ""
    end_date: str = ""
    seller: str = ""
    register: str = ""
    category: str = ""
    product: str = ""


@dataclass(frozen=True)
class SortConfig:
    field: str = "date"
    direction: str = "desc"
