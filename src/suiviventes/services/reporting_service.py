from __future__ import annotations

import csv
import io
import json
import logging
import zipfile
from collections import defaultdict
from datetime import date, datetime
from pathlib import Path
from typing import Iterable, Optional, Sequence

from openpyxl import Workbook
from openpyxl.styles import Font

from suiviventes.domain.errors import ValidationError
from suiviventes.domain.models import (
    DashboardFilters,
    DashboardStats,
    DatedAmount,
    NamedAmount,
    Sale,
    SaleFilters,
    StockItem,
)

log = logging.getLogger("suiviventes.reporting")

CSV_HEADERS = (
    "Date",
    "Client",
    "Produit",
    "Quantité",
    "Montant total",
    "Prix unitaire",
    "Méthode de paiement",
    "Vendeur",
    "Caisse",
    "Catégorie",
    "Notes",
)
EXPORT_FORMATS = ("csv", "json", "excel")
TOP_LIMIT = 5

_FRENCH_SHORT_MONTHS = (
    "janv.", "févr.", "mars", "avr.", "mai", "juin",
    "juil.", "août", "sept.", "oct.", "nov.", "déc.",
)


def format_currency(amount: float) -> str:
    """French euro format: ``1 234,56 €``."""
    grouped = f"{abs(amount):,.2f}".replace(",", " ").replace(".", ",")
    sign = "-" if round(amount, 2) < 0 else ""
    return f"{sign}{grouped} €"


def format_date(value: str | date) -> str:
    """``2024-05-03`` -> ``3 mai 2024``; unparseable text is returned unchanged."""
    if isinstance(value, datetime):
        d = value.date()
    elif isinstance(value, date):
        d = value
    else:
        try:
            d = datetime.fromisoformat(str(value)).date()
        except ValueError:
            return str(value)
    return f"{d.day} {_FRENCH_SHORT_MONTHS[d.month - 1]} {d.year}"


def _ranked(totals: dict[str, float], limit: Optional[int] = None) -> list[NamedAmount]:
    ranked = sorted((NamedAmount(name, amount) for name, amount in totals.items()), key=lambda n: n.amount, reverse=True)
    return ranked[:limit] if limit else ranked


def calculate_dashboard_stats(sales: Sequence[Sale], stock_items: Iterable[StockItem] | None = None) -> DashboardStats:
    current_stock = sum(i.current_stock for i in stock_items or [])
    if not sales:
        return DashboardStats(
            total_sales=0,
            total_revenue=0.0,
            average_sale_value=0.0,
            total_quantity=0,
            current_stock=current_stock,
            sales_by_seller=[],
            sales_by_register=[],
            top_products=[],
            top_clients=[],
            sales_by_date=[],
        )

    total_revenue = sum(s.total_amount for s in sales)
    by_seller: dict[str, float] = defaultdict(float)
    by_register: dict[str, float] = defaultdict(float)
    by_product: dict[str, float] = defaultdict(float)
    by_client: dict[str, float] = defaultdict(float)
    by_date: dict[str, float] = defaultdict(float)
    for s in sales:
        if s.seller:
            by_seller[s.seller] += s.total_amount
        if s.register:
            by_register[s.register] += s.total_amount
        by_product[s.product_name] += s.total_amount
        by_client[s.client_name] += s.total_amount
        by_date[s.date] += s.total_amount

    return DashboardStats(
        total_sales=len(sales),
        total_revenue=total_revenue,
        average_sale_value=total_revenue / len(sales),
        total_quantity=sum(s.quantity for s in sales),
        current_stock=current_stock,
        sales_by_seller=_ranked(by_seller),
        sales_by_register=_ranked(by_register),
        top_products=_ranked(by_product, TOP_LIMIT),
        top_clients=_ranked(by_client, TOP_LIMIT),
        sales_by_date=[DatedAmount(d, by_date[d]) for d in sorted(by_date)],
    )


def filter_for_dashboard(sales: Iterable[Sale], filters: DashboardFilters) -> list[Sale]:
    # seller/register/category only exclude sales that carry a value
    out = []
    for s in sales:
        if filters.start_date and s.date < filters.start_date:
            continue
        if filters.end_date and s.date > filters.end_date:
            continue
        if filters.seller and s.seller and s.seller != filters.seller:
            continue
        if filters.register and s.register and s.register != filters.register:
            continue
        if filters.category and s.category and s.category != filters.category:
            continue
        if filters.product and filters.product.lower() not in s.product_name.lower():
            continue
        out.append(s)
    return out


def generate_csv(sales: Iterable[Sale]) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf, delimiter=";", lineterminator="\n")
    writer.writerow(CSV_HEADERS)
    for s in sales:
        writer.writerow([
            s.date,
            s.client_name,
            s.product_name,
            s.quantity,
            f"{s.total_amount:.2f}",
            f"{s.unit_price:.2f}",
            s.payment_method,
            s.seller or "",
            s.register or "",
            s.category or "",
            s.notes or "",
        ])
    return buf.getvalue()


def generate_xlsx(sales: Iterable[Sale]) -> bytes:
    wb = Workbook()
    ws = wb.active
    ws.title = "Ventes"
    ws.append(list(CSV_HEADERS))
    for c in ws[1]:
        c.font = Font(bold=True)

    for s in sales:
        ws.append([
            s.date,
            s.client_name,
            s.product_name,
            s.quantity,
            s.total_amount,
            s.unit_price,
            s.payment_method,
            s.seller or "",
            s.register or "",
            s.category or "",
            s.notes or "",
        ])
        r = ws.max_row
        ws[f"E{r}"].number_format = "#,##0.00"
        ws[f"F{r}"].number_format = "#,##0.00"

    for col, w in {"A": 12, "B": 20, "C": 28, "D": 10, "E": 14, "F": 14, "G": 20, "H": 16, "I": 12, "J": 16, "K": 30}.items():
        ws.column_dimensions[col].width = w

    out = io.BytesIO()
    wb.save(out)
    return out.getvalue()


def export_filename(prefix: str, today: date | None = None) -> str:
    return f"{prefix}-{(today or date.today()).isoformat()}.zip"


def build_readme(sales: Sequence[Sale], filters: SaleFilters, exported_on: date) -> str:
    lines = [
        f"Export des ventes - {format_date(exported_on)}",
        "---------------------------",
        "Filtres appliqués:",
    ]
    if filters.start_date:
        lines.append(f"- Date début: {format_date(filters.start_date)}")
    if filters.end_date:
        lines.append(f"- Date fin: {format_date(filters.end_date)}")
    if filters.client_name:
        lines.append(f"- Client: {filters.client_name}")
    if filters.product_name:
        lines.append(f"- Produit: {filters.product_name}")
    if filters.min_amount:
        lines.append(f"- Montant min: {filters.min_amount}€")
    if filters.max_amount:
        lines.append(f"- Montant max: {filters.max_amount}€")
    total = sum(s.total_amount for s in sales)
    lines += ["", f"Nombre de ventes: {len(sales)}", f"Total: {total:.2f}€", ""]
    return "\n".join(lines)


def export_zip(
    sales: Sequence[Sale],
    filters: SaleFilters | None,
    fmt: str,
    target_dir: str | Path,
    today: date | None = None,
    prefix: str = "ventes",
) -> Path:
    """Write ``{prefix}-YYYY-MM-DD.zip`` with a README and the sales in ``fmt``."""
    if fmt not in EXPORT_FORMATS:
        raise ValidationError(f"Unsupported export format: {fmt}")
    today = today or date.today()
    target = Path(target_dir) / export_filename(prefix, today)
    target.parent.mkdir(parents=True, exist_ok=True)

    with zipfile.ZipFile(target, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        zf.writestr("README.txt", build_readme(sales, filters or SaleFilters(), today))
        if fmt == "csv":
            zf.writestr("ventes.csv", generate_csv(sales))
        elif fmt == "json":
            zf.writestr("ventes.json", json.dumps([s.to_dict() for s in sales], ensure_ascii=False, indent=2))
        else:
            zf.writestr("ventes.xlsx", generate_xlsx(sales))

    log.info("sales_exported file=%s format=%s sales=%s", target.name, fmt, len(sales))
    return target


class ReportingService:
    def __init__(self, storage):
        self.storage = storage

    def dashboard(self, filters: DashboardFilters | None = None) -> DashboardStats:
        sales = self.storage.get_sales()
        if filters is not None:
            sales = filter_for_dashboard(sales, filters)
        return calculate_dashboard_stats(sales, self.storage.get_stock())

    def export_sales(self, sales: Sequence[Sale], filters: SaleFilters | None, fmt: str, target_dir: str | Path) -> Path:
        return export_zip(sales, filters, fmt, target_dir)
