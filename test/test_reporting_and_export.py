import io
import json
import zipfile
from datetime import date
from pathlib import Path

import pytest
from openpyxl import load_workbook

from suiviventes.domain.errors import ValidationError
from suiviventes.domain.models import DashboardFilters, Sale, SaleFilters, StockItem
from suiviventes.repositories.local_repo import LocalStore
from suiviventes.repositories.storage import StorageFacade
from suiviventes.services.excel_service import ExcelService
from suiviventes.services.reporting_service import (
    CSV_HEADERS,
    calculate_dashboard_stats,
    export_filename,
    export_zip,
    filter_for_dashboard,
    format_currency,
    format_date,
    generate_csv,
)
from suiviventes.services.sales_service import SalesService
from suiviventes.services.stock_reconciler import StockReconciler


def _sale(sale_id, day, product, qty, total, client="Client Import", seller="Ana", register="C1") -> Sale:
    return Sale(sale_id, day, client, product, qty, round(total / qty, 2), total, "Non spécifié", "", seller, register, "Boissons")


SALES = [
    _sale("s1", "2024-04-01", "Coca-Cola", 2, 3.0, client="Marie"),
    _sale("s2", "2024-04-01", "Fanta", 1, 1.5, client="Paul", seller="Bob", register="C2"),
    _sale("s3", "2024-04-02", "Coca-Cola", 4, 6.0, client="Marie"),
]


def test_currency_and_date_formatting():
    assert format_currency(1234.56) == "1 234,56 €"
    assert format_currency(-45.2) == "-45,20 €"
    assert format_currency(0) == "0,00 €"
    assert format_date("2024-05-03") == "3 mai 2024"
    assert format_date(date(2024, 2, 14)) == "14 févr. 2024"
    assert format_date("n/a") == "n/a"


def test_dashboard_stats_aggregate_sales_and_stock():
    stock = [
        StockItem("1", "Coca-Cola", "Boissons", "Sodas", 92, 5, 150, 1.5),
        StockItem("2", "Fanta", "Boissons", "Sodas", -2, 5, 100, 1.5),
    ]
    stats = calculate_dashboard_stats(SALES, stock)

    assert stats.total_sales == 3
    assert stats.total_revenue == pytest.approx(10.5)
    assert stats.average_sale_value == pytest.approx(3.5)
    assert stats.total_quantity == 7
    assert stats.current_stock == 90
    assert [(n.name, n.amount) for n in stats.sales_by_seller] == [("Ana", 9.0), ("Bob", 1.5)]
    assert [n.name for n in stats.top_products] == ["Coca-Cola", "Fanta"]
    assert [n.name for n in stats.top_clients] == ["Marie", "Paul"]
    assert [(d.date, d.amount) for d in stats.sales_by_date] == [("2024-04-01", 4.5), ("2024-04-02", 6.0)]


def test_dashboard_stats_for_no_sales():
    stats = calculate_dashboard_stats([])
    assert stats.total_sales == 0
    assert stats.average_sale_value == 0.0
    assert stats.top_products == []


def test_top_lists_are_capped_at_five():
    sales = [_sale(f"s{i}", "2024-04-01", f"Produit {i}", 1, float(i + 1)) for i in range(8)]
    stats = calculate_dashboard_stats(sales)
    assert [n.name for n in stats.top_products] == ["Produit 7", "Produit 6", "Produit 5", "Produit 4", "Produit 3"]


def test_dashboard_filters():
    assert [s.id for s in filter_for_dashboard(SALES, DashboardFilters(start_date="2024-04-02"))] == ["s3"]
    assert [s.id for s in filter_for_dashboard(SALES, DashboardFilters(seller="Bob"))] == ["s2"]
    assert [s.id for s in filter_for_dashboard(SALES, DashboardFilters(product="coca"))] == ["s1", "s3"]


def test_csv_export_layout():
    lines = generate_csv(SALES[:1]).splitlines()

    assert lines[0].split(";") == list(CSV_HEADERS)
    assert lines[1].split(";") == [
        "2024-04-01", "Marie", "Coca-Cola", "2", "3.00", "1.50", "Non spécifié", "Ana", "C1", "Boissons", "",
    ]


def test_reimporting_exported_csv_yields_duplicates(tmp_path: Path):
    store = LocalStore(tmp_path / "roundtrip.db")
    store.init_db()
    storage = StorageFacade(store)
    storage.add_sales(SALES)
    path = tmp_path / "ventes.csv"
    path.write_text(generate_csv(SALES), encoding="utf-8")

    preview = ExcelService(storage, StockReconciler(storage)).preview_sales(path)

    assert preview.invalid_rows == []
    assert preview.total_rows == 3
    assert preview.duplicates_count == 3


def test_reimporting_manual_sale_without_optional_fields_is_duplicate(tmp_path: Path):
    store = LocalStore(tmp_path / "manual.db")
    store.init_db()
    storage = StorageFacade(store)
    reconciler = StockReconciler(storage)
    SalesService(storage, reconciler).add_sale(
        date="2024-04-01", client_name="Marie", product_name="Coca-Cola", quantity=2, unit_price=1.5
    )
    path = tmp_path / "ventes.csv"
    path.write_text(generate_csv(storage.get_sales()), encoding="utf-8")

    preview = ExcelService(storage, reconciler).preview_sales(path)

    assert preview.invalid_rows == []
    assert preview.total_rows == 1
    assert preview.duplicates_count == 1


def test_export_zip_csv_contains_readme_and_data(tmp_path: Path):
    filters = SaleFilters(start_date="2024-04-01", client_name="Marie")
    target = export_zip(SALES, filters, "csv", tmp_path, today=date(2024, 5, 3))

    assert target.name == "ventes-2024-05-03.zip"
    with zipfile.ZipFile(target) as zf:
        assert sorted(zf.namelist()) == ["README.txt", "ventes.csv"]
        readme = zf.read("README.txt").decode("utf-8")
        assert "Export des ventes - 3 mai 2024" in readme
        assert "- Date début: 1 avr. 2024" in readme
        assert "- Client: Marie" in readme
        assert "Produit:" not in readme
        assert "Nombre de ventes: 3" in readme
        assert "Total: 10.50€" in readme


def test_export_zip_json_and_excel(tmp_path: Path):
    json_zip = export_zip(SALES, None, "json", tmp_path / "json", today=date(2024, 5, 3))
    with zipfile.ZipFile(json_zip) as zf:
        records = json.loads(zf.read("ventes.json"))
    assert [r["id"] for r in records] == ["s1", "s2", "s3"]

    xlsx_zip = export_zip(SALES, None, "excel", tmp_path / "xlsx", today=date(2024, 5, 3))
    with zipfile.ZipFile(xlsx_zip) as zf:
        wb = load_workbook(io.BytesIO(zf.read("ventes.xlsx")))
    ws = wb.active
    assert [c.value for c in ws[1]] == list(CSV_HEADERS)
    assert ws.max_row == 4
    assert ws["E2"].value == 3.0


def test_export_rejects_unknown_format(tmp_path: Path):
    with pytest.raises(ValidationError):
        export_zip(SALES, None, "pdf", tmp_path)


def test_export_filename():
    assert export_filename("ventes", date(2024, 1, 9)) == "ventes-2024-01-09.zip"
