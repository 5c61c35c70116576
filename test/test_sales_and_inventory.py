from pathlib import Path

import pytest

from suiviventes.domain.errors import NotFoundError, ValidationError
from suiviventes.domain.models import SaleFilters, SortConfig, StockFilters, StockItem
from suiviventes.repositories.local_repo import LocalStore
from suiviventes.repositories.storage import StorageFacade
from suiviventes.services.inventory_service import InventoryService, stock_status
from suiviventes.services.sales_service import SalesService
from suiviventes.services.stock_reconciler import StockReconciler


def _storage(tmp_path: Path) -> StorageFacade:
    store = LocalStore(tmp_path / "services.db")
    store.init_db()
    return StorageFacade(store)


def _sales(storage: StorageFacade) -> SalesService:
    return SalesService(storage, StockReconciler(storage))


def test_add_sale_derives_total_and_takes_stock_out(tmp_path: Path):
    storage = _storage(tmp_path)
    storage.add_stock_item(StockItem("coca", "Coca-Cola", "Boissons", "Sodas", 10, 5, 20, 1.5))
    sales = _sales(storage)

    sale, reconciliation = sales.add_sale(
        date="03/04/2024",
        client_name="Marie",
        product_name="Coca-Cola",
        quantity=4,
        unit_price=1.5,
        payment_method="Espèces",
    )

    assert sale.date == "2024-04-03"
    assert sale.total_amount == 6.0
    assert storage.get_stock()[0].current_stock == 6
    movements = storage.get_stock_movements()
    assert [(m.type, m.quantity, m.reason) for m in movements] == [("out", 4, f"Vente #{sale.id}")]
    assert reconciliation.unmatched == []


@pytest.mark.parametrize(
    "overrides",
    [
        {"quantity": 0},
        {"unit_price": -1.0},
        {"product_name": "  "},
        {"date": "31/02/2024"},
    ],
)
def test_add_sale_rejects_invalid_input(tmp_path: Path, overrides):
    sales = _sales(_storage(tmp_path))
    values = dict(date="2024-04-03", client_name="Marie", product_name="Eau", quantity=1, unit_price=1.0)
    values.update(overrides)

    with pytest.raises(ValidationError):
        sales.add_sale(**values)


def test_list_sales_filters_and_sorts(tmp_path: Path):
    sales = _sales(_storage(tmp_path))
    sales.add_sale(date="2024-04-01", client_name="Marie", product_name="Eau", quantity=1, unit_price=1.0, seller="Ana")
    sales.add_sale(date="2024-04-02", client_name="Paul", product_name="Coca-Cola", quantity=2, unit_price=1.5, seller="Bob")
    sales.add_sale(date="2024-04-03", client_name="Marine", product_name="Fanta", quantity=5, unit_price=1.5, seller="Ana")

    newest_first = sales.list_sales()
    assert [s.date for s in newest_first] == ["2024-04-03", "2024-04-02", "2024-04-01"]

    by_client = sales.list_sales(SaleFilters(client_name="mar"), SortConfig("total_amount", "asc"))
    assert [s.client_name for s in by_client] == ["Marie", "Marine"]

    ranged = sales.list_sales(SaleFilters(start_date="2024-04-02", min_amount="2", max_amount="oops"))
    assert [s.product_name for s in ranged] == ["Fanta", "Coca-Cola"]

    assert [s.seller for s in sales.list_sales(SaleFilters(seller="Bob"))] == ["Bob"]
    assert len(sales.list_sales(search="coca")) == 1

    with pytest.raises(ValidationError):
        sales.list_sales(sort=SortConfig("id", "asc"))


def test_update_and_delete_sale_leave_stock_alone(tmp_path: Path):
    storage = _storage(tmp_path)
    storage.add_stock_item(StockItem("eau", "Eau", "Boissons", "Eaux", 10, 5, 10, 1.0))
    sales = _sales(storage)
    sale, _ = sales.add_sale(date="2024-04-01", client_name="Marie", product_name="Eau", quantity=2, unit_price=1.0)

    updated = sales.update_sale(sale.id, quantity=3)
    assert updated.total_amount == 3.0
    with pytest.raises(ValidationError):
        sales.update_sale(sale.id, colour="red")
    assert storage.get_stock()[0].current_stock == 8

    sales.delete_sale(sale.id)
    assert storage.get_sales() == []
    assert storage.get_stock()[0].current_stock == 8
    with pytest.raises(NotFoundError):
        sales.delete_sale(sale.id)


def test_add_item_records_initial_stock_movement(tmp_path: Path):
    storage = _storage(tmp_path)
    inventory = InventoryService(storage)

    item = inventory.add_item("Fanta", "Boissons", "Sodas", initial_stock=24, alert_threshold=6, unit_price=1.5)

    assert item.current_stock == 24
    movements = inventory.list_movements()
    assert [(m.product_id, m.type, m.quantity, m.reason) for m in movements] == [(item.id, "in", 24, "Stock initial")]

    with pytest.raises(ValidationError):
        inventory.add_item("", "Boissons")


def test_stock_status_thresholds():
    assert stock_status(StockItem("a", "A", "C", "", 5, 5, 100, 1.0)) == "low"
    assert stock_status(StockItem("b", "B", "C", "", 81, 5, 100, 1.0)) == "high"
    assert stock_status(StockItem("c", "C", "C", "", 80, 5, 100, 1.0)) == "normal"


def test_restock_brings_item_back_to_initial(tmp_path: Path):
    storage = _storage(tmp_path)
    storage.add_stock_item(StockItem("eau", "Eau", "Boissons", "Eaux", 3, 5, 20, 1.0))
    inventory = InventoryService(storage)

    movement = inventory.restock("eau")

    assert (movement.type, movement.quantity, movement.reason) == ("in", 17, "Réapprovisionnement manuel")
    assert inventory.get_item("eau").current_stock == 20
    with pytest.raises(ValidationError):
        inventory.restock("eau")
    with pytest.raises(NotFoundError):
        inventory.restock("absent")


def test_restock_low_items_only_touches_items_under_threshold(tmp_path: Path):
    storage = _storage(tmp_path)
    storage.add_stock_items([
        StockItem("low", "Chips", "Snacks", "", 2, 5, 30, 1.0),
        StockItem("ok", "Eau", "Boissons", "", 15, 5, 20, 1.0),
    ])
    inventory = InventoryService(storage)

    assert [i.id for i in inventory.low_stock_items()] == ["low"]
    movements = inventory.restock_low_items()

    assert [(m.product_id, m.quantity, m.reason) for m in movements] == [("low", 28, "Réapprovisionnement automatique")]
    assert inventory.low_stock_items() == []
    assert inventory.get_item("ok").current_stock == 15


def test_reset_all_uses_signed_movements(tmp_path: Path):
    storage = _storage(tmp_path)
    storage.add_stock_items([
        StockItem("under", "Chips", "Snacks", "", -4, 5, 30, 1.0),
        StockItem("over", "Eau", "Boissons", "", 25, 5, 20, 1.0),
        StockItem("same", "Jus", "Boissons", "", 10, 5, 10, 1.0),
    ])
    inventory = InventoryService(storage)

    movements = inventory.reset_all()

    assert sorted((m.product_id, m.type, m.quantity) for m in movements) == [("over", "out", 5), ("under", "in", 34)]
    assert all(m.reason == "Réinitialisation manuelle" for m in movements)
    assert {i.id: i.current_stock for i in inventory.list_items()} == {"under": 30, "over": 20, "same": 10}


def test_list_items_and_movements_filters(tmp_path: Path):
    storage = _storage(tmp_path)
    inventory = InventoryService(storage)
    fanta = inventory.add_item("Fanta", "Boissons", "Sodas", initial_stock=10)
    inventory.add_item("Chips", "Snacks", "", initial_stock=2)

    assert [i.name for i in inventory.list_items(StockFilters(category="Snacks"))] == ["Chips"]
    assert [i.name for i in inventory.list_items(StockFilters(stock_status="low"))] == ["Chips"]
    assert [i.name for i in inventory.list_items(search="sod")] == ["Fanta"]

    movements = inventory.list_movements(StockFilters(product_name="fan", min_quantity="5"))
    assert [m.product_id for m in movements] == [fanta.id]
