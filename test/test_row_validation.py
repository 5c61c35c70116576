from suiviventes.domain.models import Sale, StockItem
from suiviventes.services.duplicate_service import (
    find_sale_duplicates,
    find_stock_duplicates,
    is_duplicate_sale,
)
from suiviventes.services.row_validation import (
    DEFAULT_ALERT_THRESHOLD,
    IMPORT_CLIENT,
    UNSPECIFIED,
    validate_sales_rows,
    validate_stock_rows,
)


def _sales_row(**overrides):
    row = {
        "Date": "03/04/2024",
        "Produit": " Coca-Cola ",
        "Quantité": "2",
        "Montant": "3,00 €",
        "Vendeur": "Ana",
        "Caisse": "C1",
        "Types": "Boissons",
    }
    row.update(overrides)
    return row


def _sale(**overrides) -> Sale:
    values = dict(
        id="s1",
        date="2024-04-03",
        client_name=IMPORT_CLIENT,
        product_name="Coca-Cola",
        quantity=2,
        unit_price=1.5,
        total_amount=3.0,
        payment_method=UNSPECIFIED,
        notes="",
        seller="Ana",
        register="C1",
        category="Boissons",
    )
    values.update(overrides)
    return Sale(**values)


def test_valid_sales_row_builds_sale():
    sales, errors = validate_sales_rows([_sales_row()])

    assert errors == []
    assert len(sales) == 1
    sale = sales[0]
    assert sale.date == "2024-04-03"
    assert sale.product_name == "Coca-Cola"
    assert sale.quantity == 2
    assert sale.total_amount == 3.0
    assert sale.unit_price == 1.5
    assert sale.client_name == IMPORT_CLIENT
    assert sale.payment_method == UNSPECIFIED
    assert (sale.seller, sale.register, sale.category) == ("Ana", "C1", "Boissons")


def test_invalid_rows_are_reported_with_spreadsheet_row_numbers():
    rows = [
        _sales_row(),
        _sales_row(**{"Produit": "", "Quantité": "abc"}),
        _sales_row(**{"Montant": "n/a", "Date": "99/99/2024"}),
        _sales_row(**{"Montant": "0,00 €", "Quantité": "1"}),
    ]
    sales, errors = validate_sales_rows(rows)

    assert len(sales) == 2
    assert sales[1].total_amount == 0.0
    assert [(e.row, e.errors) for e in errors] == [
        (3, ("Missing product", "Invalid quantity")),
        (4, ("Invalid amount", "Invalid date")),
    ]


def test_boolean_amount_is_invalid():
    _, errors = validate_sales_rows([_sales_row(**{"Montant": True})])
    assert [e.errors for e in errors] == [("Invalid amount",)]


def test_fractional_or_negative_sale_quantity_is_invalid():
    _, errors = validate_sales_rows([_sales_row(**{"Quantité": "1.5"}), _sales_row(**{"Quantité": "-2"})])
    assert [e.errors for e in errors] == [("Invalid quantity",), ("Invalid quantity",)]


def test_missing_required_columns_block_the_whole_file():
    sales, errors = validate_sales_rows([{"Produit": "Coca-Cola", "Date": "01/01/2024"}])

    assert sales == []
    assert len(errors) == 1
    assert errors[0].row == 1
    assert errors[0].errors == ("Missing columns in file: quantity, amount",)


def test_optional_sale_columns_default_to_unspecified():
    row = {"Date": "2024-01-05", "Produit": "Eau", "Quantité": 1, "Montant": 1.0}
    sales, errors = validate_sales_rows([row])

    assert errors == []
    assert (sales[0].seller, sales[0].register, sales[0].category) == (UNSPECIFIED, UNSPECIFIED, UNSPECIFIED)


def test_stock_rows_read_optional_columns_and_allow_negative_stock():
    rows = [
        {"Produit": "Fanta", "Types": "Boissons", "Quantité": "48", "SeuilAlerte": "10", "PrixUnitaire": "1,50", "SousType": "Sodas"},
        {"Produit": "Chips", "Types": "Snacks", "Quantité": "-3", "SeuilAlerte": "", "PrixUnitaire": "", "SousType": ""},
        {"Produit": "Mystère", "Types": "", "Quantité": "x", "SeuilAlerte": "", "PrixUnitaire": "", "SousType": ""},
    ]
    items, errors = validate_stock_rows(rows)

    assert len(items) == 2
    fanta, chips = items
    assert (fanta.current_stock, fanta.initial_stock, fanta.alert_threshold) == (48, 48, 10)
    assert fanta.unit_price == 1.5
    assert fanta.subcategory == "Sodas"
    assert (chips.current_stock, chips.initial_stock) == (-3, 0)
    assert chips.alert_threshold == DEFAULT_ALERT_THRESHOLD
    assert [(e.row, e.errors) for e in errors] == [(4, ("Missing type/category", "Invalid quantity"))]


def test_sale_duplicate_requires_all_identity_fields():
    original = _sale()
    assert is_duplicate_sale(_sale(id="other", total_amount=3.004), original)
    assert not is_duplicate_sale(_sale(total_amount=3.02), original)
    assert not is_duplicate_sale(_sale(seller="Bob"), original)
    assert not is_duplicate_sale(_sale(date="2024-04-04"), original)
    assert not is_duplicate_sale(_sale(product_name="Fanta"), original)
    assert not is_duplicate_sale(_sale(quantity=3), original)
    assert not is_duplicate_sale(_sale(register="C2"), original)
    assert not is_duplicate_sale(_sale(category="Snacks"), original)


def test_empty_and_unspecified_optional_fields_match():
    manual = _sale(seller=None, register="", category=None)
    imported = _sale(id="s2", seller=UNSPECIFIED, register=UNSPECIFIED, category=UNSPECIFIED)

    assert is_duplicate_sale(imported, manual)
    assert not is_duplicate_sale(imported, _sale(seller=None, register=None, category="Boissons"))


def test_duplicates_are_not_kept_by_default():
    infos = find_sale_duplicates([_sale(id="n1"), _sale(id="n2", quantity=5, total_amount=7.5)], [_sale()])

    assert [(i.is_duplicate, i.should_keep) for i in infos] == [(True, False), (False, True)]


def test_stock_duplicates_match_on_name_and_category():
    existing = [StockItem("1", "Fanta", "Boissons", "", 10, 5, 10, 1.0)]
    candidates = [
        StockItem("2", "Fanta", "Boissons", "Sodas", 3, 5, 3, 1.0),
        StockItem("3", "Fanta", "Snacks", "", 3, 5, 3, 1.0),
    ]
    infos = find_stock_duplicates(candidates, existing)
    assert [i.is_duplicate for i in infos] == [True, False]
