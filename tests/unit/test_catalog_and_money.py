from unittest.mock import MagicMock

import pytest

from storefront.catalog import repository as catalog_repo
from storefront.catalog.models import CatalogProduct
from storefront.payments.errors import ServiceUnavailable
from storefront.utils.money import format_minor, to_minor


@pytest.mark.parametrize(
    "value, expected",
    [("120", 12000), ("19.99", 1999), (19.99, 1999), ("$1,250.50", 125050), (0.005, 1), (7, 700)],
)
def test_to_minor(value, expected):
    assert to_minor(value) == expected


@pytest.mark.parametrize("value", ["abc", None, True, "NaN"])
def test_to_minor_rejects_non_numbers(value):
    with pytest.raises(ValueError):
        to_minor(value)


def test_format_minor():
    assert format_minor(9600) == "96.00"
    assert format_minor(5) == "0.05"
    assert format_minor(-150) == "-1.50"


def test_product_from_row():
    product = CatalogProduct.from_row(
        {"id": 7, "name": "Hat", "price": "24.90", "category": "hats", "image_url": "https://x/y.png", "stock": 0}
    )
    assert product.product_ref == "7"
    assert product.unit_price_minor == 2490
    assert product.in_stock is False
    assert product.can_fulfil(1) is False
    assert CatalogProduct.from_row({"id": "u", "name": "Untracked", "price": 1}).can_fulfil(10**6)


def test_get_products_map_skips_invalid_rows(mock_supabase):
    chain = mock_supabase.table.return_value.select.return_value.in_.return_value
    chain.execute.return_value = MagicMock(data=[
        {"id": "p1", "name": "Sneaker", "price": 60, "stock": 3, "is_active": True},
        {"id": "bad", "name": "Broken", "price": "n/a"},
    ])

    products = catalog_repo.get_products_map(["p1", "bad"])

    assert list(products) == ["p1"]
    assert products["p1"].unit_price_minor == 6000


def test_catalog_outage_is_service_unavailable(mock_supabase):
    mock_supabase.table.return_value.select.return_value.in_.return_value.execute.side_effect = RuntimeError("down")
    with pytest.raises(ServiceUnavailable) as exc:
        catalog_repo.fetch_products_by_refs(["p1"])
    assert exc.value.status_code == 503


def test_empty_refs_do_not_query(mock_supabase):
    assert catalog_repo.fetch_products_by_refs([]) == []
    mock_supabase.table.assert_not_called()
