import pytest

from storefront.catalog.models import CatalogProduct
from storefront.coupons.models import DiscountResult, RejectionReason
from storefront.payments import pricing
from storefront.payments.errors import EmptyCart, InvalidCart, InvariantViolation, PriceMismatch
from storefront.payments.pricing import ShippingRule

from tests.factories import make_coupon, make_line

RULE = ShippingRule(flat_fee_minor=1500, free_threshold_minor=50000)

PRODUCTS = {
    "p1": CatalogProduct(product_ref="p1", name="Sneaker", unit_price_minor=6000, category="shoes", stock=3),
    "p2": CatalogProduct(product_ref="p2", name="Socks", unit_price_minor=2000, stock=None),
    "off": CatalogProduct(product_ref="off", name="Retired", unit_price_minor=100, is_active=False),
}


def test_parse_cart_rejects_bad_lines_and_empty_cart():
    with pytest.raises(EmptyCart):
        pricing.parse_cart([])
    with pytest.raises(InvalidCart):
        pricing.parse_cart([{"id": "p1", "quantity": 0}])
    with pytest.raises(InvalidCart):
        pricing.parse_cart([{"quantity": 1}])


def test_client_prices_are_ignored():
    cart = pricing.parse_cart([{"id": "p1", "quantity": 1, "price": 0.01, "name": "hacked"}])
    lines = pricing.price_cart(pricing.aggregate_quantities(cart), PRODUCTS)
    assert lines[0].unit_price_minor == 6000
    assert lines[0].name == "Sneaker"


def test_duplicate_lines_are_merged_in_order():
    cart = pricing.parse_cart([{"id": "p2", "quantity": 1}, {"id": "p1", "quantity": 1}, {"id": "p2", "quantity": 2}])
    assert list(pricing.aggregate_quantities(cart).items()) == [("p2", 3), ("p1", 1)]


@pytest.mark.parametrize("quantities", [{"missing": 1}, {"off": 1}, {"p1": 4}])
def test_unavailable_products_raise_price_mismatch(quantities):
    with pytest.raises(PriceMismatch) as exc:
        pricing.price_cart(quantities, PRODUCTS)
    assert exc.value.status_code == 409
    assert exc.value.product_ref == next(iter(quantities))


def test_shipping_rule():
    assert RULE.amount_for(49999) == 1500
    assert RULE.amount_for(50000) == 0
    assert RULE.amount_for(100, waived=True) == 0
    assert ShippingRule(flat_fee_minor=700).amount_for(10**7) == 700


def test_aggregate_with_accepted_discount():
    coupon = make_coupon()
    order = pricing.aggregate("u1", [make_line(price=6000, qty=2)], DiscountResult.granted(coupon, 2400), RULE)
    assert order.subtotal_minor == 12000
    assert order.discount_minor == 2400
    assert order.shipping_minor == 1500
    assert order.total_minor == 12000 - 2400 + 1500
    assert order.coupon_code == "SAVE20"


def test_aggregate_ignores_rejected_discount():
    rejected = DiscountResult.rejected(RejectionReason.BELOW_MINIMUM, make_coupon())
    order = pricing.aggregate("u1", [make_line(price=2000, qty=2)], rejected, RULE)
    assert order.discount_minor == 0
    assert order.coupon_code is None
    assert order.total_minor == 4000 + 1500


def test_aggregate_clamps_discount_and_waives_shipping():
    coupon = make_coupon(kind="free_shipping", value=0, minimum_order_amount=None)
    waived = pricing.aggregate("u1", [make_line(price=1000, qty=1)], DiscountResult.granted(coupon, 0, True), RULE)
    assert waived.shipping_minor == 0
    assert waived.total_minor == 1000

    fixed = make_coupon(kind="fixed", value=5000, minimum_order_amount=None)
    clamped = pricing.aggregate("u1", [make_line(price=1000, qty=1)], DiscountResult.granted(fixed, 5000), RULE)
    assert clamped.discount_minor == 1000
    assert clamped.total_minor == 1500


def test_aggregate_rejects_out_of_range_total():
    huge = make_line(price=99_999_999, qty=2)
    with pytest.raises(InvariantViolation):
        pricing.aggregate("u1", [huge], None, RULE)


def test_aggregate_requires_lines():
    with pytest.raises(EmptyCart):
        pricing.aggregate("u1", [], None, RULE)
