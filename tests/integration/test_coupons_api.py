from tests.factories import NOW, make_coupon

FAR_FUTURE = NOW.replace(year=2999)


def test_validate_preview_matches_checkout_evaluator(client, catalog, coupon_table, order_store):
    coupon_table["coupons"]["SAVE20"] = (make_coupon(valid_until=FAR_FUTURE), 0)

    res = client.post("/api/v1/coupons/validate", json={"code": "save20", "items": [{"id": "p1", "quantity": 2}]})

    assert res.status_code == 200
    data = res.json()
    assert data["accepted"] is True
    assert data["discountAmountMinor"] == 2400
    assert data["subtotalMinor"] == 12000
    assert data["coupon"]["code"] == "SAVE20"


def test_rejection_is_200_with_reason(client, catalog, coupon_table, order_store):
    coupon_table["coupons"]["SAVE20"] = (make_coupon(valid_until=FAR_FUTURE), 0)

    res = client.post("/api/v1/coupons/validate", json={"code": "SAVE20", "items": [{"id": "p2", "quantity": 2}]})

    assert res.status_code == 200
    assert res.json()["accepted"] is False
    assert res.json()["reason"] == "BelowMinimum"
    assert res.json()["discountAmountMinor"] == 0


def test_first_time_coupon_rejected_for_returning_customer(client, catalog, coupon_table, order_store, monkeypatch):
    coupon_table["coupons"]["WELCOME"] = (
        make_coupon(code="WELCOME", first_time_only=True, minimum_order_amount=None, valid_until=FAR_FUTURE), 0,
    )
    monkeypatch.setattr("storefront.orders.repository.count_user_orders", lambda user_ref: 1)

    res = client.post("/api/v1/coupons/validate", json={"code": "welcome", "items": [{"id": "p1", "quantity": 1}]})

    assert res.json()["reason"] == "FirstTimeOnly"


def test_free_shipping_preview(client, catalog, coupon_table, order_store):
    coupon_table["coupons"]["SHIPFREE"] = (
        make_coupon(code="SHIPFREE", kind="free_shipping", value=0, minimum_order_amount=None, valid_until=FAR_FUTURE), 0,
    )
    res = client.post("/api/v1/coupons/validate", json={"code": "SHIPFREE", "items": [{"id": "p2", "quantity": 1}]})
    assert res.json()["accepted"] is True
    assert res.json()["shippingWaived"] is True


def test_unknown_code_and_empty_cart(client, catalog, coupon_table, order_store):
    unknown = client.post("/api/v1/coupons/validate", json={"code": "X", "items": [{"id": "p1", "quantity": 1}]})
    assert unknown.json()["reason"] == "NotFound"

    empty = client.post("/api/v1/coupons/validate", json={"code": "X", "items": []})
    assert empty.status_code == 400
    assert empty.json()["code"] == "EmptyCart"
