import stripe

from storefront.payments.metadata import decode_intent

from tests.factories import NOW, make_coupon


def _checkout(client, items, coupon=None):
    body = {"items": items}
    if coupon is not None:
        body["couponCode"] = coupon
    return client.post("/api/v1/checkout", json=body)


def test_checkout_returns_redirect_and_server_pricing(client, catalog, coupon_table, order_store, fake_stripe):
    res = _checkout(client, [{"id": "p1", "quantity": 1, "price": 0.5}, {"id": "p2", "quantity": 1}])

    assert res.status_code == 200
    data = res.json()
    assert data["url"] == "https://checkout.stripe.test/pay"
    assert data["sessionId"] == "cs_test_1"
    assert data["pricing"] == {
        "subtotalMinor": 8000, "discountMinor": 0, "shippingMinor": 1500, "totalMinor": 9500, "couponCode": None,
    }
    params = fake_stripe["sessions"][0]
    assert params["client_reference_id"] == data["intentId"]
    assert params["idempotency_key"] == f"checkout-session:{data['intentId']}"
    assert params["success_url"].endswith("?session_id={CHECKOUT_SESSION_ID}")
    intent = decode_intent(params["metadata"])
    assert intent.user_ref == "user-1"
    assert intent.total_minor == 9500
    # Rien n'est écrit avant le webhook
    assert order_store.orders == {}


def test_checkout_with_save20(client, catalog, coupon_table, order_store, fake_stripe, monkeypatch):
    coupon_table["coupons"]["SAVE20"] = (make_coupon(valid_until=NOW.replace(year=2999)), 0)

    res = _checkout(client, [{"id": "p1", "quantity": 2}], coupon="save20")

    assert res.status_code == 200
    pricing = res.json()["pricing"]
    assert pricing["subtotalMinor"] == 12000
    assert pricing["discountMinor"] == 2400
    assert pricing["totalMinor"] == 9600 + 1500
    assert pricing["couponCode"] == "SAVE20"
    assert fake_stripe["coupons"][0]["amount_off"] == 2400


def test_rejected_coupon_is_400_with_reason(client, catalog, coupon_table, order_store, fake_stripe):
    coupon_table["coupons"]["SAVE20"] = (make_coupon(valid_until=NOW.replace(year=2999)), 0)

    res = _checkout(client, [{"id": "p2", "quantity": 2}], coupon="SAVE20")

    assert res.status_code == 400
    assert res.json()["code"] == "CouponRejected"
    assert res.json()["reason"] == "BelowMinimum"
    assert fake_stripe["sessions"] == []


def test_unknown_coupon_is_rejected(client, catalog, coupon_table, order_store, fake_stripe):
    res = _checkout(client, [{"id": "p1", "quantity": 1}], coupon="NOPE")
    assert res.status_code == 400
    assert res.json()["reason"] == "NotFound"


def test_empty_cart_is_400(client, catalog, fake_stripe):
    res = _checkout(client, [])
    assert res.status_code == 400
    assert res.json()["code"] == "EmptyCart"


def test_bad_line_is_invalid_cart(client, catalog, fake_stripe):
    res = _checkout(client, [{"id": "p1", "quantity": -1}])
    assert res.status_code == 400
    assert res.json()["code"] == "InvalidCart"


def test_out_of_stock_is_409(client, catalog, fake_stripe):
    res = _checkout(client, [{"id": "p3", "quantity": 1}])
    assert res.status_code == 409
    assert res.json() == {
        "detail": "Produit indisponible ou en rupture: p3", "code": "PriceMismatch", "product_ref": "p3",
    }


def test_unknown_product_is_409(client, catalog, fake_stripe):
    res = _checkout(client, [{"id": "ghost", "quantity": 1}])
    assert res.status_code == 409


def test_provider_outage_is_502(client, catalog, order_store, fake_stripe, monkeypatch):
    def _down(**params):
        raise stripe.APIConnectionError("connection refused")

    monkeypatch.setattr(stripe.checkout.Session, "create", _down)
    res = _checkout(client, [{"id": "p1", "quantity": 1}])
    assert res.status_code == 502
    assert res.json()["code"] == "PaymentProviderUnavailable"


def test_catalog_outage_is_503(client, fake_stripe, monkeypatch, mock_supabase):
    mock_supabase.table.return_value.select.return_value.in_.return_value.execute.side_effect = RuntimeError("down")
    res = _checkout(client, [{"id": "p1", "quantity": 1}])
    assert res.status_code == 503


def test_malformed_body_is_400(client):
    res = client.post("/api/v1/checkout", json={"items": "nope"})
    assert res.status_code == 400
    assert res.json()["code"] == "InvalidRequest"


def test_checkout_requires_authentication(app, client):
    from storefront.utils.security import require_user

    app.dependency_overrides.pop(require_user, None)
    res = _checkout(client, [{"id": "p1", "quantity": 1}])
    assert res.status_code == 401
