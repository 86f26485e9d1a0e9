import os

# Avant l'import de l'app: pas de Redis pendant les tests
os.environ.setdefault("DISABLE_FASTAPI_LIMITER_INIT_FOR_TESTS", "1")
os.environ.setdefault("ALLOWED_HOSTS", "testserver,localhost,127.0.0.1")

import json
from typing import Any, Dict, Generator, List, Optional
from unittest.mock import MagicMock

import pytest
import stripe
from fastapi.testclient import TestClient

from storefront.app import app as fastapi_app
from storefront.catalog.models import CatalogProduct
from storefront.utils.security import require_user

from tests.factories import (
    WEBHOOK_SECRET,
    FakeOrderStore,
    build_event,
    make_coupon,
    make_line,
    make_order,
    sign_payload,
)

# Marquage automatique selon le dossier
def pytest_collection_modifyitems(config, items):
    for item in items:
        nodeid = item.nodeid.replace("\\", "/")
        if "tests/unit/" in nodeid:
            item.add_marker(pytest.mark.unit)
        elif "tests/integration/" in nodeid:
            item.add_marker(pytest.mark.integration)

@pytest.fixture(scope="session")
def app():
    return fastapi_app

@pytest.fixture()
def client(app) -> Generator[TestClient, None, None]:
    with TestClient(app) as c:
        yield c

@pytest.fixture()
def test_user() -> Dict[str, Any]:
    return {
        "id": "user-1",
        "email": "buyer@example.com",
        "segment": "standard",
        "metadata": {"full_name": "Test Buyer"},
        "token": "fake-token",
    }

# Simuler un utilisateur authentifié pour les endpoints protégés
@pytest.fixture(autouse=True)
def _override_require_user(app, test_user):
    app.dependency_overrides[require_user] = lambda: test_user
    try:
        yield
    finally:
        app.dependency_overrides.pop(require_user, None)

# Aucun accès réseau à Supabase pendant les tests
@pytest.fixture(autouse=True)
def mock_supabase(monkeypatch):
    client = MagicMock()
    monkeypatch.setattr("storefront.infra.supabase_client.get_supabase", lambda: client)
    monkeypatch.setattr("storefront.infra.supabase_client.get_service_supabase", lambda: client)
    return client

@pytest.fixture()
def coupon_factory():
    return make_coupon

@pytest.fixture()
def line_factory():
    return make_line

@pytest.fixture()
def order_factory():
    return make_order

@pytest.fixture()
def event_factory():
    return build_event

@pytest.fixture()
def catalog(monkeypatch) -> Dict[str, CatalogProduct]:
    """Catalogue en mémoire; les tests peuvent ajouter/retirer des produits."""
    products: Dict[str, CatalogProduct] = {
        "p1": CatalogProduct(product_ref="p1", name="Sneaker", unit_price_minor=6000, category="shoes",
                             image_ref="https://cdn.example.com/p1.png", stock=10),
        "p2": CatalogProduct(product_ref="p2", name="Socks", unit_price_minor=2000, category="accessories", stock=5),
        "p3": CatalogProduct(product_ref="p3", name="Old model", unit_price_minor=3000, category="shoes", stock=0),
    }
    monkeypatch.setattr(
        "storefront.catalog.repository.get_products_map",
        lambda refs: {r: products[r] for r in refs if r in products},
    )
    return products

@pytest.fixture()
def coupon_table(monkeypatch) -> Dict[str, Any]:
    """Table coupons en mémoire: {'coupons': {code: (def, usage_count)}, 'user_usage': {(code, user): n}}."""
    table: Dict[str, Any] = {"coupons": {}, "user_usage": {}}
    monkeypatch.setattr(
        "storefront.coupons.repository.get_coupon",
        lambda code: table["coupons"].get((code or "").strip().upper()),
    )
    monkeypatch.setattr(
        "storefront.coupons.repository.count_user_usage",
        lambda code, user_ref: table["user_usage"].get((code, user_ref), 0),
    )
    return table

@pytest.fixture()
def order_store(monkeypatch) -> FakeOrderStore:
    store = FakeOrderStore(stock={"p1": 10, "p2": 5})
    for name in ("materialize_order", "get_order_by_intent", "fetch_user_orders", "count_user_orders"):
        monkeypatch.setattr(f"storefront.orders.repository.{name}", getattr(store, name))
    return store

@pytest.fixture()
def fake_stripe(monkeypatch) -> Dict[str, List[Any]]:
    """Remplace les appels réseau Stripe; enregistre les paramètres reçus."""
    calls: Dict[str, List[Any]] = {"sessions": [], "coupons": [], "deleted_coupons": []}

    def _session_create(**params):
        calls["sessions"].append(params)
        return {"id": f"cs_test_{len(calls['sessions'])}", "url": "https://checkout.stripe.test/pay"}

    def _coupon_create(**params):
        calls["coupons"].append(params)
        return {"id": f"co_test_{len(calls['coupons'])}"}

    monkeypatch.setattr("storefront.payments.stripe_client.STRIPE_SECRET_KEY", "sk_test_123")
    monkeypatch.setattr(stripe.checkout.Session, "create", _session_create)
    monkeypatch.setattr(stripe.Coupon, "create", _coupon_create)
    monkeypatch.setattr(stripe.Coupon, "delete", lambda coupon_id, **params: calls["deleted_coupons"].append(coupon_id))
    return calls

@pytest.fixture()
def webhook_secret(monkeypatch) -> str:
    monkeypatch.setattr("storefront.payments.stripe_client.STRIPE_WEBHOOK_SECRET", WEBHOOK_SECRET)
    return WEBHOOK_SECRET

@pytest.fixture()
def post_event(client, webhook_secret):
    """Envoie un événement signé au webhook et retourne la réponse."""
    def _post(event: Dict[str, Any], signature: Optional[str] = None, payload: Optional[bytes] = None):
        body = payload if payload is not None else json.dumps(event).encode("utf-8")
        headers = {"Stripe-Signature": signature or sign_payload(body), "Content-Type": "application/json"}
        return client.post("/api/v1/webhooks/payment", content=body, headers=headers)
    return _post
