"""
Diagnostics de dépendances externes (Supabase, Stripe) pour /health/*.
Ces fonctions ne lèvent jamais: elles décrivent l'état dans un dict.
"""
from typing import Any, Dict
from urllib.parse import urlparse
import socket

import storefront.infra.supabase_client as supabase_client
from storefront.config import STRIPE_SECRET_KEY, STRIPE_WEBHOOK_SECRET, SUPABASE_URL

CHECKOUT_TABLES = ("products", "coupons", "orders")

def _check_table(client, name: str) -> Dict[str, Any]:
    try:
        res = client.table(name).select("id").limit(1).execute()
        return {"ok": True, "rows": len(res.data or [])}
    except Exception as e:
        return {"ok": False, "error": str(e)}

def health_supabase_info() -> Dict[str, Any]:
    parsed = urlparse(SUPABASE_URL) if SUPABASE_URL else None
    hostname = parsed.hostname if parsed else None
    dns_ok = None
    dns_error = None
    if hostname:
        try:
            socket.getaddrinfo(hostname, 443)
            dns_ok = True
        except OSError as e:
            dns_ok = False
            dns_error = str(e)

    info: Dict[str, Any] = {
        "supabase_url": SUPABASE_URL,
        "hostname": hostname,
        "dns_ok": dns_ok,
        "dns_error": dns_error,
        "connect_ok": False,
        "error": None,
        "tables": {},
    }
    try:
        client = supabase_client.get_service_supabase()
    except RuntimeError as e:
        info["error"] = str(e)
        return info
    for t in CHECKOUT_TABLES:
        info["tables"][t] = _check_table(client, t)
    info["connect_ok"] = all(t["ok"] for t in info["tables"].values())
    return info

def health_stripe_info() -> Dict[str, Any]:
    """Configuration Stripe (sans appel réseau): clé API et secret webhook présents, mode test/live."""
    mode = None
    if STRIPE_SECRET_KEY.startswith("sk_test_") or STRIPE_SECRET_KEY.startswith("rk_test_"):
        mode = "test"
    elif STRIPE_SECRET_KEY.startswith("sk_live_") or STRIPE_SECRET_KEY.startswith("rk_live_"):
        mode = "live"
    return {
        "api_key_configured": bool(STRIPE_SECRET_KEY),
        "webhook_secret_configured": bool(STRIPE_WEBHOOK_SECRET),
        "mode": mode,
    }
