# module storefront.payments.views

"""Endpoints du checkout et du webhook de paiement.
- POST /api/v1/checkout: re-price le panier, applique le coupon, crée la session Stripe.
- POST /api/v1/webhooks/payment: reçoit les événements Stripe et matérialise la commande.
Sécurité:
- require_user + optional_rate_limit sur le checkout.
- Le webhook n'est pas authentifié par session: seule la signature Stripe fait foi.
"""
from typing import Any, Dict, List, Optional
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from storefront.config import BASE_URL, CHECKOUT_CANCEL_PATH, CHECKOUT_SUCCESS_PATH
from storefront.orders import service as orders_service
from storefront.payments import service as payments_service
from storefront.payments import stripe_client
from storefront.payments.errors import (
    InvalidSignature,
    InvariantViolation,
    MalformedEvent,
    StorageUnavailable,
    WebhookNotConfigured,
)
from storefront.utils.rate_limit import optional_rate_limit
from storefront.utils.security import require_user

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/checkout", tags=["Checkout API"])
webhook_router = APIRouter(prefix="/api/v1/webhooks", tags=["Webhooks"])


class CheckoutBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    # Lignes laissées brutes: validées par pricing.parse_cart (erreur typée InvalidCart)
    items: List[Dict[str, Any]] = Field(default_factory=list)
    coupon_code: Optional[str] = Field(default=None, alias="couponCode")


def _redirect_urls() -> Dict[str, str]:
    success_url = f"{BASE_URL}{CHECKOUT_SUCCESS_PATH}?session_id={{CHECKOUT_SESSION_ID}}"
    cancel_url = f"{BASE_URL}{CHECKOUT_CANCEL_PATH}"
    return {"success_url": success_url, "cancel_url": cancel_url}


@router.post("", dependencies=[Depends(optional_rate_limit(times=10, seconds=60))])
def create_checkout(body: CheckoutBody, user: Dict[str, Any] = Depends(require_user)):
    """
    Crée une session Checkout Stripe pour le panier de l'utilisateur authentifié.
    - Entrée JSON: { "items": [ { "id": "<product>", "quantity": <int> }, ... ], "couponCode": "SAVE20" }
    - Retour: { url, sessionId, intentId, pricing }
    - Erreurs typées (CheckoutError): 400 panier/coupon, 409 prix, 502 Stripe, 503 catalogue
    """
    return payments_service.start_checkout(
        user=user,
        items=body.items,
        coupon_code=body.coupon_code,
        **_redirect_urls(),
    )


def _ack(status: str, status_code: int = 200, **extra) -> JSONResponse:
    return JSONResponse({"status": status, **extra}, status_code=status_code)


@webhook_router.post("/payment", include_in_schema=False)
async def payment_webhook(request: Request):
    """
    Webhook Stripe.
    - 200: commande créée, doublon (no-op), type ignoré, ou événement vérifié mais inexploitable
    - 400: signature invalide (rejet avant tout décodage)
    - 503: stockage indisponible, Stripe redélivrera
    - 500: secret de webhook non configuré
    """
    try:
        event = await stripe_client.parse_event(request)
    except WebhookNotConfigured:
        logger.error("payments.webhook STRIPE_WEBHOOK_SECRET manquant, événement refusé")
        return _ack("error", 500, detail="Webhook non configuré")
    except InvalidSignature as e:
        logger.warning("payments.webhook signature invalide ip=%s detail=%s", request.client.host if request.client else None, e.detail)
        return _ack("invalid_signature", 400)
    except MalformedEvent as e:
        logger.warning("payments.webhook payload illisible detail=%s", e.detail)
        return _ack("rejected", 200, reason=e.code)

    try:
        result = await run_in_threadpool(orders_service.handle_event, event)
    except StorageUnavailable as e:
        logger.warning("payments.webhook stockage indisponible intent=%s, redélivrance attendue", e.intent_id)
        return _ack("retry", 503)
    except MalformedEvent as e:
        logger.warning("payments.webhook événement malformé event=%s intent=%s detail=%s", event.get("id"), e.intent_id, e.detail)
        return _ack("rejected", 200, reason=e.code)
    except InvariantViolation as e:
        logger.error("payments.webhook montants incohérents event=%s detail=%s", event.get("id"), e.detail)
        return _ack("rejected", 200, reason=e.code)
    return JSONResponse(result)
