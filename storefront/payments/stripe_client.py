"""
Adaptateur Stripe: centralise les appels et la configuration Stripe.
- create_session: session Checkout hébergée à partir d'une PricedOrder (pas de persistance ici).
- verify_event / parse_event: vérification de signature AVANT tout décodage du payload.
"""
from typing import Any, Dict, List, Optional, Tuple
import json
import logging
import re

import stripe
from fastapi import Request

from storefront.config import (
    CHECKOUT_CURRENCY,
    SHIPPING_ALLOWED_COUNTRIES,
    STRIPE_SECRET_KEY,
    STRIPE_WEBHOOK_SECRET,
    STRIPE_WEBHOOK_TOLERANCE,
)
from storefront.payments.errors import (
    InvalidSignature,
    MalformedEvent,
    PaymentProviderUnavailable,
    WebhookNotConfigured,
)
from storefront.payments.models import PricedOrder

logger = logging.getLogger(__name__)

_ABSOLUTE_URL = re.compile(r"^https?://", re.IGNORECASE)

# module storefront.payments.stripe_client
def require_stripe():
    """
    Prépare et retourne le module stripe prêt à l'emploi.
    - Configure stripe.api_key via STRIPE_SECRET_KEY.
    - Lève PaymentProviderUnavailable si la clé est absente (aucun appel ne pourrait aboutir).
    """
    if not STRIPE_SECRET_KEY:
        raise PaymentProviderUnavailable("STRIPE_SECRET_KEY manquant")
    stripe.api_key = STRIPE_SECRET_KEY
    return stripe

def session_idempotency_key(intent_id: str) -> str:
    """Clé stable: un renvoi de la même création de session ne crée pas une seconde session."""
    return f"checkout-session:{intent_id}"

def to_line_items(order: PricedOrder, currency: str = CHECKOUT_CURRENCY) -> List[Dict[str, Any]]:
    """
    Construit les line_items Stripe depuis les lignes pricées (unit_amount en centimes).
    - Seules les URLs d'image absolues http(s) sont transmises à Stripe.
    """
    line_items: List[Dict[str, Any]] = []
    for line in order.lines:
        product_data: Dict[str, Any] = {"name": line.name or "Article", "metadata": {"product_ref": line.product_ref}}
        if line.image_ref and _ABSOLUTE_URL.match(line.image_ref):
            product_data["images"] = [line.image_ref]
        line_items.append({
            "quantity": line.quantity,
            "price_data": {
                "currency": currency,
                "unit_amount": line.unit_price_minor,
                "product_data": product_data,
            },
        })
    return line_items

def _shipping_options(order: PricedOrder, currency: str) -> List[Dict[str, Any]]:
    return [{
        "shipping_rate_data": {
            "type": "fixed_amount",
            "display_name": "Livraison standard" if order.shipping_minor else "Livraison offerte",
            "fixed_amount": {"amount": order.shipping_minor, "currency": currency},
        },
    }]

def _discount_coupon(order: PricedOrder, intent_id: str, currency: str) -> Optional[str]:
    """
    Crée un coupon Stripe à usage unique portant la remise calculée côté serveur.
    Même clé d'idempotence dérivée de l'intent: un renvoi ne crée pas de second coupon.
    """
    if order.discount_minor <= 0:
        return None
    coupon = stripe.Coupon.create(
        amount_off=order.discount_minor,
        currency=currency,
        duration="once",
        max_redemptions=1,
        name=(order.coupon_code or "Remise")[:40],
        metadata={"intent_id": intent_id},
        idempotency_key=f"checkout-discount:{intent_id}",
    )
    return getattr(coupon, "id", None) or (coupon.get("id") if isinstance(coupon, dict) else None)

def _discard_coupon(coupon_id: Optional[str], intent_id: str) -> None:
    """Supprime le coupon de remise d'une session qui n'a pas pu être créée."""
    if not coupon_id:
        return
    try:
        stripe.Coupon.delete(coupon_id)
        logger.info("payments.stripe coupon orphelin supprimé coupon=%s intent=%s", coupon_id, intent_id)
    except stripe.StripeError as e:
        logger.warning("payments.stripe coupon orphelin non supprimé coupon=%s intent=%s error=%s", coupon_id, intent_id, e)

def create_session(
    *,
    order: PricedOrder,
    metadata: Dict[str, str],
    intent_id: str,
    success_url: str,
    cancel_url: str,
    customer_email: Optional[str] = None,
    currency: str = CHECKOUT_CURRENCY,
) -> Tuple[str, str]:
    """
    Crée une session Stripe Checkout.
    - metadata: intention encodée (payments.metadata.encode_intent), renvoyée telle quelle par le webhook
    - idempotency_key dérivée de intent_id; pas de retry automatique
    Retour: (redirect_url, provider_session_id)
    Erreurs: PaymentProviderUnavailable (réseau, requête refusée, réponse sans URL)
    """
    require_stripe()
    params: Dict[str, Any] = {
        "mode": "payment",
        "line_items": to_line_items(order, currency),
        "success_url": success_url,
        "cancel_url": cancel_url,
        "metadata": metadata,
        "client_reference_id": intent_id,
        "payment_method_types": ["card"],
        "payment_intent_data": {"metadata": {"intent_id": intent_id}},
        "shipping_address_collection": {"allowed_countries": SHIPPING_ALLOWED_COUNTRIES},
        "shipping_options": _shipping_options(order, currency),
    }
    if customer_email:
        params["customer_email"] = customer_email
    coupon_id = None
    try:
        coupon_id = _discount_coupon(order, intent_id, currency)
        if coupon_id:
            params["discounts"] = [{"coupon": coupon_id}]
        session = stripe.checkout.Session.create(
            idempotency_key=session_idempotency_key(intent_id),
            **params,
        )
    except stripe.StripeError as e:
        logger.warning("payments.stripe create_session failed intent=%s error=%s", intent_id, e)
        _discard_coupon(coupon_id, intent_id)
        raise PaymentProviderUnavailable("Service de paiement indisponible, réessayez") from e

    # stripe retourne un objet; on le traite comme dict-compatible
    url = getattr(session, "url", None) or (session.get("url") if isinstance(session, dict) else None)
    session_id = getattr(session, "id", None) or (session.get("id") if isinstance(session, dict) else None)
    if not url or not session_id:
        logger.error("payments.stripe session sans url intent=%s", intent_id)
        _discard_coupon(coupon_id, intent_id)
        raise PaymentProviderUnavailable("Session Stripe invalide")
    return url, session_id

def verify_event(payload: bytes, sig_header: Optional[str], secret: Optional[str] = None) -> Dict[str, Any]:
    """
    Valide la signature Stripe puis décode l'événement.
    - La signature est vérifiée sur le body brut avant tout json.loads (payload non fiable sinon).
    - WebhookNotConfigured si aucun secret n'est configuré (jamais de mode « non signé »).
    - InvalidSignature si l'en-tête manque ou ne correspond pas; MalformedEvent si le JSON est invalide.
    """
    secret = STRIPE_WEBHOOK_SECRET if secret is None else secret
    if not secret:
        raise WebhookNotConfigured("STRIPE_WEBHOOK_SECRET manquant")
    if not sig_header:
        raise InvalidSignature("En-tête Stripe-Signature manquant")
    try:
        text = payload.decode("utf-8")
    except UnicodeDecodeError as e:
        raise InvalidSignature("Payload non UTF-8") from e
    try:
        stripe.WebhookSignature.verify_header(text, sig_header, secret, tolerance=STRIPE_WEBHOOK_TOLERANCE)
    except stripe.SignatureVerificationError as e:
        raise InvalidSignature(str(e)) from e
    try:
        event = json.loads(text)
    except ValueError as e:
        raise MalformedEvent("Payload JSON invalide") from e
    if not isinstance(event, dict):
        raise MalformedEvent("Événement inattendu")
    return event

async def parse_event(request: Request) -> Dict[str, Any]:
    """
    Lit le body brut + en-tête Stripe-Signature et délègue à verify_event.
    Retour: l'événement (dict) si la signature est valide.
    """
    payload = await request.body()
    sig_header = request.headers.get("stripe-signature")
    return verify_event(payload, sig_header)
