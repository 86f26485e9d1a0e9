"""
Cas d'usage 'checkout': orchestre catalogue, coupons, agrégation, encodage et Stripe.
Aucune persistance ici: la commande naît uniquement dans le webhook.
"""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple
import logging

from storefront.auth import service as auth_service
from storefront.catalog import repository as catalog_repo
from storefront.catalog.models import PricedLine
from storefront.coupons import service as coupons_service
from storefront.coupons.models import DiscountResult, RejectionReason
from storefront.payments import metadata as payments_metadata
from storefront.payments import pricing
from storefront.payments import stripe_client
from storefront.payments.errors import CouponRejected
from storefront.utils.money import format_minor

logger = logging.getLogger(__name__)

# module storefront.payments.service
def reprice(items: Sequence[Any]) -> List[PricedLine]:
    """Panier brut -> lignes re-pricées depuis le catalogue (prix client ignorés)."""
    cart = pricing.parse_cart(items)
    quantities = pricing.aggregate_quantities(cart)
    products = catalog_repo.get_products_map(list(quantities.keys()))
    return pricing.price_cart(quantities, products)

def preview_coupon(
    user: Dict[str, Any],
    code: str,
    items: Sequence[Any],
    now: Optional[datetime] = None,
) -> Tuple[DiscountResult, List[PricedLine]]:
    """
    Aperçu d'un coupon sur le panier courant, via le même évaluateur que le checkout.
    Un code vide est traité comme introuvable.
    """
    lines = reprice(items)
    customer = auth_service.build_customer_context(user)
    result = coupons_service.evaluate_code(code, lines, customer, now=now)
    if result is None:
        result = DiscountResult.rejected(RejectionReason.NOT_FOUND)
    return result, lines

def start_checkout(
    *,
    user: Dict[str, Any],
    items: Sequence[Any],
    coupon_code: Optional[str],
    success_url: str,
    cancel_url: str,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    Prépare la session Stripe d'un panier:
      1) re-price (PriceMismatch/EmptyCart)
      2) coupon (CouponRejected si refusé)
      3) agrégation + invariants monétaires (InvariantViolation)
      4) encodage de l'intention (IntentTooLarge)
      5) création de session (PaymentProviderUnavailable)
    Retour: {url, sessionId, intentId, pricing}
    """
    now = now or datetime.now(timezone.utc)
    user_ref = str(user.get("id") or "")
    lines = reprice(items)

    discount: Optional[DiscountResult] = None
    if coupon_code:
        customer = auth_service.build_customer_context(user)
        discount = coupons_service.evaluate_code(coupon_code, lines, customer, now=now)
        if discount is not None and not discount.accepted:
            raise CouponRejected(discount.reason.value)

    order = pricing.aggregate(user_ref, lines, discount, pricing.ShippingRule.from_config())
    metadata, intent_id = payments_metadata.encode_intent(order, created_at=now)
    url, session_id = stripe_client.create_session(
        order=order,
        metadata=metadata,
        intent_id=intent_id,
        success_url=success_url,
        cancel_url=cancel_url,
        customer_email=user.get("email"),
    )
    logger.info(
        "payments.checkout session=%s intent=%s user=%s total=%s coupon=%s",
        session_id, intent_id, user_ref, format_minor(order.total_minor), order.coupon_code,
    )
    return {
        "url": url,
        "sessionId": session_id,
        "intentId": intent_id,
        "pricing": {
            "subtotalMinor": order.subtotal_minor,
            "discountMinor": order.discount_minor,
            "shippingMinor": order.shipping_minor,
            "totalMinor": order.total_minor,
            "couponCode": order.coupon_code,
        },
    }
