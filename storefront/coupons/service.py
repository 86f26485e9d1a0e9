"""
Cas d'usage 'coupons': charge la définition + les compteurs, puis délègue à l'évaluateur pur.
"""
from datetime import datetime, timezone
from typing import Optional, Sequence
import logging

from storefront.catalog.models import PricedLine
from storefront.coupons import evaluator
from storefront.coupons import repository as coupons_repo
from storefront.coupons.models import CustomerContext, DiscountResult, RejectionReason, normalize_code

logger = logging.getLogger(__name__)

# module storefront.coupons.service
def evaluate_code(
    code: Optional[str],
    lines: Sequence[PricedLine],
    customer: CustomerContext,
    now: Optional[datetime] = None,
) -> Optional[DiscountResult]:
    """
    Évalue un code saisi par le client.
    - Retour None si aucun code n'est fourni (pas de remise, pas de refus).
    - Code inconnu: DiscountResult refusé (NotFound), jamais une exception.
    - ServiceUnavailable propagée si la base coupons est injoignable.
    """
    normalized = normalize_code(code or "")
    if not normalized:
        return None
    found = coupons_repo.get_coupon(normalized)
    if not found:
        logger.info("coupons.evaluate code=%s user=%s rejected=NotFound", normalized, customer.user_ref)
        return DiscountResult.rejected(RejectionReason.NOT_FOUND)
    coupon, global_count = found
    usage = coupons_repo.count_coupon_usage(coupon.code, customer.user_ref, global_count=global_count)
    result = evaluator.evaluate(coupon, lines, customer, now or datetime.now(timezone.utc), usage)
    if result.accepted:
        logger.info("coupons.evaluate code=%s user=%s discount=%s", coupon.code, customer.user_ref, result.discount_amount_minor)
    else:
        logger.info("coupons.evaluate code=%s user=%s rejected=%s", coupon.code, customer.user_ref, result.reason.value)
    return result

def describe(result: DiscountResult) -> dict:
    """Réponse JSON du endpoint de validation (les refus sont des réponses 200)."""
    body = {
        "accepted": result.accepted,
        "discountAmountMinor": result.discount_amount_minor,
        "shippingWaived": result.shipping_waived,
    }
    if result.reason is not None:
        body["reason"] = result.reason.value
    if result.coupon_snapshot is not None:
        snap = result.coupon_snapshot
        body["coupon"] = {"code": snap.code, "kind": snap.kind.value, "name": snap.name}
    return body
