"""
Évaluateur de règles de remise (pur: pas de DB, pas de Stripe, horloge injectée).

Un refus est un résultat normal (DiscountResult.accepted=False), jamais une exception.
Toute l'arithmétique est entière, en unités mineures; les pourcentages sont arrondis
à l'inférieur pour ne jamais accorder plus que promis.
"""
from datetime import datetime
from typing import Optional, Sequence

from storefront.catalog.models import PricedLine
from storefront.coupons.conditions import EvaluationContext, check_condition, conditions_for
from storefront.coupons.models import (
    CouponDefinition,
    CouponKind,
    CustomerContext,
    DiscountResult,
    UsageSnapshot,
)


# module storefront.coupons.evaluator
def compute_discount(coupon: CouponDefinition, subtotal_minor: int) -> int:
    """
    Montant de remise pour un coupon déjà jugé éligible.
    - percentage: floor(subtotal * value / 100), plafonné par maximum_discount_amount
    - fixed: min(value, subtotal)
    - free_shipping: 0 (la gratuité de livraison est portée par shipping_waived)
    Le résultat est toujours dans [0, subtotal].
    """
    subtotal = max(int(subtotal_minor), 0)
    if coupon.kind == CouponKind.PERCENTAGE:
        amount = (subtotal * coupon.value) // 100
        if coupon.maximum_discount_amount is not None:
            amount = min(amount, coupon.maximum_discount_amount)
    elif coupon.kind == CouponKind.FIXED:
        amount = coupon.value
    else:
        amount = 0
    return max(0, min(amount, subtotal))


def evaluate(
    coupon: CouponDefinition,
    lines: Sequence[PricedLine],
    customer: CustomerContext,
    now: datetime,
    usage: Optional[UsageSnapshot] = None,
) -> DiscountResult:
    """
    Évalue un coupon sur un panier re-pricé.
    - Parcourt les conditions dans l'ordre de conditions_for; la première en échec donne la raison.
    - coupon_snapshot fige la définition utilisée (litiges reproductibles après édition admin).
    """
    ctx = EvaluationContext(
        lines=tuple(lines),
        customer=customer,
        usage=usage or UsageSnapshot(),
        now=now,
    )
    for condition in conditions_for(coupon):
        reason = check_condition(condition, ctx)
        if reason is not None:
            return DiscountResult.rejected(reason, coupon)

    amount = compute_discount(coupon, ctx.subtotal_minor)
    return DiscountResult.granted(coupon, amount, shipping_waived=coupon.kind == CouponKind.FREE_SHIPPING)
