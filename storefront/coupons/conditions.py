"""
Conditions d'éligibilité d'un coupon, sous forme d'un ensemble fermé de variantes.

Chaque variante est un petit dataclass immuable construit à partir de la CouponDefinition
(conditions_for). check_condition est l'unique point de dispatch: une variante sans
vérificateur enregistré lève TypeError au lieu d'être ignorée silencieusement.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, FrozenSet, List, Optional, Tuple, Union, get_args

from storefront.catalog.models import PricedLine
from storefront.coupons.models import (
    CouponDefinition,
    CustomerContext,
    CustomerSegment,
    RejectionReason,
    UsageSnapshot,
)


@dataclass(frozen=True)
class EvaluationContext:
    lines: Tuple[PricedLine, ...]
    customer: CustomerContext
    usage: UsageSnapshot
    now: datetime

    @property
    def subtotal_minor(self) -> int:
        return sum(line.line_total_minor for line in self.lines)

    @property
    def total_quantity(self) -> int:
        return sum(line.quantity for line in self.lines)


@dataclass(frozen=True)
class IsActive:
    active: bool


@dataclass(frozen=True)
class ValidityWindow:
    valid_from: datetime
    valid_until: datetime


@dataclass(frozen=True)
class MinAmount:
    minimum_minor: int


@dataclass(frozen=True)
class GlobalUsageLimit:
    limit: int


@dataclass(frozen=True)
class PerUserUsageLimit:
    limit: int


@dataclass(frozen=True)
class Segment:
    segment: CustomerSegment


@dataclass(frozen=True)
class FirstTimeOnly:
    pass


@dataclass(frozen=True)
class ApplicableItems:
    categories: FrozenSet[str]
    product_refs: FrozenSet[str]


@dataclass(frozen=True)
class ExcludedItems:
    categories: FrozenSet[str]
    product_refs: FrozenSet[str]


@dataclass(frozen=True)
class QuantityRange:
    minimum: Optional[int]
    maximum: Optional[int]


Condition = Union[
    IsActive,
    ValidityWindow,
    MinAmount,
    GlobalUsageLimit,
    PerUserUsageLimit,
    Segment,
    FirstTimeOnly,
    ApplicableItems,
    ExcludedItems,
    QuantityRange,
]


def conditions_for(coupon: CouponDefinition) -> List[Condition]:
    """
    Traduit une définition en liste ordonnée de conditions.
    L'ordre fixe la raison rapportée quand plusieurs conditions échouent
    (état du coupon d'abord, puis panier, puis client).
    """
    conditions: List[Condition] = [
        IsActive(coupon.is_active),
        ValidityWindow(coupon.valid_from, coupon.valid_until),
    ]
    if coupon.global_usage_limit is not None:
        conditions.append(GlobalUsageLimit(coupon.global_usage_limit))
    if coupon.excluded_categories or coupon.excluded_product_refs:
        conditions.append(ExcludedItems(frozenset(coupon.excluded_categories), frozenset(coupon.excluded_product_refs)))
    if coupon.applicable_categories or coupon.applicable_product_refs:
        conditions.append(ApplicableItems(frozenset(coupon.applicable_categories), frozenset(coupon.applicable_product_refs)))
    if coupon.min_quantity is not None or coupon.max_quantity is not None:
        conditions.append(QuantityRange(coupon.min_quantity, coupon.max_quantity))
    if coupon.minimum_order_amount:
        conditions.append(MinAmount(coupon.minimum_order_amount))
    if coupon.customer_segment != CustomerSegment.ALL:
        conditions.append(Segment(coupon.customer_segment))
    if coupon.first_time_only:
        conditions.append(FirstTimeOnly())
    if coupon.per_user_usage_limit is not None:
        conditions.append(PerUserUsageLimit(coupon.per_user_usage_limit))
    return conditions


def _check_active(cond: IsActive, ctx: EvaluationContext) -> Optional[RejectionReason]:
    return None if cond.active else RejectionReason.INACTIVE


def _check_window(cond: ValidityWindow, ctx: EvaluationContext) -> Optional[RejectionReason]:
    if ctx.now < cond.valid_from:
        return RejectionReason.NOT_YET_VALID
    if ctx.now > cond.valid_until:
        return RejectionReason.EXPIRED
    return None


def _check_min_amount(cond: MinAmount, ctx: EvaluationContext) -> Optional[RejectionReason]:
    return RejectionReason.BELOW_MINIMUM if ctx.subtotal_minor < cond.minimum_minor else None


def _check_global_limit(cond: GlobalUsageLimit, ctx: EvaluationContext) -> Optional[RejectionReason]:
    return RejectionReason.GLOBAL_LIMIT_REACHED if ctx.usage.global_count >= cond.limit else None


def _check_user_limit(cond: PerUserUsageLimit, ctx: EvaluationContext) -> Optional[RejectionReason]:
    return RejectionReason.USER_LIMIT_REACHED if ctx.usage.user_count >= cond.limit else None


def _check_segment(cond: Segment, ctx: EvaluationContext) -> Optional[RejectionReason]:
    prior = ctx.customer.prior_order_count
    if cond.segment == CustomerSegment.NEW:
        ok = prior == 0
    elif cond.segment == CustomerSegment.RETURNING:
        ok = prior >= 1
    elif cond.segment == CustomerSegment.VIP:
        ok = ctx.customer.is_vip
    else:
        ok = True
    return None if ok else RejectionReason.SEGMENT_MISMATCH


def _check_first_time(cond: FirstTimeOnly, ctx: EvaluationContext) -> Optional[RejectionReason]:
    return RejectionReason.FIRST_TIME_ONLY if ctx.customer.prior_order_count >= 1 else None


def _matches(line: PricedLine, categories: FrozenSet[str], product_refs: FrozenSet[str]) -> bool:
    return line.product_ref in product_refs or (line.category is not None and line.category in categories)


def _check_applicable(cond: ApplicableItems, ctx: EvaluationContext) -> Optional[RejectionReason]:
    # Chaque liste non vide est un filtre distinct: le panier doit satisfaire les deux
    if cond.product_refs and not any(line.product_ref in cond.product_refs for line in ctx.lines):
        return RejectionReason.NOT_APPLICABLE
    if cond.categories and not any(line.category in cond.categories for line in ctx.lines):
        return RejectionReason.NOT_APPLICABLE
    return None


def _check_excluded(cond: ExcludedItems, ctx: EvaluationContext) -> Optional[RejectionReason]:
    if any(_matches(line, cond.categories, cond.product_refs) for line in ctx.lines):
        return RejectionReason.EXCLUDED
    return None


def _check_quantity(cond: QuantityRange, ctx: EvaluationContext) -> Optional[RejectionReason]:
    qty = ctx.total_quantity
    if cond.minimum is not None and qty < cond.minimum:
        return RejectionReason.QUANTITY_OUT_OF_RANGE
    if cond.maximum is not None and qty > cond.maximum:
        return RejectionReason.QUANTITY_OUT_OF_RANGE
    return None


_CHECKERS: Dict[type, Callable[..., Optional[RejectionReason]]] = {
    IsActive: _check_active,
    ValidityWindow: _check_window,
    MinAmount: _check_min_amount,
    GlobalUsageLimit: _check_global_limit,
    PerUserUsageLimit: _check_user_limit,
    Segment: _check_segment,
    FirstTimeOnly: _check_first_time,
    ApplicableItems: _check_applicable,
    ExcludedItems: _check_excluded,
    QuantityRange: _check_quantity,
}

CONDITION_TYPES = get_args(Condition)


def check_condition(condition: Condition, ctx: EvaluationContext) -> Optional[RejectionReason]:
    """Retourne la raison de refus, ou None si la condition est satisfaite."""
    checker = _CHECKERS.get(type(condition))
    if checker is None:
        raise TypeError(f"Condition de coupon non gérée: {type(condition).__name__}")
    return checker(condition, ctx)
