"""
Modèles du domaine coupons.

- CouponDefinition: définition administrée (table 'coupons'), en lecture seule pour le checkout.
  Montants (value pour 'fixed', minimum, plafond) en unités mineures; value en % pour 'percentage'.
- CustomerContext / UsageSnapshot: entrées de l'évaluateur, fournies par l'auth et le store.
- DiscountResult: issue de l'évaluation (accepté avec montant, ou refusé avec une raison).
"""
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class CouponKind(str, Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"
    FREE_SHIPPING = "free_shipping"


class CustomerSegment(str, Enum):
    ALL = "all"
    NEW = "new"
    RETURNING = "returning"
    VIP = "vip"


class RejectionReason(str, Enum):
    NOT_FOUND = "NotFound"
    INACTIVE = "Inactive"
    NOT_YET_VALID = "NotYetValid"
    EXPIRED = "Expired"
    BELOW_MINIMUM = "BelowMinimum"
    GLOBAL_LIMIT_REACHED = "GlobalLimitReached"
    USER_LIMIT_REACHED = "UserLimitReached"
    SEGMENT_MISMATCH = "SegmentMismatch"
    FIRST_TIME_ONLY = "FirstTimeOnly"
    NOT_APPLICABLE = "NotApplicable"
    EXCLUDED = "Excluded"
    QUANTITY_OUT_OF_RANGE = "QuantityOutOfRange"


def _aware(value: datetime) -> datetime:
    # Les dates sans fuseau venant de la base sont en UTC
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


class CouponDefinition(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    code: str = Field(min_length=1)
    kind: CouponKind
    value: int = Field(ge=0)
    name: Optional[str] = None
    minimum_order_amount: Optional[int] = Field(default=None, ge=0)
    maximum_discount_amount: Optional[int] = Field(default=None, ge=0)
    global_usage_limit: Optional[int] = Field(default=None, ge=1)
    per_user_usage_limit: Optional[int] = Field(default=None, ge=1)
    valid_from: datetime
    valid_until: datetime
    applicable_categories: Tuple[str, ...] = ()
    excluded_categories: Tuple[str, ...] = ()
    applicable_product_refs: Tuple[str, ...] = ()
    excluded_product_refs: Tuple[str, ...] = ()
    customer_segment: CustomerSegment = CustomerSegment.ALL
    first_time_only: bool = False
    min_quantity: Optional[int] = Field(default=None, ge=1)
    max_quantity: Optional[int] = Field(default=None, ge=1)
    is_active: bool = True

    @field_validator("code")
    @classmethod
    def _normalize_code(cls, v: str) -> str:
        return normalize_code(v)

    @field_validator(
        "applicable_categories", "excluded_categories",
        "applicable_product_refs", "excluded_product_refs",
        mode="before",
    )
    @classmethod
    def _none_as_empty(cls, v: Any) -> Any:
        return () if v is None else v

    @field_validator("customer_segment", mode="before")
    @classmethod
    def _default_segment(cls, v: Any) -> Any:
        return CustomerSegment.ALL if v in (None, "") else v

    @field_validator("valid_from", "valid_until")
    @classmethod
    def _tz(cls, v: datetime) -> datetime:
        return _aware(v)

    @model_validator(mode="after")
    def _check_invariants(self) -> "CouponDefinition":
        if self.valid_from >= self.valid_until:
            raise ValueError("valid_from doit précéder valid_until")
        if self.kind == CouponKind.PERCENTAGE and self.value > 100:
            raise ValueError("Un pourcentage doit être compris entre 0 et 100")
        if self.min_quantity and self.max_quantity and self.min_quantity > self.max_quantity:
            raise ValueError("min_quantity > max_quantity")
        return self


def normalize_code(code: str) -> str:
    """Les codes sont uniques sans tenir compte de la casse: stockés et comparés en majuscules."""
    return (code or "").strip().upper()


class CustomerContext(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_ref: str
    email: Optional[str] = None
    prior_order_count: int = Field(default=0, ge=0)
    is_vip: bool = False


class UsageSnapshot(BaseModel):
    """Compteurs d'utilisation lus avant l'évaluation (peuvent être légèrement périmés: plafond souple)."""
    model_config = ConfigDict(frozen=True)

    global_count: int = Field(default=0, ge=0)
    user_count: int = Field(default=0, ge=0)


class DiscountResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    accepted: bool
    reason: Optional[RejectionReason] = None
    discount_amount_minor: int = Field(default=0, ge=0)
    shipping_waived: bool = False
    coupon_snapshot: Optional[CouponDefinition] = None

    @classmethod
    def rejected(cls, reason: RejectionReason, coupon: Optional[CouponDefinition] = None) -> "DiscountResult":
        return cls(accepted=False, reason=reason, coupon_snapshot=coupon)

    @classmethod
    def granted(cls, coupon: CouponDefinition, amount_minor: int, shipping_waived: bool = False) -> "DiscountResult":
        return cls(
            accepted=True,
            discount_amount_minor=amount_minor,
            shipping_waived=shipping_waived,
            coupon_snapshot=coupon,
        )

    @property
    def coupon_code(self) -> Optional[str]:
        return self.coupon_snapshot.code if self.coupon_snapshot else None
