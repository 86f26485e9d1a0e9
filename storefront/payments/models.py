"""
Modèles du checkout: panier client (non fiable), commande pricée, intention de paiement.
"""
from datetime import datetime, timezone
from typing import Any, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from storefront.catalog.models import PricedLine
from storefront.utils.money import MAX_AMOUNT_MINOR


class CartItem(BaseModel):
    """
    Ligne du panier telle qu'envoyée par le client (CartSnapshot).
    name/price/image servent à l'affichage côté client uniquement: le prix est toujours re-dérivé.
    """
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    product_ref: str = Field(alias="id", min_length=1)
    name: Optional[str] = None
    unit_price: Optional[Any] = Field(default=None, alias="price")
    quantity: int = Field(default=1, ge=1, le=1000)
    image_ref: Optional[str] = Field(default=None, alias="image")

    @field_validator("product_ref", mode="before")
    @classmethod
    def _strip_ref(cls, v: Any) -> Any:
        return str(v).strip() if v is not None else v


class PricedOrder(BaseModel):
    """
    Commande pricée côté serveur. Invariants vérifiés à la construction:
    subtotal = Σ lignes, 0 <= remise <= subtotal, total = subtotal - remise + livraison >= 0.
    """
    model_config = ConfigDict(frozen=True)

    user_ref: str = Field(min_length=1)
    lines: Tuple[PricedLine, ...]
    coupon_code: Optional[str] = None
    subtotal_minor: int
    discount_minor: int = 0
    shipping_minor: int = 0
    total_minor: int

    @model_validator(mode="after")
    def _check_totals(self) -> "PricedOrder":
        if not self.lines:
            raise ValueError("Commande sans ligne")
        expected_subtotal = sum(line.line_total_minor for line in self.lines)
        if self.subtotal_minor != expected_subtotal:
            raise ValueError(f"subtotal incohérent: {self.subtotal_minor} != {expected_subtotal}")
        if not 0 <= self.discount_minor <= self.subtotal_minor:
            raise ValueError(f"remise hors bornes: {self.discount_minor}")
        if self.shipping_minor < 0:
            raise ValueError(f"livraison négative: {self.shipping_minor}")
        expected_total = self.subtotal_minor - self.discount_minor + self.shipping_minor
        if self.total_minor != expected_total:
            raise ValueError(f"total incohérent: {self.total_minor} != {expected_total}")
        if self.total_minor < 0 or self.total_minor > MAX_AMOUNT_MINOR:
            raise ValueError(f"total hors bornes: {self.total_minor}")
        return self

    @property
    def item_count(self) -> int:
        return sum(line.quantity for line in self.lines)


class CheckoutIntent(BaseModel):
    """Intention figée, aller-retour via les metadata Stripe; intent_id = clé d'idempotence de la commande."""
    model_config = ConfigDict(frozen=True)

    intent_id: str = Field(min_length=1)
    created_at: datetime
    order: PricedOrder

    @field_validator("created_at")
    @classmethod
    def _tz(cls, v: datetime) -> datetime:
        return v if v.tzinfo else v.replace(tzinfo=timezone.utc)

    @property
    def user_ref(self) -> str:
        return self.order.user_ref

    @property
    def line_items(self) -> List[PricedLine]:
        return list(self.order.lines)

    @property
    def total_minor(self) -> int:
        return self.order.total_minor
