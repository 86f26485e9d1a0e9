"""
Agrégateur de prix (pur: pas de Stripe, pas de DB).
Le catalogue est passé en paramètre; les prix envoyés par le client ne sont jamais utilisés.
"""
from typing import Any, Dict, List, Optional, Sequence
import logging

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from storefront.catalog.models import CatalogProduct, PricedLine
from storefront.config import FREE_SHIPPING_THRESHOLD_MINOR, SHIPPING_FLAT_FEE_MINOR
from storefront.coupons.models import DiscountResult
from storefront.payments.errors import EmptyCart, InvalidCart, InvariantViolation, PriceMismatch
from storefront.payments.models import CartItem, PricedOrder

logger = logging.getLogger(__name__)


class ShippingRule(BaseModel):
    """Forfait de livraison, offert à partir d'un seuil de sous-total (ou si un coupon l'annule)."""
    model_config = ConfigDict(frozen=True)

    flat_fee_minor: int = Field(ge=0)
    free_threshold_minor: Optional[int] = Field(default=None, ge=0)

    @classmethod
    def from_config(cls) -> "ShippingRule":
        return cls(flat_fee_minor=SHIPPING_FLAT_FEE_MINOR, free_threshold_minor=FREE_SHIPPING_THRESHOLD_MINOR)

    def amount_for(self, subtotal_minor: int, waived: bool = False) -> int:
        if waived:
            return 0
        if self.free_threshold_minor is not None and subtotal_minor >= self.free_threshold_minor:
            return 0
        return self.flat_fee_minor

# module storefront.payments.pricing
def parse_cart(items: Sequence[Any]) -> List[CartItem]:
    """
    Normalise le panier brut [{id, quantity, ...}] en CartItem.
    - Accepte des dicts ou des CartItem déjà construits.
    - Lève InvalidCart sur une ligne illisible, EmptyCart si le panier est vide.
    """
    cart: List[CartItem] = []
    for raw in items or []:
        if isinstance(raw, CartItem):
            cart.append(raw)
            continue
        try:
            cart.append(CartItem.model_validate(raw))
        except ValidationError as e:
            raise InvalidCart("Panier invalide") from e
    if not cart:
        raise EmptyCart("Panier vide")
    return cart

def aggregate_quantities(cart: Sequence[CartItem]) -> Dict[str, int]:
    """
    Agrège le panier en {product_ref: quantité totale}, en conservant l'ordre d'apparition.
    Lève EmptyCart si aucune ligne ne subsiste.
    """
    quantities: Dict[str, int] = {}
    for item in cart:
        quantities[item.product_ref] = quantities.get(item.product_ref, 0) + item.quantity
    if not quantities:
        raise EmptyCart("Panier vide")
    return quantities

def price_cart(quantities: Dict[str, int], products: Dict[str, CatalogProduct]) -> List[PricedLine]:
    """
    Re-price chaque ligne depuis le catalogue.
    - PriceMismatch si un produit est introuvable, désactivé, ou en stock insuffisant.
    - EmptyCart si aucune ligne.
    """
    lines: List[PricedLine] = []
    for product_ref, qty in quantities.items():
        product = products.get(product_ref)
        if product is None or not product.can_fulfil(qty):
            raise PriceMismatch(product_ref)
        lines.append(PricedLine(
            product_ref=product.product_ref,
            name=product.name,
            unit_price_minor=product.unit_price_minor,
            quantity=qty,
            category=product.category,
            image_ref=product.image_ref,
        ))
    if not lines:
        raise EmptyCart("Panier vide")
    return lines

def aggregate(
    user_ref: str,
    lines: Sequence[PricedLine],
    discount: Optional[DiscountResult],
    shipping_rule: ShippingRule,
) -> PricedOrder:
    """
    Calcule la commande pricée finale.
    - Remise ignorée si le coupon est refusé, bornée au sous-total sinon.
    - Livraison offerte si le coupon l'annule ou si le sous-total atteint le seuil.
    - Toute incohérence monétaire lève InvariantViolation (aucune session ne sera créée).
    """
    if not lines:
        raise EmptyCart("Panier vide")
    subtotal = sum(line.line_total_minor for line in lines)
    accepted = bool(discount and discount.accepted)
    discount_minor = min(discount.discount_amount_minor, subtotal) if accepted else 0
    shipping_minor = shipping_rule.amount_for(subtotal, waived=accepted and discount.shipping_waived)
    try:
        return PricedOrder(
            user_ref=user_ref,
            lines=tuple(lines),
            coupon_code=discount.coupon_code if accepted else None,
            subtotal_minor=subtotal,
            discount_minor=discount_minor,
            shipping_minor=shipping_minor,
            total_minor=subtotal - discount_minor + shipping_minor,
        )
    except ValidationError as e:
        logger.error("payments.pricing invariant violé user=%s subtotal=%s discount=%s", user_ref, subtotal, discount_minor)
        raise InvariantViolation("Montant de commande incohérent") from e
