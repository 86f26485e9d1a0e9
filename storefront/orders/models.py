"""
Modèles de la commande matérialisée (table 'orders', système de référence).

- Une commande est créée une seule fois par intent_id, à partir de la CheckoutIntent
  renvoyée par Stripe; ses montants sont ceux figés dans l'intention.
- Les transitions de statut ultérieures (expédition, livraison) relèvent de l'admin.
"""
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from storefront.payments.models import CheckoutIntent


class OrderStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class ShippingAddress(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: Optional[str] = None
    line1: Optional[str] = None
    line2: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None

    @classmethod
    def from_session(cls, session: Dict[str, Any]) -> Optional["ShippingAddress"]:
        """
        Adresse collectée par Stripe Checkout.
        Selon la version d'API: shipping_details, collected_information.shipping_details,
        ou à défaut l'adresse de facturation (customer_details).
        """
        collected = session.get("collected_information") or {}
        customer = session.get("customer_details") or {}
        for source in (session.get("shipping_details"), collected.get("shipping_details"), customer):
            if source and source.get("address"):
                return cls(name=source.get("name"), **source["address"])
        return None


class OrderItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    product_ref: str
    name: str
    unit_price_minor: int = Field(ge=0)
    quantity: int = Field(ge=1)
    image_ref: Optional[str] = None


class Order(BaseModel):
    """Commande durable; 'id' est attribué par la base lors de l'insertion."""
    id: Optional[str] = None
    intent_id: str = Field(min_length=1)
    user_ref: str
    items: List[OrderItem]
    subtotal_minor: int = Field(ge=0)
    discount_minor: int = Field(default=0, ge=0)
    shipping_minor: int = Field(default=0, ge=0)
    total_minor: int = Field(ge=0)
    status: OrderStatus = OrderStatus.PROCESSING
    shipping_address: Optional[ShippingAddress] = None
    coupon_code: Optional[str] = None
    provider_session_id: Optional[str] = None
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_intent(cls, intent: CheckoutIntent, session: Optional[Dict[str, Any]] = None) -> "Order":
        session = session or {}
        customer = session.get("customer_details") or {}
        order = intent.order
        return cls(
            intent_id=intent.intent_id,
            user_ref=order.user_ref,
            items=[
                OrderItem(
                    product_ref=line.product_ref,
                    name=line.name,
                    unit_price_minor=line.unit_price_minor,
                    quantity=line.quantity,
                    image_ref=line.image_ref,
                )
                for line in order.lines
            ],
            subtotal_minor=order.subtotal_minor,
            discount_minor=order.discount_minor,
            shipping_minor=order.shipping_minor,
            total_minor=order.total_minor,
            shipping_address=ShippingAddress.from_session(session),
            coupon_code=order.coupon_code,
            provider_session_id=session.get("id"),
            customer_email=customer.get("email") or session.get("customer_email"),
            customer_phone=customer.get("phone"),
        )

    def to_row(self) -> Dict[str, Any]:
        """Ligne JSON pour la fonction SQL materialize_order (colonnes de la table orders)."""
        return {
            "intent_id": self.intent_id,
            "user_id": self.user_ref,
            "items": [item.model_dump() for item in self.items],
            "subtotal_minor": self.subtotal_minor,
            "discount_minor": self.discount_minor,
            "shipping_minor": self.shipping_minor,
            "total_minor": self.total_minor,
            "status": self.status.value,
            "shipping_address": self.shipping_address.model_dump() if self.shipping_address else None,
            "coupon_code": self.coupon_code,
            "provider_session_id": self.provider_session_id,
            "customer_email": self.customer_email,
            "customer_phone": self.customer_phone,
        }

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Order":
        data = dict(row)
        data["user_ref"] = data.pop("user_id", None) or data.get("user_ref") or ""
        return cls.model_validate(data)

    def to_public(self) -> Dict[str, Any]:
        """Vue JSON renvoyée aux clients de l'API (camelCase)."""
        return {
            "id": self.id,
            "intentId": self.intent_id,
            "status": self.status.value,
            "items": [
                {"productRef": i.product_ref, "name": i.name, "unitPriceMinor": i.unit_price_minor,
                 "quantity": i.quantity, "imageRef": i.image_ref}
                for i in self.items
            ],
            "subtotalMinor": self.subtotal_minor,
            "discountMinor": self.discount_minor,
            "shippingMinor": self.shipping_minor,
            "totalMinor": self.total_minor,
            "couponCode": self.coupon_code,
            "shippingAddress": self.shipping_address.model_dump() if self.shipping_address else None,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }


class MaterializeResult(BaseModel):
    """Issue de l'insertion idempotente: created=False signifie doublon (déjà matérialisée)."""
    model_config = ConfigDict(frozen=True)

    created: bool
    order_id: Optional[str] = None
