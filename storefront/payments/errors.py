"""
Erreurs typées du pipeline de checkout et du webhook de paiement.

- CheckoutError et sous-classes: renvoyées à l'appelant de /checkout avec un code stable
  (status_code HTTP + code), converties en JSON par storefront.app_setup.exceptions.
- WebhookError et sous-classes: issues du traitement d'un événement Stripe; la vue webhook
  décide de l'acquittement (200), du rejet définitif, ou du refus temporaire (retry Stripe).
"""
from typing import Optional


class CheckoutError(Exception):
    status_code = 400
    code = "CheckoutError"

    def __init__(self, detail: str = "", **extra):
        super().__init__(detail or self.code)
        self.detail = detail or self.code
        self.extra = extra

    def to_dict(self) -> dict:
        body = {"detail": self.detail, "code": self.code}
        body.update(self.extra)
        return body


class InvalidCart(CheckoutError):
    code = "InvalidCart"


class EmptyCart(CheckoutError):
    code = "EmptyCart"


class CouponRejected(CheckoutError):
    code = "CouponRejected"

    def __init__(self, reason: str, detail: str = ""):
        super().__init__(detail or f"Coupon refusé ({reason})", reason=reason)
        self.reason = reason


class PriceMismatch(CheckoutError):
    status_code = 409
    code = "PriceMismatch"

    def __init__(self, product_ref: str, detail: str = ""):
        super().__init__(detail or f"Produit indisponible ou en rupture: {product_ref}", product_ref=product_ref)
        self.product_ref = product_ref


class IntentTooLarge(CheckoutError):
    code = "IntentTooLarge"


class ServiceUnavailable(CheckoutError):
    """Catalogue ou coupons illisibles (Supabase indisponible): l'appelant peut réessayer."""
    status_code = 503
    code = "ServiceUnavailable"


class PaymentProviderUnavailable(CheckoutError):
    status_code = 502
    code = "PaymentProviderUnavailable"


class InvariantViolation(CheckoutError):
    """Total négatif, incohérent ou hors bornes: on n'émet ni session ni commande."""
    status_code = 500
    code = "InvariantViolation"


class WebhookError(Exception):
    code = "WebhookError"

    def __init__(self, detail: str = "", intent_id: Optional[str] = None):
        super().__init__(detail or self.code)
        self.detail = detail or self.code
        self.intent_id = intent_id


class WebhookNotConfigured(WebhookError):
    code = "WebhookNotConfigured"


class InvalidSignature(WebhookError):
    code = "InvalidSignature"


class MalformedEvent(WebhookError):
    code = "MalformedEvent"


class StorageUnavailable(WebhookError):
    code = "StorageUnavailable"
