"""
Matérialisation des commandes depuis les événements Stripe (handler idempotent).

L'événement est déjà authentifié (payments.stripe_client.verify_event). Ici:
1) filtrage du type d'événement et du statut de paiement
2) décodage de l'intention depuis les metadata (MalformedEvent si incomplète)
3) insertion unique par intent_id, stock et usage coupon dans la même transaction
"""
from typing import Any, Dict, List
import logging

from storefront.orders import repository as orders_repo
from storefront.orders.models import Order
from storefront.payments.errors import MalformedEvent
from storefront.payments.metadata import decode_intent

logger = logging.getLogger(__name__)

COMPLETED = "checkout.session.completed"
ASYNC_SUCCEEDED = "checkout.session.async_payment_succeeded"
MATERIALIZING_EVENTS = (COMPLETED, ASYNC_SUCCEEDED)
# no_payment_required: total nul (remise de 100 %, livraison offerte)
SETTLED_PAYMENT_STATUSES = ("paid", "no_payment_required")

# module storefront.orders.service
def _session_from_event(event: Dict[str, Any]) -> Dict[str, Any]:
    data = event.get("data")
    session = data.get("object") if isinstance(data, dict) else None
    if not isinstance(session, dict):
        raise MalformedEvent(f"Événement sans data.object (id={event.get('id')})")
    return session

def handle_event(event: Dict[str, Any]) -> Dict[str, Any]:
    """
    Traite un événement vérifié.
    Retour: {"status": "created"|"duplicate"|"ignored", ...}
    Erreurs: MalformedEvent / InvariantViolation (rejet définitif), StorageUnavailable (transitoire)
    """
    event_type = event.get("type")
    if event_type not in MATERIALIZING_EVENTS:
        return {"status": "ignored", "type": event_type}

    session = _session_from_event(event)
    # Moyen de paiement différé: la commande viendra avec async_payment_succeeded
    if event_type == COMPLETED and session.get("payment_status") not in SETTLED_PAYMENT_STATUSES:
        logger.info("orders.webhook session=%s payment_status=%s ignored", session.get("id"), session.get("payment_status"))
        return {"status": "ignored", "type": event_type}

    intent = decode_intent(session.get("metadata"))
    amount_total = session.get("amount_total")
    if amount_total is not None and amount_total != intent.total_minor:
        logger.warning(
            "orders.webhook amount mismatch intent=%s provider=%s intent_total=%s",
            intent.intent_id, amount_total, intent.total_minor,
        )

    order = Order.from_intent(intent, session)
    result = orders_repo.materialize_order(order)
    if not result.created:
        logger.info("orders.webhook duplicate intent=%s (no-op)", intent.intent_id)
        return {"status": "duplicate", "intentId": intent.intent_id}
    logger.info(
        "orders.webhook created order=%s intent=%s user=%s total=%s",
        result.order_id, intent.intent_id, intent.user_ref, intent.total_minor,
    )
    return {"status": "created", "intentId": intent.intent_id, "orderId": result.order_id}

def list_user_orders(user_ref: str, limit: int = 50) -> List[Dict[str, Any]]:
    return [order.to_public() for order in orders_repo.fetch_user_orders(user_ref, limit=limit)]

def get_user_order(user_ref: str, intent_id: str):
    """Commande de l'utilisateur pour cette intent, None si absente ou appartenant à un autre compte."""
    order = orders_repo.get_order_by_intent(intent_id)
    if order is None or order.user_ref != user_ref:
        return None
    return order.to_public()
