"""
Order Store (table 'orders').

La matérialisation passe par la fonction SQL materialize_order (supabase/migrations):
insertion sur contrainte unique intent_id + décrément de stock + incrément atomique
de usage_count du coupon, dans une seule transaction. Aucune vérification préalable
côté application: la contrainte d'unicité est l'unique point de déduplication.
"""
from typing import List, Optional
import logging

from postgrest.exceptions import APIError

import storefront.infra.supabase_client as supabase_client
from storefront.orders.models import MaterializeResult, Order
from storefront.payments.errors import StorageUnavailable

logger = logging.getLogger(__name__)

UNIQUE_VIOLATION = "23505"
ORDER_COLUMNS = (
    "id, intent_id, user_id, items, subtotal_minor, discount_minor, shipping_minor, total_minor, "
    "status, shipping_address, coupon_code, provider_session_id, customer_email, customer_phone, "
    "created_at, updated_at"
)

# module storefront.orders.repository
def materialize_order(order: Order) -> MaterializeResult:
    """
    Crée la commande exactement une fois pour son intent_id.
    - {created: true, order_id}: première insertion (stock et usage coupon appliqués)
    - {created: false}: intent déjà matérialisée, no-op
    - StorageUnavailable: échec transitoire, l'événement doit être redélivré
    """
    try:
        res = supabase_client.get_service_supabase().rpc("materialize_order", {"p_order": order.to_row()}).execute()
    except APIError as e:
        if getattr(e, "code", None) == UNIQUE_VIOLATION:
            # Course perdue contre une livraison concurrente du même événement
            logger.info("orders.repository duplicate intent=%s (unique violation)", order.intent_id)
            return MaterializeResult(created=False)
        logger.exception("orders.repository.materialize_order failed intent=%s", order.intent_id)
        raise StorageUnavailable("Écriture de la commande impossible", intent_id=order.intent_id) from e
    except Exception as e:
        logger.exception("orders.repository.materialize_order failed intent=%s", order.intent_id)
        raise StorageUnavailable("Écriture de la commande impossible", intent_id=order.intent_id) from e

    data = res.data
    if isinstance(data, list):
        data = data[0] if data else None
    if not isinstance(data, dict) or "created" not in data:
        logger.error("orders.repository réponse inattendue intent=%s data=%r", order.intent_id, data)
        raise StorageUnavailable("Réponse de matérialisation inattendue", intent_id=order.intent_id)
    order_id = data.get("order_id")
    return MaterializeResult(created=bool(data["created"]), order_id=str(order_id) if order_id else None)

def fetch_user_orders(user_ref: str, limit: int = 50) -> List[Order]:
    """Commandes d'un utilisateur, les plus récentes d'abord."""
    try:
        res = (
            supabase_client.get_service_supabase()
            .table("orders")
            .select(ORDER_COLUMNS)
            .eq("user_id", user_ref)
            .order("created_at", desc=True)
            .limit(limit)
            .execute()
        )
    except Exception as e:
        logger.exception("orders.repository.fetch_user_orders failed user=%s", user_ref)
        raise StorageUnavailable("Commandes indisponibles") from e
    return [Order.from_row(row) for row in (res.data or [])]

def get_order_by_intent(intent_id: str) -> Optional[Order]:
    try:
        res = (
            supabase_client.get_service_supabase()
            .table("orders")
            .select(ORDER_COLUMNS)
            .eq("intent_id", intent_id)
            .limit(1)
            .execute()
        )
    except Exception as e:
        logger.exception("orders.repository.get_order_by_intent failed intent=%s", intent_id)
        raise StorageUnavailable("Commandes indisponibles", intent_id=intent_id) from e
    rows = res.data or []
    return Order.from_row(rows[0]) if rows else None

def count_user_orders(user_ref: str) -> int:
    """Nombre de commandes matérialisées (hors annulées) pour le segment new/returning."""
    try:
        res = (
            supabase_client.get_service_supabase()
            .table("orders")
            .select("id", count="exact")
            .eq("user_id", user_ref)
            .neq("status", "cancelled")
            .execute()
        )
    except Exception as e:
        logger.exception("orders.repository.count_user_orders failed user=%s", user_ref)
        raise StorageUnavailable("Commandes indisponibles") from e
    return int(res.count or 0)
