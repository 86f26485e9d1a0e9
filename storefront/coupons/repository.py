"""
Accès aux données coupons (table 'coupons') et compteurs d'utilisation.
Les compteurs sont en lecture seule ici: l'incrément se fait uniquement dans la
transaction de matérialisation de commande (fonction SQL materialize_order).
"""
from typing import Optional, Tuple
import logging

import storefront.infra.supabase_client as supabase_client
from storefront.coupons.models import CouponDefinition, UsageSnapshot, normalize_code
from storefront.payments.errors import ServiceUnavailable

logger = logging.getLogger(__name__)

# module storefront.coupons.repository
def fetch_coupon_row(code: str) -> Optional[dict]:
    """Ligne brute du coupon (code comparé en majuscules), None si absent."""
    normalized = normalize_code(code)
    if not normalized:
        return None
    try:
        res = (
            supabase_client.get_service_supabase()
            .table("coupons")
            .select("*")
            .eq("code", normalized)
            .limit(1)
            .execute()
        )
    except Exception as e:
        logger.exception("coupons.repository.fetch_coupon_row failed code=%s", normalized)
        raise ServiceUnavailable("Coupons indisponibles, réessayez plus tard") from e
    rows = res.data or []
    return rows[0] if rows else None

def get_coupon(code: str) -> Optional[Tuple[CouponDefinition, int]]:
    """
    Retourne (définition, usage_count global) ou None.
    - Une définition invalide en base (ex: dates inversées) est journalisée et traitée comme absente.
    """
    row = fetch_coupon_row(code)
    if not row:
        return None
    try:
        coupon = CouponDefinition.model_validate(row)
    except ValueError:
        logger.warning("coupons.repository définition invalide ignorée code=%s", row.get("code"))
        return None
    return coupon, int(row.get("usage_count") or 0)

def count_user_usage(code: str, user_ref: str) -> int:
    """Nombre de commandes matérialisées de cet utilisateur avec ce coupon."""
    if not user_ref:
        return 0
    try:
        res = (
            supabase_client.get_service_supabase()
            .table("orders")
            .select("id", count="exact")
            .eq("coupon_code", normalize_code(code))
            .eq("user_id", user_ref)
            .execute()
        )
    except Exception as e:
        logger.exception("coupons.repository.count_user_usage failed code=%s user=%s", code, user_ref)
        raise ServiceUnavailable("Coupons indisponibles, réessayez plus tard") from e
    return int(res.count or 0)

def count_coupon_usage(code: str, user_ref: str, global_count: Optional[int] = None) -> UsageSnapshot:
    """
    Instantané (global, utilisateur) pour l'évaluateur.
    global_count peut être passé s'il a déjà été lu avec la définition du coupon.
    """
    if global_count is None:
        found = get_coupon(code)
        global_count = found[1] if found else 0
    return UsageSnapshot(global_count=global_count, user_count=count_user_usage(code, user_ref))
