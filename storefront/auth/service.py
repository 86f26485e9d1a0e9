"""
Cas d'usage Auth consommés par le checkout: identité de l'appelant et contexte client
pour l'évaluation des coupons (segment, nombre de commandes passées).
"""
from typing import Any, Dict, Optional
import logging

from storefront.coupons.models import CustomerContext
from storefront.orders import repository as orders_repo
from .repository import get_user_from_access_token as _repo_get_user_from_token

logger = logging.getLogger(__name__)

def determine_segment(metadata: Optional[Dict[str, Any]]) -> str:
    """Segment déclaré dans user_metadata (segment ou role); 'vip' est le seul reconnu."""
    meta = metadata or {}
    for key in ("segment", "role"):
        if str(meta.get(key, "")).lower() == "vip":
            return "vip"
    return "standard"

def get_user_from_token(token: str) -> Dict[str, Any]:
    """Normalise l'utilisateur Supabase en {id, email, segment, metadata, token}."""
    user = _repo_get_user_from_token(token)
    metadata = user.get("user_metadata") or {}
    return {
        "id": user.get("id"),
        "email": user.get("email"),
        "segment": determine_segment(metadata),
        "metadata": metadata,
        "token": token,
    }

def build_customer_context(user: Dict[str, Any]) -> CustomerContext:
    """
    Construit le CustomerContext de l'évaluateur.
    - prior_order_count: commandes matérialisées (table orders), lu au moment du checkout.
    """
    user_ref = str(user.get("id") or "")
    segment = user.get("segment") or determine_segment(user.get("metadata"))
    return CustomerContext(
        user_ref=user_ref,
        email=user.get("email"),
        prior_order_count=orders_repo.count_user_orders(user_ref) if user_ref else 0,
        is_vip=segment == "vip",
    )
