# module storefront.orders.views

"""Endpoints de consultation des commandes matérialisées.
- GET /api/v1/orders: commandes de l'utilisateur connecté.
- GET /api/v1/orders/{intent_id}: suivi après paiement (404 tant que le webhook n'a pas abouti).
"""
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, Query

from storefront.orders import service as orders_service
from storefront.utils.security import require_user

router = APIRouter(prefix="/api/v1/orders", tags=["Orders API"])


@router.get("")
def list_orders(limit: int = Query(50, ge=1, le=200), user: Dict[str, Any] = Depends(require_user)):
    return {"orders": orders_service.list_user_orders(str(user.get("id")), limit=limit)}


@router.get("/{intent_id}")
def get_order(intent_id: str, user: Dict[str, Any] = Depends(require_user)):
    order = orders_service.get_user_order(str(user.get("id")), intent_id)
    if order is None:
        raise HTTPException(status_code=404, detail="Commande introuvable")
    return order
