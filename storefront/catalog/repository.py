"""
Accès au catalogue (table 'products'), consommé en lecture seule par le checkout.
"""
from typing import Dict, Iterable, List
import logging

import storefront.infra.supabase_client as supabase_client
from storefront.catalog.models import CatalogProduct
from storefront.payments.errors import ServiceUnavailable

logger = logging.getLogger(__name__)

# module storefront.catalog.repository
def fetch_products_by_refs(refs: List[str]) -> List[dict]:
    """
    Récupère les produits par leurs identifiants.
    - Retourne [] si refs vide.
    - Lève ServiceUnavailable si Supabase ne répond pas (jamais de prix « par défaut »).
    """
    if not refs:
        return []
    try:
        res = (
            supabase_client.get_service_supabase()
            .table("products")
            .select("id, name, price, category, image_url, stock, is_active")
            .in_("id", [str(r) for r in refs])
            .execute()
        )
        return res.data or []
    except Exception as e:
        logger.exception("catalog.repository.fetch_products_by_refs failed refs=%s", refs)
        raise ServiceUnavailable("Catalogue indisponible, réessayez plus tard") from e

def get_products_map(refs: Iterable[str]) -> Dict[str, CatalogProduct]:
    """
    Retourne {product_ref: CatalogProduct}.
    Les lignes illisibles (prix non numérique) sont ignorées: le produit sera vu comme indisponible.
    """
    products: Dict[str, CatalogProduct] = {}
    for row in fetch_products_by_refs(list(refs)):
        try:
            product = CatalogProduct.from_row(row)
        except ValueError:
            logger.warning("catalog.repository produit ignoré (ligne invalide) id=%s", row.get("id"))
            continue
        products[product.product_ref] = product
    return products
