"""
Types du catalogue vus par le checkout: produit tel que stocké, et ligne de panier re-pricée.
"""
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from storefront.utils.money import to_minor


class CatalogProduct(BaseModel):
    """Produit du catalogue (source de vérité du prix et du stock)."""
    model_config = ConfigDict(frozen=True)

    product_ref: str
    name: str
    unit_price_minor: int = Field(ge=0)
    category: Optional[str] = None
    image_ref: Optional[str] = None
    stock: Optional[int] = None
    is_active: bool = True

    @property
    def in_stock(self) -> bool:
        return self.is_active and (self.stock is None or self.stock > 0)

    def can_fulfil(self, quantity: int) -> bool:
        return self.in_stock and (self.stock is None or self.stock >= quantity)

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "CatalogProduct":
        """
        Construit un produit depuis une ligne de la table 'products'.
        - price est en unités majeures (numeric) et converti en centimes.
        - stock NULL signifie « stock non suivi ».
        """
        stock = row.get("stock")
        return cls(
            product_ref=str(row.get("id") or ""),
            name=str(row.get("name") or "Article"),
            unit_price_minor=to_minor(row.get("price") if row.get("price") is not None else 0),
            category=row.get("category") or None,
            image_ref=row.get("image_url") or row.get("image") or None,
            stock=int(stock) if stock is not None else None,
            is_active=bool(row.get("is_active", True)),
        )


class PricedLine(BaseModel):
    """Ligne de panier dont le prix vient du catalogue (jamais du client)."""
    model_config = ConfigDict(frozen=True)

    product_ref: str = Field(min_length=1)
    name: str
    unit_price_minor: int = Field(ge=0)
    quantity: int = Field(ge=1)
    category: Optional[str] = None
    image_ref: Optional[str] = None

    @property
    def line_total_minor(self) -> int:
        return self.unit_price_minor * self.quantity
