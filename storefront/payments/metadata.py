"""
Sérialisation/désérialisation de l'intention de checkout dans les metadata Stripe.

Le canal metadata de Stripe est borné (50 clés, 500 caractères par valeur): les lignes sont
sérialisées en JSON compact puis découpées en morceaux items_0..items_N. Si l'intention ne
tient pas, on retire d'abord les images des lignes, puis on échoue (IntentTooLarge).
"""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple
from uuid import uuid4
import json
import logging

from pydantic import ValidationError

from storefront.catalog.models import PricedLine
from storefront.config import METADATA_MAX_KEYS, METADATA_MAX_VALUE_CHARS
from storefront.payments.errors import IntentTooLarge, InvariantViolation, MalformedEvent
from storefront.payments.models import CheckoutIntent, PricedOrder

logger = logging.getLogger(__name__)

FORMAT_VERSION = "1"
INTENT_ID_KEY = "intent_id"
ITEMS_COUNT_KEY = "items_n"
ITEMS_CHUNK_PREFIX = "items_"
REQUIRED_KEYS = ("v", INTENT_ID_KEY, "user_ref", "subtotal", "discount", "shipping", "total", "created_at", ITEMS_COUNT_KEY)

# module storefront.payments.metadata
def _line_to_compact(line: PricedLine, include_image: bool) -> Dict[str, Any]:
    compact: Dict[str, Any] = {"p": line.product_ref, "n": line.name, "u": line.unit_price_minor, "q": line.quantity}
    if line.category is not None:
        compact["c"] = line.category
    if include_image and line.image_ref:
        compact["i"] = line.image_ref
    return compact

def _line_from_compact(raw: Dict[str, Any]) -> PricedLine:
    return PricedLine(
        product_ref=raw["p"],
        name=raw["n"],
        unit_price_minor=raw["u"],
        quantity=raw["q"],
        category=raw.get("c"),
        image_ref=raw.get("i"),
    )

def _chunk(text: str, size: int) -> List[str]:
    return [text[i:i + size] for i in range(0, len(text), size)] or [""]

def encode_intent(
    order: PricedOrder,
    *,
    intent_id: Optional[str] = None,
    created_at: Optional[datetime] = None,
    max_keys: int = METADATA_MAX_KEYS,
    max_value_chars: int = METADATA_MAX_VALUE_CHARS,
) -> Tuple[Dict[str, str], str]:
    """
    Encode une PricedOrder en metadata Stripe.
    - Génère un intent_id aléatoire (clé d'idempotence de la future commande).
    - Retour: (metadata {str: str}, intent_id).
    - Lève IntentTooLarge si la commande ne tient pas dans le plafond, même sans images.
    """
    intent_id = intent_id or str(uuid4())
    created_at = created_at or datetime.now(timezone.utc)
    header: Dict[str, str] = {
        "v": FORMAT_VERSION,
        INTENT_ID_KEY: intent_id,
        "user_ref": order.user_ref,
        "subtotal": str(order.subtotal_minor),
        "discount": str(order.discount_minor),
        "shipping": str(order.shipping_minor),
        "total": str(order.total_minor),
        "created_at": created_at.isoformat(),
    }
    if order.coupon_code:
        header["coupon"] = order.coupon_code
    if any(len(v) > max_value_chars for v in header.values()):
        raise IntentTooLarge("Métadonnées de commande trop volumineuses")

    for include_images in (True, False):
        payload = json.dumps(
            [_line_to_compact(line, include_images) for line in order.lines],
            separators=(",", ":"),
            ensure_ascii=False,
        )
        chunks = _chunk(payload, max_value_chars)
        if len(header) + 1 + len(chunks) <= max_keys:
            metadata = dict(header)
            metadata[ITEMS_COUNT_KEY] = str(len(chunks))
            for idx, chunk in enumerate(chunks):
                metadata[f"{ITEMS_CHUNK_PREFIX}{idx}"] = chunk
            return metadata, intent_id
        logger.info("payments.metadata intent=%s trop volumineuse avec images, nouvel essai sans images", intent_id)

    raise IntentTooLarge(f"Panier trop volumineux pour le paiement ({len(order.lines)} lignes)")

def decode_intent(metadata: Optional[Dict[str, Any]]) -> CheckoutIntent:
    """
    Reconstruit la CheckoutIntent depuis les metadata renvoyées par Stripe.
    - MalformedEvent si un champ requis manque ou est illisible (jamais de commande partielle).
    - InvariantViolation si les montants sont incohérents (total négatif, somme fausse).
    """
    meta = metadata or {}
    missing = [k for k in REQUIRED_KEYS if not meta.get(k)]
    if missing:
        raise MalformedEvent(f"Metadata manquantes: {', '.join(missing)}", intent_id=meta.get(INTENT_ID_KEY))
    intent_id = str(meta[INTENT_ID_KEY])
    if meta["v"] != FORMAT_VERSION:
        raise MalformedEvent(f"Version de metadata inconnue: {meta['v']}", intent_id=intent_id)

    try:
        n_chunks = int(meta[ITEMS_COUNT_KEY])
        payload = "".join(meta[f"{ITEMS_CHUNK_PREFIX}{i}"] for i in range(n_chunks))
        raw_lines = json.loads(payload)
        lines = tuple(_line_from_compact(raw) for raw in raw_lines)
        amounts = {k: int(meta[k]) for k in ("subtotal", "discount", "shipping", "total")}
        created_at = datetime.fromisoformat(meta["created_at"])
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        raise MalformedEvent(f"Metadata illisibles: {e}", intent_id=intent_id) from e

    try:
        order = PricedOrder(
            user_ref=meta["user_ref"],
            lines=lines,
            coupon_code=meta.get("coupon") or None,
            subtotal_minor=amounts["subtotal"],
            discount_minor=amounts["discount"],
            shipping_minor=amounts["shipping"],
            total_minor=amounts["total"],
        )
    except ValidationError as e:
        raise InvariantViolation(f"Montants incohérents pour intent={intent_id}") from e
    return CheckoutIntent(intent_id=intent_id, created_at=created_at, order=order)
