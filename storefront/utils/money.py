"""
Conversions monétaires: tout le pipeline de checkout compte en unités mineures (centimes, int).
Les prix du catalogue sont stockés en unités majeures (numeric), convertis ici une seule fois.
"""
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any

# Montant maximal accepté par Stripe pour une session (999 999,99)
MAX_AMOUNT_MINOR = 99_999_999

def to_minor(value: Any) -> int:
    """
    Convertit un prix en unités majeures (str|float|int|Decimal) en centimes.
    - Arrondi commercial (ROUND_HALF_UP), jamais de float intermédiaire.
    - Lève ValueError si la valeur n'est pas un nombre.
    """
    if isinstance(value, bool):
        raise ValueError(f"Prix invalide: {value!r}")
    try:
        amount = Decimal(str(value).strip().replace("$", "").replace(",", ""))
    except (InvalidOperation, AttributeError) as e:
        raise ValueError(f"Prix invalide: {value!r}") from e
    if not amount.is_finite():
        raise ValueError(f"Prix invalide: {value!r}")
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))

def format_minor(amount_minor: int) -> str:
    """Affichage '120.00' d'un montant en centimes (logs, messages)."""
    sign = "-" if amount_minor < 0 else ""
    units, cents = divmod(abs(int(amount_minor)), 100)
    return f"{sign}{units}.{cents:02d}"
