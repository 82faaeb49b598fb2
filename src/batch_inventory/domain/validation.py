"""
Validation des données de lot, avant toute mutation.

Les fonctions retournent la liste des erreurs plutôt que de lever :
c'est l'agrégat (model.Product) qui décide de lever ValidationError.
"""

from __future__ import annotations

from datetime import date
from typing import Optional

from batch_inventory.domain.freshness import DateLike, to_date


def parse_optional_date(value: Optional[DateLike]) -> Optional[date]:
    if value is None or value == "":
        return None
    return to_date(value)


def validate_batch(
    batch_no: Optional[str],
    qty: Optional[int],
    mfg_date: Optional[DateLike] = None,
    expiry_date: Optional[DateLike] = None,
) -> list[str]:
    errors: list[str] = []

    if not batch_no or not str(batch_no).strip():
        errors.append("Batch number is required")

    if qty is None or isinstance(qty, bool) or not isinstance(qty, int) or qty <= 0:
        errors.append("Quantity must be greater than 0")

    mfg = expiry = None
    try:
        expiry = parse_optional_date(expiry_date)
    except ValueError:
        errors.append("Invalid expiry date")
    try:
        mfg = parse_optional_date(mfg_date)
    except ValueError:
        errors.append("Invalid manufacturing date")

    if mfg is not None and expiry is not None and mfg >= expiry:
        errors.append("Expiry date must be after manufacturing date")

    return errors


def validate_location(location_id: Optional[str]) -> list[str]:
    if not location_id or not str(location_id).strip():
        return ["Location is required"]
    return []
