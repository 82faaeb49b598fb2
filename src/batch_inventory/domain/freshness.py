"""
Classification de fraîcheur des lots.

Le statut n'est jamais stocké : il est recalculé à chaque lecture
à partir de la date de péremption et de la date du jour. Les deux
dates sont ramenées au jour calendaire avant comparaison, pour
éviter tout effet de l'heure de la journée.
"""

from __future__ import annotations

import enum
import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Iterable, Optional, Protocol, Union

EXPIRING_SOON_DAYS = 30

DateLike = Union[date, datetime, str]


class BatchStatus(str, enum.Enum):
    OK = "OK"
    EXPIRING_SOON = "EXPIRING_SOON"
    EXPIRED = "EXPIRED"


# jour ISO, suivi au plus d'une heure (« 2025-01-01T08:30:00.000Z »)
_ISO_DATE = re.compile(
    r"(\d{4}-\d{2}-\d{2})(?:T\d{2}:\d{2}(?::\d{2}(?:\.\d+)?)?(?:Z|[+-]\d{2}:?\d{2})?)?"
)


class HasExpiry(Protocol):
    qty: int
    expiry_date: Optional[date]


def to_date(value: DateLike) -> date:
    """
    Ramène une date, un datetime ou une chaîne ISO au jour calendaire.

    Lève ValueError si la chaîne n'est pas une date valide.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        match = _ISO_DATE.fullmatch(value.strip())
        if match is None:
            raise ValueError(f"Date invalide : {value!r}")
        try:
            return date.fromisoformat(match.group(1))
        except ValueError:
            raise ValueError(f"Date invalide : {value!r}") from None
    raise ValueError(f"Date invalide : {value!r}")


def days_until(expiry_date: DateLike, today: Optional[DateLike] = None) -> int:
    """Nombre de jours calendaires entre aujourd'hui et la date donnée."""
    today = to_date(today) if today is not None else date.today()
    return (to_date(expiry_date) - today).days


def status_for(expiry_date: Optional[DateLike], today: Optional[DateLike] = None) -> BatchStatus:
    """
    Statut de fraîcheur d'un lot.

    - pas de date de péremption : OK
    - date dépassée : EXPIRED
    - péremption dans 1 à 30 jours : EXPIRING_SOON
    - le jour même de la péremption, le lot n'est pas encore périmé : OK
    """
    if expiry_date is None:
        return BatchStatus.OK
    remaining = days_until(expiry_date, today)
    if remaining < 0:
        return BatchStatus.EXPIRED
    if 0 < remaining <= EXPIRING_SOON_DAYS:
        return BatchStatus.EXPIRING_SOON
    return BatchStatus.OK


def calculate_expiry_date(mfg_date: DateLike, shelf_life_days: int) -> date:
    """Date de péremption déduite de la fabrication et de la durée de conservation."""
    return to_date(mfg_date) + timedelta(days=shelf_life_days)


def batches_by_status(
    batches: Iterable[HasExpiry],
    status: BatchStatus,
    today: Optional[DateLike] = None,
) -> list:
    return [b for b in batches if status_for(b.expiry_date, today) is status]


@dataclass(frozen=True)
class StatusTotals:
    count: int = 0
    qty: int = 0


@dataclass(frozen=True)
class BatchSummary:
    total_batches: int
    total_qty: int
    ok: StatusTotals
    expiring_soon: StatusTotals
    expired: StatusTotals


def batch_summary(batches: Iterable[HasExpiry], today: Optional[DateLike] = None) -> BatchSummary:
    """Nombre de lots et quantités, au total et par statut."""
    batches = list(batches)
    totals = {}
    for status in BatchStatus:
        selected = batches_by_status(batches, status, today)
        totals[status] = StatusTotals(
            count=len(selected), qty=sum(b.qty for b in selected)
        )
    return BatchSummary(
        total_batches=len(batches),
        total_qty=sum(b.qty for b in batches),
        ok=totals[BatchStatus.OK],
        expiring_soon=totals[BatchStatus.EXPIRING_SOON],
        expired=totals[BatchStatus.EXPIRED],
    )
