"""
Allocation FIFO par date de péremption.

On consomme d'abord le stock qui périme le plus tôt, pour limiter
les pertes. L'allocateur est une fonction pure : il ne modifie
aucun lot et ne lève pas d'erreur en cas de stock insuffisant.
Le plan retourné expose le manque (`shortfall`) pour que
l'appelant ne puisse pas l'ignorer par omission.
"""

from __future__ import annotations

import functools
from dataclasses import dataclass, field
from datetime import date
from typing import Iterable, Iterator, Optional, Protocol

from batch_inventory.domain.freshness import BatchStatus, DateLike, status_for


class PickableBatch(Protocol):
    batch_no: str
    qty: int
    expiry_date: Optional[date]


@dataclass(frozen=True)
class FifoPick:
    batch_no: str
    qty: int
    expiry_date: Optional[date] = None
    location_id: Optional[str] = None


@dataclass(frozen=True)
class FifoPlan:
    """
    Résultat d'une allocation : les prélèvements, la quantité servie
    et le manque éventuel.

    Itérer sur un FifoPlan revient à itérer sur ses prélèvements.
    """

    requested: int
    picks: list[FifoPick] = field(default_factory=list)

    @property
    def fulfilled(self) -> int:
        return sum(pick.qty for pick in self.picks)

    @property
    def shortfall(self) -> int:
        return max(0, self.requested - self.fulfilled)

    @property
    def is_complete(self) -> bool:
        return self.shortfall == 0

    def __iter__(self) -> Iterator[FifoPick]:
        return iter(self.picks)

    def __len__(self) -> int:
        return len(self.picks)


def _is_pickable(batch: PickableBatch, today: Optional[DateLike]) -> bool:
    return batch.qty > 0 and status_for(batch.expiry_date, today) is not BatchStatus.EXPIRED


def _compare(a: PickableBatch, b: PickableBatch) -> int:
    # Date de péremption d'abord quand les deux lots en ont une ;
    # sinon (ou à date égale) on départage par numéro de lot.
    if a.expiry_date is not None and b.expiry_date is not None:
        if a.expiry_date != b.expiry_date:
            return -1 if a.expiry_date < b.expiry_date else 1
    if a.batch_no == b.batch_no:
        return 0
    return -1 if a.batch_no < b.batch_no else 1


def pick_order(
    batches: Iterable[PickableBatch], today: Optional[DateLike] = None
) -> list[PickableBatch]:
    """Lots consommables, dans l'ordre où l'allocateur les entame."""
    # le comparateur n'est pas transitif quand des lots sans date se
    # mêlent aux autres : on fixe d'abord un ordre d'entrée stable
    candidates = sorted(
        (b for b in batches if _is_pickable(b, today)),
        key=lambda b: (b.batch_no, getattr(b, "location_id", None) or ""),
    )
    return sorted(candidates, key=functools.cmp_to_key(_compare))


def fifo_pick(
    batches: Iterable[PickableBatch],
    required_qty: int,
    today: Optional[DateLike] = None,
    location_id: Optional[str] = None,
) -> FifoPlan:
    """
    Planifie le prélèvement de `required_qty` unités.

    Les lots vides ou périmés sont ignorés. Si `location_id` est
    fourni, seuls les lots de cet emplacement sont considérés.
    """
    if required_qty <= 0:
        return FifoPlan(requested=max(required_qty, 0))

    if location_id is not None:
        batches = [b for b in batches if getattr(b, "location_id", None) == location_id]

    picks: list[FifoPick] = []
    remaining = required_qty
    for batch in pick_order(batches, today):
        if remaining <= 0:
            break
        qty = min(batch.qty, remaining)
        picks.append(
            FifoPick(
                batch_no=batch.batch_no,
                qty=qty,
                expiry_date=batch.expiry_date,
                location_id=getattr(batch, "location_id", None),
            )
        )
        remaining -= qty
    return FifoPlan(requested=required_qty, picks=picks)


def get_available_qty_for_fifo(
    batches: Iterable[PickableBatch], today: Optional[DateLike] = None
) -> int:
    """Quantité totale que l'allocateur peut servir (hors lots vides ou périmés)."""
    return sum(b.qty for b in batches if _is_pickable(b, today))
