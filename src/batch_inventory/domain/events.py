"""
Events du domaine.

Les events représentent des faits qui se sont produits dans le système.
Ils sont immuables et nommés au passé. À ne pas confondre avec les
BatchEvent du journal (domain.ledger) : ceux-ci sont persistés et
font foi, ceux-là ne servent qu'à déclencher des réactions via le
message bus.
"""

from dataclasses import dataclass
from typing import Optional


class Event:
    """Classe de base pour tous les events du domaine."""
    pass


@dataclass(frozen=True)
class BatchReceived(Event):
    product_id: str
    location_id: str
    batch_no: str
    qty: int


@dataclass(frozen=True)
class BatchAdjusted(Event):
    product_id: str
    location_id: str
    batch_no: str
    qty_change: int


@dataclass(frozen=True)
class BatchDepleted(Event):
    """Un lot vient d'atteindre une quantité nulle."""

    product_id: str
    location_id: str
    batch_no: str


@dataclass(frozen=True)
class AllocationShortfall(Event):
    """Une vente n'a pas pu être servie entièrement par les lots disponibles."""

    product_id: str
    requested: int
    fulfilled: int
    shortfall: int
    order_id: Optional[str] = None
