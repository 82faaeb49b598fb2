"""
Journal des mouvements de lots (event log).

Un BatchEvent est un fait immuable : une réception, un transfert,
une vente, un retour ou un ajustement sur un lot donné. Le journal
est la source de vérité ; la table batch_inventory n'en est
qu'une projection (un cache dérivé).

Les références (bon de commande, commande client, retour...) forment
une union fermée de types : chaque type connaît sa forme « à plat »
(ref_type, ref_id) utilisée pour la persistance.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from typing import ClassVar, Iterable, NamedTuple, Optional, Union


class EventType(str, enum.Enum):
    RECEIPT = "RECEIPT"
    TRANSFER = "TRANSFER"
    SALE = "SALE"
    RETURN = "RETURN"
    ADJUST = "ADJUST"


class BatchKey(NamedTuple):
    """Clé naturelle d'un lot : (produit, emplacement, numéro de lot)."""

    product_id: str
    location_id: str
    batch_no: str


# --- Références (union fermée) ---


@dataclass(frozen=True)
class PurchaseOrderRef:
    """Réception liée à un bon de commande fournisseur."""

    ref_type: ClassVar[str] = "PO"
    po_number: str

    @property
    def ref_id(self) -> str:
        return self.po_number


@dataclass(frozen=True)
class SalesOrderRef:
    ref_type: ClassVar[str] = "SO"
    order_id: str

    @property
    def ref_id(self) -> str:
        return self.order_id


@dataclass(frozen=True)
class ReturnRef:
    ref_type: ClassVar[str] = "RETURN"
    return_id: str

    @property
    def ref_id(self) -> str:
        return self.return_id


@dataclass(frozen=True)
class TransferRef:
    ref_type: ClassVar[str] = "TRANSFER"
    transfer_id: str

    @property
    def ref_id(self) -> str:
        return self.transfer_id


@dataclass(frozen=True)
class ManualRef:
    """Saisie manuelle ; `reason` est libre et optionnel."""

    ref_type: ClassVar[str] = "MANUAL"
    reason: Optional[str] = None

    @property
    def ref_id(self) -> Optional[str]:
        return self.reason


Reference = Union[PurchaseOrderRef, SalesOrderRef, ReturnRef, TransferRef, ManualRef]

REFERENCE_TYPES: dict[str, type] = {
    cls.ref_type: cls
    for cls in (PurchaseOrderRef, SalesOrderRef, ReturnRef, TransferRef, ManualRef)
}


def reference_from_columns(ref_type: Optional[str], ref_id: Optional[str]) -> Optional[Reference]:
    """
    Reconstruit une référence depuis sa forme à plat (ref_type, ref_id).

    Lève ValueError si ref_type ne fait pas partie de l'union.
    """
    if ref_type is None:
        return None
    try:
        cls = REFERENCE_TYPES[ref_type]
    except KeyError:
        raise ValueError(f"Type de référence inconnu : {ref_type}") from None
    if cls is ManualRef:
        return ManualRef(reason=ref_id)
    if not ref_id:
        raise ValueError(f"Référence {ref_type} sans identifiant")
    return cls(ref_id)


# --- Événements du journal ---


@dataclass(frozen=True)
class BatchEvent:
    """
    Fait immuable du journal.

    `qty` est un delta signé. `id` et `timestamp` restent à None tant
    que l'événement n'a pas été ajouté au journal : c'est le store
    qui les attribue (voir adapters.event_log).

    mfg_date / expiry_date ne sont renseignées que sur les événements
    susceptibles de créer une ligne (réception, transfert entrant),
    afin qu'un rejeu complet reconstruise aussi l'identité du lot.
    """

    type: EventType
    product_id: str
    location_id: str
    batch_no: str
    qty: int
    reference: Optional[Reference] = None
    note: Optional[str] = None
    mfg_date: Optional[date] = None
    expiry_date: Optional[date] = None
    id: Optional[str] = None
    timestamp: Optional[datetime] = field(default=None, compare=False)

    @property
    def key(self) -> BatchKey:
        return BatchKey(self.product_id, self.location_id, self.batch_no)

    @property
    def ref_type(self) -> Optional[str]:
        return self.reference.ref_type if self.reference else None

    @property
    def ref_id(self) -> Optional[str]:
        return self.reference.ref_id if self.reference else None

    def stored(self, id: str, timestamp: datetime) -> BatchEvent:
        """Copie de l'événement avec l'identité attribuée par le journal."""
        return replace(self, id=id, timestamp=timestamp)


# --- Rejeu ---


@dataclass
class ReplayedBatch:
    key: BatchKey
    qty: int = 0
    mfg_date: Optional[date] = None
    expiry_date: Optional[date] = None


def replay(events: Iterable[BatchEvent]) -> dict[BatchKey, ReplayedBatch]:
    """
    Replie le journal en quantités par lot.

    Les événements doivent être fournis dans l'ordre d'ajout. La
    première occurrence d'une clé fixe les dates du lot, comme le
    fait la matérialisation incrémentale.
    """
    state: dict[BatchKey, ReplayedBatch] = {}
    for event in events:
        batch = state.get(event.key)
        if batch is None:
            batch = state[event.key] = ReplayedBatch(
                key=event.key,
                mfg_date=event.mfg_date,
                expiry_date=event.expiry_date,
            )
        batch.qty += event.qty
    return state
