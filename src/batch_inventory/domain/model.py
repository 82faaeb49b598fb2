"""
Modèle de domaine pour l'inventaire par lots.

Un Produit est l'agrégat racine : il regroupe toutes ses lignes
BatchInventory (tous emplacements confondus) et porte les agrégats
stock / available. Toute mutation d'un lot passe par le Produit,
qui valide, matérialise, produit l'événement de journal à ajouter
et resynchronise ses totaux en une seule opération.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import date
from typing import Iterable, Optional

from batch_inventory.domain import events, fifo, ledger
from batch_inventory.domain.freshness import DateLike, calculate_expiry_date
from batch_inventory.domain.ledger import BatchEvent, BatchKey, EventType
from batch_inventory.domain.validation import (
    parse_optional_date,
    validate_batch,
    validate_location,
)

logger = logging.getLogger(__name__)


# --- Exceptions ---


class BatchInventoryError(Exception):
    pass


class ValidationError(BatchInventoryError):
    """Données de lot invalides ; rien n'a été modifié."""

    def __init__(self, errors: list[str]):
        self.errors = list(errors)
        super().__init__("; ".join(self.errors))


class NotFoundError(BatchInventoryError):
    """Produit ou lot inconnu."""
    pass


class NegativeStockError(BatchInventoryError):
    """L'opération ferait passer la quantité d'un lot sous zéro."""
    pass


class ConsistencyError(BatchInventoryError):
    """Les lots matérialisés ne correspondent plus au journal."""
    pass


# --- Entités ---


class BatchInventory:
    """
    Ligne matérialisée : quantité courante d'un lot à un emplacement.

    L'identité est la clé naturelle (produit, emplacement, numéro de lot) ;
    les dates de fabrication et de péremption sont fixées à la création.
    """

    def __init__(
        self,
        product_id: str,
        location_id: str,
        batch_no: str,
        qty: int = 0,
        mfg_date: Optional[date] = None,
        expiry_date: Optional[date] = None,
        id: Optional[str] = None,
    ):
        self.id = id or uuid.uuid4().hex
        self.product_id = product_id
        self.location_id = location_id
        self.batch_no = batch_no
        self.qty = qty
        self.mfg_date = mfg_date
        self.expiry_date = expiry_date

    def __repr__(self) -> str:
        return f"<BatchInventory {self.product_id}/{self.location_id}/{self.batch_no} qty={self.qty}>"

    @property
    def key(self) -> BatchKey:
        return BatchKey(self.product_id, self.location_id, self.batch_no)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, BatchInventory):
            return NotImplemented
        return self.key == other.key

    def __hash__(self) -> int:
        return hash(self.key)


@dataclass(frozen=True)
class BatchCorrection:
    """Écart entre une ligne matérialisée et le rejeu du journal."""

    key: BatchKey
    materialized_qty: int
    replayed_qty: int


class Product:
    """
    Agrégat racine.

    `stock` et `available` sont dérivés des lots par sync_stock() ;
    `reserved` est fourni par le reste du système (commandes en cours).
    Les méthodes de mutation retournent les BatchEvent à ajouter au
    journal ; c'est le handler qui les ajoute, dans la même transaction.
    """

    def __init__(
        self,
        id: str,
        sku: str,
        name: str = "",
        is_batch_tracked: bool = True,
        shelf_life_days: Optional[int] = None,
        reserved: int = 0,
        stock: int = 0,
        available: int = 0,
        batches: Optional[list[BatchInventory]] = None,
        version_number: int = 0,
    ):
        self.id = id
        self.sku = sku
        self.name = name
        self.is_batch_tracked = is_batch_tracked
        self.shelf_life_days = shelf_life_days
        self.reserved = reserved
        self.stock = stock
        self.available = available
        self.batches = batches or []
        self.version_number = version_number
        self.events: list[events.Event] = []

    def __repr__(self) -> str:
        return f"<Product {self.id}>"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Product):
            return NotImplemented
        return self.id == other.id

    def __hash__(self) -> int:
        return hash(self.id)

    # --- Lecture ---

    def get_batch(self, location_id: str, batch_no: str) -> Optional[BatchInventory]:
        return next(
            (
                b for b in self.batches
                if b.location_id == location_id and b.batch_no == batch_no
            ),
            None,
        )

    def batches_at(self, location_id: str) -> list[BatchInventory]:
        return [b for b in self.batches if b.location_id == location_id]

    def plan_fifo(
        self,
        required_qty: int,
        location_id: Optional[str] = None,
        today: Optional[DateLike] = None,
    ) -> fifo.FifoPlan:
        return fifo.fifo_pick(self.batches, required_qty, today=today, location_id=location_id)

    # --- Matérialisation et synchronisation ---

    def upsert_batch(
        self,
        location_id: str,
        batch_no: str,
        qty_delta: int,
        mfg_date: Optional[date] = None,
        expiry_date: Optional[date] = None,
    ) -> BatchInventory:
        """
        Applique un delta à la ligne (emplacement, lot), ou la crée.

        Les dates ne sont prises en compte qu'à la création : une
        réception ultérieure dans le même lot n'écrase pas l'identité
        du lot.
        """
        batch = self.get_batch(location_id, batch_no)
        if batch is None:
            if qty_delta < 0:
                raise NegativeStockError(
                    f"Lot {batch_no} inexistant à {location_id} : delta {qty_delta} refusé"
                )
            batch = BatchInventory(
                product_id=self.id,
                location_id=location_id,
                batch_no=batch_no,
                qty=qty_delta,
                mfg_date=mfg_date,
                expiry_date=expiry_date,
            )
            self.batches.append(batch)
            return batch

        if batch.qty + qty_delta < 0:
            raise NegativeStockError(
                f"Lot {batch_no} à {location_id} : {batch.qty} + ({qty_delta}) < 0"
            )
        if (mfg_date and mfg_date != batch.mfg_date) or (
            expiry_date and expiry_date != batch.expiry_date
        ):
            logger.warning(
                "Dates ignorées pour le lot existant %s/%s/%s (fixées à la création)",
                self.id, location_id, batch_no,
            )
        batch.qty += qty_delta
        return batch

    def sync_stock(self) -> bool:
        """
        Recalcule stock et available depuis les lots.

        Sans effet (et retourne False) si le produit n'est pas suivi par lots.
        """
        if not self.is_batch_tracked:
            return False
        self.stock = sum(b.qty for b in self.batches)
        self.available = max(0, self.stock - (self.reserved or 0))
        return True

    def set_batch_tracking(self, is_batch_tracked: bool, shelf_life_days: Optional[int] = None) -> None:
        self.is_batch_tracked = is_batch_tracked
        if shelf_life_days is not None:
            self.shelf_life_days = shelf_life_days
        self.sync_stock()
        self.version_number += 1

    # --- Mouvements ---

    def receive(
        self,
        location_id: str,
        batch_no: str,
        qty: int,
        mfg_date: Optional[DateLike] = None,
        expiry_date: Optional[DateLike] = None,
        reference: Optional[ledger.Reference] = None,
        note: Optional[str] = None,
    ) -> tuple[BatchInventory, BatchEvent]:
        """
        Réception d'une quantité dans un lot (création ou ajout).

        Sans date de péremption mais avec une date de fabrication, la
        péremption est déduite de shelf_life_days quand le produit en a une.
        """
        errors = validate_location(location_id) + validate_batch(
            batch_no, qty, mfg_date, expiry_date
        )
        if errors:
            raise ValidationError(errors)

        mfg = parse_optional_date(mfg_date)
        expiry = parse_optional_date(expiry_date)
        if expiry is None and mfg is not None and self.shelf_life_days:
            expiry = calculate_expiry_date(mfg, self.shelf_life_days)

        batch_no = batch_no.strip()
        batch = self.upsert_batch(location_id, batch_no, qty, mfg, expiry)
        entry = BatchEvent(
            type=EventType.RECEIPT,
            product_id=self.id,
            location_id=location_id,
            batch_no=batch_no,
            qty=qty,
            reference=reference,
            note=note,
            mfg_date=batch.mfg_date,
            expiry_date=batch.expiry_date,
        )
        self._after_change()
        self.events.append(
            events.BatchReceived(
                product_id=self.id, location_id=location_id, batch_no=batch_no, qty=qty
            )
        )
        return batch, entry

    def adjust(
        self,
        location_id: str,
        batch_no: str,
        qty_change: int,
        note: Optional[str] = None,
    ) -> BatchEvent:
        if isinstance(qty_change, bool) or not isinstance(qty_change, int):
            raise ValidationError(["Quantity must be an integer"])
        batch = self._existing_batch(location_id, batch_no)
        self.upsert_batch(location_id, batch_no, qty_change)
        entry = BatchEvent(
            type=EventType.ADJUST,
            product_id=self.id,
            location_id=location_id,
            batch_no=batch_no,
            qty=qty_change,
            reference=ledger.ManualRef(),
            note=note,
        )
        self._after_change()
        self.events.append(
            events.BatchAdjusted(
                product_id=self.id,
                location_id=location_id,
                batch_no=batch_no,
                qty_change=qty_change,
            )
        )
        self._check_depleted(batch)
        return entry

    def transfer(
        self,
        batch_no: str,
        from_location_id: str,
        to_location_id: str,
        qty: int,
        reference: Optional[ledger.Reference] = None,
        note: Optional[str] = None,
    ) -> tuple[BatchEvent, BatchEvent]:
        """
        Déplace une quantité d'un lot vers un autre emplacement.

        Deux événements TRANSFER sont produits (sortie négative, entrée
        positive) ; le lot de destination hérite des dates du lot source.
        """
        errors = validate_location(to_location_id)
        if qty is None or isinstance(qty, bool) or qty <= 0:
            errors.append("Quantity must be greater than 0")
        if from_location_id == to_location_id:
            errors.append("Source and destination locations must differ")
        if errors:
            raise ValidationError(errors)

        source = self._existing_batch(from_location_id, batch_no)
        if source.qty < qty:
            raise NegativeStockError(
                f"Lot {batch_no} à {from_location_id} : {source.qty} disponibles, {qty} demandés"
            )
        self.upsert_batch(from_location_id, batch_no, -qty)
        self.upsert_batch(to_location_id, batch_no, qty, source.mfg_date, source.expiry_date)

        common = dict(
            type=EventType.TRANSFER,
            product_id=self.id,
            batch_no=batch_no,
            reference=reference,
            note=note,
        )
        outbound = BatchEvent(location_id=from_location_id, qty=-qty, **common)
        inbound = BatchEvent(
            location_id=to_location_id,
            qty=qty,
            mfg_date=source.mfg_date,
            expiry_date=source.expiry_date,
            **common,
        )
        self._after_change()
        self._check_depleted(source)
        return outbound, inbound

    def sell(
        self,
        qty: int,
        reference: Optional[ledger.Reference] = None,
        location_id: Optional[str] = None,
        today: Optional[DateLike] = None,
    ) -> tuple[fifo.FifoPlan, list[BatchEvent]]:
        """
        Consomme `qty` unités selon le plan FIFO, en tout ou rien.

        Si les lots disponibles ne suffisent pas, aucun lot n'est
        modifié : le plan partiel est retourné et un event
        AllocationShortfall est émis.
        """
        if qty is None or isinstance(qty, bool) or qty <= 0:
            raise ValidationError(["Quantity must be greater than 0"])

        plan = self.plan_fifo(qty, location_id=location_id, today=today)
        if not plan.is_complete:
            self.events.append(
                events.AllocationShortfall(
                    product_id=self.id,
                    requested=plan.requested,
                    fulfilled=plan.fulfilled,
                    shortfall=plan.shortfall,
                    order_id=reference.ref_id if reference else None,
                )
            )
            return plan, []

        entries = []
        for pick in plan:
            batch = self.upsert_batch(pick.location_id, pick.batch_no, -pick.qty)
            entries.append(
                BatchEvent(
                    type=EventType.SALE,
                    product_id=self.id,
                    location_id=pick.location_id,
                    batch_no=pick.batch_no,
                    qty=-pick.qty,
                    reference=reference,
                )
            )
            self._check_depleted(batch)
        self._after_change()
        return plan, entries

    def return_to_batch(
        self,
        location_id: str,
        batch_no: str,
        qty: int,
        reference: Optional[ledger.Reference] = None,
        note: Optional[str] = None,
    ) -> BatchEvent:
        """Remet en stock une quantité retournée, dans un lot existant uniquement."""
        if qty is None or isinstance(qty, bool) or qty <= 0:
            raise ValidationError(["Quantity must be greater than 0"])
        self._existing_batch(location_id, batch_no)
        self.upsert_batch(location_id, batch_no, qty)
        entry = BatchEvent(
            type=EventType.RETURN,
            product_id=self.id,
            location_id=location_id,
            batch_no=batch_no,
            qty=qty,
            reference=reference,
            note=note,
        )
        self._after_change()
        return entry

    def delete_batch(self, location_id: str, batch_no: str) -> BatchInventory:
        """
        Suppression administrative d'une ligne vide.

        Aucun événement n'est journalisé : seule une ligne à zéro peut
        disparaître sans que le rejeu du journal ne la contredise.
        """
        batch = self._existing_batch(location_id, batch_no)
        if batch.qty != 0:
            raise ValidationError([f"Batch {batch_no} still holds {batch.qty} units"])
        self.batches.remove(batch)
        self._after_change()
        return batch

    # --- Reprise depuis le journal ---

    def discrepancies(self, log: Iterable[BatchEvent]) -> list[BatchCorrection]:
        """Lignes dont la quantité diffère du rejeu du journal."""
        replayed = ledger.replay(e for e in log if e.product_id == self.id)
        found = []
        seen_keys = set()
        for batch in self.batches:
            seen_keys.add(batch.key)
            expected = replayed[batch.key].qty if batch.key in replayed else 0
            if batch.qty != expected:
                found.append(BatchCorrection(batch.key, batch.qty, expected))
        for key, state in replayed.items():
            if key not in seen_keys and state.qty != 0:
                found.append(BatchCorrection(key, 0, state.qty))
        return found

    def rebuild(self, log: Iterable[BatchEvent]) -> list[BatchCorrection]:
        """
        Recale les lignes matérialisées sur le journal, puis les totaux.

        Les lignes absentes du journal sont ramenées à zéro ; les clés
        du journal sans ligne sont recréées avec les dates de leur
        premier événement.
        """
        log = [e for e in log if e.product_id == self.id]
        replayed = ledger.replay(log)
        negative = [k for k, state in replayed.items() if state.qty < 0]
        if negative:
            raise ConsistencyError(f"Journal incohérent, quantités négatives : {negative}")

        corrections = self.discrepancies(log)
        for correction in corrections:
            batch = self.get_batch(correction.key.location_id, correction.key.batch_no)
            if batch is None:
                state = replayed[correction.key]
                batch = BatchInventory(
                    product_id=self.id,
                    location_id=correction.key.location_id,
                    batch_no=correction.key.batch_no,
                    mfg_date=state.mfg_date,
                    expiry_date=state.expiry_date,
                )
                self.batches.append(batch)
            batch.qty = correction.replayed_qty
        self._after_change()
        return corrections

    # --- Interne ---

    def _existing_batch(self, location_id: str, batch_no: str) -> BatchInventory:
        batch = self.get_batch(location_id, batch_no)
        if batch is None:
            raise NotFoundError(f"Lot inconnu : {self.id}/{location_id}/{batch_no}")
        return batch

    def _check_depleted(self, batch: BatchInventory) -> None:
        if batch.qty == 0:
            self.events.append(
                events.BatchDepleted(
                    product_id=self.id,
                    location_id=batch.location_id,
                    batch_no=batch.batch_no,
                )
            )

    def _after_change(self) -> None:
        self.sync_stock()
        self.version_number += 1
