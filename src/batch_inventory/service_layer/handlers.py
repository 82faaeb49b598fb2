"""
Handlers pour les commands et events.

Chaque command handler d'écriture prend le verrou du produit, ouvre
un unit of work, laisse l'agrégat Produit valider et matérialiser,
ajoute au journal les BatchEvent produits, puis commit une seule fois.

Les échecs « métier » d'ajustement, de transfert, de vente ou de
retour (lot inconnu, stock négatif, données invalides) sont retournés
comme résultats en échec, sans mutation. La réception et la création
de produit lèvent leurs erreurs.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import TYPE_CHECKING, Callable, Optional

from batch_inventory import config
from batch_inventory.domain import commands, events, model
from batch_inventory.domain.fifo import FifoPlan
from batch_inventory.domain.ledger import BatchEvent, ReturnRef, SalesOrderRef, TransferRef
from batch_inventory.service_layer.concurrency import product_locks

if TYPE_CHECKING:
    from batch_inventory.adapters.notifications import AbstractNotifications
    from batch_inventory.service_layer.unit_of_work import AbstractUnitOfWork

logger = logging.getLogger(__name__)


# --- Résultats ---


@dataclass(frozen=True)
class BatchSnapshot:
    """Copie détachée d'une ligne de lot, lisible après la fermeture de la session."""

    id: str
    product_id: str
    location_id: str
    batch_no: str
    qty: int
    mfg_date: Optional[date] = None
    expiry_date: Optional[date] = None

    @classmethod
    def of(cls, batch: model.BatchInventory) -> BatchSnapshot:
        return cls(
            id=batch.id,
            product_id=batch.product_id,
            location_id=batch.location_id,
            batch_no=batch.batch_no,
            qty=batch.qty,
            mfg_date=batch.mfg_date,
            expiry_date=batch.expiry_date,
        )


@dataclass(frozen=True)
class ReceiveResult:
    batch: BatchSnapshot
    event: BatchEvent


@dataclass(frozen=True)
class AdjustResult:
    success: bool
    event: Optional[BatchEvent] = None
    error: Optional[model.BatchInventoryError] = None


@dataclass(frozen=True)
class TransferResult:
    success: bool
    events: list[BatchEvent] = field(default_factory=list)
    error: Optional[model.BatchInventoryError] = None


@dataclass(frozen=True)
class SaleResult:
    success: bool
    plan: Optional[FifoPlan] = None
    events: list[BatchEvent] = field(default_factory=list)
    error: Optional[model.BatchInventoryError] = None


def _get_product(uow: AbstractUnitOfWork, product_id: str) -> model.Product:
    product = uow.products.get(product_id)
    if product is None:
        raise model.NotFoundError(f"Produit inconnu : {product_id}")
    return product


# --- Command Handlers ---


def create_product(
    cmd: commands.CreateProduct,
    uow: AbstractUnitOfWork,
) -> None:
    errors = []
    if not cmd.product_id or not cmd.sku:
        errors.append("Product id and SKU are required")
    if cmd.shelf_life_days is not None and cmd.shelf_life_days <= 0:
        errors.append("Shelf life must be greater than 0")
    if cmd.reserved < 0:
        errors.append("Reserved quantity cannot be negative")
    if errors:
        raise model.ValidationError(errors)

    with product_locks.hold(cmd.product_id), uow:
        if uow.products.get(cmd.product_id) is not None:
            raise model.ValidationError([f"Product {cmd.product_id} already exists"])
        product = model.Product(
            id=cmd.product_id,
            sku=cmd.sku,
            name=cmd.name,
            is_batch_tracked=cmd.is_batch_tracked,
            shelf_life_days=cmd.shelf_life_days,
            reserved=cmd.reserved,
        )
        product.sync_stock()
        uow.products.add(product)
        uow.commit()


def update_product_batch_tracking(
    cmd: commands.UpdateProductBatchTracking,
    uow: AbstractUnitOfWork,
) -> bool:
    with product_locks.hold(cmd.product_id), uow:
        product = uow.products.get(cmd.product_id)
        if product is None:
            return False
        product.set_batch_tracking(cmd.is_batch_tracked, cmd.shelf_life_days)
        uow.commit()
    return True


def receive_batch(
    cmd: commands.ReceiveBatch,
    uow: AbstractUnitOfWork,
) -> ReceiveResult:
    """
    Réceptionne une quantité dans un lot.

    Lève ValidationError (données invalides) ou NotFoundError
    (produit inconnu) avant toute écriture.
    """
    with product_locks.hold(cmd.product_id), uow:
        product = _get_product(uow, cmd.product_id)
        batch, entry = product.receive(
            location_id=cmd.location_id,
            batch_no=cmd.batch_no,
            qty=cmd.qty,
            mfg_date=cmd.mfg_date,
            expiry_date=cmd.expiry_date,
            reference=cmd.reference,
            note=cmd.note,
        )
        stored = uow.batch_events.append(entry)
        snapshot = BatchSnapshot.of(batch)
        uow.commit()
    logger.info(
        "Réception %s/%s/%s : +%d (total lot %d)",
        cmd.product_id, cmd.location_id, snapshot.batch_no, cmd.qty, snapshot.qty,
    )
    return ReceiveResult(batch=snapshot, event=stored)


def adjust_batch(
    cmd: commands.AdjustBatch,
    uow: AbstractUnitOfWork,
) -> AdjustResult:
    with product_locks.hold(cmd.product_id), uow:
        try:
            product = _get_product(uow, cmd.product_id)
            entry = product.adjust(cmd.location_id, cmd.batch_no, cmd.qty_change, note=cmd.note)
        except model.BatchInventoryError as e:
            logger.warning("Ajustement refusé %s/%s/%s : %s", cmd.product_id, cmd.location_id, cmd.batch_no, e)
            return AdjustResult(success=False, error=e)
        stored = uow.batch_events.append(entry)
        uow.commit()
    return AdjustResult(success=True, event=stored)


def transfer_batch(
    cmd: commands.TransferBatch,
    uow: AbstractUnitOfWork,
) -> TransferResult:
    reference = TransferRef(cmd.transfer_id) if cmd.transfer_id else None
    with product_locks.hold(cmd.product_id), uow:
        try:
            product = _get_product(uow, cmd.product_id)
            outbound, inbound = product.transfer(
                cmd.batch_no,
                cmd.from_location_id,
                cmd.to_location_id,
                cmd.qty,
                reference=reference,
                note=cmd.note,
            )
        except model.BatchInventoryError as e:
            logger.warning("Transfert refusé %s/%s : %s", cmd.product_id, cmd.batch_no, e)
            return TransferResult(success=False, error=e)
        stored = [uow.batch_events.append(outbound), uow.batch_events.append(inbound)]
        uow.commit()
    return TransferResult(success=True, events=stored)


def record_sale(
    cmd: commands.RecordSale,
    uow: AbstractUnitOfWork,
    clock: Callable[[], date] = date.today,
) -> SaleResult:
    """
    Consomme une vente en FIFO.

    Le plan est recalculé sous le verrou du produit : un plan obtenu
    plus tôt par une lecture n'est qu'indicatif.
    """
    with product_locks.hold(cmd.product_id), uow:
        try:
            product = _get_product(uow, cmd.product_id)
            plan, entries = product.sell(
                cmd.qty,
                reference=SalesOrderRef(cmd.order_id),
                location_id=cmd.location_id,
                today=clock(),
            )
        except model.BatchInventoryError as e:
            logger.warning("Vente refusée %s (%s) : %s", cmd.product_id, cmd.order_id, e)
            return SaleResult(success=False, error=e)
        if not plan.is_complete:
            return SaleResult(
                success=False,
                plan=plan,
                error=model.NegativeStockError(
                    f"Stock insuffisant pour {cmd.product_id} : manque {plan.shortfall}"
                ),
            )
        stored = [uow.batch_events.append(entry) for entry in entries]
        uow.commit()
    return SaleResult(success=True, plan=plan, events=stored)


def record_return(
    cmd: commands.RecordReturn,
    uow: AbstractUnitOfWork,
) -> AdjustResult:
    with product_locks.hold(cmd.product_id), uow:
        try:
            product = _get_product(uow, cmd.product_id)
            entry = product.return_to_batch(
                cmd.location_id,
                cmd.batch_no,
                cmd.qty,
                reference=ReturnRef(cmd.return_id),
                note=cmd.note,
            )
        except model.BatchInventoryError as e:
            logger.warning("Retour refusé %s/%s : %s", cmd.product_id, cmd.batch_no, e)
            return AdjustResult(success=False, error=e)
        stored = uow.batch_events.append(entry)
        uow.commit()
    return AdjustResult(success=True, event=stored)


def sync_product_stock_with_batches(
    cmd: commands.SyncProductStock,
    uow: AbstractUnitOfWork,
) -> bool:
    """
    Recalcule stock / available d'un produit depuis ses lots.

    Retourne False, sans écriture, si le produit est inconnu ou
    n'est pas suivi par lots.
    """
    with product_locks.hold(cmd.product_id), uow:
        product = uow.products.get(cmd.product_id)
        if product is None:
            return False
        if not product.sync_stock():
            return False
        uow.commit()
    return True


def delete_batch(
    cmd: commands.DeleteBatch,
    uow: AbstractUnitOfWork,
) -> AdjustResult:
    with product_locks.hold(cmd.product_id), uow:
        try:
            product = _get_product(uow, cmd.product_id)
            product.delete_batch(cmd.location_id, cmd.batch_no)
        except model.BatchInventoryError as e:
            return AdjustResult(success=False, error=e)
        uow.commit()
    logger.info("Lot supprimé %s/%s/%s", cmd.product_id, cmd.location_id, cmd.batch_no)
    return AdjustResult(success=True)


def rebuild_from_log(
    cmd: commands.RebuildFromLog,
    uow: AbstractUnitOfWork,
) -> list[model.BatchCorrection]:
    with product_locks.hold(cmd.product_id), uow:
        product = _get_product(uow, cmd.product_id)
        corrections = product.rebuild(uow.batch_events.for_product(cmd.product_id))
        uow.commit()
    for correction in corrections:
        logger.warning(
            "Lot recalé depuis le journal %s : %d -> %d",
            "/".join(correction.key), correction.materialized_qty, correction.replayed_qty,
        )
    return corrections


# --- Event Handlers ---


def log_batch_received(event: events.BatchReceived) -> None:
    logger.info(
        "Lot reçu : %s/%s/%s (+%d)",
        event.product_id, event.location_id, event.batch_no, event.qty,
    )


def log_batch_adjusted(event: events.BatchAdjusted) -> None:
    logger.info(
        "Lot ajusté : %s/%s/%s (%+d)",
        event.product_id, event.location_id, event.batch_no, event.qty_change,
    )


def log_batch_depleted(event: events.BatchDepleted) -> None:
    logger.info("Lot épuisé : %s/%s/%s", event.product_id, event.location_id, event.batch_no)


def notify_allocation_shortfall(
    event: events.AllocationShortfall,
    notifications: AbstractNotifications,
) -> None:
    notifications.send(
        destination=config.get_alerts_recipient(),
        message=(
            f"Stock insuffisant pour le produit {event.product_id} "
            f"(commande {event.order_id}) : {event.requested} demandés, "
            f"{event.fulfilled} disponibles, manque {event.shortfall}"
        ),
    )
