"""
Views (lecture) pour le pattern CQRS.

Fonctions de lecture qui interrogent directement les tables, sans
charger d'agrégat ni prendre de verrou. Le statut de fraîcheur est
recalculé à chaque lecture ; un plan FIFO retourné ici n'est valable
qu'à l'instant de la lecture.
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy import select

from batch_inventory.adapters import orm
from batch_inventory.domain import fifo, ledger
from batch_inventory.domain.freshness import DateLike, batch_summary, days_until, status_for
from batch_inventory.domain.model import ConsistencyError
from batch_inventory.service_layer import unit_of_work


def _batch_rows(uow: unit_of_work.AbstractUnitOfWork, product_id: str, location_id: Optional[str] = None):
    table = orm.batch_inventory
    query = select(table).where(table.c.product_id == product_id)
    if location_id is not None:
        query = query.where(table.c.location_id == location_id)
    return list(uow.session.execute(query.order_by(table.c.location_id, table.c.batch_no)))


def product_batches(
    product_id: str,
    uow: unit_of_work.AbstractUnitOfWork,
    location_id: Optional[str] = None,
    today: Optional[DateLike] = None,
) -> list[dict]:
    with uow:
        rows = _batch_rows(uow, product_id, location_id)
    return [
        {
            "id": r.id,
            "location_id": r.location_id,
            "batch_no": r.batch_no,
            "qty": r.qty,
            "mfg_date": r.mfg_date.isoformat() if r.mfg_date else None,
            "expiry_date": r.expiry_date.isoformat() if r.expiry_date else None,
            "status": status_for(r.expiry_date, today).value,
            "days_until_expiry": days_until(r.expiry_date, today) if r.expiry_date else None,
        }
        for r in rows
    ]


def batch_events(
    product_id: str,
    uow: unit_of_work.AbstractUnitOfWork,
    location_id: Optional[str] = None,
    batch_no: Optional[str] = None,
) -> list[dict]:
    with uow:
        if location_id is not None and batch_no is not None:
            found = uow.batch_events.for_key(product_id, location_id, batch_no)
        else:
            found = uow.batch_events.for_product(product_id)
    return [
        {
            "id": e.id,
            "timestamp": e.timestamp.isoformat() if e.timestamp else None,
            "type": e.type.value,
            "location_id": e.location_id,
            "batch_no": e.batch_no,
            "qty": e.qty,
            "ref_type": e.ref_type,
            "ref_id": e.ref_id,
            "note": e.note,
        }
        for e in found
        if location_id is None or e.location_id == location_id
    ]


def product_summary(
    product_id: str,
    uow: unit_of_work.AbstractUnitOfWork,
    today: Optional[DateLike] = None,
) -> dict | None:
    products = orm.products
    with uow:
        product = uow.session.execute(
            select(products).where(products.c.id == product_id)
        ).first()
        if product is None:
            return None
        rows = _batch_rows(uow, product_id)
    summary = batch_summary(rows, today)
    return {
        "product_id": product.id,
        "sku": product.sku,
        "is_batch_tracked": product.is_batch_tracked,
        "shelf_life_days": product.shelf_life_days,
        "stock": product.stock,
        "reserved": product.reserved,
        "available": product.available,
        "total_batches": summary.total_batches,
        "total_qty": summary.total_qty,
        "ok": {"count": summary.ok.count, "qty": summary.ok.qty},
        "expiring_soon": {"count": summary.expiring_soon.count, "qty": summary.expiring_soon.qty},
        "expired": {"count": summary.expired.count, "qty": summary.expired.qty},
        "available_for_fifo": fifo.get_available_qty_for_fifo(rows, today),
    }


def fifo_plan(
    product_id: str,
    qty: int,
    uow: unit_of_work.AbstractUnitOfWork,
    location_id: Optional[str] = None,
    today: Optional[DateLike] = None,
) -> dict:
    with uow:
        rows = _batch_rows(uow, product_id, location_id)
    plan = fifo.fifo_pick(rows, qty, today=today)
    return {
        "requested": plan.requested,
        "fulfilled": plan.fulfilled,
        "shortfall": plan.shortfall,
        "picks": [
            {
                "batch_no": p.batch_no,
                "location_id": p.location_id,
                "qty": p.qty,
                "expiry_date": p.expiry_date.isoformat() if p.expiry_date else None,
            }
            for p in plan
        ],
    }


def locations(uow: unit_of_work.AbstractUnitOfWork) -> list[str]:
    table = orm.batch_inventory
    with uow:
        rows = uow.session.execute(
            select(table.c.location_id).distinct().order_by(table.c.location_id)
        )
        return [r.location_id for r in rows]


def batch_numbers(product_id: str, uow: unit_of_work.AbstractUnitOfWork) -> list[str]:
    table = orm.batch_inventory
    with uow:
        rows = uow.session.execute(
            select(table.c.batch_no)
            .where(table.c.product_id == product_id)
            .distinct()
            .order_by(table.c.batch_no)
        )
        return [r.batch_no for r in rows]


def check_consistency(
    product_id: str,
    uow: unit_of_work.AbstractUnitOfWork,
    raise_on_mismatch: bool = False,
) -> list[dict]:
    """
    Compare les lots matérialisés au rejeu du journal.

    Retourne les clés en écart ; lève ConsistencyError si
    `raise_on_mismatch` est vrai et qu'il y en a.
    """
    with uow:
        materialized = {
            ledger.BatchKey(r.product_id, r.location_id, r.batch_no): r.qty
            for r in _batch_rows(uow, product_id)
        }
        replayed = ledger.replay(uow.batch_events.for_product(product_id))

    mismatches = []
    for key in sorted(set(materialized) | set(replayed)):
        expected = replayed[key].qty if key in replayed else 0
        actual = materialized.get(key, 0)
        if actual != expected:
            mismatches.append({
                "location_id": key.location_id,
                "batch_no": key.batch_no,
                "materialized_qty": actual,
                "replayed_qty": expected,
            })
    if mismatches and raise_on_mismatch:
        raise ConsistencyError(
            f"{len(mismatches)} lot(s) de {product_id} divergent du journal"
        )
    return mismatches
