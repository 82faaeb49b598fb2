"""
Journal des mouvements de lots, en ajout seul.

Le contrat ne connaît que append et des lectures : il n'existe ni
mise à jour ni suppression. C'est le journal qui attribue l'id
et l'horodatage de chaque événement.
"""

from __future__ import annotations

import abc
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import insert, select
from sqlalchemy.orm import Session

from batch_inventory.adapters import orm
from batch_inventory.domain.ledger import BatchEvent, EventType, reference_from_columns


def utcnow() -> datetime:
    """Horodatage UTC naïf, comme stocké en base."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class AbstractEventLog(abc.ABC):
    def append(self, event: BatchEvent) -> BatchEvent:
        """Ajoute l'événement et le retourne avec son id et son horodatage."""
        stored = event.stored(id=uuid.uuid4().hex, timestamp=utcnow())
        self._append(stored)
        return stored

    def for_product(self, product_id: str) -> list[BatchEvent]:
        return self._select(product_id=product_id)

    def for_key(self, product_id: str, location_id: str, batch_no: str) -> list[BatchEvent]:
        return self._select(
            product_id=product_id, location_id=location_id, batch_no=batch_no
        )

    @abc.abstractmethod
    def _append(self, event: BatchEvent) -> None:
        raise NotImplementedError

    @abc.abstractmethod
    def _select(
        self,
        product_id: str,
        location_id: Optional[str] = None,
        batch_no: Optional[str] = None,
    ) -> list[BatchEvent]:
        raise NotImplementedError


class SqlAlchemyEventLog(AbstractEventLog):
    """
    Journal en SQLAlchemy Core sur la table batch_events.

    La colonne `seq` (auto-incrémentée) donne l'ordre d'ajout total,
    indépendamment des égalités d'horodatage.
    """

    def __init__(self, session: Session):
        self.session = session

    def _append(self, event: BatchEvent) -> None:
        self.session.execute(
            insert(orm.batch_events).values(
                id=event.id,
                timestamp=event.timestamp,
                type=event.type.value,
                product_id=event.product_id,
                location_id=event.location_id,
                batch_no=event.batch_no,
                qty=event.qty,
                ref_type=event.ref_type,
                ref_id=event.ref_id,
                note=event.note,
                mfg_date=event.mfg_date,
                expiry_date=event.expiry_date,
            )
        )

    def _select(
        self,
        product_id: str,
        location_id: Optional[str] = None,
        batch_no: Optional[str] = None,
    ) -> list[BatchEvent]:
        table = orm.batch_events
        query = select(table).where(table.c.product_id == product_id)
        if location_id is not None:
            query = query.where(table.c.location_id == location_id)
        if batch_no is not None:
            query = query.where(table.c.batch_no == batch_no)
        rows = self.session.execute(query.order_by(table.c.seq))
        return [row_to_event(row._mapping) for row in rows]


def row_to_event(row) -> BatchEvent:
    return BatchEvent(
        id=row["id"],
        timestamp=row["timestamp"],
        type=EventType(row["type"]),
        product_id=row["product_id"],
        location_id=row["location_id"],
        batch_no=row["batch_no"],
        qty=row["qty"],
        reference=reference_from_columns(row["ref_type"], row["ref_id"]),
        note=row["note"],
        mfg_date=row["mfg_date"],
        expiry_date=row["expiry_date"],
    )
