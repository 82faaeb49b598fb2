"""
Commands du domaine.

Les commands représentent des intentions : quelque chose que
le système doit faire. Contrairement aux events (faits passés),
les commands sont des demandes qui peuvent échouer.
"""

from dataclasses import dataclass
from typing import Optional

from batch_inventory.domain.freshness import DateLike
from batch_inventory.domain.ledger import Reference


class Command:
    """Classe de base pour toutes les commands."""
    pass


@dataclass(frozen=True)
class CreateProduct(Command):
    product_id: str
    sku: str
    name: str = ""
    is_batch_tracked: bool = True
    shelf_life_days: Optional[int] = None
    reserved: int = 0


@dataclass(frozen=True)
class UpdateProductBatchTracking(Command):
    product_id: str
    is_batch_tracked: bool
    shelf_life_days: Optional[int] = None


@dataclass(frozen=True)
class ReceiveBatch(Command):
    """Réception d'une quantité dans un lot (création ou ajout)."""

    product_id: str
    location_id: str
    batch_no: str
    qty: int
    mfg_date: Optional[DateLike] = None
    expiry_date: Optional[DateLike] = None
    reference: Optional[Reference] = None
    note: Optional[str] = None


@dataclass(frozen=True)
class AdjustBatch(Command):
    product_id: str
    location_id: str
    batch_no: str
    qty_change: int
    note: Optional[str] = None


@dataclass(frozen=True)
class TransferBatch(Command):
    product_id: str
    batch_no: str
    from_location_id: str
    to_location_id: str
    qty: int
    transfer_id: Optional[str] = None
    note: Optional[str] = None


@dataclass(frozen=True)
class RecordSale(Command):
    """Vente servie en FIFO, éventuellement limitée à un emplacement."""

    product_id: str
    order_id: str
    qty: int
    location_id: Optional[str] = None


@dataclass(frozen=True)
class RecordReturn(Command):
    product_id: str
    location_id: str
    batch_no: str
    qty: int
    return_id: str
    note: Optional[str] = None


@dataclass(frozen=True)
class SyncProductStock(Command):
    product_id: str


@dataclass(frozen=True)
class DeleteBatch(Command):
    product_id: str
    location_id: str
    batch_no: str


@dataclass(frozen=True)
class RebuildFromLog(Command):
    """Recalcule lots et totaux d'un produit en rejouant le journal."""

    product_id: str
