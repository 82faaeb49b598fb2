"""
Mapping ORM avec SQLAlchemy (classical mapping).

On définit les tables séparément, puis on mappe les classes
du domaine sur ces tables. Le modèle de domaine reste ainsi
ignorant de la persistance.

Le journal (batch_events) n'est pas mappé : BatchEvent est un
dataclass immuable, lu et écrit en SQLAlchemy Core par
adapters.event_log.
"""

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    UniqueConstraint,
    event,
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import registry, relationship

from batch_inventory.domain import model

metadata = MetaData()
mapper_registry = registry(metadata=metadata)

# --- Définition des tables ---

products = Table(
    "products",
    metadata,
    Column("id", String(64), primary_key=True),
    Column("sku", String(255), nullable=False),
    Column("name", String(255), nullable=False, server_default=""),
    Column("is_batch_tracked", Boolean, nullable=False, server_default="1"),
    Column("shelf_life_days", Integer, nullable=True),
    Column("reserved", Integer, nullable=False, server_default="0"),
    Column("stock", Integer, nullable=False, server_default="0"),
    Column("available", Integer, nullable=False, server_default="0"),
    Column("version_number", Integer, nullable=False, server_default="0"),
)

batch_inventory = Table(
    "batch_inventory",
    metadata,
    Column("id", String(64), primary_key=True),
    Column("product_id", String(64), ForeignKey("products.id"), nullable=False),
    Column("location_id", String(64), nullable=False),
    Column("batch_no", String(255), nullable=False),
    Column("mfg_date", Date, nullable=True),
    Column("expiry_date", Date, nullable=True),
    Column("qty", Integer, nullable=False),
    UniqueConstraint("product_id", "location_id", "batch_no", name="uq_batch_key"),
)

batch_events = Table(
    "batch_events",
    metadata,
    Column("seq", Integer, primary_key=True, autoincrement=True),
    Column("id", String(64), nullable=False, unique=True),
    Column("timestamp", DateTime, nullable=False),
    Column("type", String(16), nullable=False),
    Column("product_id", String(64), nullable=False, index=True),
    Column("location_id", String(64), nullable=False),
    Column("batch_no", String(255), nullable=False),
    Column("qty", Integer, nullable=False),
    Column("ref_type", String(16), nullable=True),
    Column("ref_id", String(255), nullable=True),
    Column("note", String(1024), nullable=True),
    Column("mfg_date", Date, nullable=True),
    Column("expiry_date", Date, nullable=True),
)

_mappers_started = False


def start_mappers() -> None:
    """
    Configure le mapping entre les classes du domaine et les tables SQL.

    Peut être appelée plusieurs fois (tests, entrypoint) : seul le
    premier appel mappe les classes.
    """
    global _mappers_started
    if _mappers_started:
        return
    batches_mapper = mapper_registry.map_imperatively(model.BatchInventory, batch_inventory)
    mapper_registry.map_imperatively(
        model.Product,
        products,
        properties={
            "batches": relationship(
                batches_mapper,
                primaryjoin=(products.c.id == batch_inventory.c.product_id),
                cascade="all, delete-orphan",
                order_by=batch_inventory.c.batch_no,
            ),
        },
    )
    _mappers_started = True


def create_tables(engine: Engine) -> None:
    metadata.create_all(engine)


@event.listens_for(model.Product, "load")
def receive_load(product: model.Product, _: object) -> None:
    """Initialise la liste d'événements quand un Produit est chargé depuis la BDD."""
    product.events = []
