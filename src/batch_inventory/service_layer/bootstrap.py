"""
Bootstrap : assemblage de l'application (Composition Root).

C'est le seul endroit de l'application qui connaît les
implémentations concrètes de chaque abstraction ; les tests y
injectent leurs fakes.
"""

from __future__ import annotations

from datetime import date
from typing import Any, Callable

from batch_inventory import config
from batch_inventory.adapters import notifications, orm
from batch_inventory.domain import commands, events
from batch_inventory.service_layer import handlers, messagebus, unit_of_work


def bootstrap(
    start_orm: bool = True,
    uow: unit_of_work.AbstractUnitOfWork | None = None,
    notifications_adapter: notifications.AbstractNotifications | None = None,
    clock: Callable[[], date] = date.today,
    **extra_dependencies: Any,
) -> messagebus.MessageBus:
    """
    Construit et retourne un MessageBus configuré.

    Sans uow fourni, on utilise la base configurée et on crée ses
    tables si besoin.
    """
    if start_orm:
        orm.start_mappers()

    if uow is None:
        orm.create_tables(unit_of_work.DEFAULT_ENGINE)
        uow = unit_of_work.SqlAlchemyUnitOfWork()

    if notifications_adapter is None:
        notifications_adapter = notifications.EmailNotifications()

    dependencies: dict[str, Any] = {
        "notifications": notifications_adapter,
        "clock": clock,
        **extra_dependencies,
    }

    return messagebus.MessageBus(
        uow=uow,
        event_handlers=EVENT_HANDLERS,
        command_handlers=COMMAND_HANDLERS,
        dependencies=dependencies,
        retry_attempts=config.get_retry_attempts(),
    )


# --- Routage des messages vers les handlers ---

EVENT_HANDLERS: dict[type[events.Event], list] = {
    events.BatchReceived: [handlers.log_batch_received],
    events.BatchAdjusted: [handlers.log_batch_adjusted],
    events.BatchDepleted: [handlers.log_batch_depleted],
    events.AllocationShortfall: [handlers.notify_allocation_shortfall],
}

COMMAND_HANDLERS: dict[type[commands.Command], Any] = {
    commands.CreateProduct: handlers.create_product,
    commands.UpdateProductBatchTracking: handlers.update_product_batch_tracking,
    commands.ReceiveBatch: handlers.receive_batch,
    commands.AdjustBatch: handlers.adjust_batch,
    commands.TransferBatch: handlers.transfer_batch,
    commands.RecordSale: handlers.record_sale,
    commands.RecordReturn: handlers.record_return,
    commands.SyncProductStock: handlers.sync_product_stock_with_batches,
    commands.DeleteBatch: handlers.delete_batch,
    commands.RebuildFromLog: handlers.rebuild_from_log,
}
