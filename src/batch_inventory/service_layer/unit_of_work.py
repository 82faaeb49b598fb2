"""
Pattern Unit of Work.

Le Unit of Work (UoW) gère la notion de transaction atomique. Il
expose deux collections partageant la même session : les produits
(avec leurs lots matérialisés) et le journal des mouvements. Ajout
au journal, matérialisation et synchronisation sont ainsi validés
par un seul commit, ou annulés ensemble.

    with uow:
        # ... opérations sur uow.products et uow.batch_events ...
        uow.commit()
"""

from __future__ import annotations

import abc
import threading

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from batch_inventory import config
from batch_inventory.adapters import event_log, repository

DEFAULT_ENGINE = create_engine(
    config.get_database_uri(),
    isolation_level="SERIALIZABLE",
)
DEFAULT_SESSION_FACTORY = sessionmaker(bind=DEFAULT_ENGINE)


class AbstractUnitOfWork(abc.ABC):
    """
    Le rollback est automatique si commit() n'est pas appelé
    (grâce au __exit__ du context manager).
    """

    products: repository.AbstractRepository
    batch_events: event_log.AbstractEventLog

    def __enter__(self) -> AbstractUnitOfWork:
        return self

    def __exit__(self, *args: object) -> None:
        self.rollback()

    def commit(self) -> None:
        self._commit()

    def collect_new_events(self):
        for product in self.products.seen:
            while product.events:
                yield product.events.pop(0)

    @abc.abstractmethod
    def _commit(self) -> None:
        raise NotImplementedError

    @abc.abstractmethod
    def rollback(self) -> None:
        raise NotImplementedError


class SqlAlchemyUnitOfWork(AbstractUnitOfWork):
    """
    La session et les collections vivent dans un état propre à chaque
    thread : une même instance peut servir plusieurs requêtes HTTP
    concurrentes, chacune avec sa propre transaction.
    """

    def __init__(self, session_factory: sessionmaker = DEFAULT_SESSION_FACTORY):
        self.session_factory = session_factory
        self._local = threading.local()

    @property
    def session(self) -> Session:
        return self._local.session

    @property
    def products(self) -> repository.SqlAlchemyRepository:
        return self._local.products

    @property
    def batch_events(self) -> event_log.SqlAlchemyEventLog:
        return self._local.batch_events

    def __enter__(self) -> SqlAlchemyUnitOfWork:
        session = self.session_factory()
        self._local.session = session
        self._local.products = repository.SqlAlchemyRepository(session)
        self._local.batch_events = event_log.SqlAlchemyEventLog(session)
        return super().__enter__()

    def __exit__(self, *args: object) -> None:
        super().__exit__(*args)
        self.session.close()

    def collect_new_events(self):
        # un thread qui n'a encore ouvert aucune transaction n'a rien à collecter
        if hasattr(self._local, "products"):
            yield from super().collect_new_events()

    def _commit(self) -> None:
        self.session.commit()

    def rollback(self) -> None:
        self.session.rollback()
