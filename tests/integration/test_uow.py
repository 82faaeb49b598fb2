"""
Tests d'intégration du Unit of Work SQLAlchemy.

- commit : journal, lots et totaux du produit sont écrits ensemble
- pas de commit : tout est annulé
- écritures et lectures concurrentes sur un même bus : aucun delta perdu
"""

import threading

import pytest
from sqlalchemy import create_engine, select, text
from sqlalchemy.orm import sessionmaker

from batch_inventory.adapters import notifications, orm
from batch_inventory.domain import commands
from batch_inventory.domain.model import Product
from batch_inventory.service_layer import bootstrap, unit_of_work
from batch_inventory.views import views


class FakeNotifications(notifications.AbstractNotifications):
    def __init__(self):
        self.envoyés = []

    def send(self, destination: str, message: str) -> None:
        self.envoyés.append((destination, message))


@pytest.fixture
def session_factory(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'inventaire.db'}",
        connect_args={"check_same_thread": False},
    )
    orm.create_tables(engine)
    return sessionmaker(bind=engine)


def insérer_produit(session_factory, product_id="P-CAFE", **kwargs):
    session = session_factory()
    session.add(Product(id=product_id, sku="CAFE-1KG", **kwargs))
    session.commit()
    session.close()


def quantité(session, product_id, location_id, batch_no):
    table = orm.batch_inventory
    return session.execute(
        select(table.c.qty).where(
            table.c.product_id == product_id,
            table.c.location_id == location_id,
            table.c.batch_no == batch_no,
        )
    ).scalar_one()


class TestSqlAlchemyUnitOfWork:
    def test_commit_écrit_lot_journal_et_totaux(self, session_factory):
        insérer_produit(session_factory)
        uow = unit_of_work.SqlAlchemyUnitOfWork(session_factory)

        with uow:
            produit = uow.products.get("P-CAFE")
            _, entrée = produit.receive("LOC-A", "B1", 12)
            uow.batch_events.append(entrée)
            uow.commit()

        session = session_factory()
        assert quantité(session, "P-CAFE", "LOC-A", "B1") == 12
        assert session.execute(text("SELECT COUNT(*) FROM batch_events")).scalar_one() == 1
        assert session.execute(text("SELECT stock FROM products WHERE id = 'P-CAFE'")).scalar_one() == 12

    def test_rollback_sans_commit(self, session_factory):
        insérer_produit(session_factory)
        uow = unit_of_work.SqlAlchemyUnitOfWork(session_factory)

        with uow:
            produit = uow.products.get("P-CAFE")
            _, entrée = produit.receive("LOC-A", "B1", 12)
            uow.batch_events.append(entrée)

        session = session_factory()
        assert session.execute(text("SELECT COUNT(*) FROM batch_events")).scalar_one() == 0
        assert session.execute(text("SELECT COUNT(*) FROM batch_inventory")).scalar_one() == 0
        assert session.execute(text("SELECT stock FROM products WHERE id = 'P-CAFE'")).scalar_one() == 0

    def test_rollback_sur_exception(self, session_factory):
        insérer_produit(session_factory)
        uow = unit_of_work.SqlAlchemyUnitOfWork(session_factory)

        class Panne(Exception):
            pass

        with pytest.raises(Panne):
            with uow:
                produit = uow.products.get("P-CAFE")
                _, entrée = produit.receive("LOC-A", "B1", 12)
                uow.batch_events.append(entrée)
                raise Panne()

        session = session_factory()
        assert session.execute(text("SELECT COUNT(*) FROM batch_events")).scalar_one() == 0


def bus_partagé(session_factory):
    """Un seul bus et un seul uow pour tous les threads, comme l'app Flask."""
    return bootstrap.bootstrap(
        start_orm=False,
        uow=unit_of_work.SqlAlchemyUnitOfWork(session_factory),
        notifications_adapter=FakeNotifications(),
    )


def en_parallèle(*cibles):
    erreurs = []

    def exécuter(cible):
        try:
            cible()
        except Exception as e:  # remonté au thread principal
            erreurs.append(e)

    threads = [threading.Thread(target=exécuter, args=(c,)) for c in cibles]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    return erreurs


def compter(session, sql):
    return session.execute(text(sql)).scalar_one()


class TestÉcrituresConcurrentes:
    def test_aucun_delta_perdu_sur_le_même_lot(self, session_factory):
        """Plusieurs threads réceptionnent +1 dans le même lot via le même bus."""
        insérer_produit(session_factory)
        bus = bus_partagé(session_factory)
        threads_count, per_thread = 4, 10

        def réceptionner():
            for _ in range(per_thread):
                bus.handle(commands.ReceiveBatch("P-CAFE", "LOC-A", "B1", 1))

        erreurs = en_parallèle(*[réceptionner] * threads_count)

        assert erreurs == []
        total = threads_count * per_thread
        session = session_factory()
        assert quantité(session, "P-CAFE", "LOC-A", "B1") == total
        assert compter(session, "SELECT COUNT(*) FROM batch_events") == total
        assert compter(session, "SELECT stock FROM products WHERE id = 'P-CAFE'") == total
        assert bus.handle(commands.SyncProductStock("P-CAFE")) == [True]

    def test_produits_différents_sur_le_même_bus(self, session_factory):
        insérer_produit(session_factory, "P-A")
        insérer_produit(session_factory, "P-B")
        bus = bus_partagé(session_factory)
        per_thread = 30

        def réceptionner(product_id):
            def cible():
                for _ in range(per_thread):
                    [résultat] = bus.handle(commands.ReceiveBatch(product_id, "LOC-A", "B1", 1))
                    assert résultat.batch.product_id == product_id
            return cible

        erreurs = en_parallèle(réceptionner("P-A"), réceptionner("P-B"))

        assert erreurs == []
        session = session_factory()
        for product_id in ("P-A", "P-B"):
            assert quantité(session, product_id, "LOC-A", "B1") == per_thread
            journalisés = compter(
                session,
                f"SELECT COALESCE(SUM(qty), 0) FROM batch_events WHERE product_id = '{product_id}'",
            )
            assert journalisés == per_thread

    def test_lectures_pendant_les_écritures(self, session_factory):
        insérer_produit(session_factory)
        bus = bus_partagé(session_factory)
        lectures = []

        def écrire():
            for _ in range(20):
                bus.handle(commands.ReceiveBatch("P-CAFE", "LOC-A", "B1", 1))

        def lire():
            for _ in range(20):
                lectures.append(views.product_batches("P-CAFE", bus.uow))

        erreurs = en_parallèle(écrire, lire)

        assert erreurs == []
        assert len(lectures) == 20
        assert views.check_consistency("P-CAFE", bus.uow) == []
