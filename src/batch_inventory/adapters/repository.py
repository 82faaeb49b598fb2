"""
Pattern Repository.

Le repository fournit une abstraction sur la couche de persistance
des produits (et de leurs lots). Il expose une interface de type
collection (add, get) qui masque les détails de l'accès aux données.
"""

from __future__ import annotations

import abc

from sqlalchemy.orm import Session

from batch_inventory.domain import model


class AbstractRepository(abc.ABC):
    """
    Interface abstraite du repository.

    Les méthodes publiques (add, get) gèrent le tracking via `seen`,
    puis délèguent aux méthodes abstraites préfixées _ que les
    sous-classes implémentent.
    """

    seen: set[model.Product]

    def __init__(self) -> None:
        # `seen` trace tous les agrégats consultés pendant la transaction,
        # ce qui permet au Unit of Work de collecter leurs événements.
        self.seen: set[model.Product] = set()

    def add(self, product: model.Product) -> None:
        self._add(product)
        self.seen.add(product)

    def get(self, product_id: str) -> model.Product | None:
        product = self._get(product_id)
        if product:
            self.seen.add(product)
        return product

    @abc.abstractmethod
    def _add(self, product: model.Product) -> None:
        raise NotImplementedError

    @abc.abstractmethod
    def _get(self, product_id: str) -> model.Product | None:
        raise NotImplementedError


class SqlAlchemyRepository(AbstractRepository):
    def __init__(self, session: Session):
        super().__init__()
        self.session = session

    def _add(self, product: model.Product) -> None:
        self.session.add(product)

    def _get(self, product_id: str) -> model.Product | None:
        return (
            self.session.query(model.Product)
            .filter_by(id=product_id)
            .first()
        )

