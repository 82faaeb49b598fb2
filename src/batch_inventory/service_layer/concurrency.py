"""
Sérialisation des écritures par clé et reprise sur conflit.

Deux écritures concurrentes sur le même produit feraient un
lecture-modification-écriture sans isolation et perdraient un delta.
Chaque handler d'écriture prend donc le verrou de son produit pour
toute la durée de son unit of work. Le verrou du produit couvre
toutes ses clés (emplacement, lot) ainsi que les agrégats stock /
available.
"""

from __future__ import annotations

import contextlib
import logging
import threading
import time
import weakref
from typing import Callable, Iterator, TypeVar

from sqlalchemy.exc import OperationalError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class KeyedLocks:
    """
    Registre de verrous, un par clé, créés à la demande.

    Les verrous ne sont référencés que faiblement : celui d'une clé
    disparaît du registre dès que plus personne ne le tient ni ne l'attend.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: weakref.WeakValueDictionary[str, threading.Lock] = weakref.WeakValueDictionary()

    def __len__(self) -> int:
        return len(self._locks)

    def _lock_for(self, key: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            return lock

    @contextlib.contextmanager
    def hold(self, key: str) -> Iterator[None]:
        lock = self._lock_for(key)
        with lock:
            yield


product_locks = KeyedLocks()


def run_with_retry(
    func: Callable[[], T],
    *,
    attempts: int = 3,
    backoff_base: float = 0.05,
) -> T:
    """
    Exécute `func` en la relançant sur OperationalError (base verrouillée,
    conflit de sérialisation).

    `func` doit ouvrir sa propre transaction : chaque tentative repart
    d'un état relu en base.
    """
    for attempt in range(attempts):
        try:
            return func()
        except OperationalError:
            if attempt >= attempts - 1:
                raise
            logger.warning("Conflit en base, nouvelle tentative (%d/%d)", attempt + 2, attempts)
            time.sleep(backoff_base * (2 ** attempt))
    raise RuntimeError("attempts must be >= 1")
