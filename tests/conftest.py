"""
Configuration partagée pour les tests.

La base par défaut est redirigée vers SQLite en mémoire avant tout
import du package, et le mapping ORM est démarré une seule fois pour
toute la session de tests.
"""

import os

os.environ.setdefault("BATCH_INVENTORY_DB_URI", "sqlite://")

import pytest  # noqa: E402

from batch_inventory.adapters import orm  # noqa: E402


@pytest.fixture(scope="session", autouse=True)
def mappers():
    """Démarre le mapping ORM une fois pour toute la session."""
    orm.start_mappers()
