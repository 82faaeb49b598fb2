"""
Tests des verrous par produit et de la reprise sur conflit de base.
"""

import threading

import pytest
from sqlalchemy.exc import OperationalError

from batch_inventory.service_layer.concurrency import KeyedLocks, run_with_retry


def conflit() -> OperationalError:
    return OperationalError("COMMIT", {}, Exception("database is locked"))


class TestRunWithRetry:
    def test_relance_jusqu_au_succès(self):
        appels = []

        def instable():
            appels.append(1)
            if len(appels) < 3:
                raise conflit()
            return "ok"

        assert run_with_retry(instable, attempts=3, backoff_base=0) == "ok"
        assert len(appels) == 3

    def test_abandonne_après_la_dernière_tentative(self):
        appels = []

        def toujours_en_conflit():
            appels.append(1)
            raise conflit()

        with pytest.raises(OperationalError):
            run_with_retry(toujours_en_conflit, attempts=2, backoff_base=0)
        assert len(appels) == 2

    def test_les_autres_erreurs_ne_sont_pas_relancées(self):
        appels = []

        def en_erreur():
            appels.append(1)
            raise KeyError("P-INCONNU")

        with pytest.raises(KeyError):
            run_with_retry(en_erreur, attempts=3, backoff_base=0)
        assert len(appels) == 1


class TestKeyedLocks:
    def test_même_clé_même_verrou_tant_qu_il_est_tenu(self):
        verrous = KeyedLocks()

        with verrous.hold("P-A"):
            assert verrous._lock_for("P-A").locked()
            assert not verrous._lock_for("P-B").locked()

    def test_le_registre_ne_grossit_pas(self):
        verrous = KeyedLocks()

        for i in range(100):
            with verrous.hold(f"P-{i}"):
                pass

        assert len(verrous) == 0

    def test_sérialise_les_écritures_d_une_même_clé(self):
        verrous = KeyedLocks()
        compteur = {"valeur": 0}

        def incrémenter():
            for _ in range(200):
                with verrous.hold("P-A"):
                    lu = compteur["valeur"]
                    compteur["valeur"] = lu + 1

        threads = [threading.Thread(target=incrémenter) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert compteur["valeur"] == 800
