"""
Tests unitaires de l'allocateur FIFO.

L'allocateur est une fonction pure : on le teste sur des lots
construits en mémoire, avec une date du jour fixée.
"""

from datetime import date

from batch_inventory.domain.fifo import (
    FifoPick,
    fifo_pick,
    get_available_qty_for_fifo,
    pick_order,
)
from batch_inventory.domain.model import BatchInventory

AUJOURD_HUI = date(2025, 1, 1)


def lot(batch_no: str, qty: int, expiry: date | None = None, location: str = "LOC-A") -> BatchInventory:
    return BatchInventory("YAOURT", location, batch_no, qty, expiry_date=expiry)


class TestFifoPick:
    def test_sert_d_abord_le_lot_qui_périme_le_plus_tôt(self):
        lots = [
            lot("B1", 5, date(2025, 1, 10)),
            lot("B2", 3, date(2025, 1, 5)),
        ]

        plan = fifo_pick(lots, 6, today=AUJOURD_HUI)

        assert [(p.batch_no, p.qty) for p in plan] == [("B2", 3), ("B1", 3)]
        assert plan.fulfilled == 6
        assert plan.shortfall == 0
        assert plan.is_complete

    def test_ignore_les_lots_périmés_et_vides(self):
        lots = [
            lot("PERIME", 50, date(2024, 12, 31)),
            lot("VIDE", 0, date(2025, 1, 2)),
            lot("BON", 5, date(2025, 3, 1)),
        ]

        plan = fifo_pick(lots, 10, today=AUJOURD_HUI)

        assert [p.batch_no for p in plan] == ["BON"]
        assert plan.fulfilled == 5
        assert plan.shortfall == 5
        assert not plan.is_complete

    def test_départage_par_numéro_de_lot(self):
        même_date = date(2025, 2, 1)
        lots = [lot("B-20", 4, même_date), lot("B-10", 4, même_date)]

        plan = fifo_pick(lots, 5, today=AUJOURD_HUI)

        assert plan.picks == [
            FifoPick("B-10", 4, même_date, "LOC-A"),
            FifoPick("B-20", 1, même_date, "LOC-A"),
        ]

    def test_lots_sans_date_départagés_par_numéro(self):
        lots = [lot("ZZ", 2), lot("AA", 2)]

        plan = fifo_pick(lots, 3, today=AUJOURD_HUI)

        assert [(p.batch_no, p.qty) for p in plan] == [("AA", 2), ("ZZ", 1)]

    def test_quantité_nulle_ou_négative_plan_vide(self):
        lots = [lot("B1", 5, date(2025, 2, 1))]

        assert list(fifo_pick(lots, 0, today=AUJOURD_HUI)) == []
        assert len(fifo_pick(lots, -3, today=AUJOURD_HUI)) == 0
        assert fifo_pick(lots, -3, today=AUJOURD_HUI).shortfall == 0

    def test_ne_modifie_aucun_lot(self):
        lots = [lot("B1", 5, date(2025, 2, 1))]

        fifo_pick(lots, 3, today=AUJOURD_HUI)

        assert lots[0].qty == 5

    def test_limité_à_un_emplacement(self):
        lots = [
            lot("B1", 5, date(2025, 1, 5), location="LOC-A"),
            lot("B2", 5, date(2025, 1, 3), location="LOC-B"),
        ]

        plan = fifo_pick(lots, 4, today=AUJOURD_HUI, location_id="LOC-A")

        assert [(p.batch_no, p.location_id, p.qty) for p in plan] == [("B1", "LOC-A", 4)]

    def test_déterministe(self):
        lots = [
            lot("B3", 2, date(2025, 1, 20)),
            lot("B1", 7, date(2025, 1, 9)),
            lot("B2", 1),
        ]

        premier = fifo_pick(lots, 8, today=AUJOURD_HUI)
        second = fifo_pick(lots, 8, today=AUJOURD_HUI)

        assert premier == second


class TestConservation:
    def test_servi_égal_demandé_si_stock_suffisant(self):
        lots = [lot("B1", 4, date(2025, 1, 9)), lot("B2", 6, date(2025, 1, 20))]
        for demandé in range(0, 11):
            plan = fifo_pick(lots, demandé, today=AUJOURD_HUI)
            assert plan.fulfilled == demandé

    def test_servi_égal_disponible_si_stock_insuffisant(self):
        lots = [
            lot("B1", 4, date(2025, 1, 9)),
            lot("B2", 6, date(2025, 1, 20)),
            lot("PERIME", 100, date(2024, 6, 1)),
        ]
        disponible = get_available_qty_for_fifo(lots, today=AUJOURD_HUI)

        plan = fifo_pick(lots, 25, today=AUJOURD_HUI)

        assert disponible == 10
        assert plan.fulfilled == disponible
        assert plan.shortfall == 15


class TestPickOrder:
    def test_ordre_de_prélèvement(self):
        lots = [
            lot("C", 1, date(2025, 3, 1)),
            lot("A", 1, date(2025, 2, 1)),
            lot("PERIME", 1, date(2024, 1, 1)),
        ]

        assert [b.batch_no for b in pick_order(lots, AUJOURD_HUI)] == ["A", "C"]
