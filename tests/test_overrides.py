"""
SafeCheck — Optimistic Override Tests
======================================
"""

import datetime
import pytest

from app.inspections.engine import InspectionEngine
from app.inspections.overrides import OverrideLedger
from app.inspections.schedule import TrafficLight
from tests.conftest import BASE_NOW, make_equipment, ms


@pytest.fixture
def store_free_engine(ledger, clock):
    return InspectionEngine(store=None, ledger=ledger, clock=clock)


class TestOverrideLedger:

    def test_absent_until_marked(self, ledger):
        assert ledger.lookup(barcode="EXT-001", equipment_id="eq-1") is None
        assert not ledger.is_active(equipment_id="eq-1")

    def test_reachable_by_either_key(self, ledger):
        entry = ledger.mark("eq-1", "EXT-001")
        assert ledger.lookup(barcode="EXT-001") is entry
        assert ledger.lookup(equipment_id="eq-1") is entry
        assert ledger.lookup(barcode="EXT-001", equipment_id="other") is entry

    def test_expiry_window(self, ledger, clock):
        ledger.mark("eq-1", "EXT-001")
        clock.advance(hours=23, minutes=59)
        assert ledger.is_active(barcode="EXT-001")
        clock.advance(minutes=2)
        assert not ledger.is_active(barcode="EXT-001")
        assert not ledger.is_active(equipment_id="eq-1")

    def test_remark_moves_barcode(self, ledger):
        ledger.mark("eq-1", "EXT-001")
        ledger.mark("eq-1", "EXT-001B")
        assert ledger.lookup(barcode="EXT-001") is None
        assert ledger.lookup(barcode="EXT-001B").equipment_id == "eq-1"
        assert len(ledger) == 1

    def test_remark_restarts_window(self, ledger, clock):
        ledger.mark("eq-1", "EXT-001")
        clock.advance(hours=20)
        ledger.mark("eq-1", "EXT-001")
        clock.advance(hours=20)
        assert ledger.is_active(equipment_id="eq-1")

    def test_custom_ttl(self, clock):
        short = OverrideLedger(clock=clock, ttl_ms=60 * 1000)
        short.mark("eq-1", "EXT-001")
        clock.advance(seconds=61)
        assert not short.is_active(equipment_id="eq-1")


class TestEffectiveStatus:

    def test_override_masks_stale_due_status(self, store_free_engine, ledger):
        overdue = make_equipment(lastInspectedDate=ms(BASE_NOW - datetime.timedelta(days=45)))
        assert store_free_engine.effective_status(overdue) == TrafficLight.PENDING

        ledger.mark(overdue.id, overdue.barcode)
        assert store_free_engine.effective_status(overdue) == TrafficLight.COMPLETED

    def test_real_status_resumes_after_expiry(self, store_free_engine, ledger, clock):
        overdue = make_equipment(lastInspectedDate=ms(BASE_NOW - datetime.timedelta(days=45)))
        ledger.mark(overdue.id, overdue.barcode)
        clock.set(BASE_NOW + datetime.timedelta(hours=24, minutes=1))
        assert store_free_engine.effective_status(overdue) == TrafficLight.PENDING

    def test_real_data_wins_once_store_catches_up(self, store_free_engine, ledger, clock):
        item = make_equipment(lastInspectedDate=ms(BASE_NOW))
        ledger.mark(item.id, item.barcode)
        clock.advance(days=2)
        # Override expired; the stored inspection date now drives the light
        assert store_free_engine.effective_status(item) == TrafficLight.UNNECESSARY
