"""
SafeCheck — End-to-End Workflow Tests
======================================
Full lifecycle tests that chain multiple operations together.
"""

import datetime
import json

from tests.conftest import BASE_NOW, db_count, db_query, equipment_doc, ms


def _stored_equipment(equipment_id):
    rows = db_query("SELECT doc_json FROM equipment WHERE id = ?", (equipment_id,))
    return json.loads(rows[0]["doc_json"])


class TestNormalInspectionLifecycle:
    """Monthly item, never inspected: scan -> submit Normal -> light turns completed."""

    def test_first_normal_check(self, client, clock):
        # 1. Register a monthly extinguisher with a single boolean check
        doc = equipment_doc(
            checkItems=[{"id": "ci-seal", "name": "Seal intact", "inputType": "boolean"}],
            createdAt=ms(BASE_NOW - datetime.timedelta(days=45)),
        )
        resp = client.post("/api/inspections/equipment", json=doc)
        assert resp.status_code == 200
        eq_id = resp.json()["equipment_id"]
        assert "lastInspectedDate" not in resp.json()["equipment"]

        # 2. Scan shows it overdue
        scan = client.get("/api/inspections/scan/EXT-001").json()
        assert scan["status"] == "PENDING"

        # 3. Submit a passing check without notes
        resp = client.post(f"/api/inspections/equipment/{eq_id}/submit", json={
            "results": {"ci-seal": True},
            "inspectorName": "Park",
        })
        data = resp.json()
        assert resp.status_code == 200, data
        assert data["status"] == "Normal"
        assert data["createdReport"] is True
        assert data["abnormalRecordId"] is None

        # 4. One archived report for today's building, no abnormal record
        reports = db_query("SELECT * FROM inspection_reports")
        assert len(reports) == 1
        assert reports[0]["building_name"] == "Building A"
        assert reports[0]["archived"] == 1
        assert reports[0]["overall_status"] == "In Progress"
        assert db_count("abnormal_records") == 0

        # 5. Inspection date persisted on the equipment
        assert _stored_equipment(eq_id)["lastInspectedDate"] == clock.now_ms()

        # 6. Light is completed for the rest of the day
        light = client.get("/api/inspections/status").json()["lights"][0]
        assert light["status"] == "COMPLETED"
        assert light["abnormal"] is False
        assert light["color"] == "#10b981"

    def test_next_day_starts_a_new_report(self, client, clock):
        eq_id = client.post("/api/inspections/equipment", json=equipment_doc()).json()["equipment_id"]
        client.post(f"/api/inspections/equipment/{eq_id}/submit", json={"results": {"ci-seal": True}})

        clock.advance(days=1)
        resp = client.post(f"/api/inspections/equipment/{eq_id}/submit", json={"results": {"ci-seal": True}})
        assert resp.json()["createdReport"] is True
        assert db_count("inspection_reports") == 2

        # Yesterday's inspection no longer reads as completed once the override lapses
        clock.advance(days=1, hours=1)
        light = client.get("/api/inspections/status").json()["lights"][0]
        assert light["status"] == "UNNECESSARY"


class TestAbnormalLifecycle:
    """Building walk: one item fails, notes required, record raised, report stays open."""

    def test_building_walk_with_failure(self, client, clock):
        first = client.post("/api/inspections/equipment", json=equipment_doc()).json()["equipment_id"]
        second = client.post("/api/inspections/equipment", json=equipment_doc(
            id="eq-2", barcode="EXT-002", name="Extinguisher 2F-B",
            notificationEmails=["facilities@example.org"],
        )).json()["equipment_id"]

        # 1. First item passes
        resp = client.post(f"/api/inspections/equipment/{first}/submit", json={
            "results": {"ci-seal": True, "ci-psi": "0.85"},
        })
        report_id = resp.json()["report"]["id"]
        assert resp.json()["report"]["archived"] is True

        # 2. Second item fails; rejected until notes are given
        clock.advance(minutes=10)
        resp = client.post(f"/api/inspections/equipment/{second}/submit", json={
            "results": {"ci-seal": True, "ci-psi": "0.4"},
        })
        assert resp.status_code == 400
        assert resp.json()["failedItems"] == ["Pressure"]
        assert len(db_query("SELECT id FROM inspection_reports")) == 1

        resp = client.post(f"/api/inspections/equipment/{second}/submit", json={
            "results": {"ci-seal": True, "ci-psi": "0.4"},
            "notes": "Gauge reads low, tagged out",
        })
        data = resp.json()
        assert data["status"] == "Abnormal"
        assert data["createdReport"] is False

        # 3. Same report now holds both items and is reopened
        report = client.get(f"/api/inspections/reports/{report_id}").json()["report"]
        assert report["archived"] is False
        assert sorted(i["equipmentId"] for i in report["items"]) == ["eq-1", "eq-2"]
        assert report["stats"] == {"total": 2, "passed": 1, "failed": 1}

        # 4. Abnormal record captured against the failing item
        records = client.get("/api/inspections/abnormal", params={"status": "pending"}).json()["records"]
        assert [r["equipmentId"] for r in records] == ["eq-2"]
        assert records[0]["abnormalItems"] == ["Pressure"]

        # 5. Lights: both completed, only the failing one flagged
        lights = {l["id"]: l for l in client.get("/api/inspections/status").json()["lights"]}
        assert lights["eq-1"]["abnormal"] is False
        assert lights["eq-2"]["abnormal"] is True
        assert lights["eq-2"]["color"] == "#f97316"

    def test_recheck_after_repair_replaces_item(self, client, clock):
        eq_id = client.post("/api/inspections/equipment", json=equipment_doc()).json()["equipment_id"]
        client.post(f"/api/inspections/equipment/{eq_id}/submit", json={
            "results": {"ci-seal": False}, "notes": "seal missing",
        })

        clock.advance(hours=2)
        resp = client.post(f"/api/inspections/equipment/{eq_id}/submit", json={
            "results": {"ci-seal": True},
            "notes": "seal replaced",
        })
        report = resp.json()["report"]
        assert len(report["items"]) == 1
        assert report["items"][0]["status"] == "Normal"
        assert report["archived"] is True

        # The earlier abnormal record is history and stays
        assert db_count("abnormal_records", "equipment_id = ?", (eq_id,)) == 1
