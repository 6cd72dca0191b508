"""
SafeCheck Inspections — API Routes
"""
import logging
from typing import Dict, List, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .clock import start_of_day_ms
from .config import LightSettings, LightSettingsConfig, owner_key, resolve_light_color
from .engine import InspectionEngine, MissingAbnormalNotes, has_abnormal_result
from .models import (
    AbnormalRepository,
    EquipmentItem,
    EquipmentRepository,
    ReportRepository,
    ThresholdMode,
    init_inspection_schema,
    new_id,
)
from .schedule import next_due_timestamp, remaining_days
from .scheduler_jobs import summarize_due
from .store import SqliteInspectionStore

logger = logging.getLogger(__name__)

_engine = None


def get_engine() -> InspectionEngine:
    global _engine
    if _engine is None:
        _engine = InspectionEngine(SqliteInspectionStore())
    return _engine


def set_engine(engine: Optional[InspectionEngine]):
    """Swap the engine used by the routes (tests pin the clock this way)."""
    global _engine
    _engine = engine


def equipment_problems(doc: Dict) -> List[str]:
    """Shape checks applied before an equipment document is stored."""
    problems = []
    if not (doc.get("name") or "").strip():
        problems.append("name is required")
    for ci in doc.get("checkItems") or []:
        if not isinstance(ci, dict):
            problems.append("checkItems entries must be objects")
            continue
        label = ci.get("name") or ci.get("id") or "?"
        if ci.get("thresholdMode") == ThresholdMode.RANGE.value:
            v1, v2 = ci.get("val1"), ci.get("val2")
            if v1 is None or v2 is None:
                problems.append(f"{label}: range needs val1 and val2")
            else:
                try:
                    if float(v1) > float(v2):
                        problems.append(f"{label}: val1 must not exceed val2")
                except (TypeError, ValueError):
                    problems.append(f"{label}: range bounds must be numbers")
    return problems


def _settings_for(request: Request) -> LightSettings:
    params = request.query_params
    return LightSettingsConfig.get(owner_key(params.get("user_id"), params.get("organization_id")))


def _status_row(engine: InspectionEngine, item: EquipmentItem, settings: LightSettings) -> Dict:
    status = engine.effective_status(item, settings.thresholds())
    return {
        "equipment": item.to_dict(),
        "status": status.value,
        "nextDue": next_due_timestamp(item),
        "remainingDays": remaining_days(item, engine.clock.now_ms()),
    }


def _error(message: str, status_code: int, **extra) -> JSONResponse:
    body = {"ok": False, "error": message}
    body.update(extra)
    return JSONResponse(body, status_code=status_code)


def register_inspection_routes(app: FastAPI):
    """Register all inspection endpoints."""

    init_inspection_schema()

    # ============================================================
    # EQUIPMENT
    # ============================================================

    @app.get("/api/inspections/equipment")
    async def api_list_equipment(request: Request):
        params = request.query_params
        engine = get_engine()
        settings = _settings_for(request)
        items = EquipmentRepository.get_all(
            site_name=params.get("site"),
            building_name=params.get("building"),
        )
        return {"ok": True, "equipment": [_status_row(engine, i, settings) for i in items]}

    @app.post("/api/inspections/equipment")
    async def api_create_equipment(request: Request):
        data = await request.json()
        problems = equipment_problems(data)
        if problems:
            return _error("; ".join(problems), 400, problems=problems)
        barcode = (data.get("barcode") or "").strip()
        if barcode and EquipmentRepository.get_by_barcode(barcode):
            return _error(f"Barcode {barcode} already exists", 409)

        now_ms = get_engine().clock.now_ms()
        item = EquipmentItem.from_dict(data)
        item.id = item.id or new_id()
        item.barcode = barcode
        item.created_at = item.created_at or now_ms
        item.updated_at = now_ms
        EquipmentRepository.create(item)
        logger.info(f"[Inspections] Created equipment {item.id} ({item.barcode})")
        return {"ok": True, "equipment_id": item.id, "equipment": item.to_dict()}

    @app.get("/api/inspections/equipment/{equipment_id}")
    async def api_get_equipment(equipment_id: str, request: Request):
        item = EquipmentRepository.get_by_id(equipment_id)
        if not item:
            return _error("Not found", 404)
        row = _status_row(get_engine(), item, _settings_for(request))
        row["abnormal"] = [r.to_dict() for r in AbnormalRepository.get_all(equipment_id=equipment_id, limit=20)]
        return {"ok": True, **row}

    @app.put("/api/inspections/equipment/{equipment_id}")
    async def api_update_equipment(equipment_id: str, request: Request):
        current = EquipmentRepository.get_by_id(equipment_id)
        if not current:
            return _error("Not found", 404)
        data = await request.json()
        if not isinstance(data, dict):
            return _error("Body must be an object", 400)
        if "barcode" in data:
            barcode = (data.get("barcode") or "").strip()
            owner = EquipmentRepository.get_by_barcode(barcode) if barcode else None
            if owner and owner.id != equipment_id:
                return _error(f"Barcode {barcode} already exists", 409)
            data["barcode"] = barcode
        merged = current.to_dict()
        merged.update(data)
        problems = equipment_problems(merged)
        if problems:
            return _error("; ".join(problems), 400, problems=problems)
        data["updatedAt"] = get_engine().clock.now_ms()
        item = EquipmentRepository.patch(equipment_id, data)
        return {"ok": True, "equipment": item.to_dict()}

    @app.delete("/api/inspections/equipment/{equipment_id}")
    async def api_delete_equipment(equipment_id: str, request: Request):
        if not EquipmentRepository.delete(equipment_id):
            return _error("Not found", 404)
        return {"ok": True}

    @app.get("/api/inspections/scan/{code}")
    async def api_scan(code: str, request: Request):
        item = EquipmentRepository.get_by_barcode(code.strip()) or EquipmentRepository.get_by_id(code.strip())
        if not item:
            return _error(f"Equipment {code} not found", 404)
        return {"ok": True, **_status_row(get_engine(), item, _settings_for(request))}

    # ============================================================
    # SUBMISSION
    # ============================================================

    @app.post("/api/inspections/equipment/{equipment_id}/submit")
    async def api_submit_check(equipment_id: str, request: Request):
        item = EquipmentRepository.get_by_id(equipment_id)
        if not item:
            return _error("Not found", 404)
        data = await request.json()
        results = data.get("results") or {}
        if not isinstance(results, dict):
            return _error("results must be an object keyed by check item id", 400)

        try:
            outcome = get_engine().submit(
                item,
                results,
                notes=data.get("notes") or "",
                inspector_name=data.get("inspectorName") or "Guest",
                building_name=data.get("buildingName"),
            )
        except MissingAbnormalNotes as e:
            return _error(str(e), 400, failedItems=e.failed_items)
        except Exception as e:
            return _error(f"Save failed: {e}", 500)

        return {
            "ok": True,
            "status": outcome.aggregate.overall_status.value,
            "failedItems": outcome.aggregate.failed_items,
            "createdReport": outcome.created_report,
            "abnormalRecordId": outcome.abnormal_record_id,
            "report": outcome.report.to_dict(),
            "item": outcome.item.to_dict(),
        }

    # ============================================================
    # STATUS / TRAFFIC LIGHTS
    # ============================================================

    @app.get("/api/inspections/status")
    async def api_status(request: Request):
        params = request.query_params
        engine = get_engine()
        settings = _settings_for(request)
        items = EquipmentRepository.get_all(
            site_name=params.get("site"),
            building_name=params.get("building"),
        )

        today = start_of_day_ms(engine.clock.now_ms())
        todays_reports = {}
        lights = []
        for item in items:
            if item.building_name not in todays_reports:
                todays_reports[item.building_name] = ReportRepository.find_by_building(item.building_name, today)
            status = engine.effective_status(item, settings.thresholds())
            abnormal = has_abnormal_result(todays_reports[item.building_name], item.id)
            lights.append({
                "id": item.id,
                "barcode": item.barcode,
                "name": item.name,
                "status": status.value,
                "abnormal": abnormal,
                "color": resolve_light_color(status, settings, abnormal),
            })
        return {"ok": True, "lights": lights}

    @app.get("/api/inspections/due")
    async def api_due(request: Request):
        engine = get_engine()
        settings = _settings_for(request)
        summary = summarize_due(
            EquipmentRepository.get_all(),
            settings.thresholds(),
            ledger=engine.ledger,
            clock=engine.clock,
        )
        return {"ok": True, **summary}

    # ============================================================
    # REPORTS / ABNORMAL RECORDS
    # ============================================================

    @app.get("/api/inspections/reports")
    async def api_reports(request: Request):
        params = request.query_params
        archived = params.get("archived")
        try:
            limit = int(params.get("limit") or 100)
        except ValueError:
            return _error("limit must be an integer", 400)
        reports = ReportRepository.get_recent(
            building_name=params.get("building"),
            archived=None if archived is None else archived == "true",
            limit=limit,
        )
        return {"ok": True, "reports": [r.to_dict() for r in reports]}

    @app.get("/api/inspections/reports/{report_id}")
    async def api_report(report_id: str, request: Request):
        report = ReportRepository.get_by_id(report_id)
        if not report:
            return _error("Not found", 404)
        return {"ok": True, "report": report.to_dict()}

    @app.get("/api/inspections/abnormal")
    async def api_abnormal(request: Request):
        params = request.query_params
        records = AbnormalRepository.get_all(
            status=params.get("status"),
            equipment_id=params.get("equipment_id"),
        )
        return {"ok": True, "records": [r.to_dict() for r in records]}

    # ============================================================
    # LIGHT SETTINGS
    # ============================================================

    @app.get("/api/inspections/settings/lights")
    async def api_get_lights(request: Request):
        return {"ok": True, "settings": _settings_for(request).to_dict()}

    @app.put("/api/inspections/settings/lights")
    async def api_save_lights(request: Request):
        params = request.query_params
        data = await request.json()
        if not isinstance(data, dict):
            return _error("Body must be an object", 400)
        current = _settings_for(request).to_dict()
        for band, part in data.items():
            if isinstance(part, dict) and band in current:
                current[band].update(part)
        settings = LightSettings.from_dict(current)
        problems = settings.validate()
        if problems:
            return _error("; ".join(problems), 400, problems=problems)
        LightSettingsConfig.save(owner_key(params.get("user_id"), params.get("organization_id")), settings)
        return {"ok": True, "settings": settings.to_dict()}
