"""
SafeCheck Inspections — Scheduler Jobs

Periodic due sweep on its own APScheduler BackgroundScheduler. The sweep
only reads: it classifies every equipment item and logs the ones that
need inspection.
"""
import logging
from typing import Dict, List, Optional

from apscheduler.schedulers.background import BackgroundScheduler

from .clock import Clock, get_clock
from .config import DEFAULT_OWNER, LightSettingsConfig, sweep_interval_minutes
from .models import EquipmentItem, EquipmentRepository
from .overrides import OverrideLedger, get_override_ledger
from .schedule import TrafficLight, classify_status, next_due_timestamp

logger = logging.getLogger(__name__)

_scheduler = None


def summarize_due(
    items: List[EquipmentItem],
    thresholds=None,
    ledger: Optional[OverrideLedger] = None,
    clock: Optional[Clock] = None,
) -> Dict:
    """Count items per traffic light and list the ones due now."""
    ledger = ledger if ledger is not None else get_override_ledger()
    clock = clock or get_clock()
    counts = {light.value: 0 for light in TrafficLight}
    due = []

    for item in items:
        if ledger.is_active(barcode=item.barcode, equipment_id=item.id):
            status = TrafficLight.COMPLETED
        else:
            status = classify_status(item, thresholds, clock)
        counts[status.value] += 1
        if status == TrafficLight.PENDING:
            due.append({
                "id": item.id,
                "barcode": item.barcode,
                "name": item.name,
                "siteName": item.site_name,
                "buildingName": item.building_name,
                "nextDue": next_due_timestamp(item),
            })

    due.sort(key=lambda d: d["nextDue"])
    return {"total": len(items), "counts": counts, "due": due}


def check_due_equipment() -> Optional[Dict]:
    """Scheduler entry point: log every item whose light is red."""
    try:
        settings = LightSettingsConfig.get(DEFAULT_OWNER)
        summary = summarize_due(EquipmentRepository.get_all(), settings.thresholds())
        for d in summary["due"]:
            logger.warning(
                f"[Inspections] Due: {d['name'] or d['id']} ({d['barcode']}) "
                f"at {d['siteName']} / {d['buildingName']}"
            )
        logger.info(f"[Inspections] Due sweep: {summary['counts']}")
        return summary
    except Exception as e:
        logger.error(f"[Inspections] Due sweep failed: {e}")
        return None


def get_inspection_scheduler() -> BackgroundScheduler:
    """Get or create the singleton inspection scheduler."""
    global _scheduler
    if _scheduler is None:
        _scheduler = BackgroundScheduler(
            job_defaults={"coalesce": True, "max_instances": 1, "misfire_grace_time": 120}
        )
    return _scheduler


def init_inspection_scheduler():
    """Register and start the due sweep."""
    scheduler = get_inspection_scheduler()

    if scheduler.running:
        return

    scheduler.add_job(
        check_due_equipment,
        "interval",
        minutes=sweep_interval_minutes(),
        id="inspection_due_sweep",
        replace_existing=True,
    )

    scheduler.start()
    logger.info(f"[Inspections] Scheduler started, due sweep every {sweep_interval_minutes()} min")


def shutdown_inspection_scheduler():
    global _scheduler
    if _scheduler is not None and _scheduler.running:
        _scheduler.shutdown(wait=False)
    _scheduler = None
