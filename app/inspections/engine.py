"""
SafeCheck Inspections — Check Engine

Turns one equipment check into report state:
  - evaluates every check item and derives Normal/Abnormal
  - folds the result into the building's report for today (upsert by equipment)
  - writes report, equipment and abnormal record through an InspectionStore
  - marks the equipment complete in the override ledger before the writes
"""
import logging
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from .clock import Clock, get_clock, start_of_day_ms
from .models import (
    AbnormalRecord,
    AbnormalStatus,
    EquipmentItem,
    InputType,
    InspectionItem,
    InspectionStatus,
    Report,
    ReportStatus,
    ResultSnapshot,
)
from .overrides import OverrideLedger, get_override_ledger
from .schedule import ThresholdConfig, TrafficLight, classify_status
from .store import InspectionStore
from .thresholds import describe_threshold, is_failure

logger = logging.getLogger(__name__)

UNSPECIFIED_ITEM = "unspecified item"


class MissingAbnormalNotes(ValueError):
    """An abnormal check was submitted without an explanation."""

    def __init__(self, equipment_id: str, failed_items: List[str]):
        self.equipment_id = equipment_id
        self.failed_items = failed_items
        super().__init__(
            f"Notes are required for abnormal results on equipment {equipment_id}"
        )


@dataclass
class CheckAggregate:
    overall_status: InspectionStatus
    check_points: Dict[str, Any]
    snapshot: List[ResultSnapshot]
    failed_items: List[str] = field(default_factory=list)

    @property
    def is_abnormal(self) -> bool:
        return self.overall_status == InspectionStatus.ABNORMAL


@dataclass
class SubmissionResult:
    report: Report
    item: InspectionItem
    aggregate: CheckAggregate
    created_report: bool
    abnormal_record_id: Optional[str] = None


# ================================================================
# AGGREGATION
# ================================================================

def sanitize_check_points(results: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Drop empty keys and unset values before a results map is stored."""
    return {k: v for k, v in (results or {}).items() if k != "" and v is not None}


def failed_check_names(equipment: EquipmentItem, results: Dict[str, Any]) -> List[str]:
    return [ci.name for ci in equipment.check_items if is_failure(ci, results.get(ci.id))]


def build_snapshot(equipment: EquipmentItem, results: Dict[str, Any]) -> List[ResultSnapshot]:
    snapshot = []
    for ci in equipment.check_items:
        numeric = ci.input_type == InputType.NUMBER
        snapshot.append(ResultSnapshot(
            name=ci.name,
            value=results.get(ci.id),
            threshold=describe_threshold(ci),
            unit=ci.unit if numeric else None,
        ))
    return snapshot


def aggregate(equipment: EquipmentItem, results: Dict[str, Any], notes: str = "") -> CheckAggregate:
    """
    Overall verdict for one submission. Abnormal if any check item fails.

    Raises MissingAbnormalNotes when the verdict is Abnormal and notes are
    blank; nothing has been written at that point.
    """
    results = results or {}
    failed = failed_check_names(equipment, results)
    status = InspectionStatus.ABNORMAL if failed else InspectionStatus.NORMAL

    if status == InspectionStatus.ABNORMAL and not (notes or "").strip():
        raise MissingAbnormalNotes(equipment.id, failed)

    return CheckAggregate(
        overall_status=status,
        check_points=sanitize_check_points(results),
        snapshot=build_snapshot(equipment, results),
        failed_items=failed,
    )


def build_inspection_item(
    equipment: EquipmentItem, agg: CheckAggregate, notes: str, now_ms: int
) -> InspectionItem:
    return InspectionItem(
        id=f"item_{now_ms}",
        equipment_id=equipment.id,
        status=agg.overall_status,
        name=equipment.name,
        barcode=equipment.barcode,
        check_frequency=equipment.check_frequency,
        location=equipment.location,
        check_points=dict(agg.check_points),
        check_results=list(agg.snapshot),
        notes=notes or "",
        last_updated=now_ms,
        abnormal_items=list(agg.failed_items),
        tags=list(equipment.tags),
    )


# ================================================================
# REPORT RECONCILIATION
# ================================================================

def report_stats(report: Report) -> Dict[str, int]:
    failed = sum(1 for i in report.items if i.status == InspectionStatus.ABNORMAL)
    return {
        "total": len(report.items),
        "passed": len(report.items) - failed,
        "failed": failed,
    }


def find_session_report(
    reports: Iterable[Report], building_name: str, start_of_today_ms: int
) -> Optional[Report]:
    for report in reports:
        if report.building_name == building_name and report.date >= start_of_today_ms:
            return report
    return None


def upsert_report(
    existing_reports: Iterable[Report],
    item: InspectionItem,
    building_name: str,
    inspector_name: str,
    now_ms: int,
) -> Tuple[Report, bool]:
    """
    Fold item into today's report for building_name, creating the report if
    there is none. Returns (report, created). The input reports are not
    mutated.

    archived follows the status of the item just submitted, not the whole
    report: a Normal check archives a report that already holds an Abnormal
    item.
    """
    found = find_session_report(existing_reports, building_name, start_of_day_ms(now_ms))
    created = found is None

    if created:
        report = Report(
            building_name=building_name,
            inspector_name=inspector_name,
            date=now_ms,
            overall_status=ReportStatus.IN_PROGRESS,
        )
    else:
        report = replace(found, items=list(found.items), stats=dict(found.stats))

    for idx, existing in enumerate(report.items):
        if existing.equipment_id == item.equipment_id:
            report.items[idx] = item
            break
    else:
        report.items.append(item)

    report.archived = item.status == InspectionStatus.NORMAL
    report.stats = report_stats(report)
    return report, created


def build_abnormal_record(
    equipment: EquipmentItem, agg: CheckAggregate, notes: str, now_ms: int
) -> AbnormalRecord:
    return AbnormalRecord(
        equipment_id=equipment.id,
        equipment_name=equipment.name,
        barcode=equipment.barcode,
        site_name=equipment.site_name,
        building_name=equipment.building_name,
        inspection_date=now_ms,
        abnormal_items=list(agg.failed_items) or [UNSPECIFIED_ITEM],
        abnormal_reason=notes,
        status=AbnormalStatus.PENDING,
        created_at=now_ms,
        updated_at=now_ms,
        tags=list(equipment.tags),
    )


def find_equipment(items: Iterable[EquipmentItem], code: str) -> Optional[EquipmentItem]:
    """Equipment whose barcode or id equals code; None is the normal no-match answer."""
    if not code:
        return None
    code = code.strip()
    for item in items:
        if item.barcode == code or item.id == code:
            return item
    return None


def has_abnormal_result(reports: Iterable[Report], equipment_id: str) -> bool:
    return any(
        i.equipment_id == equipment_id and i.status == InspectionStatus.ABNORMAL
        for r in reports for i in r.items
    )


# ================================================================
# ENGINE
# ================================================================

class InspectionEngine:
    """
    Submission pipeline and status reads bound to one store, ledger and clock.

    on_persist_error(equipment, exc) is called when a store write fails after
    the override was set. The override stays in place; the exception is
    re-raised for the caller to surface.
    """

    def __init__(
        self,
        store: InspectionStore,
        ledger: Optional[OverrideLedger] = None,
        clock: Optional[Clock] = None,
        on_persist_error: Optional[Callable[[EquipmentItem, Exception], None]] = None,
    ):
        self.store = store
        self.clock = clock or get_clock()
        if ledger is None:
            # Override expiry runs on the engine clock
            ledger = OverrideLedger(clock=self.clock) if clock is not None else get_override_ledger()
        self.ledger = ledger
        self.on_persist_error = on_persist_error

    def effective_status(self, item: EquipmentItem, thresholds: Optional[ThresholdConfig] = None) -> TrafficLight:
        """Status as the operator should see it: a fresh local submission wins."""
        if self.ledger.is_active(barcode=item.barcode, equipment_id=item.id):
            return TrafficLight.COMPLETED
        return classify_status(item, thresholds, self.clock)

    def submit(
        self,
        equipment: EquipmentItem,
        results: Dict[str, Any],
        notes: str = "",
        inspector_name: str = "Guest",
        building_name: Optional[str] = None,
    ) -> SubmissionResult:
        now_ms = self.clock.now_ms()
        notes = notes or ""

        try:
            agg = aggregate(equipment, results, notes)
        except MissingAbnormalNotes as e:
            logger.warning(f"[Inspections] Rejected {equipment.id}: abnormal items {e.failed_items} without notes")
            raise

        building = building_name or equipment.building_name
        item = build_inspection_item(equipment, agg, notes, now_ms)
        existing = self.store.find_reports(building, start_of_day_ms(now_ms))
        report, created = upsert_report(existing, item, building, inspector_name, now_ms)

        self.ledger.mark(equipment.id, equipment.barcode, now_ms)

        abnormal_id = None
        try:
            if created:
                report.id = self.store.create_report(report)
            else:
                self.store.update_report(report)

            self.store.update_last_inspected(equipment.id, now_ms)
            equipment.last_inspected_date = now_ms
            equipment.updated_at = now_ms

            if agg.is_abnormal:
                record = build_abnormal_record(equipment, agg, notes, now_ms)
                abnormal_id = self.store.create_abnormal_record(record)
                self._alert_abnormal(equipment, agg)
        except Exception as e:
            logger.error(f"[Inspections] Save failed for {equipment.id} (override kept): {e}")
            if self.on_persist_error is not None:
                try:
                    self.on_persist_error(equipment, e)
                except Exception:
                    logger.exception("[Inspections] on_persist_error hook failed")
            raise

        logger.info(
            f"[Inspections] {equipment.name or equipment.id} -> {agg.overall_status.value} "
            f"in report {report.id} ({'new' if created else 'updated'}, archived={report.archived})"
        )
        return SubmissionResult(
            report=report,
            item=item,
            aggregate=agg,
            created_report=created,
            abnormal_record_id=abnormal_id,
        )

    def _alert_abnormal(self, equipment: EquipmentItem, agg: CheckAggregate):
        for email in equipment.notification_emails:
            logger.warning(
                f"[Inspections] Abnormal alert for {equipment.name} ({equipment.barcode}) "
                f"to {email}: {', '.join(agg.failed_items) or UNSPECIFIED_ITEM}"
            )
