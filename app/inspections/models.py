"""
SafeCheck Inspections — Document Models & Repositories

Documents are stored as JSON with camelCase keys and epoch-millisecond
timestamps. Inside the engine they are dataclasses; from_dict() tolerates
absent or malformed optional fields.
"""
import sqlite3
import json
import os
import uuid
import datetime
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

DB_PATH = os.environ.get("SAFECHECK_DB_PATH", "safecheck.db")


def _get_conn():
    conn = sqlite3.connect(DB_PATH, timeout=30, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    return conn


def _ts() -> str:
    return datetime.datetime.now().strftime("%Y-%m-%d %H:%M:%S")


def new_id() -> str:
    return uuid.uuid4().hex


# ================================================================
# ENUMS
# ================================================================

class InputType(str, Enum):
    BOOLEAN = "boolean"
    NUMBER = "number"


class ThresholdMode(str, Enum):
    RANGE = "range"
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"


class InspectionStatus(str, Enum):
    NORMAL = "Normal"
    ABNORMAL = "Abnormal"


class ReportStatus(str, Enum):
    IN_PROGRESS = "In Progress"
    PASS = "Pass"
    FAIL = "Fail"


class AbnormalStatus(str, Enum):
    PENDING = "pending"
    FIXED = "fixed"


def _enum_or(enum_cls, value, default=None):
    try:
        return enum_cls(value)
    except ValueError:
        return default


def _float_or_none(value) -> Optional[float]:
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _int_or_none(value) -> Optional[int]:
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _str_list(value) -> List[str]:
    if not isinstance(value, list):
        return []
    return [str(v) for v in value if v is not None]


def _drop_none(d: Dict) -> Dict:
    return {k: v for k, v in d.items() if v is not None}


# ================================================================
# DOCUMENTS
# ================================================================

@dataclass
class CheckDefinition:
    id: str
    name: str = ""
    input_type: InputType = InputType.BOOLEAN
    unit: Optional[str] = None
    category: Optional[str] = None
    threshold_mode: Optional[ThresholdMode] = None
    val1: Optional[float] = None
    val2: Optional[float] = None

    @classmethod
    def from_dict(cls, d: Dict) -> "CheckDefinition":
        return cls(
            id=str(d.get("id") or ""),
            name=d.get("name") or "",
            input_type=_enum_or(InputType, d.get("inputType"), InputType.BOOLEAN),
            unit=d.get("unit") or None,
            category=d.get("category") or None,
            threshold_mode=_enum_or(ThresholdMode, d.get("thresholdMode")),
            val1=_float_or_none(d.get("val1")),
            val2=_float_or_none(d.get("val2")),
        )

    def to_dict(self) -> Dict:
        return _drop_none({
            "id": self.id,
            "name": self.name,
            "inputType": self.input_type.value,
            "unit": self.unit,
            "category": self.category,
            "thresholdMode": self.threshold_mode.value if self.threshold_mode else None,
            "val1": self.val1,
            "val2": self.val2,
        })


@dataclass
class EquipmentItem:
    id: str
    barcode: str = ""
    name: str = ""
    site_name: str = ""
    building_name: str = ""
    check_frequency: Optional[str] = None
    last_inspected_date: Optional[int] = None
    created_at: Optional[int] = None
    updated_at: Optional[int] = None
    check_items: List[CheckDefinition] = field(default_factory=list)
    notification_emails: List[str] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)

    @property
    def location(self) -> str:
        return f"{self.site_name} - {self.building_name}"

    @classmethod
    def from_dict(cls, d: Dict) -> "EquipmentItem":
        items = d.get("checkItems") or []
        return cls(
            id=str(d.get("id") or ""),
            barcode=str(d.get("barcode") or ""),
            name=d.get("name") or "",
            site_name=d.get("siteName") or "",
            building_name=d.get("buildingName") or "",
            check_frequency=None if d.get("checkFrequency") is None else str(d.get("checkFrequency")),
            last_inspected_date=_int_or_none(d.get("lastInspectedDate")),
            created_at=_int_or_none(d.get("createdAt")),
            updated_at=_int_or_none(d.get("updatedAt")),
            check_items=[CheckDefinition.from_dict(ci) for ci in items if isinstance(ci, dict)],
            notification_emails=_str_list(d.get("notificationEmails"))[:3],
            tags=_str_list(d.get("tags")),
        )

    def to_dict(self) -> Dict:
        return _drop_none({
            "id": self.id,
            "barcode": self.barcode,
            "name": self.name,
            "siteName": self.site_name,
            "buildingName": self.building_name,
            "checkFrequency": self.check_frequency,
            "lastInspectedDate": self.last_inspected_date,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "checkItems": [ci.to_dict() for ci in self.check_items],
            "notificationEmails": list(self.notification_emails),
            "tags": list(self.tags),
        })


@dataclass(frozen=True)
class ResultSnapshot:
    """Frozen copy of one check result as archived inside a report."""
    name: str
    value: Any = None
    threshold: Optional[str] = None
    unit: Optional[str] = None

    @classmethod
    def from_dict(cls, d: Dict) -> "ResultSnapshot":
        return cls(
            name=d.get("name") or "",
            value=d.get("value"),
            threshold=d.get("threshold"),
            unit=d.get("unit"),
        )

    def to_dict(self) -> Dict:
        d = {"name": self.name, "value": self.value}
        if self.threshold is not None:
            d["threshold"] = self.threshold
        if self.unit is not None:
            d["unit"] = self.unit
        return d


@dataclass
class InspectionItem:
    id: str
    equipment_id: str
    status: InspectionStatus = InspectionStatus.NORMAL
    name: str = ""
    barcode: str = ""
    check_frequency: Optional[str] = None
    location: str = ""
    check_points: Dict[str, Any] = field(default_factory=dict)
    check_results: List[ResultSnapshot] = field(default_factory=list)
    notes: str = ""
    last_updated: Optional[int] = None
    abnormal_items: List[str] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, d: Dict) -> "InspectionItem":
        return cls(
            id=str(d.get("id") or ""),
            equipment_id=str(d.get("equipmentId") or ""),
            status=_enum_or(InspectionStatus, d.get("status"), InspectionStatus.NORMAL),
            name=d.get("name") or "",
            barcode=d.get("barcode") or "",
            check_frequency=d.get("checkFrequency"),
            location=d.get("location") or "",
            check_points=dict(d.get("checkPoints") or {}),
            check_results=[ResultSnapshot.from_dict(r) for r in d.get("checkResults") or [] if isinstance(r, dict)],
            notes=d.get("notes") or "",
            last_updated=_int_or_none(d.get("lastUpdated")),
            abnormal_items=_str_list(d.get("abnormalItems")),
            tags=_str_list(d.get("tags")),
        )

    def to_dict(self) -> Dict:
        return _drop_none({
            "id": self.id,
            "equipmentId": self.equipment_id,
            "status": self.status.value,
            "name": self.name,
            "barcode": self.barcode,
            "checkFrequency": self.check_frequency,
            "location": self.location,
            "checkPoints": dict(self.check_points),
            "checkResults": [r.to_dict() for r in self.check_results],
            "notes": self.notes,
            "lastUpdated": self.last_updated,
            "abnormalItems": list(self.abnormal_items),
            "tags": list(self.tags),
        })


@dataclass
class Report:
    building_name: str
    inspector_name: str = ""
    date: int = 0
    id: Optional[str] = None
    items: List[InspectionItem] = field(default_factory=list)
    overall_status: ReportStatus = ReportStatus.IN_PROGRESS
    archived: bool = False
    stats: Dict[str, int] = field(default_factory=dict)

    def find_item(self, equipment_id: str) -> Optional[InspectionItem]:
        for item in self.items:
            if item.equipment_id == equipment_id:
                return item
        return None

    @classmethod
    def from_dict(cls, d: Dict) -> "Report":
        return cls(
            id=d.get("id"),
            building_name=d.get("buildingName") or "",
            inspector_name=d.get("inspectorName") or "",
            date=_int_or_none(d.get("date")) or 0,
            items=[InspectionItem.from_dict(i) for i in d.get("items") or [] if isinstance(i, dict)],
            overall_status=_enum_or(ReportStatus, d.get("overallStatus"), ReportStatus.IN_PROGRESS),
            archived=bool(d.get("archived")),
            stats=dict(d.get("stats") or {}),
        )

    def to_dict(self) -> Dict:
        return _drop_none({
            "id": self.id,
            "buildingName": self.building_name,
            "inspectorName": self.inspector_name,
            "date": self.date,
            "items": [i.to_dict() for i in self.items],
            "overallStatus": self.overall_status.value,
            "archived": self.archived,
            "stats": dict(self.stats),
        })


@dataclass
class AbnormalRecord:
    equipment_id: str
    equipment_name: str = ""
    barcode: str = ""
    site_name: str = ""
    building_name: str = ""
    inspection_date: Optional[int] = None
    abnormal_items: List[str] = field(default_factory=list)
    abnormal_reason: str = ""
    status: AbnormalStatus = AbnormalStatus.PENDING
    created_at: Optional[int] = None
    updated_at: Optional[int] = None
    tags: List[str] = field(default_factory=list)
    id: Optional[str] = None

    @classmethod
    def from_dict(cls, d: Dict) -> "AbnormalRecord":
        return cls(
            id=d.get("id"),
            equipment_id=str(d.get("equipmentId") or ""),
            equipment_name=d.get("equipmentName") or "",
            barcode=d.get("barcode") or "",
            site_name=d.get("siteName") or "",
            building_name=d.get("buildingName") or "",
            inspection_date=_int_or_none(d.get("inspectionDate")),
            abnormal_items=_str_list(d.get("abnormalItems")),
            abnormal_reason=d.get("abnormalReason") or "",
            status=_enum_or(AbnormalStatus, d.get("status"), AbnormalStatus.PENDING),
            created_at=_int_or_none(d.get("createdAt")),
            updated_at=_int_or_none(d.get("updatedAt")),
            tags=_str_list(d.get("tags")),
        )

    def to_dict(self) -> Dict:
        return _drop_none({
            "id": self.id,
            "equipmentId": self.equipment_id,
            "equipmentName": self.equipment_name,
            "barcode": self.barcode,
            "siteName": self.site_name,
            "buildingName": self.building_name,
            "inspectionDate": self.inspection_date,
            "abnormalItems": list(self.abnormal_items),
            "abnormalReason": self.abnormal_reason,
            "status": self.status.value,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "tags": list(self.tags),
        })


# ================================================================
# SCHEMA INITIALIZATION
# ================================================================

def init_inspection_schema():
    """Create all inspection tables if they don't exist."""
    conn = _get_conn()
    c = conn.cursor()

    c.execute("""
        CREATE TABLE IF NOT EXISTS equipment (
            id TEXT PRIMARY KEY,
            barcode TEXT,
            site_name TEXT,
            building_name TEXT,
            doc_json TEXT NOT NULL,
            created_at INTEGER,
            updated_at INTEGER
        )
    """)
    c.execute("CREATE INDEX IF NOT EXISTS idx_equipment_barcode ON equipment(barcode)")

    c.execute("""
        CREATE TABLE IF NOT EXISTS inspection_reports (
            id TEXT PRIMARY KEY,
            building_name TEXT,
            report_date INTEGER,
            overall_status TEXT,
            archived INTEGER DEFAULT 0,
            doc_json TEXT NOT NULL,
            updated_at TEXT
        )
    """)
    c.execute("""
        CREATE INDEX IF NOT EXISTS idx_reports_building_date
        ON inspection_reports(building_name, report_date)
    """)

    c.execute("""
        CREATE TABLE IF NOT EXISTS abnormal_records (
            id TEXT PRIMARY KEY,
            equipment_id TEXT,
            building_name TEXT,
            status TEXT DEFAULT 'pending',
            doc_json TEXT NOT NULL,
            created_at INTEGER
        )
    """)

    c.execute("""
        CREATE TABLE IF NOT EXISTS light_settings (
            owner_key TEXT PRIMARY KEY,
            settings_json TEXT NOT NULL,
            updated_at TEXT
        )
    """)

    conn.commit()
    conn.close()


# ================================================================
# EQUIPMENT
# ================================================================

class EquipmentRepository:
    @staticmethod
    def get_all(site_name: str = None, building_name: str = None) -> List[EquipmentItem]:
        conn = _get_conn()
        sql = "SELECT doc_json FROM equipment WHERE 1=1"
        params = []
        if site_name:
            sql += " AND site_name = ?"
            params.append(site_name)
        if building_name:
            sql += " AND building_name = ?"
            params.append(building_name)
        sql += " ORDER BY site_name, building_name, created_at"
        rows = conn.execute(sql, params).fetchall()
        conn.close()
        return [EquipmentItem.from_dict(json.loads(r["doc_json"])) for r in rows]

    @staticmethod
    def get_by_id(equipment_id: str) -> Optional[EquipmentItem]:
        conn = _get_conn()
        row = conn.execute("SELECT doc_json FROM equipment WHERE id = ?", (equipment_id,)).fetchone()
        conn.close()
        return EquipmentItem.from_dict(json.loads(row["doc_json"])) if row else None

    @staticmethod
    def get_by_barcode(barcode: str) -> Optional[EquipmentItem]:
        conn = _get_conn()
        row = conn.execute("SELECT doc_json FROM equipment WHERE barcode = ?", (barcode,)).fetchone()
        conn.close()
        return EquipmentItem.from_dict(json.loads(row["doc_json"])) if row else None

    @staticmethod
    def create(item: EquipmentItem) -> str:
        if not item.id:
            item.id = new_id()
        conn = _get_conn()
        conn.execute("""
            INSERT INTO equipment (id, barcode, site_name, building_name, doc_json, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
        """, (item.id, item.barcode, item.site_name, item.building_name,
              json.dumps(item.to_dict()), item.created_at, item.updated_at))
        conn.commit()
        conn.close()
        return item.id

    @staticmethod
    def update(item: EquipmentItem) -> bool:
        conn = _get_conn()
        cur = conn.execute("""
            UPDATE equipment
            SET barcode = ?, site_name = ?, building_name = ?, doc_json = ?, updated_at = ?
            WHERE id = ?
        """, (item.barcode, item.site_name, item.building_name,
              json.dumps(item.to_dict()), item.updated_at, item.id))
        conn.commit()
        conn.close()
        return cur.rowcount > 0

    @staticmethod
    def patch(equipment_id: str, data: Dict) -> Optional[EquipmentItem]:
        """Merge data over the stored document (partial update)."""
        conn = _get_conn()
        row = conn.execute("SELECT doc_json FROM equipment WHERE id = ?", (equipment_id,)).fetchone()
        conn.close()
        if not row:
            return None
        doc = json.loads(row["doc_json"])
        doc.update({k: v for k, v in data.items() if k != "id"})
        item = EquipmentItem.from_dict(doc)
        EquipmentRepository.update(item)
        return item

    @staticmethod
    def delete(equipment_id: str) -> bool:
        conn = _get_conn()
        cur = conn.execute("DELETE FROM equipment WHERE id = ?", (equipment_id,))
        conn.commit()
        conn.close()
        return cur.rowcount > 0


# ================================================================
# REPORTS
# ================================================================

class ReportRepository:
    @staticmethod
    def find_by_building(building_name: str, since_ms: int, until_ms: int = None) -> List[Report]:
        """Reports for a building dated at or after since_ms, newest first."""
        conn = _get_conn()
        sql = "SELECT doc_json FROM inspection_reports WHERE building_name = ? AND report_date >= ?"
        params = [building_name, since_ms]
        if until_ms is not None:
            sql += " AND report_date < ?"
            params.append(until_ms)
        sql += " ORDER BY report_date DESC"
        rows = conn.execute(sql, params).fetchall()
        conn.close()
        return [Report.from_dict(json.loads(r["doc_json"])) for r in rows]

    @staticmethod
    def get_by_id(report_id: str) -> Optional[Report]:
        conn = _get_conn()
        row = conn.execute("SELECT doc_json FROM inspection_reports WHERE id = ?", (report_id,)).fetchone()
        conn.close()
        return Report.from_dict(json.loads(row["doc_json"])) if row else None

    @staticmethod
    def get_recent(building_name: str = None, archived: bool = None, limit: int = 100) -> List[Report]:
        conn = _get_conn()
        sql = "SELECT doc_json FROM inspection_reports WHERE 1=1"
        params = []
        if building_name:
            sql += " AND building_name = ?"
            params.append(building_name)
        if archived is not None:
            sql += " AND archived = ?"
            params.append(1 if archived else 0)
        sql += " ORDER BY report_date DESC LIMIT ?"
        params.append(limit)
        rows = conn.execute(sql, params).fetchall()
        conn.close()
        return [Report.from_dict(json.loads(r["doc_json"])) for r in rows]

    @staticmethod
    def create(report: Report) -> str:
        report.id = new_id()
        conn = _get_conn()
        conn.execute("""
            INSERT INTO inspection_reports
            (id, building_name, report_date, overall_status, archived, doc_json, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
        """, (report.id, report.building_name, report.date, report.overall_status.value,
              1 if report.archived else 0, json.dumps(report.to_dict()), _ts()))
        conn.commit()
        conn.close()
        return report.id

    @staticmethod
    def update(report: Report) -> bool:
        conn = _get_conn()
        cur = conn.execute("""
            UPDATE inspection_reports
            SET building_name = ?, report_date = ?, overall_status = ?, archived = ?,
                doc_json = ?, updated_at = ?
            WHERE id = ?
        """, (report.building_name, report.date, report.overall_status.value,
              1 if report.archived else 0, json.dumps(report.to_dict()), _ts(), report.id))
        conn.commit()
        conn.close()
        return cur.rowcount > 0


# ================================================================
# ABNORMAL RECORDS
# ================================================================

class AbnormalRepository:
    @staticmethod
    def create(record: AbnormalRecord) -> str:
        record.id = new_id()
        conn = _get_conn()
        conn.execute("""
            INSERT INTO abnormal_records (id, equipment_id, building_name, status, doc_json, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
        """, (record.id, record.equipment_id, record.building_name, record.status.value,
              json.dumps(record.to_dict()), record.created_at))
        conn.commit()
        conn.close()
        return record.id

    @staticmethod
    def get_all(status: str = None, equipment_id: str = None, limit: int = 200) -> List[AbnormalRecord]:
        conn = _get_conn()
        sql = "SELECT doc_json FROM abnormal_records WHERE 1=1"
        params = []
        if status:
            sql += " AND status = ?"
            params.append(status)
        if equipment_id:
            sql += " AND equipment_id = ?"
            params.append(equipment_id)
        sql += " ORDER BY created_at DESC LIMIT ?"
        params.append(limit)
        rows = conn.execute(sql, params).fetchall()
        conn.close()
        return [AbnormalRecord.from_dict(json.loads(r["doc_json"])) for r in rows]
