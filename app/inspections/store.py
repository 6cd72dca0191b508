# ============================================================================
# SafeCheck - Inspection Store
# ============================================================================
# The storage primitives the engine writes through. Exceptions raised by an
# implementation propagate to the caller unchanged.
# ============================================================================

from abc import ABC, abstractmethod
from typing import List

from .models import (
    AbnormalRecord,
    AbnormalRepository,
    EquipmentRepository,
    Report,
    ReportRepository,
)


class InspectionStore(ABC):
    """Abstract document store used by InspectionEngine."""

    @abstractmethod
    def find_reports(self, building_name: str, since_ms: int) -> List[Report]:
        """Reports for a building dated at or after since_ms."""
        pass

    @abstractmethod
    def create_report(self, report: Report) -> str:
        """Persist a new report and return its identifier."""
        pass

    @abstractmethod
    def update_report(self, report: Report):
        pass

    @abstractmethod
    def update_last_inspected(self, equipment_id: str, timestamp_ms: int):
        pass

    @abstractmethod
    def create_abnormal_record(self, record: AbnormalRecord) -> str:
        pass


class SqliteInspectionStore(InspectionStore):
    """InspectionStore over the local sqlite repositories."""

    def find_reports(self, building_name: str, since_ms: int) -> List[Report]:
        return ReportRepository.find_by_building(building_name, since_ms)

    def create_report(self, report: Report) -> str:
        return ReportRepository.create(report)

    def update_report(self, report: Report):
        if not ReportRepository.update(report):
            raise LookupError(f"Report {report.id} does not exist")

    def update_last_inspected(self, equipment_id: str, timestamp_ms: int):
        updated = EquipmentRepository.patch(equipment_id, {
            "lastInspectedDate": timestamp_ms,
            "updatedAt": timestamp_ms,
        })
        if updated is None:
            raise LookupError(f"Equipment {equipment_id} does not exist")

    def create_abnormal_record(self, record: AbnormalRecord) -> str:
        return AbnormalRepository.create(record)
