"""
SafeCheck Inspections — Optimistic Override Ledger

Remembers, in memory only, which equipment was just checked from this
process so status reads can show it as complete before the store catches
up. Entries expire 24 hours after they are marked; expiry is evaluated at
read time and nothing sweeps the ledger.
"""
import logging
import threading
from dataclasses import dataclass
from typing import Dict, Optional

from .clock import Clock, get_clock

logger = logging.getLogger(__name__)

OVERRIDE_TTL_MS = 24 * 60 * 60 * 1000


@dataclass(frozen=True)
class OverrideEntry:
    equipment_id: str
    barcode: str
    marked_at: int

    def is_active(self, now_ms: int, ttl_ms: int = OVERRIDE_TTL_MS) -> bool:
        return now_ms - self.marked_at < ttl_ms


class OverrideLedger:
    """
    One entry per equipment, reachable by barcode or by id.

    Both indexes point at the same OverrideEntry, so re-marking an item
    replaces the entry for both keys at once.
    """

    def __init__(self, clock: Optional[Clock] = None, ttl_ms: int = OVERRIDE_TTL_MS):
        self._clock = clock or get_clock()
        self._ttl_ms = ttl_ms
        self._lock = threading.Lock()
        self._by_id: Dict[str, OverrideEntry] = {}
        self._by_barcode: Dict[str, OverrideEntry] = {}

    def mark(self, equipment_id: str, barcode: str = "", at_ms: int = None) -> OverrideEntry:
        entry = OverrideEntry(
            equipment_id=equipment_id,
            barcode=barcode or "",
            marked_at=at_ms if at_ms is not None else self._clock.now_ms(),
        )
        with self._lock:
            previous = self._by_id.get(equipment_id)
            if previous and previous.barcode and self._by_barcode.get(previous.barcode) is previous:
                del self._by_barcode[previous.barcode]
            self._by_id[equipment_id] = entry
            if entry.barcode:
                self._by_barcode[entry.barcode] = entry
        logger.debug(f"[Overrides] Marked {equipment_id} ({barcode}) complete at {entry.marked_at}")
        return entry

    def lookup(self, barcode: str = None, equipment_id: str = None) -> Optional[OverrideEntry]:
        """Active entry for either key, or None when absent or expired."""
        now_ms = self._clock.now_ms()
        with self._lock:
            candidates = []
            if barcode:
                candidates.append(self._by_barcode.get(barcode))
            if equipment_id:
                candidates.append(self._by_id.get(equipment_id))
        for entry in candidates:
            if entry is not None and entry.is_active(now_ms, self._ttl_ms):
                return entry
        return None

    def is_active(self, barcode: str = None, equipment_id: str = None) -> bool:
        return self.lookup(barcode=barcode, equipment_id=equipment_id) is not None

    def clear(self):
        with self._lock:
            self._by_id.clear()
            self._by_barcode.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._by_id)


_ledger = None
_ledger_lock = threading.Lock()


def get_override_ledger() -> OverrideLedger:
    """Process-wide ledger shared by the API handlers."""
    global _ledger
    if _ledger is None:
        with _ledger_lock:
            if _ledger is None:
                _ledger = OverrideLedger()
    return _ledger
