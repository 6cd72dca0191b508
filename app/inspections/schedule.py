"""
SafeCheck Inspections — Scheduling Rules

Cycle lengths, due-date projection and the traffic-light classifier.
Every status is computed from the item as it is right now; nothing here
caches between calls.
"""
import datetime
import math
import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .clock import MS_PER_DAY, Clock, from_ms, get_clock, start_of_day_ms, to_ms
from .models import EquipmentItem

DEFAULT_CYCLE_DAYS = 30

FREQUENCY_DAYS = {
    "weekly": 7,
    "monthly": 30,
    "quarterly": 90,
    "yearly": 365,
}

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")


class TrafficLight(str, Enum):
    COMPLETED = "COMPLETED"
    PENDING = "PENDING"
    CAN_INSPECT = "CAN_INSPECT"
    UNNECESSARY = "UNNECESSARY"


@dataclass(frozen=True)
class ThresholdConfig:
    """Day thresholds: remaining <= red is PENDING, <= yellow is CAN_INSPECT."""
    red_days: int = 2
    yellow_days: int = 5


DEFAULT_THRESHOLDS = ThresholdConfig()


def cycle_days(frequency: Optional[str] = None) -> int:
    """Number of days in an inspection cycle. Unknown codes fall back to 30."""
    if not frequency:
        return DEFAULT_CYCLE_DAYS
    code = str(frequency).strip().lower()
    if code in FREQUENCY_DAYS:
        return FREQUENCY_DAYS[code]
    m = _LEADING_INT.match(code)
    if not m:
        return DEFAULT_CYCLE_DAYS
    days = int(m.group(1))
    return days if days > 0 else DEFAULT_CYCLE_DAYS


def next_due_timestamp(item: EquipmentItem) -> int:
    """
    Projected due timestamp (ms) for an item, or 0 when it has never been
    inspected nor created (due immediately).

    Days are added on the local calendar, so a 09:00 inspection stays due
    at 09:00 across month ends and DST changes.
    """
    last = item.last_inspected_date or item.created_at
    if not last:
        return 0
    due = from_ms(last) + datetime.timedelta(days=cycle_days(item.check_frequency))
    return to_ms(due)


def remaining_days(item: EquipmentItem, now_ms: int) -> int:
    return math.ceil((next_due_timestamp(item) - now_ms) / MS_PER_DAY)


def inspected_today(item: EquipmentItem, now_ms: int) -> bool:
    if not item.last_inspected_date:
        return False
    return item.last_inspected_date >= start_of_day_ms(now_ms)


def classify_status(
    item: EquipmentItem,
    thresholds: Optional[ThresholdConfig] = None,
    clock: Optional[Clock] = None,
) -> TrafficLight:
    """Traffic light for one item from its real (stored) data."""
    thresholds = thresholds or DEFAULT_THRESHOLDS
    now_ms = (clock or get_clock()).now_ms()

    if inspected_today(item, now_ms):
        return TrafficLight.COMPLETED

    days = remaining_days(item, now_ms)
    if days <= thresholds.red_days:
        return TrafficLight.PENDING
    if days <= thresholds.yellow_days:
        return TrafficLight.CAN_INSPECT
    return TrafficLight.UNNECESSARY
