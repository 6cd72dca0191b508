# ============================================================================
# SafeCheck - Inspection Configuration
# ============================================================================
# Process settings come from the environment. Light settings (traffic-light
# day thresholds and colors) are stored per owner in the light_settings
# table, cast against DEFAULT_LIGHT_SETTINGS and cached until saved.
# ============================================================================

import json
import logging
import os
from dataclasses import dataclass, asdict
from typing import Any, Dict, List, Optional

from .models import _get_conn, _ts
from .schedule import ThresholdConfig, TrafficLight

logger = logging.getLogger(__name__)

DEFAULT_OWNER = "default"


def is_test_mode() -> bool:
    return os.environ.get("SAFECHECK_TEST_MODE") == "1"


def scheduler_enabled() -> bool:
    if is_test_mode():
        return False
    return os.environ.get("SAFECHECK_DISABLE_SCHEDULER", "0") != "1"


def sweep_interval_minutes() -> int:
    try:
        return max(1, int(os.environ.get("SAFECHECK_SWEEP_MINUTES", "15")))
    except ValueError:
        return 15


# key -> (default, type)
DEFAULT_LIGHT_SETTINGS = {
    "red_days": (2, "int"),
    "red_color": ("#ef4444", "string"),
    "yellow_days": (5, "int"),
    "yellow_color": ("#f59e0b", "string"),
    "green_days": (14, "int"),
    "green_color": ("#10b981", "string"),
    "completed_color": ("#10b981", "string"),
    "abnormal_color": ("#f97316", "string"),
}


@dataclass
class LightSettings:
    red_days: int = 2
    red_color: str = "#ef4444"
    yellow_days: int = 5
    yellow_color: str = "#f59e0b"
    green_days: int = 14
    green_color: str = "#10b981"
    completed_color: str = "#10b981"
    abnormal_color: str = "#f97316"

    def thresholds(self) -> ThresholdConfig:
        return ThresholdConfig(red_days=self.red_days, yellow_days=self.yellow_days)

    def validate(self) -> List[str]:
        problems = []
        if self.red_days >= self.yellow_days:
            problems.append("red.days must be lower than yellow.days")
        return problems

    @classmethod
    def from_dict(cls, d: Dict) -> "LightSettings":
        """Build from the nested document shape: {"red": {"days": 2, "color": ...}, ...}."""
        flat = {}
        for band in ("red", "yellow", "green", "completed", "abnormal"):
            part = d.get(band)
            if not isinstance(part, dict):
                continue
            if "days" in part:
                flat[f"{band}_days"] = part["days"]
            if "color" in part:
                flat[f"{band}_color"] = part["color"]
        return cls(**{k: _cast_value(v, k) for k, v in flat.items()})

    def to_dict(self) -> Dict:
        return {
            "red": {"days": self.red_days, "color": self.red_color},
            "yellow": {"days": self.yellow_days, "color": self.yellow_color},
            "green": {"days": self.green_days, "color": self.green_color},
            "completed": {"color": self.completed_color},
            "abnormal": {"color": self.abnormal_color},
        }


def _cast_value(value: Any, key: str) -> Any:
    """Cast a stored value to the type declared for key, falling back to its default."""
    default, value_type = DEFAULT_LIGHT_SETTINGS[key]
    if value is None:
        return default
    if value_type == "int":
        try:
            return int(value)
        except (TypeError, ValueError):
            return default
    return str(value)


def owner_key(user_id: str = None, organization_id: str = None) -> str:
    """Organization settings win over personal ones."""
    if organization_id:
        return f"org:{organization_id}"
    if user_id:
        return f"user:{user_id}"
    return DEFAULT_OWNER


class LightSettingsConfig:
    """Database-backed light settings, one row per owner."""

    _cache: Dict[str, LightSettings] = {}

    @classmethod
    def get(cls, key: str = DEFAULT_OWNER) -> LightSettings:
        if key in cls._cache:
            return cls._cache[key]

        conn = _get_conn()
        row = conn.execute(
            "SELECT settings_json FROM light_settings WHERE owner_key = ?", (key,)
        ).fetchone()
        conn.close()

        if not row:
            # Unknown owners get defaults without taking a cache slot
            return LightSettings()

        settings = LightSettings()
        try:
            settings = LightSettings.from_dict(json.loads(row["settings_json"]))
        except (ValueError, TypeError) as e:
            logger.warning(f"[Lights] Bad settings for {key}, using defaults: {e}")
        cls._cache[key] = settings
        return settings

    @classmethod
    def save(cls, key: str, settings: LightSettings) -> LightSettings:
        conn = _get_conn()
        conn.execute("""
            INSERT INTO light_settings (owner_key, settings_json, updated_at)
            VALUES (?, ?, ?)
            ON CONFLICT(owner_key) DO UPDATE SET
            settings_json = excluded.settings_json, updated_at = excluded.updated_at
        """, (key, json.dumps(settings.to_dict()), _ts()))
        conn.commit()
        conn.close()
        cls._cache[key] = settings
        logger.info(f"[Lights] Saved settings for {key}: {asdict(settings)}")
        return settings

    @classmethod
    def invalidate(cls, key: Optional[str] = None):
        if key is None:
            cls._cache.clear()
        else:
            cls._cache.pop(key, None)


def resolve_light_color(status: TrafficLight, settings: LightSettings, abnormal: bool = False) -> str:
    """Color for a marker or list badge."""
    if abnormal:
        return settings.abnormal_color
    if status == TrafficLight.PENDING:
        return settings.red_color
    if status == TrafficLight.CAN_INSPECT:
        return settings.yellow_color
    if status == TrafficLight.COMPLETED:
        return settings.completed_color
    return settings.green_color
