"""
SafeCheck — Test Infrastructure (conftest.py)
=============================================
Provides:
  - SAFECHECK_TEST_MODE environment setup (scheduler off)
  - Test database (safecheck_test.db), wiped per test
  - FastAPI TestClient with a pinned clock
  - Equipment/document builders and DB helpers
"""

import os
import sys
import sqlite3
import datetime
import pytest

# Ensure project root is on path
ROOT_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, ROOT_DIR)

# ============================================================================
# TEST MODE: Use separate test database
# ============================================================================
TEST_DB_PATH = os.path.join(ROOT_DIR, "safecheck_test.db")

os.environ["SAFECHECK_TEST_MODE"] = "1"
os.environ["SAFECHECK_DB_PATH"] = TEST_DB_PATH

# Wednesday mid-morning, away from month ends and DST changes
BASE_NOW = datetime.datetime(2026, 3, 11, 10, 0, 0)


def ms(dt: datetime.datetime) -> int:
    return int(dt.timestamp() * 1000)


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture(scope="session", autouse=True)
def setup_test_env():
    """Session-wide test environment setup."""
    if os.path.exists(TEST_DB_PATH):
        os.remove(TEST_DB_PATH)

    yield

    # Cleanup (ignore Windows file lock errors)
    try:
        if os.path.exists(TEST_DB_PATH):
            os.remove(TEST_DB_PATH)
    except (PermissionError, OSError):
        pass


@pytest.fixture
def clock():
    from app.inspections.clock import ManualClock
    return ManualClock(BASE_NOW)


@pytest.fixture
def ledger(clock):
    from app.inspections.overrides import OverrideLedger
    return OverrideLedger(clock=clock)


@pytest.fixture
def fresh_db():
    """Empty inspection tables and a cold light-settings cache."""
    from app.inspections import models
    from app.inspections.config import LightSettingsConfig

    models.DB_PATH = TEST_DB_PATH
    models.init_inspection_schema()
    conn = sqlite3.connect(TEST_DB_PATH, timeout=30)
    for table in ("equipment", "inspection_reports", "abnormal_records", "light_settings"):
        conn.execute(f"DELETE FROM {table}")
    conn.commit()
    conn.close()
    LightSettingsConfig.invalidate()
    yield


@pytest.fixture(scope="session")
def app():
    """Get the FastAPI app instance with test DB."""
    import main
    return main.app


@pytest.fixture
def client(app, fresh_db, clock, ledger):
    """TestClient whose routes run on the pinned clock and a private ledger."""
    from starlette.testclient import TestClient
    from app.inspections.engine import InspectionEngine
    from app.inspections.routes import set_engine
    from app.inspections.store import SqliteInspectionStore

    set_engine(InspectionEngine(SqliteInspectionStore(), ledger=ledger, clock=clock))
    with TestClient(app, raise_server_exceptions=False) as c:
        yield c
    set_engine(None)


# ============================================================================
# Builders
# ============================================================================

def make_equipment(**overrides):
    """EquipmentItem with one boolean and one ranged numeric check."""
    from app.inspections.models import EquipmentItem

    doc = {
        "id": "eq-1",
        "barcode": "EXT-001",
        "name": "Extinguisher 1F-A",
        "siteName": "Main Campus",
        "buildingName": "Building A",
        "checkFrequency": "monthly",
        "checkItems": [
            {"id": "ci-seal", "name": "Seal intact", "inputType": "boolean"},
            {"id": "ci-psi", "name": "Pressure", "inputType": "number", "unit": "MPa",
             "thresholdMode": "range", "val1": 0.7, "val2": 0.98},
        ],
    }
    doc.update(overrides)
    return EquipmentItem.from_dict(doc)


def equipment_doc(**overrides):
    return make_equipment(**overrides).to_dict()


# ============================================================================
# DB Assertion Helpers
# ============================================================================

def db_query(sql, params=()):
    """Execute a query against the test DB and return list of dicts."""
    conn = sqlite3.connect(TEST_DB_PATH, timeout=30)
    conn.row_factory = sqlite3.Row
    rows = conn.execute(sql, params).fetchall()
    conn.close()
    return [dict(r) for r in rows]


def db_count(table, where="1=1", params=()):
    """Count rows in a table matching a condition."""
    conn = sqlite3.connect(TEST_DB_PATH, timeout=30)
    count = conn.execute(f"SELECT COUNT(*) FROM {table} WHERE {where}", params).fetchone()[0]
    conn.close()
    return count
