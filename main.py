# ============================================================================
# SafeCheck — Inspection Service Backend
# ============================================================================
# Serves the inspection status & reconciliation API:
#   - equipment registry with live traffic-light status
#   - check submission (threshold evaluation + daily building reports)
#   - abnormal follow-up records
#   - per-owner light settings
#
# Run:  uvicorn main:app --reload
# ============================================================================

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from pathlib import Path
import logging
import os

from app.inspections import models as inspection_models
from app.inspections import register_inspection_routes, init_inspection_scheduler
from app.inspections.config import scheduler_enabled
from app.inspections.scheduler_jobs import shutdown_inspection_scheduler

# ================================================================
# PATHS / LOGGING
# ================================================================

BASE_DIR = Path(__file__).resolve().parent
DB_PATH = os.environ.get("SAFECHECK_DB_PATH", str(BASE_DIR / "safecheck.db"))
inspection_models.DB_PATH = DB_PATH

logging.basicConfig(
    level=os.environ.get("SAFECHECK_LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s - %(levelname)-8s - %(name)-28s - %(message)s",
)
logger = logging.getLogger("safecheck")

# ================================================================
# FASTAPI APP
# ================================================================

app = FastAPI(title="SafeCheck Inspections")

register_inspection_routes(app)


@app.on_event("startup")
async def _startup():
    inspection_models.init_inspection_schema()
    if scheduler_enabled():
        init_inspection_scheduler()
    logger.info(f"[SafeCheck] Backend started (db={inspection_models.DB_PATH})")


@app.on_event("shutdown")
async def _shutdown():
    shutdown_inspection_scheduler()


@app.get("/health")
async def health():
    return JSONResponse({"ok": True, "service": "safecheck"})
