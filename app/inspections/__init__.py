"""
SafeCheck Inspection Status & Reconciliation Module
Due dates and traffic lights for recurring safety-equipment inspections,
threshold evaluation of submitted checks, per-building daily reports and
optimistic completion overrides.
"""
from .routes import register_inspection_routes
from .models import init_inspection_schema
from .scheduler_jobs import init_inspection_scheduler

__all__ = [
    "register_inspection_routes",
    "init_inspection_schema",
    "init_inspection_scheduler",
]
