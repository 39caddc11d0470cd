from .doctor import run_doctor_checks
from .exporter import export_orders
from .geography import assign_city, build_city_cache, resolve_pending_geography
from .ingest import IngestionService, IngestResult
from .reconcile import ReconcileReport, reconcile_manifest
from .shipping import ShipmentOutcome, ShippingService
from .workflow import WorkflowService

__all__ = [
    "IngestResult",
    "IngestionService",
    "ReconcileReport",
    "ShipmentOutcome",
    "ShippingService",
    "WorkflowService",
    "assign_city",
    "build_city_cache",
    "export_orders",
    "reconcile_manifest",
    "resolve_pending_geography",
    "run_doctor_checks",
]
