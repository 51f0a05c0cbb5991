"""Business logic services."""

from aspos_sync.services.catalog import CatalogStore
from aspos_sync.services.pipeline import StageResult, SyncPipeline, open_pipeline
from aspos_sync.services.reconciler import Reconciler
from aspos_sync.services.work_queue import WorkQueue

__all__ = [
    "CatalogStore",
    "Reconciler",
    "StageResult",
    "SyncPipeline",
    "WorkQueue",
    "open_pipeline",
]
