"""Blocket Notifier — Pipeline Package.

Components:
  - HistoricalReconciler: Keeps stored listings in step with each crawl
  - ListingPipeline: One full crawl-to-notify pass
"""

from blocket_notifier.pipeline.reconciler import HistoricalReconciler, diff_listings
from blocket_notifier.pipeline.runner import ListingPipeline, RunReport

__all__ = [
    "HistoricalReconciler",
    "diff_listings",
    "ListingPipeline",
    "RunReport",
]
