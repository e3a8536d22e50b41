"""Routers package."""

from .metrics import router as metrics_router
from .records import router as records_router
from .reports import router as reports_router

__all__ = [
    "metrics_router",
    "records_router",
    "reports_router",
]
