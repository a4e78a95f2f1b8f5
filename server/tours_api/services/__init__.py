"""Service layer package."""

from .query_translator import QueryTranslator, TourQuery
from .report_engine import ReportEngine
from .tour_service import TourService

__all__ = [
    "QueryTranslator",
    "ReportEngine",
    "TourQuery",
    "TourService",
]
