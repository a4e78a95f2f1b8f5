"""Canned aggregation reports over the tours collection."""

import time
from datetime import datetime
from typing import Any, Dict, List

from pymongo.asynchronous.collection import AsyncCollection

from ..core.observability import QUERY_DURATION, get_logger
from .query_translator import SECRET_TOUR_FILTER, parse_int

logger = get_logger(__name__)

TOP_RATED_THRESHOLD = 4.5
MONTHS_IN_YEAR = 12


def secret_exclusion_stage() -> Dict[str, Any]:
    """First stage of every report: drop secret tours."""
    return {"$match": dict(SECRET_TOUR_FILTER)}


def tour_stats_pipeline() -> List[Dict[str, Any]]:
    """Per-difficulty statistics of tours rated at least 4.5, priciest first."""
    return [
        secret_exclusion_stage(),
        {"$match": {"ratingsAverage": {"$gte": TOP_RATED_THRESHOLD}}},
        {
            "$group": {
                "_id": {"$toUpper": "$difficulty"},
                "numTours": {"$sum": 1},
                "numRatings": {"$sum": "$ratingsQuantity"},
                "avgRating": {"$avg": "$ratingsAverage"},
                "avgPrice": {"$avg": "$price"},
                "minPrice": {"$min": "$price"},
                "maxPrice": {"$max": "$price"},
            }
        },
        {"$sort": {"avgPrice": -1}},
    ]


def monthly_plan_pipeline(year: int) -> List[Dict[str, Any]]:
    """
    Tour starts per calendar month of ``year``, busiest month first.

    Each tour fans out into one row per start date before grouping, so a
    tour starting twice in a month is counted (and named) twice.
    """
    return [
        secret_exclusion_stage(),
        {"$unwind": "$startDates"},
        {
            "$match": {
                "startDates": {
                    "$gte": datetime(year, 1, 1),
                    "$lte": datetime(year, 12, 31),
                }
            }
        },
        {
            "$group": {
                "_id": {"$month": "$startDates"},
                "numTourStats": {"$sum": 1},
                "tours": {"$push": "$name"},
            }
        },
        {"$addFields": {"month": "$_id"}},
        {"$project": {"_id": 0}},
        {"$sort": {"numTourStats": -1}},
        {"$limit": MONTHS_IN_YEAR},
    ]


def parse_year(raw: Any) -> int | None:
    """Year from a path segment; anything outside the calendar range is no year."""
    year = parse_int(raw)
    if year is None or not 1 <= year <= 9999:
        return None
    return year


class ReportEngine:
    """Runs the report pipelines against the tours collection."""

    def __init__(self, collection: AsyncCollection):
        self.collection = collection

    async def _run(self, report: str, pipeline: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        started = time.perf_counter()
        cursor = await self.collection.aggregate(pipeline)
        rows = await cursor.to_list(None)
        elapsed = time.perf_counter() - started
        QUERY_DURATION.labels(operation=report).observe(elapsed)
        logger.info(
            "Report computed",
            report=report,
            rows=len(rows),
            duration_ms=round(elapsed * 1000, 2),
        )
        return rows

    async def tour_stats(self) -> List[Dict[str, Any]]:
        """Rows keyed by uppercased difficulty."""
        return await self._run("tour_stats", tour_stats_pipeline())

    async def monthly_plan(self, raw_year: Any) -> List[Dict[str, Any]]:
        """Rows per month for the given year; a malformed year yields no rows."""
        year = parse_year(raw_year)
        if year is None:
            logger.warning("Monthly plan requested without a valid year", year=str(raw_year))
            return []
        return await self._run("monthly_plan", monthly_plan_pipeline(year))
