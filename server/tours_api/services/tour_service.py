"""Tour service for business logic operations."""

import logging
import time
from contextlib import contextmanager
from typing import Any, Dict, List, Mapping, Union

from bson import ObjectId
from pymongo import ReturnDocument
from pymongo.asynchronous.database import AsyncDatabase
from pymongo.errors import DuplicateKeyError as DriverDuplicateKeyError

from ..core.config import settings
from ..core.exceptions import CastError, DuplicateKeyError, NotFoundError, PageNotFoundError, ValidationError
from ..core.observability import PAGES_NOT_FOUND, QUERY_DURATION, TOURS_WRITTEN
from ..models.tour import (
    CastFailure,
    cast_object_id,
    prepare_new_tour,
    public_view,
    serialize_tour,
    validate_tour,
)
from ..schemas.tour import TourCreate, TourUpdate
from .query_translator import by_id_filter, default_projection, translate
from .report_engine import ReportEngine

logger = logging.getLogger(__name__)

# Preset applied by the top-5-tours alias route
TOP_TOURS_ALIAS = {
    "limit": "5",
    "sort": "-ratingsAverage,price",
    "fields": "name,price,ratingsAverage,summary,difficulty",
}


@contextmanager
def _timed(operation: str):
    started = time.perf_counter()
    try:
        yield
    finally:
        elapsed = time.perf_counter() - started
        QUERY_DURATION.labels(operation=operation).observe(elapsed)
        logger.debug(
            "Query finished",
            extra={"operation": operation, "duration_ms": round(elapsed * 1000, 2)},
        )


def _object_id(tour_id: str) -> ObjectId:
    try:
        return cast_object_id(tour_id)
    except CastFailure:
        raise CastError("_id", tour_id) from None


class TourService:
    """Service for tour-related operations."""

    def __init__(self, db: AsyncDatabase):
        self.db = db
        self.collection = db[settings.tours_collection]
        self.reports = ReportEngine(self.collection)

    async def list_tours(self, params: Mapping[str, Any]) -> List[Dict[str, Any]]:
        """
        List tours matching the query-string parameters.

        The translator stages run in their fixed order. When a page was
        explicitly requested, the filtered set is counted first and a page
        starting past its end fails before the paginated fetch.

        Args:
            params: Parsed query-string parameters

        Returns:
            Serialized tour documents

        Raises:
            CastError: If a filter value does not fit its field type
            PageNotFoundError: If the requested page does not exist
        """
        query = translate(params)

        if query.page_requested:
            with _timed("count"):
                total = await self.collection.count_documents(query.filter)
            if query.skip >= total:
                PAGES_NOT_FOUND.inc()
                logger.info(
                    "Requested page does not exist",
                    extra={"page": query.page, "skip": query.skip, "total": total},
                )
                raise PageNotFoundError(page=query.page, skip=query.skip, total=total)

        with _timed("find"):
            cursor = (
                self.collection.find(query.filter, query.projection)
                .sort(list(query.sort))
                .skip(query.skip)
                .limit(query.limit)
            )
            documents = await cursor.to_list(None)

        return [serialize_tour(document) for document in documents]

    async def get_tour(self, tour_id: str, include_secret: bool = False) -> Dict[str, Any]:
        """
        Get a tour by ID.

        Raises:
            CastError: If the ID is not a valid ObjectId
            NotFoundError: If no visible tour has that ID
        """
        with _timed("find_one"):
            document = await self.collection.find_one(
                by_id_filter(_object_id(tour_id), include_secret), default_projection()
            )
        if document is None:
            logger.warning("Tour not found", extra={"tour_id": tour_id})
            raise NotFoundError()
        return serialize_tour(document)

    async def create_tour(self, payload: Union[TourCreate, Mapping[str, Any]]) -> Dict[str, Any]:
        """
        Validate and insert a new tour.

        Args:
            payload: Validated request model, or raw tour fields

        Returns:
            The created tour, serialized

        Raises:
            ValidationError: If any constraint is violated
            DuplicateKeyError: If a tour with the same name exists
        """
        cleaned, violations = validate_tour(payload)
        if violations:
            logger.info("Tour creation rejected", extra={"violations": violations})
            raise ValidationError(violations)

        document = prepare_new_tour(cleaned)
        try:
            with _timed("insert_one"):
                result = await self.collection.insert_one(document)
        except DriverDuplicateKeyError as e:
            logger.warning(
                "Tour creation failed - duplicate key",
                extra={"tour_name": document.get("name"), "error": str(e)},
            )
            raise DuplicateKeyError.from_driver_error(e) from e

        document["_id"] = result.inserted_id
        TOURS_WRITTEN.labels(operation="create").inc()
        logger.info(
            "Tour created successfully",
            extra={"tour_id": str(result.inserted_id), "slug": document["slug"]},
        )
        return serialize_tour(public_view(document))

    async def update_tour(self, tour_id: str, payload: Union[TourUpdate, Mapping[str, Any]]) -> Dict[str, Any]:
        """
        Apply a partial update, re-validating the supplied fields.

        The discount/price cross-check only runs on creation.

        Raises:
            CastError: If the ID is not a valid ObjectId
            ValidationError: If a supplied field violates its constraints
            DuplicateKeyError: If the new name collides with another tour
            NotFoundError: If no visible tour has that ID
        """
        object_id = _object_id(tour_id)
        changes, violations = validate_tour(payload, partial=True)
        if violations:
            logger.info(
                "Tour update rejected",
                extra={"tour_id": tour_id, "violations": violations},
            )
            raise ValidationError(violations)

        try:
            with _timed("find_one_and_update"):
                if changes:
                    document = await self.collection.find_one_and_update(
                        by_id_filter(object_id),
                        {"$set": changes},
                        projection=default_projection(),
                        return_document=ReturnDocument.AFTER,
                    )
                else:
                    document = await self.collection.find_one(by_id_filter(object_id), default_projection())
        except DriverDuplicateKeyError as e:
            raise DuplicateKeyError.from_driver_error(e) from e

        if document is None:
            logger.warning("Tour not found for update", extra={"tour_id": tour_id})
            raise NotFoundError()

        TOURS_WRITTEN.labels(operation="update").inc()
        logger.info(
            "Tour updated successfully",
            extra={"tour_id": tour_id, "fields": sorted(changes)},
        )
        return serialize_tour(document)

    async def delete_tour(self, tour_id: str) -> None:
        """
        Hard-delete a tour.

        Raises:
            CastError: If the ID is not a valid ObjectId
            NotFoundError: If no visible tour has that ID
        """
        with _timed("find_one_and_delete"):
            document = await self.collection.find_one_and_delete(
                by_id_filter(_object_id(tour_id)), projection={"_id": 1}
            )
        if document is None:
            logger.warning("Tour not found for deletion", extra={"tour_id": tour_id})
            raise NotFoundError()

        TOURS_WRITTEN.labels(operation="delete").inc()
        logger.info("Tour deleted successfully", extra={"tour_id": tour_id})

    async def tour_stats(self) -> List[Dict[str, Any]]:
        """Stats-by-difficulty report."""
        return await self.reports.tour_stats()

    async def monthly_plan(self, year: Any) -> List[Dict[str, Any]]:
        """Monthly-plan report for a year taken from the request path."""
        return await self.reports.monthly_plan(year)

    async def delete_all(self) -> int:
        """Remove every tour, secret ones included. Used by the dev-data script."""
        result = await self.collection.delete_many({})
        TOURS_WRITTEN.labels(operation="delete").inc(result.deleted_count)
        return result.deleted_count
