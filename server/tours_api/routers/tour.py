"""Tour router: CRUD operations and reports over the tours collection."""

import logging
from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, Request, Response, status
from fastapi.responses import JSONResponse
from pymongo.asynchronous.database import AsyncDatabase

from ..core.database import get_db
from ..schemas.tour import (
    Envelope,
    ErrorResponse,
    MonthlyPlanResponse,
    MonthlyPlanRow,
    TourCreate,
    TourListResponse,
    TourResponse,
    TourStatsResponse,
    TourStatsRow,
    TourUpdate,
)
from ..services.query_translator import parse_query_string
from ..services.tour_service import TOP_TOURS_ALIAS, TourService

logger = logging.getLogger(__name__)

# Error envelopes shared by every tour route
ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Invalid input, id or query"},
    404: {"model": ErrorResponse, "description": "Tour or page not found"},
    500: {"model": ErrorResponse, "description": "Unexpected server error"},
}

router = APIRouter(prefix="/api/v1/tours", tags=["tours"], responses=ERROR_RESPONSES)


def get_tour_service(db: AsyncDatabase = Depends(get_db)) -> TourService:
    return TourService(db)


async def _list_response(service: TourService, params: Dict[str, Any]) -> JSONResponse:
    tours = await service.list_tours(params)
    envelope = Envelope(status="success", results=len(tours), data={"tours": tours})
    return JSONResponse(status_code=200, content=envelope.render())


@router.get("", response_model=TourListResponse)
async def get_all_tours(
    request: Request,
    service: TourService = Depends(get_tour_service),
) -> JSONResponse:
    """
    List tours.

    Query parameters filter (``price[gte]=500``), sort (``sort=-price,name``),
    project (``fields=name,price``) and paginate (``page=2&limit=10``).
    """
    params = parse_query_string(request.query_params.multi_items())
    return await _list_response(service, params)


@router.get("/top-5-tours", response_model=TourListResponse)
async def get_top_tours(
    request: Request,
    service: TourService = Depends(get_tour_service),
) -> JSONResponse:
    """Best rated and cheapest five tours."""
    params = parse_query_string(request.query_params.multi_items())
    params.update(TOP_TOURS_ALIAS)
    return await _list_response(service, params)


@router.get("/tour-stats", response_model=TourStatsResponse)
async def get_tour_stats(service: TourService = Depends(get_tour_service)) -> JSONResponse:
    """Statistics per difficulty for tours rated 4.5 and above."""
    rows = await service.tour_stats()
    envelope = Envelope(
        status="success",
        data=[TourStatsRow.model_validate(row).model_dump(by_alias=True) for row in rows],
        message="Tour stats loaded successfully!",
    )
    return JSONResponse(status_code=200, content=envelope.render())


@router.get("/monthly-plan/{year}", response_model=MonthlyPlanResponse)
async def get_monthly_plan(
    year: str,
    service: TourService = Depends(get_tour_service),
) -> JSONResponse:
    """Tour starts per month of ``year``, busiest month first."""
    rows = await service.monthly_plan(year)
    envelope = Envelope(
        status="success",
        data=[MonthlyPlanRow.model_validate(row).model_dump() for row in rows],
        message="Tours with busiest months loaded successfully!",
    )
    return JSONResponse(status_code=200, content=envelope.render())


@router.post("", response_model=TourResponse, status_code=status.HTTP_201_CREATED)
async def create_tour(
    payload: TourCreate = Body(...),
    service: TourService = Depends(get_tour_service),
) -> JSONResponse:
    """Create a new tour; the slug is derived from its name."""
    tour = await service.create_tour(payload)
    envelope = Envelope(
        status="success",
        data={"tour": tour},
        message="New tour created successfully",
    )
    return JSONResponse(status_code=201, content=envelope.render())


@router.get("/{tour_id}", response_model=TourResponse)
async def get_tour(
    tour_id: str,
    service: TourService = Depends(get_tour_service),
) -> JSONResponse:
    """Fetch one tour by ID."""
    tour = await service.get_tour(tour_id)
    envelope = Envelope(status="success", data={"tour": tour})
    return JSONResponse(status_code=200, content=envelope.render())


@router.patch("/{tour_id}", response_model=TourResponse)
async def update_tour(
    tour_id: str,
    payload: TourUpdate = Body(...),
    service: TourService = Depends(get_tour_service),
) -> JSONResponse:
    """Partially update a tour; supplied fields are re-validated."""
    tour = await service.update_tour(tour_id, payload)
    envelope = Envelope(
        status="success",
        data={"tour": tour},
        message="Tour updated successfully",
    )
    return JSONResponse(status_code=200, content=envelope.render())


@router.delete("/{tour_id}", status_code=status.HTTP_204_NO_CONTENT, response_class=Response)
async def delete_tour(
    tour_id: str,
    service: TourService = Depends(get_tour_service),
) -> Response:
    """Hard-delete a tour."""
    await service.delete_tour(tour_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
