"""Tour-related Pydantic schemas."""

from datetime import datetime, timezone
from typing import Annotated, Any, Dict, List, Literal, Optional, Tuple, Union, get_args, get_origin

from pydantic import (
    AfterValidator,
    BaseModel,
    ConfigDict,
    Field,
    FiniteFloat,
    StringConstraints,
    model_validator,
)
from pydantic_core import PydanticCustomError

DISCOUNT_ERROR = "discount_not_below_price"


def _compact(value: float) -> Union[int, float]:
    return int(value) if value.is_integer() else value


def _naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


# Finite number; integral values are kept as ints
Number = Annotated[FiniteFloat, AfterValidator(_compact)]
# Stored as naive UTC
TourDate = Annotated[datetime, AfterValidator(_naive_utc)]
Difficulty = Literal["easy", "medium", "difficult"]
TourName = Annotated[
    str,
    StringConstraints(strip_whitespace=True, min_length=10, max_length=40, pattern=r"^[A-Za-z]+$"),
]
RequiredText = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]
TrimmedText = Annotated[str, StringConstraints(strip_whitespace=True)]


class TourCreate(BaseModel):
    """Request schema for creating a tour."""

    model_config = ConfigDict(extra="ignore")

    name: TourName = Field(..., description="Unique tour name, letters only")
    duration: Number = Field(..., description="Duration in days")
    maxGroupSize: Number = Field(..., description="Maximum group size")
    difficulty: Difficulty = Field(..., description="easy, medium or difficult")
    ratingsAverage: Number = Field(0, ge=1, le=5, description="Average rating")
    ratingsQuantity: Number = Field(4.5, description="Number of ratings")
    price: Number = Field(..., description="Regular price")
    priceDiscount: Optional[Number] = Field(None, description="Discounted price, below the regular price")
    summary: RequiredText = Field(..., description="Short summary")
    description: Optional[TrimmedText] = Field(None, description="Long description")
    imageCover: RequiredText = Field(..., description="Cover image")
    images: Optional[List[str]] = Field(None, description="Gallery images")
    createdAt: TourDate = Field(default_factory=_utcnow, description="Creation time")
    startDates: Optional[List[TourDate]] = Field(None, description="Scheduled start dates")
    secretTour: bool = Field(False, description="Hidden from public reads")

    @model_validator(mode="after")
    def discount_below_price(self) -> "TourCreate":
        if self.priceDiscount is not None and not self.priceDiscount < self.price:
            raise PydanticCustomError(
                DISCOUNT_ERROR,
                "Discount price ({discount}) should be below regular price",
                {"discount": self.priceDiscount},
            )
        return self


class TourUpdate(BaseModel):
    """
    Request schema for partial updates.

    Every field may be omitted; supplied fields are checked like on creation.
    Required fields cannot be cleared, so an explicit null for them fails.
    """

    model_config = ConfigDict(extra="ignore")

    name: TourName = None
    duration: Number = None
    maxGroupSize: Number = None
    difficulty: Difficulty = None
    ratingsAverage: Number = Field(None, ge=1, le=5)
    ratingsQuantity: Number = None
    price: Number = None
    priceDiscount: Optional[Number] = None
    summary: RequiredText = None
    description: Optional[TrimmedText] = None
    imageCover: RequiredText = None
    images: Optional[List[str]] = None
    createdAt: TourDate = None
    startDates: Optional[List[TourDate]] = None
    secretTour: bool = None


def field_kind(annotation: Any) -> Tuple[Any, bool]:
    """Scalar type behind a field annotation and whether the field holds a list."""
    origin = get_origin(annotation)
    if origin is list:
        return field_kind(get_args(annotation)[0])[0], True
    if origin in (Union, Annotated):
        return field_kind(get_args(annotation)[0])
    if origin is Literal:
        return str, False
    return annotation, False


class TourDocument(BaseModel):
    """
    Serialized tour as returned by the API.

    Every field is optional because list responses honor the ``fields``
    projection; ``_id`` is always present.
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: str = Field(..., alias="_id", description="Tour ID")
    name: Optional[str] = Field(None, description="Unique tour name")
    slug: Optional[str] = Field(None, description="URL slug derived from the name")
    duration: Optional[float] = Field(None, description="Duration in days")
    durationWeeks: Optional[float] = Field(None, description="Duration in weeks (derived)")
    maxGroupSize: Optional[float] = Field(None, description="Maximum group size")
    difficulty: Optional[str] = Field(None, description="easy, medium or difficult")
    ratingsAverage: Optional[float] = Field(None, description="Average rating")
    ratingsQuantity: Optional[float] = Field(None, description="Number of ratings")
    price: Optional[float] = Field(None, description="Regular price")
    priceDiscount: Optional[float] = Field(None, description="Discounted price")
    summary: Optional[str] = Field(None, description="Short summary")
    description: Optional[str] = Field(None, description="Long description")
    imageCover: Optional[str] = Field(None, description="Cover image")
    images: Optional[List[str]] = Field(None, description="Gallery images")
    startDates: Optional[List[datetime]] = Field(None, description="Scheduled start dates")
    secretTour: Optional[bool] = Field(None, description="Hidden from public reads")


class TourStatsRow(BaseModel):
    """One row of the stats-by-difficulty report."""

    model_config = ConfigDict(populate_by_name=True)

    difficulty: str = Field(..., alias="_id", description="Uppercased difficulty")
    numTours: int = Field(..., description="Number of qualifying tours")
    numRatings: float = Field(..., description="Sum of ratings quantities")
    avgRating: float = Field(..., description="Average rating")
    avgPrice: float = Field(..., description="Average price")
    minPrice: float = Field(..., description="Lowest price")
    maxPrice: float = Field(..., description="Highest price")


class MonthlyPlanRow(BaseModel):
    """One row of the monthly-plan report."""

    month: int = Field(..., ge=1, le=12, description="Calendar month")
    numTourStats: int = Field(..., description="Tour starts in the month")
    tours: List[str] = Field(..., description="Names of the starting tours")


class Envelope(BaseModel):
    """Success envelope shared by every tour endpoint."""

    status: str = Field("success", description="Outcome of the request")
    results: Optional[int] = Field(None, description="Number of returned documents")
    data: Any = Field(None, description="Payload")
    message: Optional[str] = Field(None, description="Human-readable outcome")

    def render(self) -> Dict[str, Any]:
        """JSON-ready dict containing the status and the keys that were set."""
        return self.model_dump(mode="json", include=self.model_fields_set | {"status"})


class TourListData(BaseModel):
    tours: List[TourDocument]


class TourData(BaseModel):
    tour: TourDocument


class TourListResponse(BaseModel):
    """Response schema for tour listings."""

    status: str
    results: int
    data: TourListData


class TourResponse(BaseModel):
    """Response schema for a single tour."""

    status: str
    data: TourData
    message: Optional[str] = None


class TourStatsResponse(BaseModel):
    """Response schema for the stats report."""

    status: str
    data: List[TourStatsRow]
    message: str


class MonthlyPlanResponse(BaseModel):
    """Response schema for the monthly-plan report."""

    status: str
    data: List[MonthlyPlanRow]
    message: str


class ErrorResponse(BaseModel):
    """Error envelope; ``error`` and ``stack`` only appear in development."""

    status: str
    message: str
    error: Optional[Dict[str, Any]] = None
    stack: Optional[str] = None
