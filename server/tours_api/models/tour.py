"""Tour document definition: validation messages and write stages."""

import logging
import re
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Tuple, Union

from bson import ObjectId
from bson.errors import InvalidId
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from ..schemas.tour import DISCOUNT_ERROR, TourCreate, TourUpdate, field_kind

logger = logging.getLogger(__name__)

VERSION_KEY = "__v"

# Excluded from default output; only returned when explicitly projected
HIDDEN_FIELDS = ("createdAt",)

# Messages per field, keyed by pydantic error type; "missing" doubles as the
# message for clearing a required field
TOUR_MESSAGES: Dict[str, Dict[str, str]] = {
    "name": {
        "missing": "A tour must have a name",
        "string_too_long": "A tour name must have less or equal than 40 characters",
        "string_too_short": "A tour name must have more or equal than 10 characters",
        "string_pattern_mismatch": "Tour must only contain characters",
    },
    "duration": {"missing": "A tour must have a duration"},
    "maxGroupSize": {"missing": "A tour must have a group size"},
    "difficulty": {
        "missing": "A tour must have a difficulty",
        "literal_error": "Difficulty is either: easy, medium or difficult",
    },
    "ratingsAverage": {
        "greater_than_equal": "Rating must be above 1.0",
        "less_than_equal": "Rating must be below 5.0",
    },
    "price": {"missing": "A tour must have a price"},
    "summary": {"missing": "A tour must have a summary"},
    "imageCover": {"missing": "A tour must have a cover image"},
}

_TYPE_LABELS = {float: "Number", bool: "Boolean", datetime: "Date", str: "String"}


class CastFailure(ValueError):
    """Raised when a raw value cannot be cast to an ObjectId."""


def cast_object_id(value: Any) -> ObjectId:
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        raise CastFailure(value) from None


def type_label(field: str) -> str:
    scalar, is_list = field_kind(TourCreate.model_fields[field].annotation)
    label = _TYPE_LABELS.get(scalar, "String")
    return f"[{label}]" if is_list else label


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value.strip() == "")


def _field_message(field: str, error: Mapping[str, Any]) -> str:
    messages = TOUR_MESSAGES.get(field, {})
    if error["type"] == "missing" or (
        TourCreate.model_fields[field].is_required() and _is_blank(error.get("input"))
    ):
        return messages.get("missing", f"Path `{field}` is required.")
    if error["type"] in messages:
        return messages[error["type"]]
    return f'Cast to {type_label(field)} failed for value "{error.get("input")}" at path "{field}"'


def tour_violations(errors: Iterable[Mapping[str, Any]]) -> List[Dict[str, str]]:
    """
    Translate pydantic errors into ``{"path", "message"}`` violations.

    Accepts errors from direct model validation as well as FastAPI request
    validation, whose locations start with ``body``.
    """
    violations: List[Dict[str, str]] = []
    for error in errors:
        loc = [part for part in error.get("loc", ()) if part != "body"]
        if error["type"] == DISCOUNT_ERROR:
            violations.append({"path": "priceDiscount", "message": error["msg"]})
        elif loc and loc[0] in TourCreate.model_fields:
            violation = {"path": loc[0], "message": _field_message(loc[0], error)}
            if violation not in violations:
                violations.append(violation)
        else:
            violations.append({
                "path": ".".join(str(part) for part in loc),
                "message": error.get("msg", "Invalid value"),
            })
    return violations


def validate_tour(
    data: Union[Mapping[str, Any], BaseModel],
    *,
    partial: bool = False,
) -> Tuple[Dict[str, Any], List[Dict[str, str]]]:
    """
    Validate a tour payload against the create or update schema.

    Unknown keys are dropped. On creation, missing required fields are
    violations and the discount/price check runs; on a partial update only
    the supplied fields are checked.

    Args:
        data: Raw payload from the client, or an already validated model
        partial: True for partial updates

    Returns:
        Tuple of the supplied, cast fields and a list of {"path", "message"} violations
    """
    schema = TourUpdate if partial else TourCreate
    if isinstance(data, schema):
        tour = data
    else:
        try:
            tour = schema.model_validate(data)
        except PydanticValidationError as e:
            return {}, tour_violations(e.errors())

    supplied = tour.model_dump(exclude_unset=True)
    if isinstance(data, Mapping):
        dropped = [key for key in data if key not in supplied]
        if dropped:
            logger.debug("Dropping unknown tour fields", extra={"fields": dropped})
    return supplied, []


def apply_defaults(tour: Dict[str, Any]) -> Dict[str, Any]:
    """Fill defaults for fields the client did not supply."""
    completed = dict(tour)
    for name, field in TourCreate.model_fields.items():
        if name in completed or field.is_required():
            continue
        default = field.get_default(call_default_factory=True)
        if default is not None:
            completed[name] = default
    return completed


def derive_slug(name: str) -> str:
    """URL slug for a tour name."""
    return re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")


def prepare_new_tour(tour: Dict[str, Any]) -> Dict[str, Any]:
    """Creation stage: defaults, slug and version key for a validated payload."""
    document = apply_defaults(tour)
    document["slug"] = derive_slug(document["name"])
    document[VERSION_KEY] = 0
    return document


def serialize_tour(document: Dict[str, Any]) -> Dict[str, Any]:
    """
    Render a stored document for output.

    Converts the ObjectId to a string and attaches the derived
    ``durationWeeks`` when the document carries a duration.
    """
    output = dict(document)
    if isinstance(output.get("_id"), ObjectId):
        output["_id"] = str(output["_id"])
    duration = output.get("duration")
    if isinstance(duration, (int, float)) and not isinstance(duration, bool):
        output["durationWeeks"] = duration / 7
    return output


def public_view(document: Dict[str, Any]) -> Dict[str, Any]:
    """Drop internal and hidden fields, as the default projection does."""
    return {
        key: value for key, value in document.items()
        if key != VERSION_KEY and key not in HIDDEN_FIELDS
    }
