"""
Translation of query-string parameters into MongoDB query descriptions.

A request's parameters pass through four stages in a fixed order:
filter, sort, field projection and pagination. Each stage receives a
``TourQuery`` and returns a new one; nothing is mutated in place.
"""

import logging
import re
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Tuple

from bson import ObjectId
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from ..core.exceptions import CastError, InvalidQueryError
from ..models.tour import HIDDEN_FIELDS, VERSION_KEY, CastFailure, cast_object_id
from ..schemas.tour import Number, TourCreate, TourDate, field_kind

logger = logging.getLogger(__name__)

RESERVED_KEYS = ("page", "sort", "limit", "fields")
COMPARISON_OPERATORS = ("gte", "gt", "lte", "lt")

DEFAULT_SORT: Tuple[Tuple[str, int], ...] = (("createdAt", -1),)
DEFAULT_PAGE = 1
DEFAULT_LIMIT = 100
# Largest skip or limit the store accepts
MAX_INT64 = 2 ** 63 - 1

SECRET_TOUR_FILTER: Dict[str, Any] = {"secretTour": {"$ne": True}}

_BRACKET_KEY = re.compile(r"^([^\[\]]+)((?:\[[^\[\]]*\])+)$")
_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")


class TourQuery(BaseModel):
    """Immutable description of a tour query."""

    model_config = ConfigDict(frozen=True)

    filter: Dict[str, Any] = Field(default_factory=lambda: dict(SECRET_TOUR_FILTER))
    sort: Tuple[Tuple[str, int], ...] = DEFAULT_SORT
    projection: Dict[str, int] = Field(default_factory=dict)
    page: int = DEFAULT_PAGE
    limit: int = DEFAULT_LIMIT
    skip: int = 0
    page_requested: bool = False


def parse_query_string(items: Iterable[Tuple[str, str]]) -> Dict[str, Any]:
    """
    Build a nested parameter map from raw query-string pairs.

    ``price[gte]=500`` becomes ``{"price": {"gte": "500"}}``. A key repeated
    with plain values collects them into a list.
    """
    params: Dict[str, Any] = {}
    for key, value in items:
        match = _BRACKET_KEY.match(key)
        if match:
            path = [match.group(1)] + re.findall(r"\[([^\[\]]*)\]", match.group(2))
        else:
            path = [key]

        target = params
        for part in path[:-1]:
            existing = target.get(part)
            if not isinstance(existing, dict):
                existing = {}
                target[part] = existing
            target = existing

        leaf = path[-1]
        if leaf in target and not isinstance(target[leaf], dict):
            previous = target[leaf]
            target[leaf] = (previous if isinstance(previous, list) else [previous]) + [value]
        else:
            target[leaf] = value
    return params


def parse_int(value: Any) -> int | None:
    """Lenient integer parse: leading digits count, anything else is None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    if isinstance(value, str):
        match = _LEADING_INT.match(value)
        if match:
            return int(match.group(1))
    return None


def _window_size(value: Any) -> int | None:
    """Positive page or limit the store can encode; anything else is None."""
    number = parse_int(value)
    if number is None or not 0 < number <= MAX_INT64:
        return None
    return number


def _split_list(value: Any) -> List[str]:
    if isinstance(value, list):
        value = ",".join(str(item) for item in value)
    return [part.strip() for part in str(value).split(",") if part.strip()]


_FILTER_TYPES = {float: Number, datetime: TourDate}


def _filter_adapter(annotation: Any) -> TypeAdapter:
    scalar, _ = field_kind(annotation)
    return TypeAdapter(_FILTER_TYPES.get(scalar, scalar))


# Element type per field: a scalar filtered against a list field matches an element
FILTER_ADAPTERS: Dict[str, TypeAdapter] = {
    name: _filter_adapter(field.annotation) for name, field in TourCreate.model_fields.items()
}


def _cast_for_field(field: str, value: Any) -> Any:
    """Cast a filter value to the type of a known field; unknown fields pass through."""
    if field == "_id":
        try:
            return cast_object_id(value)
        except CastFailure:
            raise CastError(field, value) from None

    adapter = FILTER_ADAPTERS.get(field)
    if adapter is None:
        return value
    try:
        return adapter.validate_python(value)
    except PydanticValidationError:
        raise CastError(field, value) from None


def _translate_condition(field: str, value: Any) -> Any:
    if isinstance(value, Mapping):
        condition: Dict[str, Any] = {}
        for key, operand in value.items():
            if key in COMPARISON_OPERATORS:
                condition[f"${key}"] = _cast_for_field(field, operand)
            else:
                condition[key] = operand
        return condition
    if isinstance(value, list):
        return {"$in": [_cast_for_field(field, item) for item in value]}
    return _cast_for_field(field, value)


class QueryTranslator:
    """
    Stages that turn a parameter map into a ``TourQuery``.

    The stages are independent, but callers must apply them in the order
    filter, sort, limit_fields, paginate so that pages are computed over a
    filtered and deterministically sorted result.
    """

    def __init__(self, params: Mapping[str, Any]):
        self.params = dict(params)

    def filter(self, query: TourQuery) -> TourQuery:
        """Equality and comparison filters, always excluding secret tours."""
        conditions = {
            field: _translate_condition(field, value)
            for field, value in self.params.items()
            if field not in RESERVED_KEYS
        }
        return query.model_copy(update={"filter": with_secret_exclusion(conditions)})

    def sort(self, query: TourQuery) -> TourQuery:
        """Ordered (field, direction) pairs; ``-`` prefix means descending."""
        raw = self.params.get("sort")
        keys = []
        for name in _split_list(raw) if raw else []:
            if name.startswith("-"):
                keys.append((name[1:], -1))
            else:
                keys.append((name.lstrip("+"), 1))
        return query.model_copy(update={"sort": tuple(keys) or DEFAULT_SORT})

    def limit_fields(self, query: TourQuery) -> TourQuery:
        """Inclusion projection from ``fields``; default hides internal fields."""
        raw = self.params.get("fields")
        names = _split_list(raw) if raw else []
        if not names:
            return query.model_copy(update={"projection": default_projection()})

        excluded = [name[1:] for name in names if name.startswith("-")]
        included = [name for name in names if not name.startswith("-")]
        # _id is the one field that may be excluded from an inclusion projection
        if included and excluded == ["_id"]:
            projection = {name: 1 for name in included}
            projection["_id"] = 0
            return query.model_copy(update={"projection": projection})
        if excluded and included:
            raise InvalidQueryError("Cannot mix field inclusion and exclusion in 'fields'")

        if excluded:
            projection = {name: 0 for name in excluded}
            projection.update({name: 0 for name in HIDDEN_FIELDS if name not in projection})
        else:
            projection = {name: 1 for name in included}
        return query.model_copy(update={"projection": projection})

    def paginate(self, query: TourQuery) -> TourQuery:
        """Skip/limit window; malformed or non-positive values fall back to defaults."""
        page = _window_size(self.params.get("page")) or DEFAULT_PAGE
        limit = _window_size(self.params.get("limit")) or DEFAULT_LIMIT
        return query.model_copy(update={
            "page": page,
            "limit": limit,
            "skip": (page - 1) * limit,
            "page_requested": "page" in self.params,
        })


def with_secret_exclusion(conditions: Dict[str, Any]) -> Dict[str, Any]:
    """Combine a filter with the secret-tour exclusion."""
    if not conditions:
        return dict(SECRET_TOUR_FILTER)
    if "secretTour" in conditions or any(key.startswith("$") for key in conditions):
        return {"$and": [conditions, dict(SECRET_TOUR_FILTER)]}
    return {**conditions, **SECRET_TOUR_FILTER}


def default_projection() -> Dict[str, int]:
    projection = {VERSION_KEY: 0}
    projection.update({name: 0 for name in HIDDEN_FIELDS})
    return projection


def by_id_filter(tour_id: ObjectId, include_secret: bool = False) -> Dict[str, Any]:
    """Filter for a single tour; secret tours only match when explicitly bypassed."""
    if include_secret:
        return {"_id": tour_id}
    return with_secret_exclusion({"_id": tour_id})


def translate(params: Mapping[str, Any]) -> TourQuery:
    """Run all four stages in their fixed order."""
    translator = QueryTranslator(params)
    query = TourQuery()
    query = translator.filter(query)
    query = translator.sort(query)
    query = translator.limit_fields(query)
    query = translator.paginate(query)
    logger.debug(
        "Translated tour query",
        extra={
            "filter": repr(query.filter),
            "sort": query.sort,
            "projection": query.projection,
            "skip": query.skip,
            "limit": query.limit,
        },
    )
    return query
