"""Pydantic schemas for request/response validation."""

from .health import *  # noqa: F403
from .tour import *  # noqa: F403
