"""Models module exporting the tour document definition."""

from .tour import TOUR_MESSAGES, tour_violations, validate_tour

__all__ = [
    "TOUR_MESSAGES",
    "tour_violations",
    "validate_tour",
]
