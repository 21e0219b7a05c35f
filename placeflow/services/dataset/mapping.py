"""Translate one dataset result into record updates."""

from typing import Any, Optional

from placeflow.services.checkpoint.models import utcnow
from placeflow.services.places.merging import format_reviews

RATING_SOURCE = "google_maps_dataset"
RATING_CONFIDENCE = 98

DAY_KEYS = {
    "Monday": "mon",
    "Tuesday": "tue",
    "Wednesday": "wed",
    "Thursday": "thu",
    "Friday": "fri",
    "Saturday": "sat",
    "Sunday": "sun",
}

FLAG_RATING = "RATING_VIA_GOOGLE"
FLAG_COMPLETE = "ENRICHMENT_COMPLETE"
FLAG_HOURS = "OPENING_HOURS_VIA_SCHEMA"
FLAG_REVIEWS = "REVIEWS_VIA_GOOGLE"
FLAG_CLOSED = "CONFIRMED_CLOSED"
FLAG_POSSIBLY_CLOSED = "POSSIBLY_CLOSED"


def convert_opening_hours(raw: Any) -> Optional[dict[str, str]]:
    """``{"Monday": "9-17", ...}`` -> ``{"mon": "9-17", ...}``; None when nothing usable."""
    if not isinstance(raw, dict):
        return None
    hours = {}
    for day, key in DAY_KEYS.items():
        value = raw.get(day)
        if value:
            hours[key] = str(value)
    return hours or None


def closure_flag(item: dict) -> Optional[str]:
    status = str(item.get("business_status") or "").upper()
    if item.get("permanently_closed") is True or status == "CLOSED_PERMANENTLY":
        return FLAG_CLOSED
    if item.get("temporarily_closed") is True or status == "CLOSED_TEMPORARILY":
        return FLAG_POSSIBLY_CLOSED
    return None


def _positive_float(value: Any) -> Optional[float]:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if number > 0 else None


def _positive_int(value: Any) -> Optional[int]:
    try:
        number = int(value)
    except (TypeError, ValueError):
        return None
    return number if number > 0 else None


class DatasetUpdate:
    """Everything one matched result contributes to its record."""

    def __init__(self, item: dict):
        self.item = item
        self.opening_hours = convert_opening_hours(item.get("open_hours"))
        top_reviews = item.get("top_reviews")
        self.reviews = format_reviews(top_reviews if isinstance(top_reviews, list) else [])
        self.closure = closure_flag(item)

    @property
    def fields(self) -> dict[str, Any]:
        phone = self.item.get("phone_number")
        return {
            "avg_rating": _positive_float(self.item.get("rating")),
            "review_count": _positive_int(self.item.get("reviews_count")),
            "phone": (str(phone).strip() or None) if phone else None,
            "opening_hours": self.opening_hours,
        }

    @property
    def content_patch(self) -> dict[str, Any]:
        item = self.item
        services = item.get("services_provided")
        patch = {
            "googlePlaceId": item.get("place_id") or item.get("cid"),
            "googleRating": _positive_float(item.get("rating")),
            "googleReviewCount": _positive_int(item.get("reviews_count")),
            "description": item.get("description") or None,
            "servicesProvided": services if isinstance(services, list) and services else None,
            "mainImage": item.get("main_image") or None,
            "ratingSource": RATING_SOURCE,
            "ratingConfidence": RATING_CONFIDENCE,
            "enrichedAt": utcnow().isoformat(),
            "googleReviews": self.reviews or None,
        }
        return {key: value for key, value in patch.items() if value is not None}

    @property
    def flags(self) -> list[str]:
        flags = [FLAG_RATING, FLAG_COMPLETE]
        if self.opening_hours:
            flags.append(FLAG_HOURS)
        if self.reviews:
            flags.append(FLAG_REVIEWS)
        if self.closure:
            flags.append(self.closure)
        return flags
