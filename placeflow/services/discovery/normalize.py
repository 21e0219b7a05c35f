"""Normalization of heterogeneous local-search results."""

import re
from typing import Any, Optional

from pydantic import BaseModel

_NUMERIC_RE = re.compile(r"^\d+$")


class SearchResult(BaseModel):
    """One local listing in a provider-independent shape."""

    name: str
    address: Optional[str] = None
    phone: Optional[str] = None
    website: Optional[str] = None
    rating: Optional[float] = None
    review_count: Optional[int] = None
    external_id: Optional[str] = None
    cid: Optional[str] = None
    category: Optional[str] = None
    lat: Optional[float] = None
    lng: Optional[float] = None

    @property
    def place_ref(self) -> Optional[str]:
        """Best provider identifier for provenance, preferring the place id."""
        return self.external_id or self.cid


def _first(raw: dict, *keys: str) -> Any:
    for key in keys:
        value = raw.get(key)
        if value not in (None, ""):
            return value
    return None


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _float(value: Any) -> Optional[float]:
    try:
        return float(str(value).replace(",", "."))
    except (TypeError, ValueError):
        return None


def _positive_float(value: Any) -> Optional[float]:
    number = _float(value)
    return number if number is not None and number > 0 else None


def _coordinate(value: Any, bound: float) -> Optional[float]:
    number = _float(value)
    if number is None or number == 0 or not -bound <= number <= bound:
        return None
    return number


def _positive_int(value: Any) -> Optional[int]:
    if value is None:
        return None
    digits = re.sub(r"[^\d]", "", str(value))
    if not digits:
        return None
    number = int(digits)
    return number if number > 0 else None


def normalize_result(raw: dict) -> Optional[SearchResult]:
    """Map one raw result onto SearchResult; None when it has no name."""
    name = _text(_first(raw, "title", "name", "business_name"))
    if not name:
        return None

    gps = raw.get("gps_coordinates") if isinstance(raw.get("gps_coordinates"), dict) else {}
    cid = _text(raw.get("cid"))
    external_id = _text(_first(raw, "place_id", "data_id"))
    if cid and not _NUMERIC_RE.match(cid) and not external_id:
        # Some layouts put the place id in "cid"
        external_id, cid = cid, None

    return SearchResult(
        name=name,
        address=_text(_first(raw, "address", "location")),
        phone=_text(_first(raw, "phone", "phone_number")),
        website=_text(_first(raw, "site", "website", "link", "url")),
        rating=_positive_float(_first(raw, "rating", "stars")),
        review_count=_positive_int(_first(raw, "reviews_cnt", "reviews", "review_count")),
        external_id=external_id,
        cid=cid,
        category=_text(_first(raw, "type", "category", "business_type")),
        lat=_coordinate(_first(raw, "lat", "latitude") or gps.get("latitude"), 90),
        lng=_coordinate(_first(raw, "lng", "longitude") or gps.get("longitude"), 180),
    )


def normalize_results(raw_results: list[dict]) -> list[SearchResult]:
    results = []
    for raw in raw_results:
        result = normalize_result(raw)
        if result is not None:
            results.append(result)
    return results
