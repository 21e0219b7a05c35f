"""Correlation of dataset results with the records that were submitted."""

import re
from typing import Iterable, Literal, Optional
from urllib.parse import quote

from placeflow.services.places.models import BusinessRecord

MatchTier = Literal["cid", "place_id", "exact_name", "substring"]

_NUMERIC_RE = re.compile(r"^\d+$")


def is_numeric_cid(value: Optional[str]) -> bool:
    return bool(value) and bool(_NUMERIC_RE.match(value))


def build_input_url(record: BusinessRecord) -> str:
    """Most precise Google Maps URL available for a record.

    A numeric cid beats a ``ChIJ`` place id, which beats a free-text search.
    """
    cid = record.google_cid
    if is_numeric_cid(cid):
        return f"https://www.google.com/maps?cid={cid}"

    place_id = record.google_place_id
    if place_id and place_id.startswith("ChIJ"):
        return f"https://www.google.com/maps/place/?q=place_id:{place_id}"

    query = " ".join(part for part in (record.name, record.unit_name, record.country_name) if part)
    return f"https://www.google.com/maps/search/{quote(query)}"


def has_correlation_id(record: BusinessRecord) -> bool:
    place_id = record.google_place_id
    return is_numeric_cid(record.google_cid) or bool(place_id and place_id.startswith("ChIJ"))


def match_record(
    result: dict, records: Iterable[BusinessRecord]
) -> tuple[Optional[BusinessRecord], Optional[MatchTier]]:
    """Find the record a dataset result belongs to.

    Tiers are tried in order: cid, place id, case-insensitive exact name,
    then name containment in either direction. The substring tier can
    produce false positives, which is why the tier is returned.
    """
    candidates = list(records)
    cid = str(result["cid"]) if result.get("cid") else None
    place_id = str(result["place_id"]) if result.get("place_id") else None
    name = str(result.get("name") or "").strip().lower()

    if cid:
        for record in candidates:
            if record.google_cid == cid:
                return record, "cid"

    if place_id:
        for record in candidates:
            if record.google_place_id == place_id:
                return record, "place_id"

    if not name:
        return None, None

    for record in candidates:
        if record.name.strip().lower() == name:
            return record, "exact_name"

    for record in candidates:
        record_name = record.name.strip().lower()
        if record_name and (name in record_name or record_name in name):
            return record, "substring"

    return None, None
