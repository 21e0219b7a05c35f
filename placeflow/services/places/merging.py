"""Non-destructive merge rules shared by the enrichment stages.

* scalar fields use coalesce semantics: a None update keeps the existing value
* structured content is deep-merged; keys a run does not produce are untouched
* quality flags are an ordered, de-duplicated union
"""

import re
import unicodedata
from typing import Any, Iterable, Mapping, Optional

SLUG_MAX_LENGTH = 100

MAX_REVIEWS = 5
MAX_REVIEW_LENGTH = 500
MIN_REVIEW_LENGTH = 10


def slugify(name: str, max_length: int = SLUG_MAX_LENGTH) -> str:
    """Deterministic slug used for de-duplication within a geographic unit."""
    text = unicodedata.normalize("NFD", name.lower())
    text = "".join(ch for ch in text if not unicodedata.combining(ch))
    text = re.sub(r"[^a-z0-9\s-]", "", text)
    text = re.sub(r"\s+", "-", text)
    text = re.sub(r"-+", "-", text)
    text = text.strip("-")
    return text[:max_length]


def coalesce_fields(existing: Mapping[str, Any], updates: Mapping[str, Any]) -> dict[str, Any]:
    """Apply ``updates`` over ``existing``, ignoring updates that are None."""
    merged = dict(existing)
    for key, value in updates.items():
        if value is not None:
            merged[key] = value
    return merged


def deep_merge(base: Optional[Mapping[str, Any]], patch: Mapping[str, Any]) -> dict[str, Any]:
    """Recursively merge ``patch`` into a copy of ``base``.

    Nested dicts merge key by key, None values in the patch are skipped, and
    any other value (lists included) replaces what was there.
    """
    merged: dict[str, Any] = dict(base or {})
    for key, value in patch.items():
        if value is None:
            continue
        current = merged.get(key)
        if isinstance(value, Mapping) and isinstance(current, Mapping):
            merged[key] = deep_merge(current, value)
        elif isinstance(value, Mapping):
            merged[key] = deep_merge({}, value)
        else:
            merged[key] = value
    return merged


def merge_flags(existing: Optional[Iterable[str]], new: Iterable[str]) -> list[str]:
    """Union of two flag sets, keeping first-seen order."""
    seen: dict[str, None] = {}
    for flag in list(existing or []) + list(new):
        if flag:
            seen.setdefault(flag, None)
    return list(seen)


def clean_review_text(text: str, max_length: int = MAX_REVIEW_LENGTH) -> str:
    return re.sub(r"\s+", " ", text).strip()[:max_length]


def format_reviews(
    raw_reviews: Optional[Iterable[Mapping[str, Any]]],
    max_reviews: int = MAX_REVIEWS,
    max_length: int = MAX_REVIEW_LENGTH,
    min_length: int = MIN_REVIEW_LENGTH,
) -> list[dict[str, Any]]:
    """Normalize third-party reviews for storage.

    Reviews whose cleaned text is not longer than ``min_length`` are dropped,
    then at most ``max_reviews`` are kept.
    """
    reviews: list[dict[str, Any]] = []
    for raw in raw_reviews or []:
        if not isinstance(raw, Mapping):
            continue
        text = raw.get("content") or raw.get("review_text") or raw.get("text") or ""
        text = clean_review_text(str(text), max_length)
        if len(text) <= min_length:
            continue
        reviews.append(
            {
                "text": text,
                "rating": raw.get("rating") or raw.get("review_rating") or 0,
                "author": raw.get("reviewer_name") or raw.get("author") or "Anoniem",
                "date": raw.get("review_date") or raw.get("review_datetime_utc"),
                "likes": raw.get("review_likes") or raw.get("likes") or 0,
                "ownerResponse": None,
            }
        )
        if len(reviews) >= max_reviews:
            break
    return reviews
