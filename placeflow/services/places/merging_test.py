"""Unit tests for merge rules."""

import pytest

from placeflow.services.places.merging import (
    MAX_REVIEW_LENGTH,
    coalesce_fields,
    deep_merge,
    format_reviews,
    merge_flags,
    slugify,
)


@pytest.mark.unit
class TestSlugify:
    def test_basic(self):
        assert slugify("Dierenkliniek De Haven") == "dierenkliniek-de-haven"

    def test_strips_diacritics(self):
        assert slugify("Clinique Vétérinaire Évère") == "clinique-veterinaire-evere"

    def test_drops_punctuation_and_collapses_separators(self):
        assert slugify("  Dog's  Paradise -- Gent!  ") == "dogs-paradise-gent"

    def test_truncates(self):
        assert len(slugify("a" * 250)) == 100

    def test_same_slug_for_case_and_accent_variants(self):
        assert slugify("Café Hond") == slugify("CAFE  hond")

    def test_only_symbols(self):
        assert slugify("★★★") == ""


@pytest.mark.unit
class TestCoalesce:
    def test_absent_value_keeps_existing(self):
        merged = coalesce_fields({"phone": "123"}, {"phone": None})
        assert merged["phone"] == "123"

    def test_new_value_overwrites(self):
        merged = coalesce_fields({"phone": "123"}, {"phone": "456"})
        assert merged["phone"] == "456"

    def test_does_not_mutate_input(self):
        existing = {"phone": "123"}
        coalesce_fields(existing, {"phone": "456"})
        assert existing == {"phone": "123"}


@pytest.mark.unit
class TestDeepMerge:
    def test_adds_new_keys_and_keeps_others(self):
        base = {"aboutUs": "text", "googleRating": 4.1}
        merged = deep_merge(base, {"googleRating": 4.6, "mainImage": "x.jpg"})
        assert merged == {"aboutUs": "text", "googleRating": 4.6, "mainImage": "x.jpg"}

    def test_nested_dicts_merge(self):
        base = {"social": {"facebook": "fb", "instagram": "ig"}}
        merged = deep_merge(base, {"social": {"facebook": "fb2"}})
        assert merged["social"] == {"facebook": "fb2", "instagram": "ig"}

    def test_none_values_are_ignored(self):
        merged = deep_merge({"description": "keep"}, {"description": None})
        assert merged["description"] == "keep"

    def test_lists_are_replaced(self):
        merged = deep_merge({"googleReviews": [1, 2, 3]}, {"googleReviews": [4]})
        assert merged["googleReviews"] == [4]

    def test_none_base(self):
        assert deep_merge(None, {"a": 1}) == {"a": 1}


@pytest.mark.unit
class TestMergeFlags:
    def test_union_without_duplicates(self):
        merged = merge_flags(["NO_WEBSITE", "RATING_VIA_GOOGLE"], ["RATING_VIA_GOOGLE", "ENRICHMENT_COMPLETE"])
        assert merged == ["NO_WEBSITE", "RATING_VIA_GOOGLE", "ENRICHMENT_COMPLETE"]

    def test_repeated_application_is_stable(self):
        flags = ["MANUAL_REVIEW_NEEDED"]
        new = ["RATING_VIA_GOOGLE", "ENRICHMENT_COMPLETE"]
        once = merge_flags(flags, new)
        twice = merge_flags(once, new)
        assert once == twice
        assert "MANUAL_REVIEW_NEEDED" in twice

    def test_none_existing(self):
        assert merge_flags(None, ["A"]) == ["A"]


@pytest.mark.unit
class TestFormatReviews:
    def test_caps_and_filters_nine_reviews(self):
        raw = [{"content": f"Review number {i} " + "great service " * 60} for i in range(6)]
        raw += [{"content": "ok"}, {"content": "   "}, {"content": "too short"}]

        reviews = format_reviews(raw)

        assert len(reviews) == 5
        for review in reviews:
            assert 10 < len(review["text"]) <= MAX_REVIEW_LENGTH

    def test_short_reviews_dropped_before_cap(self):
        raw = [{"content": "meh"}] * 5 + [{"content": "A genuinely helpful team, recommended!"}]
        reviews = format_reviews(raw)
        assert len(reviews) == 1

    def test_field_aliases(self):
        raw = [
            {
                "review_text": "Very friendly staff   and\nclean clinic",
                "review_rating": 5,
                "author": "Jan",
                "review_datetime_utc": "2024-01-01",
            }
        ]
        review = format_reviews(raw)[0]
        assert review["text"] == "Very friendly staff and clean clinic"
        assert review["rating"] == 5
        assert review["author"] == "Jan"
        assert review["date"] == "2024-01-01"

    def test_defaults(self):
        review = format_reviews([{"content": "Wonderful groomer for my poodle"}])[0]
        assert review["author"] == "Anoniem"
        assert review["rating"] == 0
        assert review["ownerResponse"] is None

    def test_none_input(self):
        assert format_reviews(None) == []
