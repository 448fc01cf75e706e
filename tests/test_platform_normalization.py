"""Unit tests for provider payload normalization.

Covers rating mapping (Google enum names, Facebook recommendations),
external id derivation, timestamp parsing, and the per-platform
normalize_* functions on realistic payloads.
"""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from src.reviewsync.platforms.facebook import normalize_facebook_review
from src.reviewsync.platforms.google import normalize_google_review
from src.reviewsync.platforms.normalization import (
    facebook_external_id,
    facebook_rating,
    google_star_rating,
    parse_timestamp,
    parse_yelp_timestamp,
)
from src.reviewsync.platforms.yelp import normalize_yelp_review


# ── Ratings ─────────────────────────────────────────────────────────────────


class TestGoogleStarRating:
    @pytest.mark.parametrize(
        ("value", "expected"),
        [("ONE", 1), ("TWO", 2), ("THREE", 3), ("FOUR", 4), ("FIVE", 5)],
    )
    def test_known_values(self, value, expected):
        assert google_star_rating(value) == expected

    def test_unrecognized_value_maps_to_zero(self):
        assert google_star_rating("STAR_RATING_UNSPECIFIED") == 0
        assert google_star_rating("SIX") == 0

    def test_missing_value_maps_to_zero(self):
        assert google_star_rating(None) == 0
        assert google_star_rating("") == 0


class TestFacebookRating:
    def test_explicit_rating_wins(self):
        assert facebook_rating(2, "positive") == 2

    def test_positive_recommendation(self):
        assert facebook_rating(None, "positive") == 5

    def test_negative_recommendation(self):
        assert facebook_rating(None, "negative") == 1

    def test_neither_defaults_to_three(self):
        assert facebook_rating(None, None) == 3

    def test_zero_rating_falls_through_to_recommendation(self):
        assert facebook_rating(0, "negative") == 1


class TestFacebookExternalId:
    def test_story_id_preferred(self):
        raw = {
            "open_graph_story": {"id": "story-9"},
            "reviewer": {"id": "u1"},
            "created_time": "2026-01-01T00:00:00+0000",
        }
        assert facebook_external_id(raw) == "story-9"

    def test_falls_back_to_reviewer_and_time(self):
        raw = {"reviewer": {"id": "u1"}, "created_time": "2026-01-01T00:00:00+0000"}
        assert facebook_external_id(raw) == "u1_2026-01-01T00:00:00+0000"


# ── Timestamps ──────────────────────────────────────────────────────────────


class TestTimestamps:
    def test_zulu_suffix(self):
        parsed = parse_timestamp("2026-01-15T10:30:00Z")
        assert parsed == datetime(2026, 1, 15, 10, 30, tzinfo=timezone.utc)

    def test_nanosecond_fraction_is_truncated(self):
        parsed = parse_timestamp("2026-01-15T10:30:00.123456789Z")
        assert parsed.microsecond == 123456
        assert parsed.tzinfo == timezone.utc

    def test_compact_offset(self):
        parsed = parse_timestamp("2026-01-15T12:30:00+0200")
        assert parsed == datetime(2026, 1, 15, 10, 30, tzinfo=timezone.utc)

    def test_naive_is_taken_as_utc(self):
        parsed = parse_timestamp("2026-01-15T10:30:00")
        assert parsed.tzinfo == timezone.utc

    def test_yelp_pacific_time_converted_to_utc(self):
        # January: PST, UTC-8
        parsed = parse_yelp_timestamp("2026-01-15 10:30:00")
        assert parsed == datetime(2026, 1, 15, 18, 30, tzinfo=timezone.utc)


# ── Per-platform normalization ──────────────────────────────────────────────


class TestNormalizeGoogleReview:
    def test_full_review_with_reply(self):
        raw = {
            "reviewId": "g-1",
            "reviewer": {"displayName": "Ana", "profilePhotoUrl": "https://img/ana.png"},
            "starRating": "FOUR",
            "comment": "Lovely brunch",
            "createTime": "2026-01-15T10:30:00Z",
            "reviewReply": {"comment": "Thanks Ana!", "updateTime": "2026-01-16T09:00:00Z"},
        }
        review = normalize_google_review(raw)

        assert review.external_id == "g-1"
        assert review.author_name == "Ana"
        assert review.author_avatar_url == "https://img/ana.png"
        assert review.rating == 4
        assert review.content == "Lovely brunch"
        assert review.reply is not None
        assert review.reply.text == "Thanks Ana!"
        assert review.reply.replied_at == datetime(2026, 1, 16, 9, 0, tzinfo=timezone.utc)

    def test_rating_only_review(self):
        raw = {
            "reviewId": "g-2",
            "reviewer": {},
            "starRating": "FIVE",
            "createTime": "2026-01-15T10:30:00Z",
        }
        review = normalize_google_review(raw)

        assert review.author_name == "Anonymous"
        assert review.content == ""
        assert review.reply is None

    def test_unrecognized_rating_kept_as_zero(self):
        raw = {"reviewId": "g-3", "starRating": "STAR_RATING_UNSPECIFIED", "createTime": "2026-01-15T10:30:00Z"}
        assert normalize_google_review(raw).rating == 0


class TestNormalizeYelpReview:
    def test_review_fields(self):
        raw = {
            "id": "y-1",
            "url": "https://www.yelp.com/biz/x?hrid=y-1",
            "text": "Decent pho",
            "rating": 3,
            "time_created": "2026-01-15 10:30:00",
            "user": {"name": "Bo", "image_url": "https://img/bo.png"},
        }
        review = normalize_yelp_review(raw)

        assert review.external_id == "y-1"
        assert review.external_url == "https://www.yelp.com/biz/x?hrid=y-1"
        assert review.author_name == "Bo"
        assert review.rating == 3
        assert review.reply is None


class TestNormalizeFacebookReview:
    def test_recommendation_review(self):
        raw = {
            "created_time": "2026-01-15T10:30:00+0000",
            "recommendation_type": "negative",
            "review_text": "Cold food",
            "reviewer": {"id": "u7", "name": "Cy"},
            "open_graph_story": {"id": "story-7"},
        }
        review = normalize_facebook_review(raw)

        assert review.external_id == "story-7"
        assert review.author_name == "Cy"
        assert review.rating == 1
        assert review.content == "Cold food"
        assert review.published_at == datetime(2026, 1, 15, 10, 30, tzinfo=timezone.utc)

    def test_anonymous_reviewer(self):
        raw = {"created_time": "2026-01-15T10:30:00+0000", "rating": 4}
        review = normalize_facebook_review(raw)

        assert review.author_name == "Facebook user"
        assert review.rating == 4
        assert review.external_id == "unknown_2026-01-15T10:30:00+0000"
