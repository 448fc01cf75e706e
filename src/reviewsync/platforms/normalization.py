"""Rating and timestamp normalization shared by the platform adapters.

Defines:
- GOOGLE_STAR_RATINGS: Google ``starRating`` enum names to 1-5
- google_star_rating(): enum string to int, 0 when unrecognized
- facebook_rating(): legacy stars or recommendation type to 1-5
- facebook_external_id(): story id, else ``{reviewer_id}_{created_time}``
- parse_timestamp() / parse_yelp_timestamp(): provider time strings to aware datetimes
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any
from zoneinfo import ZoneInfo

# ── Google ─────────────────────────────────────────────────────────────────

GOOGLE_STAR_RATINGS: dict[str, int] = {
    "ONE": 1,
    "TWO": 2,
    "THREE": 3,
    "FOUR": 4,
    "FIVE": 5,
}

UNRECOGNIZED_RATING = 0


def google_star_rating(value: str | None) -> int:
    """Map a Google ``starRating`` to 1-5; anything else (incl. STAR_RATING_UNSPECIFIED) is 0."""
    if not value:
        return UNRECOGNIZED_RATING
    return GOOGLE_STAR_RATINGS.get(value.upper(), UNRECOGNIZED_RATING)


# ── Facebook ───────────────────────────────────────────────────────────────

FACEBOOK_POSITIVE_RATING = 5
FACEBOOK_NEGATIVE_RATING = 1
FACEBOOK_NEUTRAL_RATING = 3


def facebook_rating(rating: int | None, recommendation_type: str | None) -> int:
    """Resolve a Facebook rating.

    Precedence: explicit legacy star rating, then ``positive`` -> 5,
    ``negative`` -> 1, and 3 when the provider sent neither.
    """
    if rating:
        return int(rating)
    if recommendation_type == "positive":
        return FACEBOOK_POSITIVE_RATING
    if recommendation_type == "negative":
        return FACEBOOK_NEGATIVE_RATING
    return FACEBOOK_NEUTRAL_RATING


def facebook_external_id(raw: dict[str, Any]) -> str:
    story = raw.get("open_graph_story") or {}
    if story.get("id"):
        return str(story["id"])
    reviewer = raw.get("reviewer") or {}
    return f"{reviewer.get('id', 'unknown')}_{raw.get('created_time', '')}"


# ── Timestamps ─────────────────────────────────────────────────────────────

YELP_TIMEZONE = ZoneInfo("America/Los_Angeles")

# Google sends nanosecond fractions; datetime keeps microseconds.
_LONG_FRACTION = re.compile(r"(\.\d{6})\d+")


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 / RFC 3339 timestamp into an aware UTC datetime.

    Accepts ``Z`` suffixes, long fractional seconds (Google) and compact
    ``+0000`` offsets (Facebook). Naive inputs are taken as UTC.
    """
    value = _LONG_FRACTION.sub(r"\1", value.strip())
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        parsed = datetime.strptime(value, "%Y-%m-%dT%H:%M:%S%z")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def parse_yelp_timestamp(value: str) -> datetime:
    """Parse Yelp's ``YYYY-MM-DD HH:MM:SS`` (US Pacific local time) into UTC."""
    local = datetime.strptime(value, "%Y-%m-%d %H:%M:%S").replace(tzinfo=YELP_TIMEZONE)
    return local.astimezone(timezone.utc)
