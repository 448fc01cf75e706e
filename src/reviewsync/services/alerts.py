"""Alerting collaborator for urgent reviews."""

from __future__ import annotations

from abc import ABC, abstractmethod

import structlog

from src.reviewsync.sync.schemas import CanonicalReview

logger = structlog.get_logger(__name__)

DEFAULT_MIN_URGENCY = 7
LOW_RATING_THRESHOLD = 2


class ReviewAlerter(ABC):
    @abstractmethod
    async def notify(self, review: CanonicalReview) -> None:
        """Deliver an alert for an enriched review if it warrants one."""
        ...


def is_urgent(review: CanonicalReview, min_urgency: int = DEFAULT_MIN_URGENCY) -> bool:
    """Urgency at or above the threshold, or a rating of 2 stars or less."""
    urgency = review.urgency_score or 0
    return urgency >= min_urgency or review.rating <= LOW_RATING_THRESHOLD


class LoggingReviewAlerter(ReviewAlerter):
    """Emits a structured ``review.alert`` event for urgent reviews.

    Delivery channels (email, SMS) subscribe to the log stream.
    """

    def __init__(self, min_urgency: int = DEFAULT_MIN_URGENCY) -> None:
        self._min_urgency = min_urgency

    async def notify(self, review: CanonicalReview) -> None:
        if not is_urgent(review, self._min_urgency):
            return
        logger.warning(
            "review.alert",
            review_id=review.id,
            business_id=review.business_id,
            platform=review.platform.value,
            rating=review.rating,
            urgency=review.urgency_score,
            sentiment=review.sentiment,
            author=review.author_name,
        )
