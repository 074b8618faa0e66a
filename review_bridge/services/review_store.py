"""Canonical copies of reviews as delivered by the review source."""

from __future__ import annotations

from typing import Optional

from review_bridge.core.clock import Clock, utcnow
from review_bridge.repositories.base import RepositoryFactory
from review_bridge.schemas.review import ReviewRecord


class ReviewStore:
    def __init__(self, repository_factory: RepositoryFactory, *, clock: Optional[Clock] = None) -> None:
        self._reviews = repository_factory("reviews", ReviewRecord)
        self._clock = clock or utcnow

    def upsert(self, review: ReviewRecord) -> tuple[ReviewRecord, Optional[ReviewRecord]]:
        """
        Store the review. Returns (stored, previous) where previous is None on first sighting.

        Timestamps and a known reply missing from a redelivery are kept from the
        stored copy.
        """
        previous = self._reviews.get(review.review_id)
        stored = review
        if previous is not None:
            update = {}
            if review.created_at is None and previous.created_at is not None:
                update["created_at"] = previous.created_at
            if review.modified_at is None and previous.modified_at is not None:
                update["modified_at"] = previous.modified_at
            if previous.has_reply and not review.has_reply:
                # replies made through the bridge are not echoed back by every source
                update.update(
                    has_reply=True,
                    reply_text=previous.reply_text,
                    replied_at=previous.replied_at,
                )
            if update:
                stored = review.model_copy(update=update)
        self._reviews.put(review.review_id, stored)
        return stored, previous

    def get(self, review_id: str) -> Optional[ReviewRecord]:
        return self._reviews.get(review_id) if review_id else None

    def mark_replied(self, review_id: str, text: str) -> Optional[ReviewRecord]:
        review = self._reviews.get(review_id)
        if review is None:
            return None
        review.has_reply = True
        review.reply_text = text
        review.replied_at = self._clock()
        self._reviews.put(review_id, review)
        return review

    def list_for_app(self, app_id: str) -> list[ReviewRecord]:
        return [r for r in self._reviews.list() if r.app_id == app_id]
