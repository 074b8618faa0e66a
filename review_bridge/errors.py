"""Exceptions raised by the bridge core.

Lookups never raise for "not found"; they return None or an empty list.
"""

from __future__ import annotations


class BridgeError(Exception):
    """Base class for errors raised by the bridge core."""


class DuplicateMappingError(BridgeError, ValueError):
    """A message mapping already exists for this chat event id."""

    def __init__(self, event_id: str, review_id: str) -> None:
        super().__init__(
            f"Message mapping for event {event_id!r} already exists "
            f"(review {review_id!r})"
        )
        self.event_id = event_id
        self.review_id = review_id


class InvalidOperationError(BridgeError, ValueError):
    """Malformed input (empty ids) or an operation the current state forbids."""
