"""
External collaborators of the bridge core.

RoomIntent is the chat transport as seen by the bridge: it can send into a
room, join a room and look up a profile, optionally acting as a virtual
identity. ReviewReplyClient hands developer replies to the review source.
Both surface every failure as TransportError.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Optional


class TransportError(Exception):
    """Opaque failure of an external collaborator (chat transport or review source)."""


class RoomIntent(ABC):
    """Contract for the chat transport."""

    @abstractmethod
    async def send_message(
        self, room_id: str, content: dict[str, Any], sender: Optional[str] = None
    ) -> str:
        """Send content into room_id as sender (the bot when None). Return the event id."""
        ...

    @abstractmethod
    async def join_room(self, room_id: str, sender: Optional[str] = None) -> None:
        """Join room_id as sender (the bot when None)."""
        ...

    @abstractmethod
    async def get_profile(self, identity_key: str) -> dict[str, Any]:
        """Return the profile (displayname, avatar_url) of identity_key."""
        ...

    async def ensure_identity(self, identity_key: str, display_name: Optional[str] = None) -> None:
        """
        Make sure a virtual identity exists on the transport.
        Override if the transport needs explicit registration.
        """
        return None


class ReviewReplyClient(ABC):
    """Contract for submitting developer replies to the review source."""

    @abstractmethod
    async def submit_reply(self, review_id: str, app_id: str, text: str) -> None:
        """Submit reply text for review_id. Raise TransportError on failure."""
        ...
