"""
IdentityRegistry: review id -> virtual chat identity.

The identity key is derived from the review id alone, so resolving the same
review twice always lands on the same identity. This registry is the only
authority on whether an identity key belongs to the bridge.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Callable, Optional

from review_bridge.core.clock import Clock, utcnow
from review_bridge.errors import InvalidOperationError
from review_bridge.infra.logging_config import get_logger
from review_bridge.repositories.base import RepositoryFactory
from review_bridge.schemas.identity import IdentityMapping, VirtualIdentity

logger = get_logger("identity_registry")


class IdentityRegistry:
    def __init__(
        self,
        repository_factory: RepositoryFactory,
        *,
        identity_prefix: str = "bridge_",
        home_domain: str = "localhost",
        source_name: str = "Google Play",
        clock: Optional[Clock] = None,
    ) -> None:
        self._identities = repository_factory("identities", VirtualIdentity)
        self._mappings = repository_factory("identity_mappings", IdentityMapping)
        self.identity_prefix = identity_prefix
        self.home_domain = home_domain
        self.source_name = source_name
        self._clock = clock or utcnow

    def identity_key_for(self, review_id: str, home_domain: Optional[str] = None) -> str:
        """Derive the identity key for a review. Pure function of its inputs."""
        if not review_id or not review_id.strip():
            raise InvalidOperationError("review id must not be empty")
        domain = home_domain or self.home_domain
        return f"@{self.identity_prefix}{review_id.strip()}:{domain}"

    def is_bridge_owned_identity(self, identity_key: str) -> bool:
        return bool(identity_key) and identity_key.startswith(f"@{self.identity_prefix}")

    def resolve_or_create_identity(
        self,
        review_id: str,
        display_name: Optional[str],
        home_domain: Optional[str] = None,
    ) -> VirtualIdentity:
        """
        Return the virtual identity for a review, creating it on first sighting.

        Args:
            review_id: External review id.
            display_name: Reviewer's account name. Empty falls back to a placeholder.
            home_domain: Homeserver domain; defaults to the registry's domain.

        Returns:
            VirtualIdentity: The stored identity with last_active_at refreshed.

        Raises:
            InvalidOperationError: If review_id is empty.
        """
        identity_key = self.identity_key_for(review_id, home_domain)
        review_id = review_id.strip()
        name = (display_name or "").strip()
        now = self._clock()

        identity = self._identities.get(identity_key)
        if identity is None:
            identity = VirtualIdentity(
                identity_key=identity_key,
                review_id=review_id,
                display_name=name or self._placeholder_name(review_id),
                created_at=now,
                last_active_at=now,
            )
            logger.info("Created virtual identity %s for review %s", identity_key, review_id)
        else:
            if name:
                identity.display_name = name
            identity.last_active_at = now
        self._identities.put(identity_key, identity)
        return identity

    def touch(self, identity_key: str) -> Optional[VirtualIdentity]:
        """Refresh last_active_at. Returns None if the identity was reaped."""
        identity = self._identities.get(identity_key)
        if identity is None:
            return None
        identity.last_active_at = self._clock()
        self._identities.put(identity_key, identity)
        return identity

    def update_profile(
        self,
        identity_key: str,
        display_name: Optional[str] = None,
        avatar_url: Optional[str] = None,
    ) -> Optional[VirtualIdentity]:
        identity = self._identities.get(identity_key)
        if identity is None:
            return None
        if display_name:
            identity.display_name = display_name
        if avatar_url:
            identity.avatar_url = avatar_url
        identity.last_active_at = self._clock()
        self._identities.put(identity_key, identity)
        return identity

    def create_account_mapping(
        self,
        review_id: str,
        identity_key: str,
        display_name: Optional[str],
        app_id: str,
    ) -> IdentityMapping:
        """Create the review -> identity mapping, or update name/app on re-invocation."""
        if not review_id or not review_id.strip():
            raise InvalidOperationError("review id must not be empty")
        if not identity_key:
            raise InvalidOperationError("identity key must not be empty")
        review_id = review_id.strip()
        account_name = (display_name or "").strip() or self._placeholder_name(review_id)
        now = self._clock()

        mapping = self._mappings.get(review_id)
        if mapping is None:
            mapping = IdentityMapping(
                id=f"{review_id}_{identity_key}",
                review_id=review_id,
                identity_key=identity_key,
                account_name=account_name,
                app_id=app_id,
                created_at=now,
                updated_at=now,
            )
        else:
            mapping.account_name = account_name
            mapping.app_id = app_id
            mapping.updated_at = now
        self._mappings.put(review_id, mapping)
        return mapping

    def get_identity(self, identity_key: str) -> Optional[VirtualIdentity]:
        return self._identities.get(identity_key)

    def list_identities(self) -> list[VirtualIdentity]:
        return self._identities.list()

    def find_mapping_by_review(self, review_id: str) -> Optional[IdentityMapping]:
        if not review_id:
            return None
        return self._mappings.get(review_id)

    def find_mapping_by_identity(self, identity_key: str) -> Optional[IdentityMapping]:
        for mapping in self._mappings.list():
            if mapping.identity_key == identity_key:
                return mapping
        return None

    def reap_inactive(
        self,
        max_age: timedelta,
        exclude: Optional[Callable[[str], bool]] = None,
    ) -> int:
        """
        Remove identities idle for longer than max_age.

        Mappings are left in place so the review history survives; a reaped
        identity is recreated on the next sighting of its review.
        exclude is called with the review id and can veto removal.
        """
        cutoff = self._clock() - max_age
        removed = 0
        for identity in self._identities.list():
            if identity.last_active_at >= cutoff:
                continue
            if exclude is not None and exclude(identity.review_id):
                continue
            if self._identities.delete(identity.identity_key):
                removed += 1
        if removed:
            logger.info("Reaped %d inactive virtual identities", removed)
        return removed

    def stats(self) -> dict[str, int]:
        return {
            "total_identities": len(self._identities.list()),
            "total_mappings": len(self._mappings.list()),
        }

    def _placeholder_name(self, review_id: str) -> str:
        return f"{self.source_name} user {review_id}"
