"""Reverse mapping from tier to the users assessed into it."""

from __future__ import annotations

import logging
from typing import Any, Dict, List

from .models import Tier
from .store import KeyValueStore

logger = logging.getLogger(__name__)


def members_key(tier: Tier) -> str:
    return f"{tier.value}:members"


class TierIndex:
    """Append-only, deduplicated membership lists stored one key per tier.

    Members are never removed. A user reassessed into a different tier stays
    listed under every tier they were ever assessed into.
    """

    def __init__(self, store: KeyValueStore) -> None:
        self._store = store

    def members(self, tier: Tier) -> List[str]:
        return list(self._store.get(members_key(tier)) or [])

    def count(self, tier: Tier) -> int:
        return len(self.members(tier))

    def member_writes(self, tier: Tier, user: str) -> Dict[str, Any]:
        """Return the store writes that add ``user`` to ``tier``; empty when already listed."""

        users = self.members(tier)
        if user in users:
            return {}
        users.append(user)
        return {members_key(tier): users}

    def add_member(self, tier: Tier, user: str) -> bool:
        """Append ``user`` to ``tier``'s list. Returns ``False`` if already present."""

        writes = self.member_writes(tier, user)
        if not writes:
            return False
        self._store.set_many(writes)
        logger.debug("Added %s to %s index", user, tier.value)
        return True
