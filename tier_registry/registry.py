"""Risk tier registry: per-user assessments, chosen tiers and tier membership.

Every mutating call validates all of its inputs before the first write, so a
rejected call leaves the store untouched. The registry itself does no
locking; callers are expected to serialise operations (see ``web.create_app``).
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional

from .access_rules import AccessThresholds, TierAccessRules
from .clock import Clock, SystemClock
from .errors import TierRegistryError, ValidationError
from .metrics import MetricRegistry, Timer
from .models import RiskTierRecord, Tier, validate_score
from .store import KeyValueStore
from .tier_index import TierIndex

logger = logging.getLogger(__name__)


def record_key(user: str) -> str:
    return f"{user}:record"


def chosen_tier_key(user: str) -> str:
    return f"{user}:chosen_tier"


def _validate_user(user: Any) -> str:
    if not isinstance(user, str) or not user.strip():
        raise ValidationError("user must be a non-empty string")
    return user


class RiskTierRegistry:
    def __init__(
        self,
        store: KeyValueStore,
        clock: Optional[Clock] = None,
        *,
        thresholds: Optional[AccessThresholds] = None,
        metrics: Optional[MetricRegistry] = None,
    ) -> None:
        self._store = store
        self._clock = clock or SystemClock()
        self._rules = TierAccessRules(thresholds)
        self._index = TierIndex(store)
        self.metrics = metrics or MetricRegistry()

    @property
    def rules(self) -> TierAccessRules:
        return self._rules

    @contextmanager
    def _operation(self, name: str) -> Iterator[None]:
        self.metrics.inc("tier_registry.calls", labels={"operation": name})
        with Timer(self.metrics, "tier_registry.latency_seconds", labels={"operation": name}):
            try:
                yield
            except TierRegistryError as exc:
                self.metrics.inc(
                    "tier_registry.rejections",
                    labels={"operation": name, "error": type(exc).__name__},
                )
                raise

    # -- writes ---------------------------------------------------------

    def set_risk_tier(self, user: str, score: int, tier: Any, chosen_tier: Any) -> None:
        """Create or fully replace the assessment for ``user``.

        ``chosen_tier`` is stored as given; the high-risk gate applies only to
        :meth:`update_chosen_tier`.
        """

        with self._operation("set_risk_tier"):
            self._store_risk_tier(user, score, tier, chosen_tier)

    def _store_risk_tier(self, user: str, score: int, tier: Any, chosen_tier: Any) -> RiskTierRecord:
        user = _validate_user(user)
        score = validate_score(score)
        tier = Tier.parse(tier)
        chosen_tier = Tier.parse(chosen_tier, field="chosen_tier")

        record = RiskTierRecord(
            score=score,
            tier=tier,
            chosen_tier=chosen_tier,
            timestamp=self._clock.now(),
        )
        writes: Dict[str, Any] = {
            record_key(user): record.to_payload(),
            chosen_tier_key(user): chosen_tier.value,
        }
        writes.update(self._index.member_writes(tier, user))
        self._store.set_many(writes)
        logger.info(
            "Stored risk tier for %s: score=%d tier=%s chosen_tier=%s",
            user,
            score,
            tier.value,
            chosen_tier.value,
            extra={"user": user, "score": score, "tier": tier.value, "chosen_tier": chosen_tier.value},
        )
        return record

    def assess(self, user: str, score: int, chosen_tier: Any = None) -> RiskTierRecord:
        """Classify ``score`` and store it, defaulting the chosen tier to the assessed one."""

        with self._operation("assess"):
            tier = self._rules.classify(score)
            return self._store_risk_tier(user, score, tier, tier if chosen_tier is None else chosen_tier)

    def update_chosen_tier(self, user: str, new_chosen_tier: Any) -> bool:
        """Switch the tier ``user`` operates under.

        Returns ``False`` without writing anything when ``user`` has no record.
        """

        with self._operation("update_chosen_tier"):
            user = _validate_user(user)
            new_chosen_tier = Tier.parse(new_chosen_tier, field="chosen_tier")
            record = self._load(user)
            if record is None:
                logger.debug("Ignoring chosen tier update for unknown user %s", user, extra={"user": user})
                return False
            self._rules.check_chosen_tier(record.score, new_chosen_tier)

            updated = RiskTierRecord(
                score=record.score,
                tier=record.tier,
                chosen_tier=new_chosen_tier,
                timestamp=self._clock.now(),
            )
            self._store.set_many(
                {
                    record_key(user): updated.to_payload(),
                    chosen_tier_key(user): new_chosen_tier.value,
                }
            )
            logger.info(
                "Updated chosen tier for %s: %s -> %s",
                user,
                record.chosen_tier.value,
                new_chosen_tier.value,
                extra={"user": user, "previous": record.chosen_tier.value, "chosen_tier": new_chosen_tier.value},
            )
            return True

    # -- reads ----------------------------------------------------------

    def get_risk_tier(self, user: str) -> Optional[RiskTierRecord]:
        with self._operation("get_risk_tier"):
            return self._load(_validate_user(user))

    def get_score(self, user: str) -> int:
        """Return the stored score, or ``0`` when ``user`` was never assessed."""

        with self._operation("get_score"):
            record = self._load(_validate_user(user))
            return record.score if record is not None else 0

    def get_chosen_tier(self, user: str) -> Tier:
        with self._operation("get_chosen_tier"):
            cached = self._store.get(chosen_tier_key(_validate_user(user)))
            if cached is None:
                return Tier.TIER_3
            return Tier.parse(cached, field="chosen_tier")

    def get_tier_users(self, tier: Any) -> List[str]:
        with self._operation("get_tier_users"):
            return self._index.members(Tier.parse(tier))

    def get_tier_stats(self) -> Dict[Tier, int]:
        with self._operation("get_tier_stats"):
            return {tier: self._index.count(tier) for tier in Tier}

    def can_access_tier(self, user: str, target_tier: Any) -> bool:
        """Check ``user``'s assessed score against ``target_tier``'s ceiling."""

        with self._operation("can_access_tier"):
            user = _validate_user(user)
            target_tier = Tier.parse(target_tier, field="target_tier")
            record = self._load(user)
            if record is None:
                return False
            return self._rules.can_access(record.score, target_tier)

    def _load(self, user: str) -> Optional[RiskTierRecord]:
        payload = self._store.get(record_key(user))
        if payload is None:
            return None
        return RiskTierRecord.from_payload(payload)
