"""Score thresholds deciding tier access and chosen tier eligibility."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from .errors import AccessDeniedError
from .models import MAX_SCORE, MIN_SCORE, Tier, validate_score

logger = logging.getLogger(__name__)


@dataclass
class AccessThresholds:
    """Inclusive score ceilings for the restricted tiers. TIER_3 has none."""

    tier1_max_score: int = 30
    tier2_max_score: int = 70

    @property
    def high_risk_score(self) -> int:
        """Scores strictly above this value may only operate under TIER_3."""

        return self.tier2_max_score

    def validate(self) -> None:
        if not MIN_SCORE <= self.tier1_max_score <= self.tier2_max_score <= MAX_SCORE:
            raise ValueError(
                "Access thresholds must satisfy "
                f"{MIN_SCORE} <= tier1_max_score <= tier2_max_score <= {MAX_SCORE}, "
                f"got {self.tier1_max_score} and {self.tier2_max_score}"
            )


class TierAccessRules:
    """Pure decisions over a score. Lower tiers require strictly lower risk."""

    def __init__(self, thresholds: AccessThresholds | None = None) -> None:
        self._thresholds = thresholds or AccessThresholds()

    @property
    def thresholds(self) -> AccessThresholds:
        return self._thresholds

    def can_access(self, score: int, target: Tier) -> bool:
        if target is Tier.TIER_1:
            return score <= self._thresholds.tier1_max_score
        if target is Tier.TIER_2:
            return score <= self._thresholds.tier2_max_score
        return True

    def classify(self, score: int) -> Tier:
        validate_score(score)
        if score <= self._thresholds.tier1_max_score:
            return Tier.TIER_1
        if score <= self._thresholds.tier2_max_score:
            return Tier.TIER_2
        return Tier.TIER_3

    def is_high_risk(self, score: int) -> bool:
        return score > self._thresholds.high_risk_score

    def check_chosen_tier(self, score: int, chosen_tier: Tier) -> None:
        """Raise :class:`AccessDeniedError` when a high-risk score picks anything but TIER_3."""

        if self.is_high_risk(score) and chosen_tier is not Tier.TIER_3:
            logger.warning(
                "Rejected chosen tier %s for high-risk score %d",
                chosen_tier.value,
                score,
                extra={"score": score, "chosen_tier": chosen_tier.value},
            )
            raise AccessDeniedError(
                f"Score {score} exceeds {self._thresholds.high_risk_score}; "
                f"only {Tier.TIER_3.value} may be chosen, not {chosen_tier.value}"
            )


def classify_tier(score: int, thresholds: AccessThresholds | None = None) -> Tier:
    """Return the tier ``score`` is assessed into."""

    return TierAccessRules(thresholds).classify(score)
