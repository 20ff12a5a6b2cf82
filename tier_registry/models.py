"""Domain types for risk tier records."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Dict, Mapping

from .errors import ValidationError

MIN_SCORE = 0
MAX_SCORE = 100


class Tier(str, Enum):
    TIER_1 = "TIER_1"
    TIER_2 = "TIER_2"
    TIER_3 = "TIER_3"

    @classmethod
    def parse(cls, value: Any, *, field: str = "tier") -> "Tier":
        """Return the :class:`Tier` for ``value`` or raise :class:`ValidationError`."""

        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value)
            except ValueError:
                pass
        raise ValidationError(f"{field} must be one of TIER_1, TIER_2, TIER_3, not {value!r}")


def validate_score(score: Any) -> int:
    """Return ``score`` when it is an integer within [0, 100]."""

    if isinstance(score, bool) or not isinstance(score, int):
        raise ValidationError(f"score must be an integer, not {type(score).__name__}")
    if score < MIN_SCORE or score > MAX_SCORE:
        raise ValidationError(f"score must be between {MIN_SCORE} and {MAX_SCORE}, got {score}")
    return score


@dataclass(frozen=True)
class RiskTierRecord:
    score: int
    tier: Tier
    chosen_tier: Tier
    timestamp: int

    def to_payload(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["tier"] = self.tier.value
        payload["chosen_tier"] = self.chosen_tier.value
        return payload

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "RiskTierRecord":
        return cls(
            score=validate_score(payload.get("score")),
            tier=Tier.parse(payload.get("tier")),
            chosen_tier=Tier.parse(payload.get("chosen_tier"), field="chosen_tier"),
            timestamp=int(payload.get("timestamp") or 0),
        )
