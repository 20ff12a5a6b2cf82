"""Risk-tiered access registry.

The package stores one risk assessment per user, keeps a per-tier membership
index, and gates tier access and chosen-tier changes on the assessed score.
"""

from .access_rules import AccessThresholds, TierAccessRules, classify_tier
from .clock import Clock, SystemClock
from .errors import AccessDeniedError, StoreError, TierRegistryError, ValidationError
from .metrics import MetricRegistry
from .models import RiskTierRecord, Tier
from .registry import RiskTierRegistry
from .store import FileKeyValueStore, InMemoryKeyValueStore, KeyValueStore
from .tier_index import TierIndex

__all__ = [
    "AccessDeniedError",
    "AccessThresholds",
    "Clock",
    "FileKeyValueStore",
    "InMemoryKeyValueStore",
    "KeyValueStore",
    "MetricRegistry",
    "RiskTierRecord",
    "RiskTierRegistry",
    "StoreError",
    "SystemClock",
    "Tier",
    "TierAccessRules",
    "TierIndex",
    "TierRegistryError",
    "ValidationError",
    "classify_tier",
]
