import pytest

from tier_registry.errors import ValidationError
from tier_registry.models import RiskTierRecord, Tier, validate_score


def test_record_payload_uses_tier_names():
    record = RiskTierRecord(score=42, tier=Tier.TIER_2, chosen_tier=Tier.TIER_3, timestamp=1700000000)

    payload = record.to_payload()

    assert payload == {"score": 42, "tier": "TIER_2", "chosen_tier": "TIER_3", "timestamp": 1700000000}
    assert RiskTierRecord.from_payload(payload) == record


def test_from_payload_rejects_unknown_tier():
    with pytest.raises(ValidationError):
        RiskTierRecord.from_payload({"score": 1, "tier": "TIER_9", "chosen_tier": "TIER_1", "timestamp": 0})


def test_tier_parse_messages_name_the_field():
    with pytest.raises(ValidationError, match="chosen_tier"):
        Tier.parse("nope", field="chosen_tier")


def test_tier_is_string_valued():
    assert Tier.TIER_1 == "TIER_1"
    assert Tier.parse("TIER_3") is Tier.TIER_3


@pytest.mark.parametrize("value", ["tier_2", " TIER_1 ", "Tier_3", "TIER_3\n", ""])
def test_tier_parse_requires_exact_name(value):
    with pytest.raises(ValidationError):
        Tier.parse(value)


def test_validate_score_bounds():
    assert validate_score(0) == 0
    assert validate_score(100) == 100
    with pytest.raises(ValidationError, match="between 0 and 100"):
        validate_score(-1)
