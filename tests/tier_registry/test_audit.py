import hashlib
import json

from tier_registry.audit import (
    AuditSettings,
    get_audit_logger,
    read_audit_entries,
    reset_audit_registry,
    verify_chain,
)


def test_audit_log_hash_chain(tmp_path):
    reset_audit_registry()
    log_path = tmp_path / "audit.log"
    writer = get_audit_logger(AuditSettings(log_path=log_path))
    assert writer is not None

    first_hash = writer.log("risk_tier.set", "ops", {"user": "alice", "score": 85})
    second_hash = writer.log("chosen_tier.update", "ops", {"user": "alice", "chosen_tier": "TIER_3"})

    payloads = [json.loads(line) for line in log_path.read_text(encoding="utf-8").splitlines() if line]
    assert payloads[0]["hash"] == first_hash
    assert payloads[1]["hash"] == second_hash
    assert payloads[0]["prev_hash"] == "0" * 64
    assert payloads[1]["prev_hash"] == first_hash

    canonical = json.dumps(
        {key: payloads[0][key] for key in ("timestamp", "action", "actor", "details", "prev_hash")},
        sort_keys=True,
        separators=(",", ":"),
    )
    assert first_hash == hashlib.sha256(canonical.encode("utf-8")).hexdigest()
    assert verify_chain(log_path) is True


def test_chain_continues_after_restart(tmp_path):
    reset_audit_registry()
    log_path = tmp_path / "audit.log"
    first = get_audit_logger(AuditSettings(log_path=log_path)).log("risk_tier.set", "ops", {})

    reset_audit_registry()
    get_audit_logger(AuditSettings(log_path=log_path)).log("risk_tier.set", "ops", {})

    entries = read_audit_entries(log_path)
    assert entries[1]["prev_hash"] == first
    assert verify_chain(log_path) is True


def test_tampering_breaks_chain(tmp_path):
    reset_audit_registry()
    log_path = tmp_path / "audit.log"
    writer = get_audit_logger(AuditSettings(log_path=log_path))
    writer.log("risk_tier.set", "ops", {"score": 10})
    writer.log("risk_tier.set", "ops", {"score": 20})

    lines = log_path.read_text(encoding="utf-8").splitlines()
    tampered = json.loads(lines[0])
    tampered["details"]["score"] = 99
    lines[0] = json.dumps(tampered, sort_keys=True)
    log_path.write_text("\n".join(lines) + "\n", encoding="utf-8")

    assert verify_chain(log_path) is False


def test_audit_redacts_sensitive_fields(tmp_path):
    reset_audit_registry()
    log_path = tmp_path / "audit.log"
    writer = get_audit_logger(AuditSettings(log_path=log_path, redact_fields=("password", "session")))

    writer.log("login", "ops", {"password": "hunter2", "nested": {"session_id": "abc", "user": "alice"}})

    details = read_audit_entries(log_path)[0]["details"]
    assert details["password"] == "<redacted>"
    assert details["nested"]["session_id"] == "<redacted>"
    assert details["nested"]["user"] == "alice"


def test_read_audit_entries_filters(tmp_path):
    reset_audit_registry()
    log_path = tmp_path / "audit.log"
    writer = get_audit_logger(AuditSettings(log_path=log_path))
    writer.log("risk_tier.set", "ops", {"n": 1})
    writer.log("chosen_tier.update", "alice", {"n": 2})
    writer.log("risk_tier.set", "ops", {"n": 3})

    assert [e["details"]["n"] for e in read_audit_entries(log_path, action="RISK_TIER.SET")] == [1, 3]
    assert [e["details"]["n"] for e in read_audit_entries(log_path, actor="alice")] == [2]
    assert [e["details"]["n"] for e in read_audit_entries(log_path, limit=2)] == [2, 3]


def test_disabled_audit_returns_none(tmp_path):
    reset_audit_registry()

    assert get_audit_logger(None) is None
    assert get_audit_logger(AuditSettings(log_path=tmp_path / "a.log", enabled=False)) is None


def test_chain_resumes_from_last_valid_record(tmp_path):
    reset_audit_registry()
    log_path = tmp_path / "audit.log"
    first = get_audit_logger(AuditSettings(log_path=log_path)).log("risk_tier.set", "ops", {})
    with log_path.open("a", encoding="utf-8") as handle:
        handle.write("{not json\n")

    reset_audit_registry()
    get_audit_logger(AuditSettings(log_path=log_path)).log("risk_tier.set", "ops", {})

    entries = read_audit_entries(log_path)
    assert len(entries) == 2
    assert entries[1]["prev_hash"] == first
    assert verify_chain(log_path) is True
