"""Append-only, hash-chained audit trail of registry mutations."""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from hashlib import sha256
from pathlib import Path
from typing import Any, Dict, Iterator, Mapping, Optional, Sequence

logger = logging.getLogger(__name__)

GENESIS_HASH = "0" * 64

DEFAULT_REDACT_FIELDS: tuple[str, ...] = (
    "password",
    "secret",
    "token",
    "session",
)

ACTION_SET_RISK_TIER = "risk_tier.set"
ACTION_ASSESS = "risk_tier.assess"
ACTION_UPDATE_CHOSEN_TIER = "chosen_tier.update"
ACTION_REJECTED = "registry.rejected"


@dataclass(frozen=True)
class AuditSettings:
    log_path: Path
    enabled: bool = True
    redact_fields: Sequence[str] = DEFAULT_REDACT_FIELDS


class FileAuditSink:
    """Persist audit records to a JSONL file on disk."""

    def __init__(self, path: Path) -> None:
        self._path = Path(path)
        self._path.parent.mkdir(parents=True, exist_ok=True)

    def bootstrap_hash(self) -> str:
        """Return the hash of the last stored record so the chain continues across restarts."""

        last_hash = GENESIS_HASH
        for entry in _iter_entries(self._path):
            last_hash = str(entry.get("hash") or GENESIS_HASH)
        return last_hash

    def write(self, payload: str) -> None:
        with self._path.open("a", encoding="utf-8") as handle:
            handle.write(payload)


class AuditLogWriter:
    def __init__(self, *, sink: FileAuditSink, redact_fields: Sequence[str] = DEFAULT_REDACT_FIELDS) -> None:
        self._sink = sink
        self._lock = threading.Lock()
        self._redact_keys = {self._normalise_key(field) for field in redact_fields}
        self._last_hash = sink.bootstrap_hash()

    @staticmethod
    def _normalise_key(key: str) -> str:
        return key.replace(" ", "").replace("-", "_").lower()

    def _redact(self, value: Any) -> Any:
        if isinstance(value, Mapping):
            redacted: Dict[str, Any] = {}
            for key, item in value.items():
                norm_key = self._normalise_key(str(key))
                if any(field in norm_key for field in self._redact_keys):
                    redacted[key] = "<redacted>"
                else:
                    redacted[key] = self._redact(item)
            return redacted
        if isinstance(value, (list, tuple)):
            return [self._redact(item) for item in value]
        return value

    def log(self, action: str, actor: str, details: Mapping[str, Any] | None = None) -> str:
        """Append an audit record and return its hash."""

        timestamp = datetime.now(timezone.utc).isoformat()
        with self._lock:
            record: Dict[str, Any] = {
                "timestamp": timestamp,
                "action": str(action),
                "actor": str(actor),
                "details": self._redact(dict(details or {})),
                "prev_hash": self._last_hash,
            }
            canonical = json.dumps(record, sort_keys=True, separators=(",", ":"))
            record_hash = sha256(canonical.encode("utf-8")).hexdigest()
            record["hash"] = record_hash
            self._sink.write(json.dumps(record, sort_keys=True) + "\n")
            self._last_hash = record_hash
        return record_hash


def _iter_entries(path: Path) -> Iterator[Dict[str, Any]]:
    try:
        with Path(path).open("r", encoding="utf-8") as handle:
            for line in handle:
                line = line.strip()
                if not line:
                    continue
                try:
                    yield json.loads(line)
                except json.JSONDecodeError:
                    logger.warning("Skipping invalid audit record: %s", line)
    except FileNotFoundError:
        return


def read_audit_entries(
    path: Path,
    *,
    limit: Optional[int] = None,
    action: Optional[str] = None,
    actor: Optional[str] = None,
) -> list[Dict[str, Any]]:
    """Return filtered audit entries from ``path``, keeping the newest ``limit``."""

    action_norm = action.lower() if action else None
    actor_norm = actor.lower() if actor else None
    results: list[Dict[str, Any]] = []
    for entry in _iter_entries(path):
        if action_norm and str(entry.get("action", "")).lower() != action_norm:
            continue
        if actor_norm and str(entry.get("actor", "")).lower() != actor_norm:
            continue
        results.append(entry)
    if limit is not None:
        return results[-limit:]
    return results


def verify_chain(path: Path) -> bool:
    """Recompute every hash in ``path`` and check each record links to its predecessor."""

    previous = GENESIS_HASH
    for entry in _iter_entries(path):
        stored_hash = entry.get("hash")
        if entry.get("prev_hash") != previous:
            return False
        body = {key: value for key, value in entry.items() if key != "hash"}
        canonical = json.dumps(body, sort_keys=True, separators=(",", ":"))
        if sha256(canonical.encode("utf-8")).hexdigest() != stored_hash:
            return False
        previous = stored_hash
    return True


_audit_registry: Dict[Path, AuditLogWriter] = {}
_registry_lock = threading.Lock()


def reset_audit_registry() -> None:
    """Reset the cached audit writers. Intended for tests only."""

    with _registry_lock:
        _audit_registry.clear()


def get_audit_logger(settings: Optional[AuditSettings]) -> Optional[AuditLogWriter]:
    """Return a cached :class:`AuditLogWriter` for ``settings``."""

    if settings is None or not settings.enabled:
        return None
    log_path = Path(settings.log_path)
    with _registry_lock:
        writer = _audit_registry.get(log_path)
        if writer is None:
            writer = AuditLogWriter(sink=FileAuditSink(log_path), redact_fields=settings.redact_fields)
            _audit_registry[log_path] = writer
        return writer
