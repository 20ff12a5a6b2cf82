"""Configuration loading for the registry service.

Settings come from an optional JSON file and are then overridden by
``TIER_REGISTRY_*`` environment variables.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, MutableMapping, Optional

from .access_rules import AccessThresholds
from .audit import DEFAULT_REDACT_FIELDS, AuditSettings


@dataclass()
class AuthConfig:
    """Session authentication for the mutating HTTP endpoints."""

    secret_key: str
    users: Mapping[str, str]
    session_cookie_name: str = "tier_registry_session"
    https_only: bool = True


@dataclass
class RegistrySettings:
    store_path: Optional[Path] = None
    thresholds: AccessThresholds = field(default_factory=AccessThresholds)
    audit: Optional[AuditSettings] = None
    auth: Optional[AuthConfig] = None
    debug_level: int = 1
    config_path: Optional[Path] = None

    @classmethod
    def from_environment(
        cls, *, base: Optional["RegistrySettings"] = None, env: Optional[Mapping[str, str]] = None
    ) -> "RegistrySettings":
        env = os.environ if env is None else env
        settings = base or cls()

        store_path = env.get("TIER_REGISTRY_STORE_PATH")
        if store_path:
            settings.store_path = Path(store_path).expanduser()

        audit_log = env.get("TIER_REGISTRY_AUDIT_LOG")
        if audit_log:
            redact = settings.audit.redact_fields if settings.audit else DEFAULT_REDACT_FIELDS
            settings.audit = AuditSettings(log_path=Path(audit_log).expanduser(), redact_fields=redact)

        tier1 = _env_int(env.get("TIER_REGISTRY_TIER1_MAX_SCORE"))
        tier2 = _env_int(env.get("TIER_REGISTRY_TIER2_MAX_SCORE"))
        if tier1 is not None:
            settings.thresholds.tier1_max_score = tier1
        if tier2 is not None:
            settings.thresholds.tier2_max_score = tier2
        settings.thresholds.validate()

        debug_level = _env_int(env.get("TIER_REGISTRY_DEBUG"))
        if debug_level is not None:
            settings.debug_level = debug_level

        https_only = _env_bool(env.get("TIER_REGISTRY_HTTPS_ONLY"))
        if https_only is not None and settings.auth is not None:
            settings.auth.https_only = https_only
        return settings


def load_settings(path: Path, *, env: Optional[Mapping[str, str]] = None) -> RegistrySettings:
    """Parse the JSON configuration at ``path`` and apply environment overrides."""

    path = Path(path).expanduser().resolve()
    payload = _ensure_mapping(_load_json(path), description="Registry configuration")
    base_dir = path.parent

    settings = RegistrySettings(config_path=path)
    if payload.get("store_path"):
        settings.store_path = _resolve_path_relative_to(base_dir, payload["store_path"])

    thresholds = payload.get("thresholds")
    if thresholds is not None:
        thresholds = _ensure_mapping(thresholds, description="Access thresholds")
        settings.thresholds = AccessThresholds(
            tier1_max_score=int(thresholds.get("tier1_max_score", 30)),
            tier2_max_score=int(thresholds.get("tier2_max_score", 70)),
        )

    audit = payload.get("audit")
    if audit is not None:
        audit = _ensure_mapping(audit, description="Audit configuration")
        if not audit.get("log_path"):
            raise ValueError("Audit configuration requires a 'log_path'")
        settings.audit = AuditSettings(
            log_path=_resolve_path_relative_to(base_dir, audit["log_path"]),
            enabled=_coerce_bool(audit.get("enabled"), default=True),
            redact_fields=tuple(audit.get("redact_fields") or DEFAULT_REDACT_FIELDS),
        )

    auth = payload.get("auth")
    if auth is not None:
        auth = _ensure_mapping(auth, description="Authentication configuration")
        users = _ensure_mapping(auth.get("users") or {}, description="Authentication users")
        settings.auth = AuthConfig(
            secret_key=str(auth.get("secret_key") or ""),
            users={str(name): str(hashed) for name, hashed in users.items()},
            session_cookie_name=str(auth.get("session_cookie_name") or "tier_registry_session"),
            https_only=_coerce_bool(auth.get("https_only"), default=True),
        )

    if "debug_level" in payload:
        settings.debug_level = int(payload["debug_level"])

    return RegistrySettings.from_environment(base=settings, env=env)


def _load_json(path: Path) -> Dict[str, Any]:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise FileNotFoundError(f"Configuration file not found: {path}") from exc
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid JSON in configuration file {path}: {exc}") from exc


def _ensure_mapping(payload: Any, *, description: str) -> MutableMapping[str, Any]:
    if isinstance(payload, MutableMapping):
        return payload
    if isinstance(payload, Mapping):
        return dict(payload)
    raise TypeError(f"{description} must be a JSON object, not {type(payload).__name__}.")


def _resolve_path_relative_to(base: Path, candidate: Any) -> Path:
    path = Path(str(candidate)).expanduser()
    if not path.is_absolute():
        path = base / path
    return path.resolve()


def _coerce_bool(value: Any, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


def _env_int(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _env_bool(value: Optional[str]) -> Optional[bool]:
    if value is None:
        return None
    return str(value).strip().lower() in {"1", "true", "yes", "on"}
