"""Tests for registry configuration loading."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from tier_registry.config import RegistrySettings, load_settings


def _write_config(tmp_path: Path, payload) -> Path:
    config_path = tmp_path / "configs" / "registry.json"
    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(json.dumps(payload), encoding="utf-8")
    return config_path


def test_load_settings_requires_object_top_level(tmp_path: Path) -> None:
    config_path = _write_config(tmp_path, [])

    with pytest.raises(TypeError, match="Registry configuration must be a JSON object"):
        load_settings(config_path, env={})


def test_load_settings_reports_missing_file(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError, match="Configuration file not found"):
        load_settings(tmp_path / "missing.json", env={})


def test_load_settings_reports_invalid_json(tmp_path: Path) -> None:
    config_path = tmp_path / "registry.json"
    config_path.write_text("{", encoding="utf-8")

    with pytest.raises(ValueError, match="Invalid JSON"):
        load_settings(config_path, env={})


def test_paths_resolve_relative_to_config(tmp_path: Path) -> None:
    config_path = _write_config(
        tmp_path,
        {
            "store_path": "../data/registry.json",
            "audit": {"log_path": "audit/registry.log"},
            "auth": {"secret_key": "s3", "users": {"ops": "hash"}, "https_only": False},
            "thresholds": {"tier1_max_score": 25, "tier2_max_score": 60},
            "debug_level": 2,
        },
    )

    settings = load_settings(config_path, env={})

    assert settings.store_path == (config_path.parent / "../data/registry.json").resolve()
    assert settings.audit is not None
    assert settings.audit.log_path == (config_path.parent / "audit/registry.log").resolve()
    assert settings.auth is not None and settings.auth.https_only is False
    assert settings.auth.users == {"ops": "hash"}
    assert settings.thresholds.tier1_max_score == 25
    assert settings.thresholds.tier2_max_score == 60
    assert settings.debug_level == 2
    assert settings.config_path == config_path.resolve()


def test_environment_overrides_file_values(tmp_path: Path) -> None:
    config_path = _write_config(tmp_path, {"thresholds": {"tier1_max_score": 25, "tier2_max_score": 60}})
    env = {
        "TIER_REGISTRY_TIER2_MAX_SCORE": "65",
        "TIER_REGISTRY_TIER1_MAX_SCORE": "not-a-number",
        "TIER_REGISTRY_STORE_PATH": str(tmp_path / "store.json"),
        "TIER_REGISTRY_AUDIT_LOG": str(tmp_path / "audit.log"),
    }

    settings = load_settings(config_path, env=env)

    assert settings.thresholds.tier1_max_score == 25
    assert settings.thresholds.tier2_max_score == 65
    assert settings.store_path == tmp_path / "store.json"
    assert settings.audit is not None and settings.audit.log_path == tmp_path / "audit.log"


def test_inconsistent_thresholds_rejected(tmp_path: Path) -> None:
    config_path = _write_config(tmp_path, {"thresholds": {"tier1_max_score": 80, "tier2_max_score": 60}})

    with pytest.raises(ValueError, match="Access thresholds"):
        load_settings(config_path, env={})


def test_audit_requires_log_path(tmp_path: Path) -> None:
    config_path = _write_config(tmp_path, {"audit": {"enabled": True}})

    with pytest.raises(ValueError, match="log_path"):
        load_settings(config_path, env={})


def test_from_environment_defaults() -> None:
    settings = RegistrySettings.from_environment(env={})

    assert settings.store_path is None
    assert settings.audit is None
    assert settings.thresholds.tier1_max_score == 30
    assert settings.thresholds.tier2_max_score == 70
    assert settings.debug_level == 1
