"""FastAPI host exposing the risk tier registry over HTTP.

Endpoints are coroutines that never await while touching the registry, so
the event loop runs each registry call to completion before the next starts.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from fastapi import Depends, FastAPI, Form, HTTPException, Request, status
from fastapi.responses import JSONResponse
from passlib.context import CryptContext
from pydantic import BaseModel
from starlette.middleware.httpsredirect import HTTPSRedirectMiddleware
from starlette.middleware.sessions import SessionMiddleware

from .audit import (
    ACTION_ASSESS,
    ACTION_REJECTED,
    ACTION_SET_RISK_TIER,
    ACTION_UPDATE_CHOSEN_TIER,
    AuditLogWriter,
    get_audit_logger,
    read_audit_entries,
)
from .config import RegistrySettings, load_settings
from .errors import AccessDeniedError, TierRegistryError, ValidationError
from .models import Tier
from .registry import RiskTierRegistry
from .store import FileKeyValueStore, InMemoryKeyValueStore, KeyValueStore

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "TIER_REGISTRY_CONFIG"
APP_FACTORY = "tier_registry.web:app_factory"


class AuthManager:
    """Check dashboard credentials against bcrypt hashes."""

    def __init__(
        self,
        secret_key: str,
        users: Mapping[str, str],
        session_cookie_name: str = "tier_registry_session",
        https_only: bool = True,
    ) -> None:
        if not secret_key:
            raise ValueError("Authentication requires a non-empty secret key.")
        if not users:
            raise ValueError("At least one registry operator must be configured.")
        self.secret_key = secret_key
        self.users = dict(users)
        self.session_cookie_name = session_cookie_name
        self.https_only = https_only
        self._password_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

    def authenticate(self, username: str, password: str) -> bool:
        hashed = self.users.get(username)
        if not hashed:
            return False
        return self._password_context.verify(password, hashed)


class RiskTierPayload(BaseModel):
    score: Any
    tier: Any
    chosen_tier: Any


class AssessmentPayload(BaseModel):
    score: Any
    chosen_tier: Optional[Any] = None


class ChosenTierPayload(BaseModel):
    chosen_tier: Any


def build_registry(settings: RegistrySettings) -> RiskTierRegistry:
    store: KeyValueStore
    if settings.store_path is not None:
        store = FileKeyValueStore(settings.store_path)
    else:
        logger.warning("No store path configured; registry state will not survive restarts")
        store = InMemoryKeyValueStore()
    return RiskTierRegistry(store, thresholds=settings.thresholds)


def _error_status(exc: TierRegistryError) -> int:
    if isinstance(exc, AccessDeniedError):
        return status.HTTP_403_FORBIDDEN
    if isinstance(exc, ValidationError):
        return status.HTTP_400_BAD_REQUEST
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def _parse_limit(value: Optional[str], *, maximum: int = 5000) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        parsed = int(value)
    except (TypeError, ValueError) as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="limit must be an integer") from exc
    if parsed <= 0:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="limit must be greater than zero")
    if parsed > maximum:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"limit cannot exceed {maximum}")
    return parsed


def create_app(
    settings: RegistrySettings,
    *,
    registry: Optional[RiskTierRegistry] = None,
    auth_manager: Optional[AuthManager] = None,
) -> FastAPI:
    if auth_manager is None:
        if settings.auth is None:
            raise ValueError("Registry configuration must include authentication details for the web API.")
        auth_manager = AuthManager(
            settings.auth.secret_key,
            settings.auth.users,
            session_cookie_name=settings.auth.session_cookie_name,
            https_only=settings.auth.https_only,
        )
    app = FastAPI(title="Risk Tier Registry")
    app.state.registry = registry or build_registry(settings)
    app.state.audit_settings = settings.audit
    app.state.audit_logger = get_audit_logger(settings.audit)
    audit_log = logging.getLogger("tier_registry.web.audit")

    if auth_manager.https_only:
        app.add_middleware(HTTPSRedirectMiddleware)
    app.add_middleware(
        SessionMiddleware,
        secret_key=auth_manager.secret_key,
        session_cookie=auth_manager.session_cookie_name,
        https_only=auth_manager.https_only,
        same_site="lax",
    )

    @app.exception_handler(TierRegistryError)
    async def registry_error_handler(request: Request, exc: TierRegistryError) -> JSONResponse:
        return JSONResponse({"detail": str(exc)}, status_code=_error_status(exc))

    def emit_audit(request: Request, action: str, details: Mapping[str, Any]) -> None:
        writer: Optional[AuditLogWriter] = getattr(request.app.state, "audit_logger", None)
        if writer is None:
            return
        actor = request.session.get("user") or "unknown"
        try:
            writer.log(action=action, actor=str(actor), details=dict(details))
        except OSError as exc:
            audit_log.warning("Failed to write audit entry '%s': %s", action, exc)

    def get_registry(request: Request) -> RiskTierRegistry:
        return request.app.state.registry

    def require_user(request: Request) -> str:
        user = request.session.get("user")
        if not user:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)
        return str(user)

    def rejected(request: Request, operation: str, user: str, exc: TierRegistryError) -> HTTPException:
        emit_audit(
            request,
            ACTION_REJECTED,
            {"operation": operation, "user": user, "error": type(exc).__name__, "reason": str(exc)},
        )
        return HTTPException(status_code=_error_status(exc), detail=str(exc))

    @app.post("/login")
    async def login(request: Request, username: str = Form(...), password: str = Form(...)) -> JSONResponse:
        if not auth_manager.authenticate(username, password):
            logger.warning("Rejected login for %s", username, extra={"username": username})
            return JSONResponse(
                {"detail": "Invalid username or password."}, status_code=status.HTTP_401_UNAUTHORIZED
            )
        request.session["user"] = username
        return JSONResponse({"user": username})

    @app.post("/logout")
    async def logout(request: Request) -> JSONResponse:
        request.session.pop("user", None)
        return JSONResponse({"status": "ok"})

    @app.put("/api/users/{user}/risk-tier")
    async def put_risk_tier(
        user: str,
        payload: RiskTierPayload,
        request: Request,
        registry: RiskTierRegistry = Depends(get_registry),
        _: str = Depends(require_user),
    ) -> JSONResponse:
        try:
            registry.set_risk_tier(user, payload.score, payload.tier, payload.chosen_tier)
        except TierRegistryError as exc:
            raise rejected(request, "set_risk_tier", user, exc) from exc
        record = registry.get_risk_tier(user)
        details = record.to_payload() if record else {}
        emit_audit(request, ACTION_SET_RISK_TIER, {"user": user, **details})
        return JSONResponse({"user": user, "record": details})

    @app.post("/api/users/{user}/assessment")
    async def post_assessment(
        user: str,
        payload: AssessmentPayload,
        request: Request,
        registry: RiskTierRegistry = Depends(get_registry),
        _: str = Depends(require_user),
    ) -> JSONResponse:
        try:
            record = registry.assess(user, payload.score, payload.chosen_tier)
        except TierRegistryError as exc:
            raise rejected(request, "assess", user, exc) from exc
        emit_audit(request, ACTION_ASSESS, {"user": user, **record.to_payload()})
        return JSONResponse({"user": user, "record": record.to_payload()})

    @app.get("/api/users/{user}/risk-tier")
    async def get_risk_tier(user: str, registry: RiskTierRegistry = Depends(get_registry)) -> JSONResponse:
        record = registry.get_risk_tier(user)
        if record is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"No risk tier for '{user}'")
        return JSONResponse({"user": user, "record": record.to_payload()})

    @app.get("/api/users/{user}/score")
    async def get_score(user: str, registry: RiskTierRegistry = Depends(get_registry)) -> JSONResponse:
        return JSONResponse({"user": user, "score": registry.get_score(user)})

    @app.get("/api/users/{user}/chosen-tier")
    async def get_chosen_tier(user: str, registry: RiskTierRegistry = Depends(get_registry)) -> JSONResponse:
        return JSONResponse({"user": user, "chosen_tier": registry.get_chosen_tier(user).value})

    @app.put("/api/users/{user}/chosen-tier")
    async def put_chosen_tier(
        user: str,
        payload: ChosenTierPayload,
        request: Request,
        registry: RiskTierRegistry = Depends(get_registry),
        _: str = Depends(require_user),
    ) -> JSONResponse:
        try:
            updated = registry.update_chosen_tier(user, payload.chosen_tier)
        except TierRegistryError as exc:
            raise rejected(request, "update_chosen_tier", user, exc) from exc
        chosen = registry.get_chosen_tier(user).value
        if updated:
            emit_audit(request, ACTION_UPDATE_CHOSEN_TIER, {"user": user, "chosen_tier": chosen})
        return JSONResponse({"user": user, "chosen_tier": chosen, "updated": updated})

    @app.get("/api/users/{user}/access/{tier}")
    async def get_access(user: str, tier: str, registry: RiskTierRegistry = Depends(get_registry)) -> JSONResponse:
        allowed = registry.can_access_tier(user, tier)
        return JSONResponse({"user": user, "tier": Tier.parse(tier).value, "allowed": allowed})

    @app.get("/api/tiers/stats")
    async def get_tier_stats(registry: RiskTierRegistry = Depends(get_registry)) -> JSONResponse:
        stats: Dict[str, int] = {tier.value: count for tier, count in registry.get_tier_stats().items()}
        return JSONResponse(stats)

    @app.get("/api/tiers/classify")
    async def classify(score: int, registry: RiskTierRegistry = Depends(get_registry)) -> JSONResponse:
        return JSONResponse({"score": score, "tier": registry.rules.classify(score).value})

    @app.get("/api/tiers/{tier}/users")
    async def get_tier_users(tier: str, registry: RiskTierRegistry = Depends(get_registry)) -> JSONResponse:
        users = registry.get_tier_users(tier)
        return JSONResponse({"tier": Tier.parse(tier).value, "users": users})

    @app.get("/api/audit")
    async def get_audit(request: Request, _: str = Depends(require_user)) -> JSONResponse:
        audit_settings = request.app.state.audit_settings
        if audit_settings is None or not audit_settings.enabled:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Audit logging is not enabled.")
        params = request.query_params
        entries = read_audit_entries(
            audit_settings.log_path,
            limit=_parse_limit(params.get("limit")),
            action=params.get("action") or None,
            actor=params.get("actor") or None,
        )
        return JSONResponse({"entries": entries})

    @app.get("/api/metrics")
    async def get_metrics(
        registry: RiskTierRegistry = Depends(get_registry), _: str = Depends(require_user)
    ) -> JSONResponse:
        return JSONResponse(registry.metrics.snapshot())

    return app


def app_factory() -> FastAPI:
    """Build the app from ``TIER_REGISTRY_CONFIG`` for uvicorn's reloading workers."""

    config_path = os.environ.get(CONFIG_ENV_VAR)
    if config_path:
        settings = load_settings(Path(config_path))
    else:
        settings = RegistrySettings.from_environment()
    return create_app(settings)
