"""Command line entry point for the risk tier registry HTTP API."""

from __future__ import annotations

import argparse
import logging
import os
from pathlib import Path
from typing import TYPE_CHECKING, Any, Optional

from .audit import get_audit_logger
from .config import RegistrySettings, load_settings
from .logging_setup import configure_logging

if TYPE_CHECKING:  # pragma: no cover - used only for type hints
    import uvicorn

logger = logging.getLogger(__name__)


def _import_uvicorn() -> "uvicorn":
    """Import :mod:`uvicorn` with a helpful error message when missing."""

    try:
        import uvicorn  # type: ignore[import]
    except ModuleNotFoundError as exc:  # pragma: no cover - depends on runtime environment
        raise ModuleNotFoundError(
            "The 'uvicorn' package is required to run the registry web server. "
            "Install tier-registry with its declared dependencies or add uvicorn to your environment."
        ) from exc
    return uvicorn


def _uvicorn_log_level(settings: RegistrySettings) -> str:
    if settings.debug_level <= 0:
        return "warning"
    if settings.debug_level == 1:
        return "info"
    return "debug"


def _apply_https_only_policy(settings: RegistrySettings, *, ssl_enabled: bool) -> bool:
    """Keep HTTPS-only sessions only when TLS is actually served."""

    auth = settings.auth
    if auth is None or not auth.https_only:
        return False
    if ssl_enabled:
        return True
    logger.warning(
        "Authentication is configured for HTTPS-only sessions but no TLS certificate/key "
        "were supplied. Disabling HTTPS enforcement. Either launch the server with "
        "--ssl-certfile/--ssl-keyfile or set 'auth.https_only' to false for development.",
    )
    auth.https_only = False
    return False


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Serve the risk tier registry API")
    parser.add_argument("--config", type=Path, help="Path to the registry JSON configuration file")
    parser.add_argument("--host", default="127.0.0.1", help="Host address for the web server")
    parser.add_argument("--port", type=int, default=8000, help="Port for the web server")
    parser.add_argument("--ssl-certfile", type=Path, help="Path to the TLS certificate file")
    parser.add_argument("--ssl-keyfile", type=Path, help="Path to the TLS private key file")
    parser.add_argument("--reload", action="store_true", help="Enable autoreload (development only)")
    return parser


def main(argv: Optional[list[str]] = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.config is not None:
        settings = load_settings(args.config)
    else:
        settings = RegistrySettings.from_environment()
    configure_logging(debug=settings.debug_level)

    if bool(args.ssl_certfile) ^ bool(args.ssl_keyfile):
        parser.error("Both --ssl-certfile and --ssl-keyfile must be provided to enable HTTPS.")
    ssl_certfile = str(args.ssl_certfile) if args.ssl_certfile else None
    ssl_keyfile = str(args.ssl_keyfile) if args.ssl_keyfile else None
    _apply_https_only_policy(settings, ssl_enabled=bool(ssl_certfile and ssl_keyfile))

    audit_logger = get_audit_logger(settings.audit)
    if audit_logger:
        audit_logger.log(
            action="web_server.start",
            actor="system",
            details={"host": args.host, "port": args.port, "reload": args.reload},
        )

    # imported lazily so --help works without the web stack
    from .web import APP_FACTORY, CONFIG_ENV_VAR, create_app

    try:
        app = create_app(settings)
    except ValueError as exc:
        parser.error(str(exc))

    uvicorn = _import_uvicorn()
    if args.reload:
        # Reloading workers rebuild the app from an import string, so hand them
        # the same configuration through the environment.
        if settings.config_path is not None:
            os.environ[CONFIG_ENV_VAR] = str(settings.config_path)
        if settings.auth is not None and not settings.auth.https_only:
            os.environ["TIER_REGISTRY_HTTPS_ONLY"] = "false"
        target: Any = APP_FACTORY
    else:
        target = app
    uvicorn.run(
        target,
        factory=args.reload,
        reload=args.reload,
        host=args.host,
        port=args.port,
        log_level=_uvicorn_log_level(settings),
        ssl_certfile=ssl_certfile,
        ssl_keyfile=ssl_keyfile,
    )


if __name__ == "__main__":
    main()
