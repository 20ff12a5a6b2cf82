"""Process-wide logging configuration with credential redaction."""

from __future__ import annotations

import logging
import re
import sys
from typing import Optional, TextIO

LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
REDACTED = "***REDACTED***"

_SENSITIVE_VALUE = re.compile(
    r"""(['"]?[\w-]*(?:password|secret|token|session|cookie)[\w-]*['"]?\s*[:=]\s*['"]?)([^'"\s,}&;]+)""",
    re.IGNORECASE,
)

_HANDLER_MARKER = "_tier_registry_handler"
_factory_installed = False


def redact(message: str) -> str:
    return _SENSITIVE_VALUE.sub(lambda match: match.group(1) + REDACTED, message)


def _install_redacting_record_factory() -> None:
    """Redact at record creation so handlers configured elsewhere never see secrets."""

    global _factory_installed
    if _factory_installed:
        return
    previous_factory = logging.getLogRecordFactory()

    def factory(*args, **kwargs) -> logging.LogRecord:
        record = previous_factory(*args, **kwargs)
        try:
            message = record.getMessage()
        except Exception:
            return record
        cleaned = redact(message)
        if cleaned != message:
            record.msg = cleaned
            record.args = ()
        return record

    logging.setLogRecordFactory(factory)
    _factory_installed = True


def debug_to_logging_level(debug_level: int) -> int:
    if debug_level <= 0:
        return logging.WARNING
    if debug_level == 1:
        return logging.INFO
    return logging.DEBUG


def configure_logging(debug: int = 1, stream_target: Optional[TextIO] = None) -> logging.Logger:
    """Configure the root logger. Safe to call repeatedly; the previous handler is replaced."""

    _install_redacting_record_factory()
    level = debug_to_logging_level(debug)
    root_logger = logging.getLogger()
    for handler in list(root_logger.handlers):
        if getattr(handler, _HANDLER_MARKER, False):
            root_logger.removeHandler(handler)

    handler = logging.StreamHandler(stream_target or sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    setattr(handler, _HANDLER_MARKER, True)
    root_logger.addHandler(handler)
    root_logger.setLevel(level)
    logging.getLogger("tier_registry").setLevel(level)
    return root_logger
