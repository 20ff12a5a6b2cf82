import io
import logging

from tier_registry import logging_setup


def _configure_logging_to_stream() -> tuple[logging.Logger, io.StringIO]:
    stream = io.StringIO()
    logging_setup.configure_logging(debug=2, stream_target=stream)
    logger = logging.getLogger("test_logging")
    logger.setLevel(logging.DEBUG)
    return logger, stream


def test_sensitive_data_is_redacted_from_logs() -> None:
    logger, stream = _configure_logging_to_stream()

    logger.debug("Login form: %s", {"username": "ops", "password": "hunter2", "secret_key": "s3cr3t"})
    logger.debug("Cookie header tier_registry_session=abcdef1234567890")

    output = stream.getvalue()

    assert "hunter2" not in output
    assert "s3cr3t" not in output
    assert "abcdef1234567890" not in output
    assert "'username': 'ops'" in output
    assert output.count("***REDACTED***") >= 3


def test_non_sensitive_messages_remain_intact() -> None:
    logger, stream = _configure_logging_to_stream()

    logger.info("Stored risk tier for %s", "alice")

    assert "Stored risk tier for alice" in stream.getvalue()


def test_redaction_applies_to_external_handlers() -> None:
    stream = io.StringIO()
    logging_setup.configure_logging(debug=2, stream_target=io.StringIO())

    handler = logging.StreamHandler(stream)
    handler.setFormatter(logging.Formatter("%(message)s"))
    external_logger = logging.getLogger("external.http")
    external_logger.handlers = [handler]
    external_logger.propagate = False
    external_logger.setLevel(logging.DEBUG)

    external_logger.debug("payload %s", {"token": "leaky"})

    output = stream.getvalue()
    assert "leaky" not in output
    assert "***REDACTED***" in output


def test_debug_level_mapping() -> None:
    assert logging_setup.debug_to_logging_level(0) == logging.WARNING
    assert logging_setup.debug_to_logging_level(1) == logging.INFO
    assert logging_setup.debug_to_logging_level(3) == logging.DEBUG


def test_reconfiguring_replaces_handler() -> None:
    logging_setup.configure_logging(debug=1, stream_target=io.StringIO())
    logging_setup.configure_logging(debug=1, stream_target=io.StringIO())

    marked = [h for h in logging.getLogger().handlers if getattr(h, "_tier_registry_handler", False)]
    assert len(marked) == 1
