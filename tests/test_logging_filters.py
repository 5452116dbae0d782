"""Tests for sensitive data filtering and JSON formatting in logs."""

from __future__ import annotations

import json
import logging
from io import StringIO

import pytest

from throttle.core.config import LogSettings
from throttle.core.logging import (
    JsonFormatter,
    RequestIdFilter,
    SensitiveDataFilter,
    clear_request_id,
    configure_logging,
    hash_key,
    set_request_id,
)


@pytest.fixture
def captured() -> tuple[logging.Logger, StringIO]:
    logger = logging.getLogger("test_redaction")
    logger.setLevel(logging.INFO)
    logger.handlers.clear()
    logger.propagate = False

    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.addFilter(RequestIdFilter())
    handler.addFilter(SensitiveDataFilter())
    handler.setFormatter(JsonFormatter())
    logger.addHandler(handler)
    return logger, stream


def test_redacts_credentials(captured):
    logger, stream = captured

    logger.info(
        "test_event",
        extra={
            "api_key": "sk-secret-123",
            "authorization": "Bearer abc",
            "safe_field": "visible",
        },
    )

    output = stream.getvalue()
    assert "sk-secret-123" not in output
    assert "Bearer abc" not in output
    assert "[REDACTED]" in output
    assert "visible" in output


def test_redacts_raw_limiter_keys_and_client_identity(captured):
    logger, stream = captured

    logger.warning(
        "rate_limit.exceeded",
        extra={
            "limiter_key": "otp:client:+919812345678",
            "client_host": "203.0.113.9",
            "key_hash": hash_key("otp:client:+919812345678"),
            "retry_after_ms": 900,
        },
    )

    payload = json.loads(stream.getvalue())
    assert "+919812345678" not in stream.getvalue()
    assert "203.0.113.9" not in stream.getvalue()
    assert payload["key_hash"] == hash_key("otp:client:+919812345678")
    assert payload["retry_after_ms"] == 900


def test_redacts_nested_headers(captured):
    logger, stream = captured

    logger.info(
        "nested_event",
        extra={
            "headers": {"x-client-id": "alice", "user-agent": "pytest"},
            "safe_data": {"count": 5},
        },
    )

    output = stream.getvalue()
    assert "alice" not in output
    assert "pytest" in output
    assert '"count": 5' in output


def test_request_id_from_context_is_attached(captured):
    logger, stream = captured

    set_request_id("req-123")
    try:
        logger.info("with_context")
    finally:
        clear_request_id()

    assert json.loads(stream.getvalue())["request_id"] == "req-123"


def test_hash_key_is_stable_and_short():
    assert hash_key("ip:1.2.3.4") == hash_key("ip:1.2.3.4")
    assert hash_key("ip:1.2.3.4") != hash_key("ip:1.2.3.5")
    assert len(hash_key("anything")) == 16


def test_configure_logging_writes_to_rotating_file(tmp_path):
    log_file = tmp_path / "logs" / "throttle.log"
    root = logging.getLogger()
    previous_handlers = list(root.handlers)
    previous_level = root.level

    try:
        configure_logging(
            LogSettings(output="file", file_path=str(log_file), level="INFO", format="json")
        )
        logging.getLogger("throttle.test").info("bucket_store.swept", extra={"evicted": 2})
        for handler in root.handlers:
            handler.flush()
    finally:
        for handler in root.handlers:
            handler.close()
        root.handlers[:] = previous_handlers
        root.setLevel(previous_level)

    payload = json.loads(log_file.read_text().strip())
    assert payload["message"] == "bucket_store.swept"
    assert payload["evicted"] == 2
    assert payload["level"] == "info"
