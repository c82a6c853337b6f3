r"""Unit tests for structured logging and correlation IDs."""

from __future__ import annotations

import asyncio
import json
import logging
from io import StringIO

import pytest

from apiary.utils.structured_logging import (
    StructuredFormatter,
    clear_correlation_id,
    correlation_scope,
    get_correlation_id,
    log_structured,
    set_correlation_id,
)


@pytest.fixture
def stream_logger() -> tuple[logging.Logger, StringIO]:
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    logger = logging.getLogger("apiary.tests.structured")
    logger.handlers = [handler]
    logger.setLevel(logging.DEBUG)
    logger.propagate = False
    return logger, stream


####################################
#     Tests for correlation ID     #
####################################


def test_correlation_id_default_none() -> None:
    assert get_correlation_id() is None


def test_set_and_clear_correlation_id() -> None:
    set_correlation_id("req-1")
    assert get_correlation_id() == "req-1"
    clear_correlation_id()
    assert get_correlation_id() is None


def test_correlation_scope_generates_and_restores() -> None:
    with correlation_scope() as cid:
        assert get_correlation_id() == cid
        assert len(cid) == 12
    assert get_correlation_id() is None


def test_correlation_scope_keeps_active_id() -> None:
    """Test that an ID set by the caller wins over a generated one."""
    set_correlation_id("outer")
    with correlation_scope() as cid:
        assert cid == "outer"
    assert get_correlation_id() == "outer"


def test_correlation_scope_explicit_id() -> None:
    with correlation_scope("abc") as cid:
        assert cid == "abc"


@pytest.mark.asyncio
async def test_correlation_id_is_task_local() -> None:
    """Test that concurrent tasks do not share their correlation IDs."""

    async def worker(name: str) -> str | None:
        with correlation_scope(name):
            await asyncio.sleep(0)
            return get_correlation_id()

    assert await asyncio.gather(worker("a"), worker("b")) == ["a", "b"]


#########################################
#     Tests for StructuredFormatter     #
#########################################


def test_structured_formatter_outputs_json(stream_logger: tuple[logging.Logger, StringIO]) -> None:
    logger, stream = stream_logger
    logger.info("retrying", extra={"status": 429, "delay_ms": 200})

    data = json.loads(stream.getvalue())
    assert data["message"] == "retrying"
    assert data["level"] == "INFO"
    assert data["logger"] == "apiary.tests.structured"
    assert data["status"] == 429
    assert data["delay_ms"] == 200
    assert data["timestamp"].endswith("Z")
    assert "correlation_id" not in data


def test_structured_formatter_includes_correlation_id(
    stream_logger: tuple[logging.Logger, StringIO],
) -> None:
    logger, stream = stream_logger
    with correlation_scope("cid-1"):
        logger.info("attempt")

    assert json.loads(stream.getvalue())["correlation_id"] == "cid-1"


def test_structured_formatter_renders_non_json_values(
    stream_logger: tuple[logging.Logger, StringIO],
) -> None:
    logger, stream = stream_logger
    logger.info("with object", extra={"error": ValueError("boom")})

    assert json.loads(stream.getvalue())["error"] == "boom"


def test_structured_formatter_exception(stream_logger: tuple[logging.Logger, StringIO]) -> None:
    logger, stream = stream_logger
    try:
        msg = "boom"
        raise RuntimeError(msg)
    except RuntimeError:
        logger.exception("failed")

    assert "RuntimeError: boom" in json.loads(stream.getvalue())["exception"]


####################################
#     Tests for log_structured     #
####################################


def test_log_structured_adds_fields(caplog: pytest.LogCaptureFixture) -> None:
    logger = logging.getLogger("apiary.tests.log_structured")
    with caplog.at_level(logging.DEBUG, logger="apiary.tests.log_structured"):
        log_structured(logger, logging.DEBUG, "retry", event="retry", attempt=2)

    record = caplog.records[-1]
    assert record.getMessage() == "retry"
    assert record.event == "retry"
    assert record.attempt == 2


def test_log_structured_skips_disabled_level(caplog: pytest.LogCaptureFixture) -> None:
    logger = logging.getLogger("apiary.tests.log_structured_disabled")
    with caplog.at_level(logging.WARNING, logger="apiary.tests.log_structured_disabled"):
        log_structured(logger, logging.DEBUG, "hidden", event="attempt")

    assert not caplog.records
