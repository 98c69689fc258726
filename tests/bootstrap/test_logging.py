from __future__ import annotations

import json
import logging
import sys

from finexa.bootstrap.logging import (
    CRASH_LOG_NAME,
    MAIN_LOG_NAME,
    OPERATIONAL_ERROR_LOG_NAME,
    configure_logging,
    install_exception_hook,
    log_operational_error,
)
from finexa.core.observability import OperationContext


def _read_events(path) -> list[dict]:
    return [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines() if line]


def test_configure_logging_installs_three_rotating_handlers(tmp_path) -> None:
    configure_logging(tmp_path, max_bytes=4096, backup_count=2)

    names = sorted(getattr(handler, "baseFilename", "").rsplit("/", 1)[-1] for handler in logging.getLogger().handlers)

    assert names == sorted([MAIN_LOG_NAME, OPERATIONAL_ERROR_LOG_NAME, CRASH_LOG_NAME])


def test_events_are_json_lines_with_correlation_id(tmp_path) -> None:
    configure_logging(tmp_path, max_bytes=4096, backup_count=2)
    logger = logging.getLogger("tests.logging")

    with OperationContext("unit") as operation:
        logger.info("sync_started")

    event = _read_events(tmp_path / MAIN_LOG_NAME)[-1]
    assert event["message"] == "sync_started"
    assert event["level"] == "INFO"
    assert event["correlation_id"] == operation.correlation_id


def test_operational_errors_go_to_their_own_file(tmp_path) -> None:
    configure_logging(tmp_path, max_bytes=4096, backup_count=2)
    logger = logging.getLogger("tests.logging")

    try:
        raise ValueError("remote broke")
    except ValueError as exc:
        log_operational_error(logger, "Sync failed", exc=exc, extra={"dataset": "products"})
    logger.critical("crash")

    events = _read_events(tmp_path / OPERATIONAL_ERROR_LOG_NAME)
    assert [event["message"] for event in events] == ["Sync failed"]
    assert events[0]["extra"] == {"dataset": "products"}
    assert "ValueError: remote broke" in events[0]["exc_info"]
    assert [event["message"] for event in _read_events(tmp_path / CRASH_LOG_NAME)] == ["crash"]


def test_exception_hook_writes_crash_log(tmp_path, monkeypatch) -> None:
    configure_logging(tmp_path, max_bytes=4096, backup_count=2)
    monkeypatch.setattr(sys, "excepthook", sys.excepthook)
    install_exception_hook(tmp_path)

    try:
        raise RuntimeError("unhandled")
    except RuntimeError:
        sys.excepthook(*sys.exc_info())

    events = _read_events(tmp_path / CRASH_LOG_NAME)
    assert events[-1]["level"] == "CRITICAL"
    assert "RuntimeError: unhandled" in events[-1]["exc_info"]
