from __future__ import annotations

import logging

from finexa.core.observability import OperationContext, generate_correlation_id, get_correlation_id, log_event


def test_operation_context_binds_and_restores_correlation_id() -> None:
    assert get_correlation_id() is None

    with OperationContext("sync_cycle") as operation:
        assert get_correlation_id() == operation.correlation_id
        assert len(operation.correlation_id) == 36

    assert get_correlation_id() is None


def test_log_event_returns_structured_event() -> None:
    event = log_event(logging.getLogger("tests.observability"), "sync_finished", {"ok": True}, "cid-1")

    assert event["event"] == "sync_finished"
    assert event["correlation_id"] == "cid-1"
    assert event["payload"] == {"ok": True}
    assert "timestamp" in event


def test_generate_correlation_id_is_unique() -> None:
    assert generate_correlation_id() != generate_correlation_id()
