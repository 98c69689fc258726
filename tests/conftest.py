from __future__ import annotations

import asyncio
import importlib
import os
import platform
import sqlite3
import sys
from pathlib import Path
from typing import Any, Sequence

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def _is_linux_headless() -> bool:
    if platform.system() != "Linux":
        return False
    return not (os.environ.get("DISPLAY") or os.environ.get("WAYLAND_DISPLAY"))


if _is_linux_headless():
    os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")
    os.environ.setdefault("QT_OPENGL", "software")


_UI_BACKEND_ERROR: str | None = None


def _detect_ui_backend_issue() -> str | None:
    try:
        importlib.import_module("PySide6")
        importlib.import_module("PySide6.QtCore")
        return None
    except Exception as exc:  # pragma: no cover - depends on the host
        return f"PySide6/Qt not available for UI tests: {exc}"


def pytest_configure(config: pytest.Config) -> None:
    global _UI_BACKEND_ERROR
    config.addinivalue_line("markers", "ui: PySide6 interface tests")
    _UI_BACKEND_ERROR = _detect_ui_backend_issue()


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    skip_ui = None
    if _UI_BACKEND_ERROR is not None:
        skip_ui = pytest.mark.skip(reason=_UI_BACKEND_ERROR)

    for item in items:
        if "tests/ui/" in item.nodeid:
            item.add_marker(pytest.mark.ui)
        if skip_ui is not None and "ui" in item.keywords:
            item.add_marker(skip_ui)


from finexa.application.session import SessionManager
from finexa.application.sync_orchestrator import SyncOrchestrator
from finexa.application.sync_status import SyncStatusModel
from finexa.infrastructure.local_store_sqlite import SQLiteLocalRecordStore
from finexa.infrastructure.migrations import run_migrations


class FakeRemoteTable:
    """In-memory remote table keyed by ``id``."""

    def __init__(self, name: str) -> None:
        self.name = name
        self.rows: dict[str, dict[str, Any]] = {}
        self.select_error: Exception | None = None
        self.upsert_error: Exception | None = None
        self.upsert_calls: list[list[dict[str, Any]]] = []
        self.select_calls = 0
        self.before_upsert = None
        self.yield_on_select = False

    async def select(self, owner_id: str) -> list[dict[str, Any]]:
        self.select_calls += 1
        if self.yield_on_select:
            await asyncio.sleep(0)
        if self.select_error is not None:
            raise self.select_error
        return [dict(row) for row in self.rows.values() if row.get("user_id") == owner_id]

    async def upsert(self, rows: Sequence[dict[str, Any]], *, on_conflict: str = "id") -> None:
        if self.before_upsert is not None:
            self.before_upsert()
        if self.upsert_error is not None:
            raise self.upsert_error
        self.upsert_calls.append([dict(row) for row in rows])
        for row in rows:
            self.rows[str(row[on_conflict])] = dict(row)

    async def update(self, row_id: str, patch: dict[str, Any]) -> None:
        self.rows[row_id] = {**self.rows[row_id], **patch}

    async def delete(self, row_id: str) -> None:
        self.rows.pop(row_id, None)


class FakeRemoteStore:
    def __init__(self) -> None:
        self.tables: dict[str, FakeRemoteTable] = {}
        self.ensured: list[dict[str, list[str]]] = []

    def table(self, name: str) -> FakeRemoteTable:
        if name not in self.tables:
            self.tables[name] = FakeRemoteTable(name)
        return self.tables[name]

    async def ensure_schema(self, schema: dict[str, list[str]]) -> list[str]:
        self.ensured.append(schema)
        return [name for name in schema if name not in self.tables]


class RecordingNotifier:
    def __init__(self) -> None:
        self.messages: list[tuple[str, str]] = []

    def info(self, message: str) -> None:
        self.messages.append(("info", message))

    def success(self, message: str) -> None:
        self.messages.append(("success", message))

    def error(self, message: str) -> None:
        self.messages.append(("error", message))


class Clock:
    def __init__(self, start: int = 0) -> None:
        self.tick = start

    def __call__(self) -> str:
        self.tick += 1
        return f"2025-01-01T00:00:{self.tick:02d}Z"


@pytest.fixture
def connection() -> sqlite3.Connection:
    conn = sqlite3.connect(":memory:")
    conn.row_factory = sqlite3.Row
    run_migrations(conn)
    yield conn
    conn.close()


@pytest.fixture
def store(connection: sqlite3.Connection) -> SQLiteLocalRecordStore:
    return SQLiteLocalRecordStore(connection, clock=lambda: "2025-01-01T00:00:00Z")


@pytest.fixture
def remote() -> FakeRemoteStore:
    return FakeRemoteStore()


@pytest.fixture
def status() -> SyncStatusModel:
    return SyncStatusModel()


@pytest.fixture
def clock() -> Clock:
    return Clock()


@pytest.fixture
def orchestrator(store, status, remote, clock) -> SyncOrchestrator:
    return SyncOrchestrator(store, status, remote, clock=clock)


@pytest.fixture
def session(store) -> SessionManager:
    manager = SessionManager(store, owner_id="owner-1")
    manager.switch_to_cloud_mode()
    return manager


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()
