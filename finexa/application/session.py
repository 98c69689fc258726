from __future__ import annotations

import logging
from typing import Callable

from finexa.core.errors import ValidationError
from finexa.domain.ports import LocalRecordStorePort
from finexa.domain.sync_models import SyncContext

logger = logging.getLogger(__name__)

CLOUD_MODE_KEY = "cloudMode"

SessionListener = Callable[[SyncContext], None]


class SessionManager:
    """Who is signed in and whether the app runs in cloud mode.

    The cloud-mode flag survives restarts through the local store; the owner
    id only lives as long as the process.
    """

    def __init__(self, store: LocalRecordStorePort, *, owner_id: str | None = None) -> None:
        self._store = store
        self._owner_id = (owner_id or "").strip() or None
        self._listeners: list[SessionListener] = []

    @property
    def owner_id(self) -> str | None:
        return self._owner_id

    @property
    def is_cloud_mode(self) -> bool:
        return self._store.get(CLOUD_MODE_KEY, False) is True

    def current_context(self) -> SyncContext:
        return SyncContext(owner_id=self._owner_id, is_cloud_mode=self.is_cloud_mode)

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def sign_in(self, owner_id: str) -> SyncContext:
        clean = (owner_id or "").strip()
        if not clean:
            raise ValidationError("owner_id is required to sign in")
        self._owner_id = clean
        logger.info("session_signed_in")
        return self._changed()

    def sign_out(self) -> SyncContext:
        self._owner_id = None
        logger.info("session_signed_out")
        return self._changed()

    def switch_to_cloud_mode(self) -> SyncContext:
        self._store.set(CLOUD_MODE_KEY, True)
        return self._changed()

    def switch_to_local_mode(self) -> SyncContext:
        self._store.set(CLOUD_MODE_KEY, False)
        return self._changed()

    def _changed(self) -> SyncContext:
        context = self.current_context()
        for listener in list(self._listeners):
            try:
                listener(context)
            except Exception:
                logger.exception("session_listener_failed")
        return context
