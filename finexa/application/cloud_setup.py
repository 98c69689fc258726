from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from finexa.application.sync_registry import remote_schema
from finexa.core.errors import ValidationError
from finexa.domain.models import DEFAULT_SYNC_INTERVAL_SECONDS, CloudConfig
from finexa.domain.ports import CloudConfigStorePort, SchemaAwareRemoteStorePort
from finexa.domain.sync_errors import RemoteAuthError

logger = logging.getLogger(__name__)

RemoteStoreFactory = Callable[[CloudConfig], SchemaAwareRemoteStorePort]


@dataclass(frozen=True)
class CloudConnectionResult:
    spreadsheet_id: str
    schema_actions: list[str]


class CloudSetupService:
    """Saves the cloud configuration and prepares the remote tables."""

    def __init__(
        self,
        config_store: CloudConfigStorePort,
        remote_store_factory: RemoteStoreFactory,
        on_remote_ready: Callable[[SchemaAwareRemoteStorePort], None] | None = None,
    ) -> None:
        self._config_store = config_store
        self._remote_store_factory = remote_store_factory
        self._on_remote_ready = on_remote_ready

    def get_config(self) -> CloudConfig | None:
        return self._config_store.load()

    def save_config(
        self,
        spreadsheet_input: str,
        credentials_path: str | None = None,
        *,
        owner_id: str | None = None,
        auto_sync: bool | None = None,
        sync_interval_seconds: int | None = None,
    ) -> CloudConfig:
        current = self._config_store.load()
        config = CloudConfig(
            spreadsheet_id=self._normalize_spreadsheet_id(spreadsheet_input),
            credentials_path=credentials_path or (current.credentials_path if current else ""),
            device_id=current.device_id if current else "",
            owner_id=owner_id if owner_id is not None else (current.owner_id if current else ""),
            auto_sync=auto_sync if auto_sync is not None else (current.auto_sync if current else False),
            sync_interval_seconds=sync_interval_seconds
            or (current.sync_interval_seconds if current else DEFAULT_SYNC_INTERVAL_SECONDS),
        )
        if not config.is_complete:
            raise ValidationError("Both a spreadsheet id and a credentials file are required.")
        if config.sync_interval_seconds <= 0:
            raise ValidationError("sync_interval_seconds must be positive")
        saved = self._config_store.save(config)
        logger.info("Cloud configuration saved.")
        return saved

    async def connect(self) -> CloudConnectionResult:
        config = self._config_store.load()
        if config is None or not config.is_complete:
            raise ValidationError("Cloud sync is not configured.")
        self._validate_credentials_file(config.credentials_path)
        remote = self._remote_store_factory(config)
        actions = await remote.ensure_schema(remote_schema())
        if self._on_remote_ready is not None:
            self._on_remote_ready(remote)
        logger.info("Connected to spreadsheet %s schema_actions=%s", config.spreadsheet_id, actions)
        return CloudConnectionResult(spreadsheet_id=config.spreadsheet_id, schema_actions=actions)

    @staticmethod
    def _normalize_spreadsheet_id(value: str) -> str:
        raw = (value or "").strip()
        if "docs.google.com" in raw:
            match = re.search(r"/d/([a-zA-Z0-9-_]+)", raw)
            if match:
                return match.group(1)
        return raw

    @staticmethod
    def _validate_credentials_file(path: str) -> None:
        credentials_path = Path(path)
        if not credentials_path.exists():
            raise RemoteAuthError(f"credentials.json not found at {credentials_path}.")
