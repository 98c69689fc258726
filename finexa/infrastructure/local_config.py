from __future__ import annotations

import json
import logging
import os
import uuid
from pathlib import Path
from typing import Any

from finexa.domain.coercion import coerce_int
from finexa.domain.models import DEFAULT_SYNC_INTERVAL_SECONDS, CloudConfig
from finexa.domain.ports import CloudConfigStorePort

logger = logging.getLogger(__name__)


def resolve_appdata_dir() -> Path:
    env_dir = os.environ.get("LOCALAPPDATA")
    if env_dir:
        base_dir = Path(env_dir)
    else:
        base_dir = Path.home() / ".local" / "share"
    return base_dir / "Finexa"


class CloudConfigStore(CloudConfigStorePort):
    def __init__(self, base_dir: Path | None = None) -> None:
        self._base_dir = base_dir or resolve_appdata_dir()
        self._config_path = self._base_dir / "config.json"

    @property
    def config_path(self) -> Path:
        return self._config_path

    def load(self) -> CloudConfig | None:
        if not self._config_path.exists():
            return None
        try:
            payload = json.loads(self._config_path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            logger.exception("Could not read config.json: %s", exc)
            return None
        if not isinstance(payload, dict):
            logger.warning("config.json ignored: expected an object")
            return None
        spreadsheet_id = str(payload.get("spreadsheet_id", "")).strip()
        credentials_path = str(payload.get("credentials_path", "")).strip()
        device_id = str(payload.get("device_id", "")).strip()
        if not device_id:
            device_id = self._generate_device_id()
            payload["device_id"] = device_id
            self._write_payload(payload)
        if not spreadsheet_id and not credentials_path:
            return None
        return CloudConfig(
            spreadsheet_id=spreadsheet_id,
            credentials_path=credentials_path,
            device_id=device_id,
            owner_id=str(payload.get("owner_id", "")).strip(),
            auto_sync=bool(payload.get("auto_sync", False)),
            sync_interval_seconds=max(
                1, coerce_int(payload.get("sync_interval_seconds"), DEFAULT_SYNC_INTERVAL_SECONDS)
            ),
        )

    def save(self, config: CloudConfig) -> CloudConfig:
        payload: dict[str, Any] = {
            "spreadsheet_id": config.spreadsheet_id,
            "credentials_path": config.credentials_path,
            "device_id": config.device_id or self._generate_device_id(),
            "owner_id": config.owner_id,
            "auto_sync": config.auto_sync,
            "sync_interval_seconds": config.sync_interval_seconds,
        }
        self._write_payload(payload)
        return CloudConfig(
            spreadsheet_id=payload["spreadsheet_id"],
            credentials_path=payload["credentials_path"],
            device_id=payload["device_id"],
            owner_id=payload["owner_id"],
            auto_sync=payload["auto_sync"],
            sync_interval_seconds=payload["sync_interval_seconds"],
        )

    def _write_payload(self, payload: dict[str, Any]) -> None:
        self._config_path.parent.mkdir(parents=True, exist_ok=True)
        self._config_path.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")

    @staticmethod
    def _generate_device_id() -> str:
        return str(uuid.uuid4())
