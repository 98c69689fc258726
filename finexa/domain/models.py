from __future__ import annotations

from dataclasses import dataclass

DEFAULT_SYNC_INTERVAL_SECONDS = 300


@dataclass(frozen=True)
class CloudConfig:
    spreadsheet_id: str
    credentials_path: str
    device_id: str
    owner_id: str = ""
    auto_sync: bool = False
    sync_interval_seconds: int = DEFAULT_SYNC_INTERVAL_SECONDS

    @property
    def is_complete(self) -> bool:
        return bool(self.spreadsheet_id.strip() and self.credentials_path.strip())
