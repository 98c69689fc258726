from __future__ import annotations

from typing import Any, Callable, Protocol, Sequence

from finexa.domain.models import CloudConfig
from finexa.domain.sync_models import SyncContext

Row = dict[str, Any]


class LocalRecordStorePort(Protocol):
    def get(self, dataset_key: str, default: Any = None) -> Any:
        ...

    def set(self, dataset_key: str, records: Any) -> None:
        ...

    def remove(self, key: str) -> None:
        ...

    def clear(self) -> None:
        ...

    def export_all(self) -> str:
        ...

    def import_all(self, snapshot: str) -> bool:
        ...


class RemoteTablePort(Protocol):
    async def select(self, owner_id: str) -> list[Row]:
        ...

    async def upsert(self, rows: Sequence[Row], *, on_conflict: str = "id") -> None:
        ...

    async def update(self, row_id: str, patch: Row) -> None:
        ...

    async def delete(self, row_id: str) -> None:
        ...


class RemoteStorePort(Protocol):
    def table(self, name: str) -> RemoteTablePort:
        ...


class SessionPort(Protocol):
    def current_context(self) -> SyncContext:
        ...

    def subscribe(self, listener: Callable[[SyncContext], None]) -> Callable[[], None]:
        ...


class SyncNotifierPort(Protocol):
    def info(self, message: str) -> None:
        ...

    def success(self, message: str) -> None:
        ...

    def error(self, message: str) -> None:
        ...


class CloudConfigStorePort(Protocol):
    def load(self) -> CloudConfig | None:
        ...

    def save(self, config: CloudConfig) -> CloudConfig:
        ...


class SchemaAwareRemoteStorePort(RemoteStorePort, Protocol):
    async def ensure_schema(self, schema: dict[str, list[str]]) -> list[str]:
        ...
