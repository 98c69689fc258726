from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, ClassVar, Mapping, TypeVar, Union

from finexa.domain.coercion import coerce_float, coerce_int, compact, optional_text, text_or_default
from finexa.domain.sync_errors import RecordShapeError

SYNC_META_KEYS = frozenset({"synced_at", "last_synced_at", "user_id"})


@dataclass(frozen=True)
class LocalOnly:
    """Created on this device and never pushed."""

    is_pending: ClassVar[bool] = True


@dataclass(frozen=True)
class PendingPush:
    """Pushed once, edited locally afterwards."""

    last_synced_at: str
    is_pending: ClassVar[bool] = True


@dataclass(frozen=True)
class Synced:
    at: str
    is_pending: ClassVar[bool] = False


SyncMark = Union[LocalOnly, PendingPush, Synced]


def sync_mark_from_local(raw: Mapping[str, Any]) -> SyncMark:
    synced_at = optional_text(raw.get("synced_at"))
    if synced_at:
        return Synced(at=synced_at)
    last_synced_at = optional_text(raw.get("last_synced_at"))
    if last_synced_at:
        return PendingPush(last_synced_at=last_synced_at)
    return LocalOnly()


def sync_mark_to_local(mark: SyncMark) -> dict[str, Any]:
    if isinstance(mark, Synced):
        return {"synced_at": mark.at}
    if isinstance(mark, PendingPush):
        return {"last_synced_at": mark.last_synced_at}
    return {}


def mark_edited(mark: SyncMark) -> SyncMark:
    if isinstance(mark, Synced):
        return PendingPush(last_synced_at=mark.at)
    return mark


def is_pending_raw(raw: Any) -> bool:
    if not isinstance(raw, Mapping):
        return False
    return not optional_text(raw.get("synced_at"))


def require_id(raw: Mapping[str, Any]) -> str:
    if not isinstance(raw, Mapping):
        raise RecordShapeError(f"Record must be an object, got {type(raw).__name__}")
    record_id = optional_text(raw.get("id"))
    if record_id is None:
        raise RecordShapeError("Record without id")
    return record_id.strip()


_R = TypeVar("_R", bound="SyncableRecord")


class SyncableRecord:
    """Shared behaviour of every record type that travels to the remote store."""

    id: str
    created_at: str
    user_id: str | None
    sync: SyncMark

    def _business_payload(self) -> dict[str, Any]:
        raise NotImplementedError

    def to_local(self) -> dict[str, Any]:
        payload = compact(self._business_payload())
        if self.user_id:
            payload["user_id"] = self.user_id
        payload.update(sync_mark_to_local(self.sync))
        return payload

    def business_fields(self) -> dict[str, Any]:
        return self._business_payload()

    @property
    def is_pending(self) -> bool:
        return self.sync.is_pending

    def with_sync(self: _R, mark: SyncMark) -> _R:
        return replace(self, sync=mark)

    def with_changes(self: _R, changes: Mapping[str, Any]) -> _R:
        merged = {**self.to_local(), **changes, "id": self.id, "createdAt": self.created_at}
        edited = type(self).from_local(merged)
        return replace(edited, user_id=self.user_id, sync=mark_edited(self.sync))

    @classmethod
    def from_local(cls: type[_R], raw: Mapping[str, Any]) -> _R:
        raise NotImplementedError


@dataclass(frozen=True)
class _Party(SyncableRecord):
    id: str
    name: str
    state: str = ""
    email: str | None = None
    phone: str | None = None
    gstin: str | None = None
    address: str | None = None
    city: str | None = None
    pin_code: str | None = None
    created_at: str = ""
    user_id: str | None = None
    sync: SyncMark = field(default_factory=LocalOnly)

    @classmethod
    def from_local(cls, raw: Mapping[str, Any]):
        return cls(
            id=require_id(raw),
            name=text_or_default(raw.get("name")),
            state=text_or_default(raw.get("state")),
            email=optional_text(raw.get("email")),
            phone=optional_text(raw.get("phone")),
            gstin=optional_text(raw.get("gstin")),
            address=optional_text(raw.get("address")),
            city=optional_text(raw.get("city")),
            pin_code=optional_text(raw.get("pin_code")),
            created_at=text_or_default(raw.get("createdAt")),
            user_id=optional_text(raw.get("user_id")),
            sync=sync_mark_from_local(raw),
        )

    def _business_payload(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "gstin": self.gstin,
            "address": self.address,
            "city": self.city,
            "state": self.state,
            "pin_code": self.pin_code,
            "createdAt": self.created_at,
        }


@dataclass(frozen=True)
class Customer(_Party):
    pass


@dataclass(frozen=True)
class Supplier(_Party):
    pass


@dataclass(frozen=True)
class Product(SyncableRecord):
    id: str
    name: str
    sku: str | None = None
    hsn_code: str | None = None
    description: str | None = None
    quantity: int = 0
    unit: str = "pcs"
    price: float = 0.0
    cost: float = 0.0
    gst_rate: float = 0.0
    low_stock_alert: int = 10
    created_at: str = ""
    user_id: str | None = None
    sync: SyncMark = field(default_factory=LocalOnly)

    @classmethod
    def from_local(cls, raw: Mapping[str, Any]) -> "Product":
        return cls(
            id=require_id(raw),
            name=text_or_default(raw.get("name")),
            sku=optional_text(raw.get("sku")),
            hsn_code=optional_text(raw.get("hsnCode")),
            description=optional_text(raw.get("description")),
            quantity=coerce_int(raw.get("quantity")),
            unit=text_or_default(raw.get("unit"), "pcs"),
            price=coerce_float(raw.get("price")),
            cost=coerce_float(raw.get("cost")),
            gst_rate=coerce_float(raw.get("gstRate")),
            low_stock_alert=coerce_int(raw.get("lowStockAlert"), 10),
            created_at=text_or_default(raw.get("createdAt")),
            user_id=optional_text(raw.get("user_id")),
            sync=sync_mark_from_local(raw),
        )

    def _business_payload(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "sku": self.sku,
            "hsnCode": self.hsn_code,
            "description": self.description,
            "quantity": self.quantity,
            "unit": self.unit,
            "price": self.price,
            "cost": self.cost,
            "gstRate": self.gst_rate,
            "lowStockAlert": self.low_stock_alert,
            "createdAt": self.created_at,
        }


@dataclass(frozen=True)
class LedgerEntry(SyncableRecord):
    id: str
    date: str
    entry_type: str
    category: str
    amount: float
    description: str | None = None
    reference: str | None = None
    created_at: str = ""
    user_id: str | None = None
    sync: SyncMark = field(default_factory=LocalOnly)

    @classmethod
    def from_local(cls, raw: Mapping[str, Any]) -> "LedgerEntry":
        return cls(
            id=require_id(raw),
            date=text_or_default(raw.get("date")),
            entry_type=text_or_default(raw.get("type"), "expense"),
            category=text_or_default(raw.get("category")),
            amount=coerce_float(raw.get("amount")),
            description=optional_text(raw.get("description")),
            reference=optional_text(raw.get("reference")),
            created_at=text_or_default(raw.get("createdAt")),
            user_id=optional_text(raw.get("user_id")),
            sync=sync_mark_from_local(raw),
        )

    def _business_payload(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "date": self.date,
            "type": self.entry_type,
            "category": self.category,
            "description": self.description,
            "amount": self.amount,
            "reference": self.reference,
            "createdAt": self.created_at,
        }
