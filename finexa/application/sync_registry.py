from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Mapping

from finexa.domain.coercion import coerce_float, coerce_int, optional_text, text_or_default
from finexa.domain.ports import Row
from finexa.domain.records import (
    Customer,
    LedgerEntry,
    LocalOnly,
    Product,
    Supplier,
    SyncableRecord,
    SyncMark,
    Synced,
    require_id,
)
from finexa.domain.sync_errors import RecordShapeError

REMOTE_META_COLUMNS = ("user_id", "created_at", "synced_at")


@dataclass(frozen=True)
class SyncDescriptor:
    """How one local dataset maps onto one remote table."""

    local_key: str
    remote_table: str
    record_type: type[SyncableRecord]
    columns: tuple[str, ...]
    to_remote: Callable[[SyncableRecord, str, str], Row]
    from_remote: Callable[[Mapping[str, Any]], SyncableRecord]

    def parse_local(self, raw: Mapping[str, Any]) -> SyncableRecord:
        return self.record_type.from_local(raw)


def _remote_mark(row: Mapping[str, Any]) -> SyncMark:
    synced_at = optional_text(row.get("synced_at"))
    return Synced(at=synced_at) if synced_at else LocalOnly()


def _remote_meta(record: SyncableRecord, owner_id: str, synced_at: str) -> Row:
    return {
        "user_id": owner_id,
        "created_at": record.created_at or None,
        "synced_at": synced_at,
    }


def _require_type(record: SyncableRecord, expected: type | tuple[type, ...]) -> None:
    if not isinstance(record, expected):
        raise RecordShapeError(f"Unexpected record type {type(record).__name__}")


def _party_to_remote(record: SyncableRecord, owner_id: str, synced_at: str) -> Row:
    _require_type(record, (Customer, Supplier))
    return {
        "id": record.id,
        "name": record.name,
        "email": record.email,
        "phone": record.phone,
        "gstin": record.gstin,
        "address": record.address,
        "city": record.city,
        "state": record.state or None,
        "pin_code": record.pin_code,
        **_remote_meta(record, owner_id, synced_at),
    }


def _party_from_remote(record_type: type[Customer]) -> Callable[[Mapping[str, Any]], SyncableRecord]:
    def parse(row: Mapping[str, Any]) -> SyncableRecord:
        return record_type(
            id=require_id(row),
            name=text_or_default(row.get("name")),
            email=optional_text(row.get("email")),
            phone=optional_text(row.get("phone")),
            gstin=optional_text(row.get("gstin")),
            address=optional_text(row.get("address")),
            city=optional_text(row.get("city")),
            state=text_or_default(row.get("state")),
            pin_code=optional_text(row.get("pin_code")),
            created_at=text_or_default(row.get("created_at")),
            user_id=optional_text(row.get("user_id")),
            sync=_remote_mark(row),
        )

    return parse


def _product_to_remote(record: SyncableRecord, owner_id: str, synced_at: str) -> Row:
    _require_type(record, Product)
    return {
        "id": record.id,
        "name": record.name,
        "sku": record.sku,
        "hsn_code": record.hsn_code,
        "description": record.description,
        "quantity": record.quantity,
        "unit": record.unit,
        "price": record.price,
        "cost": record.cost,
        "gst_rate": record.gst_rate,
        "low_stock_alert": record.low_stock_alert,
        **_remote_meta(record, owner_id, synced_at),
    }


def _product_from_remote(row: Mapping[str, Any]) -> SyncableRecord:
    return Product(
        id=require_id(row),
        name=text_or_default(row.get("name")),
        sku=optional_text(row.get("sku")),
        hsn_code=optional_text(row.get("hsn_code")),
        description=optional_text(row.get("description")),
        quantity=coerce_int(row.get("quantity")),
        unit=text_or_default(row.get("unit"), "pcs"),
        price=coerce_float(row.get("price")),
        cost=coerce_float(row.get("cost")),
        gst_rate=coerce_float(row.get("gst_rate")),
        low_stock_alert=coerce_int(row.get("low_stock_alert"), 10),
        created_at=text_or_default(row.get("created_at")),
        user_id=optional_text(row.get("user_id")),
        sync=_remote_mark(row),
    )


def _ledger_to_remote(record: SyncableRecord, owner_id: str, synced_at: str) -> Row:
    _require_type(record, LedgerEntry)
    return {
        "id": record.id,
        "entry_date": record.date or None,
        "entry_type": record.entry_type,
        "category": record.category or None,
        "description": record.description,
        "amount": record.amount,
        "reference": record.reference,
        **_remote_meta(record, owner_id, synced_at),
    }


def _ledger_from_remote(row: Mapping[str, Any]) -> SyncableRecord:
    return LedgerEntry(
        id=require_id(row),
        date=text_or_default(row.get("entry_date")),
        entry_type=text_or_default(row.get("entry_type"), "expense"),
        category=text_or_default(row.get("category")),
        amount=coerce_float(row.get("amount")),
        description=optional_text(row.get("description")),
        reference=optional_text(row.get("reference")),
        created_at=text_or_default(row.get("created_at")),
        user_id=optional_text(row.get("user_id")),
        sync=_remote_mark(row),
    )


_PARTY_COLUMNS = ("id", "name", "email", "phone", "gstin", "address", "city", "state", "pin_code") + REMOTE_META_COLUMNS

SYNC_DESCRIPTORS: tuple[SyncDescriptor, ...] = (
    SyncDescriptor(
        local_key="customers",
        remote_table="customers",
        record_type=Customer,
        columns=_PARTY_COLUMNS,
        to_remote=_party_to_remote,
        from_remote=_party_from_remote(Customer),
    ),
    SyncDescriptor(
        local_key="suppliers",
        remote_table="suppliers",
        record_type=Supplier,
        columns=_PARTY_COLUMNS,
        to_remote=_party_to_remote,
        from_remote=_party_from_remote(Supplier),
    ),
    SyncDescriptor(
        local_key="products",
        remote_table="products",
        record_type=Product,
        columns=(
            "id",
            "name",
            "sku",
            "hsn_code",
            "description",
            "quantity",
            "unit",
            "price",
            "cost",
            "gst_rate",
            "low_stock_alert",
        )
        + REMOTE_META_COLUMNS,
        to_remote=_product_to_remote,
        from_remote=_product_from_remote,
    ),
    SyncDescriptor(
        local_key="ledgerEntries",
        remote_table="ledger_entries",
        record_type=LedgerEntry,
        columns=("id", "entry_date", "entry_type", "category", "description", "amount", "reference")
        + REMOTE_META_COLUMNS,
        to_remote=_ledger_to_remote,
        from_remote=_ledger_from_remote,
    ),
)

SYNCABLE_DATASETS: tuple[str, ...] = tuple(descriptor.local_key for descriptor in SYNC_DESCRIPTORS)


def descriptor_for(local_key: str) -> SyncDescriptor:
    for descriptor in SYNC_DESCRIPTORS:
        if descriptor.local_key == local_key:
            return descriptor
    raise RecordShapeError(f"Unknown dataset '{local_key}'")


def remote_schema() -> dict[str, list[str]]:
    return {descriptor.remote_table: list(descriptor.columns) for descriptor in SYNC_DESCRIPTORS}
