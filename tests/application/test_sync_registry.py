from __future__ import annotations

import pytest

from finexa.application.sync_registry import SYNC_DESCRIPTORS, descriptor_for, remote_schema
from finexa.domain.records import Customer, LedgerEntry, LocalOnly, Product, Supplier, Synced
from finexa.domain.sync_errors import RecordShapeError

RECORDS = {
    "customers": Customer(
        id="c1",
        name="Acme",
        email="a@acme.test",
        phone=None,
        gstin="29ABCDE1234F1Z5",
        address=None,
        city="Bengaluru",
        state="KA",
        pin_code="560001",
        created_at="2025-01-01T00:00:00Z",
    ),
    "suppliers": Supplier(id="s1", name="Parts Co", state="", created_at="2025-01-02T00:00:00Z"),
    "products": Product(
        id="p1",
        name="Widget",
        sku="W-1",
        hsn_code="8471",
        quantity=4,
        unit="box",
        price=12.5,
        cost=7.25,
        gst_rate=18.0,
        low_stock_alert=2,
        created_at="2025-01-03T00:00:00Z",
    ),
    "ledgerEntries": LedgerEntry(
        id="l1",
        date="2025-01-04",
        entry_type="income",
        category="sales",
        amount=999.99,
        reference="INV-1",
        created_at="2025-01-04T00:00:00Z",
    ),
}


@pytest.mark.parametrize("descriptor", SYNC_DESCRIPTORS, ids=lambda d: d.local_key)
def test_round_trip_keeps_business_fields(descriptor) -> None:
    record = RECORDS[descriptor.local_key]

    row = descriptor.to_remote(record, "owner-1", "2025-02-01T00:00:00Z")
    restored = descriptor.from_remote(row)

    assert restored.business_fields() == record.business_fields()
    assert restored.sync == Synced(at="2025-02-01T00:00:00Z")
    assert restored.user_id == "owner-1"


@pytest.mark.parametrize("descriptor", SYNC_DESCRIPTORS, ids=lambda d: d.local_key)
def test_remote_rows_only_use_declared_columns(descriptor) -> None:
    row = descriptor.to_remote(RECORDS[descriptor.local_key], "owner-1", "t1")

    assert set(row) == set(descriptor.columns)
    assert row["user_id"] == "owner-1"
    assert row["synced_at"] == "t1"


def test_sheet_strings_are_parsed_back_to_numbers() -> None:
    row = {
        "id": "p9",
        "name": "Cable",
        "quantity": "12",
        "price": "3.5",
        "cost": "",
        "gst_rate": "5",
        "low_stock_alert": "",
        "unit": "",
        "sku": "",
        "user_id": "owner-1",
        "created_at": "t0",
        "synced_at": "t1",
    }

    product = descriptor_for("products").from_remote(row)

    assert product.quantity == 12
    assert product.price == 3.5
    assert product.cost == 0.0
    assert product.gst_rate == 5.0
    assert product.low_stock_alert == 10
    assert product.unit == "pcs"
    assert product.sku is None


def test_ledger_columns_are_renamed() -> None:
    row = descriptor_for("ledgerEntries").to_remote(RECORDS["ledgerEntries"], "owner-1", "t1")

    assert row["entry_type"] == "income"
    assert row["entry_date"] == "2025-01-04"
    assert "type" not in row and "date" not in row


def test_row_without_synced_at_is_local_only() -> None:
    customer = descriptor_for("customers").from_remote({"id": "c1", "name": "Acme"})

    assert customer.sync == LocalOnly()


def test_unknown_dataset_is_rejected() -> None:
    with pytest.raises(RecordShapeError):
        descriptor_for("invoices")


def test_remote_schema_lists_every_table() -> None:
    schema = remote_schema()

    assert set(schema) == {"customers", "suppliers", "products", "ledger_entries"}
    assert schema["ledger_entries"][0] == "id"
    assert "low_stock_alert" in schema["products"]


def test_to_remote_rejects_a_record_of_another_dataset() -> None:
    product = RECORDS["products"]

    with pytest.raises(RecordShapeError):
        descriptor_for("customers").to_remote(product, "owner-1", "2025-01-01T00:00:00Z")
