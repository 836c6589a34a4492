"""
raw_orders / fba_inventory 쓰기 테스트 (메모리 SQLite).
"""

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from databridge.models import FbaInventoryItem, RawOrder
from databridge.services.writers import InventoryWriter, OrderWriter, coalesce_orders, dedupe_inventory


def _count(session, model, *where):
    return session.scalar(select(func.count()).select_from(model).where(*where))


@pytest.mark.unit
class TestCoalesceOrders:
    def test_duplicate_lines_are_summed(self, order_factory):
        merged = coalesce_orders([
            order_factory(order_id="111-1", sku="SKU-1", quantity=2, item_price=20.0),
            order_factory(order_id="111-1", sku="SKU-1", quantity=3, item_price=30.0, order_status="Pending"),
            order_factory(order_id="111-1", sku="SKU-2", quantity=1),
        ])
        assert len(merged) == 2
        assert merged[0].quantity == 5
        assert merged[0].item_price == 50.0
        assert merged[0].order_status == "Pending"

    def test_dedupe_inventory_keeps_last(self, inventory_factory):
        items = dedupe_inventory([
            inventory_factory(sku="SKU-1", fulfillable=1),
            inventory_factory(sku="SKU-2", fulfillable=2),
            inventory_factory(sku="SKU-1", fulfillable=9),
        ])
        assert [(i.sku, i.fulfillable_quantity) for i in items] == [("SKU-2", 2), ("SKU-1", 9)]


@pytest.mark.unit
class TestOrderWriter:
    def test_duplicate_lines_in_one_fetch(self, test_session, order_factory):
        written = OrderWriter(test_session).upsert(
            [order_factory(order_id="111-1", quantity=2), order_factory(order_id="111-1", quantity=3)],
            {"SKU-1": "IW-1"},
        )
        assert written == 1
        order = test_session.scalars(select(RawOrder)).one()
        assert order.quantity == 5
        assert order.iwasku == "IW-1"

    def test_refetch_updates_existing_row(self, test_session, order_factory):
        writer = OrderWriter(test_session)
        writer.upsert([order_factory(order_id="111-1", quantity=1, order_status="Pending")], {})
        writer.upsert([order_factory(order_id="111-1", quantity=1, order_status="Shipped")], {"SKU-1": "IW-1"})

        assert _count(test_session, RawOrder) == 1
        order = test_session.scalars(select(RawOrder)).one()
        test_session.refresh(order)
        assert order.order_status == "Shipped"
        assert order.iwasku == "IW-1"

    def test_unresolved_sku_is_stored_with_null_iwasku(self, test_session, order_factory):
        OrderWriter(test_session).upsert([order_factory(sku="UNKNOWN")], {"UNKNOWN": None})
        assert _count(test_session, RawOrder, RawOrder.iwasku.is_(None)) == 1

    def test_failed_batch_is_rolled_back(self, test_session, order_factory):
        writer = OrderWriter(test_session, batch_size=1)
        records = [order_factory(order_id="111-1"), order_factory(order_id="111-2", sku=None)]
        with pytest.raises(IntegrityError):
            writer.upsert(records, {})
        # 첫 배치는 이미 커밋됨
        assert _count(test_session, RawOrder) == 1

    def test_empty_input(self, test_session):
        assert OrderWriter(test_session).upsert([], {}) == 0


@pytest.mark.unit
class TestInventoryWriter:
    def test_repeated_sync_is_idempotent(self, test_session, inventory_factory):
        writer = InventoryWriter(test_session)
        records = [inventory_factory(sku="SKU-1", fulfillable=5), inventory_factory(sku="SKU-2", fulfillable=1)]
        writer.replace("US", records, {"SKU-1": "IW-1"})
        writer.replace("US", records, {"SKU-1": "IW-1"})
        assert _count(test_session, FbaInventoryItem) == 2

    def test_snapshot_replaces_previous_rows(self, test_session, inventory_factory):
        writer = InventoryWriter(test_session, batch_size=1)
        writer.replace("US", [inventory_factory(sku="OLD", fulfillable=3), inventory_factory(sku="KEEP")], {})
        writer.replace("UK", [inventory_factory(sku="UK-1")], {})

        written = writer.replace("US", [inventory_factory(sku="KEEP", fulfillable=8), inventory_factory(sku="NEW")], {})

        assert written == 2
        skus = set(test_session.scalars(
            select(FbaInventoryItem.sku).where(FbaInventoryItem.warehouse == "US")
        ))
        assert skus == {"KEEP", "NEW"}
        # 다른 warehouse는 그대로
        assert _count(test_session, FbaInventoryItem, FbaInventoryItem.warehouse == "UK") == 1

    def test_duplicate_skus_in_snapshot(self, test_session, inventory_factory):
        written = InventoryWriter(test_session).replace(
            "EU", [inventory_factory(sku="SKU-1", fulfillable=1), inventory_factory(sku="SKU-1", fulfillable=4)], {}
        )
        assert written == 1
        item = test_session.scalars(select(FbaInventoryItem)).one()
        assert item.fulfillable_quantity == 4

    def test_empty_snapshot_keeps_previous_rows(self, test_session, inventory_factory):
        writer = InventoryWriter(test_session)
        writer.replace("CA", [inventory_factory(sku="SKU-1", fulfillable=5)], {})
        assert writer.replace("CA", [], {}) == 0

        item = test_session.scalars(select(FbaInventoryItem)).one()
        assert item.warehouse == "CA"
        assert item.fulfillable_quantity == 5
