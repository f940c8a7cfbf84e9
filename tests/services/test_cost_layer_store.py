"""
Tests for CostLayerStore: creation, FIFO listing and guarded mutation.
"""

from datetime import datetime
from decimal import Decimal
from uuid import uuid4

import pytest

from costing_kernel.exceptions import (
    ConcurrencyConflictError,
    InsufficientLayerQuantityError,
    InvalidQuantityError,
    LayerNotFoundError,
    OverRestorationError,
)
from costing_kernel.services.cost_layer_store import CostLayerStore


@pytest.fixture
def store(session, tenant_id, deterministic_clock):
    return CostLayerStore(session, tenant_id, deterministic_clock)


def create(store, at, quantity="10", unit_cost="2", product_id="SKU-1", days=0, **kwargs):
    return store.create(
        product_id=product_id,
        quantity=Decimal(quantity),
        unit_cost=Decimal(unit_cost),
        received_at=at(days),
        reference_id=f"PO-{days}",
        **kwargs,
    )


class TestCreate:
    def test_new_layer_is_full(self, store, at):
        layer = create(store, at, batch_label="LOT-A")

        assert layer.quantity_received == Decimal("10")
        assert layer.quantity_remaining == Decimal("10")
        assert layer.unit_cost == Decimal("2")
        assert layer.batch_label == "LOT-A"
        assert layer.version == 1
        assert layer.received_at == at(0)

    def test_seq_increases(self, store, at):
        first = create(store, at)
        second = create(store, at)

        assert second.seq > first.seq

    def test_naive_received_at_rejected(self, store):
        with pytest.raises(InvalidQuantityError, match="timezone-aware"):
            store.create("SKU-1", Decimal("1"), Decimal("1"), datetime(2024, 1, 1), "PO-1")

    @pytest.mark.parametrize("quantity,unit_cost", [("0", "1"), ("-1", "1"), ("1", "-0.01")])
    def test_invalid_amounts(self, store, at, quantity, unit_cost):
        with pytest.raises(InvalidQuantityError):
            create(store, at, quantity=quantity, unit_cost=unit_cost)

    def test_zero_cost_allowed(self, store, at):
        assert create(store, at, unit_cost="0").unit_cost == Decimal("0")


class TestListing:
    def test_list_available_is_fifo_and_skips_empty(self, store, at):
        newer = create(store, at, days=2)
        older = create(store, at, days=1)
        empty = create(store, at, quantity="1", days=0)
        store.decrement(empty.layer_id, Decimal("1"))

        layers = store.list_available("SKU-1")

        assert [layer.layer_id for layer in layers] == [older.layer_id, newer.layer_id]

    def test_list_available_other_product(self, store, at):
        create(store, at, product_id="SKU-2")

        assert store.list_available("SKU-1") == []

    def test_list_expiring(self, store, at):
        soon = create(store, at, expires_at=at(5))
        create(store, at, expires_at=at(30))
        create(store, at)

        assert [layer.layer_id for layer in store.list_expiring(at(7))] == [soon.layer_id]

    def test_get_unknown(self, store):
        with pytest.raises(LayerNotFoundError):
            store.get(uuid4())


class TestDecrement:
    def test_partial_decrement(self, store, at):
        layer = create(store, at)

        updated = store.decrement(layer.layer_id, Decimal("3"))

        assert updated.quantity_remaining == Decimal("7")
        assert updated.version == layer.version + 1

    def test_decrement_to_zero(self, store, at):
        layer = create(store, at)

        assert store.decrement(layer.layer_id, Decimal("10")).quantity_remaining == Decimal("0")

    def test_beyond_remaining_on_unchanged_layer_is_fatal(self, store, at, captured_logs):
        layer = create(store, at)

        with pytest.raises(InsufficientLayerQuantityError) as exc_info:
            store.decrement(layer.layer_id, Decimal("11"), expected_version=layer.version)

        assert exc_info.value.remaining == "10.000000000"
        assert any(
            r["message"] == "cost_layer_insufficient_quantity" and r["level"] == "ERROR"
            for r in captured_logs()
        )

    def test_beyond_remaining_on_changed_layer_is_conflict(self, store, at):
        layer = create(store, at)
        store.decrement(layer.layer_id, Decimal("8"))

        with pytest.raises(ConcurrencyConflictError):
            store.decrement(layer.layer_id, Decimal("5"), expected_version=layer.version)

    def test_changed_layer_with_enough_stock_succeeds(self, store, at):
        layer = create(store, at)
        store.decrement(layer.layer_id, Decimal("2"))

        updated = store.decrement(layer.layer_id, Decimal("5"), expected_version=layer.version)

        assert updated.quantity_remaining == Decimal("3")

    def test_unknown_layer(self, store):
        with pytest.raises(LayerNotFoundError):
            store.decrement(uuid4(), Decimal("1"))

    def test_other_tenant_cannot_touch_layer(self, session, deterministic_clock, store, at):
        layer = create(store, at)
        other = CostLayerStore(session, "tenant-other", deterministic_clock)

        with pytest.raises(LayerNotFoundError):
            other.decrement(layer.layer_id, Decimal("1"))


class TestIncrement:
    def test_restores_quantity(self, store, at):
        layer = create(store, at)
        store.decrement(layer.layer_id, Decimal("6"))

        assert store.increment(layer.layer_id, Decimal("6")).quantity_remaining == Decimal("10")

    def test_over_restoration(self, store, at):
        layer = create(store, at)
        store.decrement(layer.layer_id, Decimal("2"))

        with pytest.raises(OverRestorationError) as exc_info:
            store.increment(layer.layer_id, Decimal("3"))

        assert exc_info.value.received == "10.000000000"
        assert store.get(layer.layer_id).quantity_remaining == Decimal("8")
