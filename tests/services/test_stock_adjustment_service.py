"""
Tests for StockAdjustmentService: signed manual corrections of stock.
"""

from decimal import Decimal

import pytest

from costing_kernel.domain.dtos import LedgerEntryKind
from costing_kernel.exceptions import (
    InsufficientStockError,
    InvalidQuantityError,
    StockSummaryMissingError,
)
from costing_services.stock_adjustment_service import StockAdjustmentService


@pytest.fixture
def adjuster(session, tenant_id, deterministic_clock):
    return StockAdjustmentService(session, tenant_id, deterministic_clock)


@pytest.fixture
def stocked(service):
    first = service.receive("SKU-1", Decimal("10"), Decimal("2"), "PO-1")
    second = service.receive("SKU-1", Decimal("5"), Decimal("4"), "PO-2")
    return first, second


class TestWriteOff:
    def test_consumes_oldest_layers_first(self, adjuster, service, stocked):
        first, second = stocked

        result = adjuster.adjust("SKU-1", Decimal("-12"), "CNT-1", reason="flood damage")

        assert result.quantity_delta == Decimal("-12")
        assert result.total_cost == Decimal("28")
        assert [line.layer_id for line in result.lines] == [first.layer_id, second.layer_id]
        assert result.summary.balance == Decimal("3")
        assert [layer.quantity_remaining for layer in service.list_available_layers("SKU-1")] == [
            Decimal("3")
        ]

    def test_ledger_entries_are_negative_adjustments(self, adjuster, service, stocked):
        result = adjuster.adjust("SKU-1", Decimal("-12"), "CNT-1", reason="flood damage")

        entries = [e for e in service.list_ledger("SKU-1") if e.kind is LedgerEntryKind.ADJUSTMENT]
        assert [entry.entry_id for entry in entries] == list(result.ledger_entry_ids)
        assert [entry.quantity for entry in entries] == [Decimal("-10"), Decimal("-2")]
        assert all(entry.notes == "flood damage" for entry in entries)

    def test_average_cost_unchanged(self, adjuster, service, stocked):
        before = service.get_summary("SKU-1")

        after = adjuster.adjust("SKU-1", Decimal("-4"), "CNT-1").summary

        assert after.average_cost == before.average_cost
        assert after.total_out == Decimal("4")

    def test_more_than_on_hand(self, adjuster, service, stocked):
        with pytest.raises(InsufficientStockError):
            adjuster.adjust("SKU-1", Decimal("-16"), "CNT-1")

        assert service.get_summary("SKU-1").balance == Decimal("15")

    def test_product_never_received(self, adjuster):
        with pytest.raises(StockSummaryMissingError):
            adjuster.adjust("SKU-ghost", Decimal("-1"), "CNT-1")


class TestCountGain:
    def test_opens_layer_at_current_average(self, adjuster, service, stocked):
        result = adjuster.adjust("SKU-1", Decimal("3"), "CNT-1", reason="found in back room")

        assert result.unit_cost == Decimal("2.666666667")
        assert result.total_cost == Decimal("8.000000001")
        layer = service.list_available_layers("SKU-1")[-1]
        assert layer.layer_id == result.layer_id
        assert layer.reference_id == "CNT-1"
        assert result.summary.balance == Decimal("18")
        assert result.summary.average_cost == Decimal("2.666666667")

    def test_explicit_unit_cost_reaverages(self, adjuster, stocked):
        result = adjuster.adjust("SKU-1", Decimal("5"), "CNT-1", unit_cost=Decimal("8"))

        assert result.summary.average_cost == Decimal("4")
        assert result.summary.total_in == Decimal("20")

    def test_new_product_needs_unit_cost(self, adjuster):
        with pytest.raises(InvalidQuantityError, match="unit_cost"):
            adjuster.adjust("SKU-new", Decimal("2"), "CNT-1")

    def test_zero_delta_rejected(self, adjuster, stocked):
        with pytest.raises(InvalidQuantityError, match="cannot be zero"):
            adjuster.adjust("SKU-1", Decimal("0"), "CNT-1")

    def test_consistent_after_adjustments(self, adjuster, service, stocked):
        adjuster.adjust("SKU-1", Decimal("-6"), "CNT-1")
        adjuster.adjust("SKU-1", Decimal("2"), "CNT-2")

        assert service.check_consistency("SKU-1").is_consistent
