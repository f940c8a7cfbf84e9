"""
Tests for AllocationRecorder: receipts and committed allocations.
"""

from dataclasses import replace
from decimal import Decimal
from uuid import uuid4

import pytest

from costing_engines.fifo import FifoAllocator
from costing_kernel.domain.dtos import AllocationBreakdown, BreakdownLine, LedgerEntryKind
from costing_kernel.exceptions import (
    BreakdownAlreadyRecordedError,
    ConcurrencyConflictError,
    InvalidBreakdownError,
    InvalidQuantityError,
    StockSummaryMissingError,
)
from costing_kernel.selectors.ledger_selector import LedgerSelector
from costing_kernel.selectors.stock_selector import StockSelector
from costing_services.allocation_recorder import AllocationRecorder


@pytest.fixture
def recorder(session, tenant_id, deterministic_clock):
    return AllocationRecorder(session, tenant_id, deterministic_clock)


@pytest.fixture
def stock(session, tenant_id):
    return StockSelector(session, tenant_id)


@pytest.fixture
def ledger(session, tenant_id):
    return LedgerSelector(session, tenant_id)


def plan(stock, quantity, sale_line_id=None, product_id="SKU-1"):
    return FifoAllocator().allocate(
        product_id, Decimal(quantity), stock.list_available_layers(product_id), sale_line_id=sale_line_id
    )


class TestReceive:
    def test_creates_layer_entry_and_summary(self, recorder, stock, ledger):
        layer = recorder.receive("SKU-1", Decimal("10"), Decimal("2"), "PO-1", batch_label="LOT-1")

        summary = stock.get_summary("SKU-1")
        entries = ledger.list_entries("SKU-1")
        assert summary.balance == Decimal("10")
        assert summary.total_in == Decimal("10")
        assert summary.average_cost == Decimal("2")
        assert summary.is_initialized
        assert len(entries) == 1
        assert entries[0].kind is LedgerEntryKind.INBOUND
        assert entries[0].layer_id == layer.layer_id
        assert entries[0].quantity == Decimal("10")

    def test_invalid_quantity_writes_nothing(self, recorder, stock, ledger):
        with pytest.raises(InvalidQuantityError):
            recorder.receive("SKU-1", Decimal("-5"), Decimal("2"), "PO-1")

        assert not stock.get_summary("SKU-1").is_initialized
        assert ledger.list_entries("SKU-1") == []

    def test_logs_stock_received(self, recorder, captured_logs):
        recorder.receive("SKU-1", Decimal("1"), Decimal("1"), "PO-1")

        record = next(r for r in captured_logs() if r["message"] == "stock_received")
        assert record["product_id"] == "SKU-1"
        assert record["reference_id"] == "PO-1"


class TestCommit:
    def test_applies_breakdown(self, recorder, stock, ledger):
        first = recorder.receive("SKU-1", Decimal("10"), Decimal("2"), "PO-1")
        second = recorder.receive("SKU-1", Decimal("5"), Decimal("4"), "PO-2")
        breakdown = plan(stock, "12", sale_line_id="SL-1")

        record = recorder.commit(breakdown, "INV-1")

        assert record.sale_line_id == "SL-1"
        assert record.total_cost == Decimal("28")
        assert len(record.ledger_entry_ids) == 2
        assert stock.get_layer(first.layer_id).quantity_remaining == Decimal("0")
        assert stock.get_layer(second.layer_id).quantity_remaining == Decimal("3")
        outbound = [e for e in ledger.list_entries("SKU-1") if e.kind is LedgerEntryKind.OUTBOUND]
        assert [e.quantity for e in outbound] == [Decimal("-10"), Decimal("-2")]
        assert [e.reference_id for e in outbound] == ["INV-1", "INV-1"]
        summary = stock.get_summary("SKU-1")
        assert summary.total_out == Decimal("12")
        assert summary.balance == Decimal("3")

    def test_breakdown_is_persisted(self, recorder, stock):
        recorder.receive("SKU-1", Decimal("10"), Decimal("2"), "PO-1")
        breakdown = plan(stock, "4", sale_line_id="SL-1")
        recorder.commit(breakdown, "INV-1")

        stored = stock.get_allocation("SL-1")

        assert stored is not None
        assert stored.breakdown.lines[0].layer_id == breakdown.lines[0].layer_id
        assert stored.breakdown.required_quantity == Decimal("4")

    def test_lines_without_sale_line_share_a_reference(self, recorder, stock):
        recorder.receive("SKU-A", Decimal("5"), Decimal("2"), "PO-1")
        recorder.receive("SKU-B", Decimal("5"), Decimal("3"), "PO-2")

        first = recorder.commit(plan(stock, "1", product_id="SKU-A"), "SALE-1")
        second = recorder.commit(plan(stock, "1", product_id="SKU-B"), "SALE-1")

        assert first.sale_line_id is None
        assert second.sale_line_id is None
        assert first.record_id != second.record_id
        stored = stock.list_allocations_by_reference("SALE-1")
        assert [r.breakdown.product_id for r in stored] == ["SKU-A", "SKU-B"]
        assert stock.get_summary("SKU-A").balance == Decimal("4")
        assert stock.get_summary("SKU-B").balance == Decimal("4")

    def test_same_product_twice_under_one_reference(self, recorder, stock):
        recorder.receive("SKU-1", Decimal("10"), Decimal("2"), "PO-1")

        recorder.commit(plan(stock, "2"), "SALE-1")
        recorder.commit(plan(stock, "3"), "SALE-1")

        assert stock.get_summary("SKU-1").balance == Decimal("5")
        assert len(stock.list_allocations_by_reference("SALE-1")) == 2

    def test_second_commit_for_sale_line(self, recorder, stock):
        recorder.receive("SKU-1", Decimal("10"), Decimal("2"), "PO-1")
        recorder.commit(plan(stock, "1", sale_line_id="SL-1"), "INV-1")

        with pytest.raises(BreakdownAlreadyRecordedError):
            recorder.commit(plan(stock, "1", sale_line_id="SL-1"), "INV-1")

    def test_stale_plan_conflicts(self, recorder, stock):
        recorder.receive("SKU-1", Decimal("5"), Decimal("2"), "PO-1")
        stale = plan(stock, "4", sale_line_id="SL-1")
        recorder.commit(plan(stock, "3", sale_line_id="SL-2"), "INV-2")

        with pytest.raises(ConcurrencyConflictError):
            recorder.commit(stale, "INV-1")

    def test_product_without_summary(self, recorder):
        breakdown = AllocationBreakdown(
            "SKU-ghost",
            Decimal("1"),
            (BreakdownLine(uuid4(), Decimal("1"), Decimal("1"), Decimal("1")),),
        )

        with pytest.raises(StockSummaryMissingError):
            recorder.commit(breakdown, "INV-1")

    def test_unit_cost_must_match_layer(self, recorder, stock):
        recorder.receive("SKU-1", Decimal("10"), Decimal("2"), "PO-1")
        breakdown = plan(stock, "1", sale_line_id="SL-1")
        line = breakdown.lines[0]
        tampered = replace(
            breakdown,
            lines=(replace(line, unit_cost=Decimal("1"), line_cost=Decimal("1")),),
        )

        with pytest.raises(InvalidBreakdownError, match="costs"):
            recorder.commit(tampered, "INV-1")

    def test_layer_of_other_product(self, recorder, stock):
        recorder.receive("SKU-1", Decimal("10"), Decimal("2"), "PO-1")
        recorder.receive("SKU-2", Decimal("10"), Decimal("2"), "PO-2")
        foreign = plan(stock, "1", product_id="SKU-2")

        with pytest.raises(InvalidBreakdownError, match="belongs to product"):
            recorder.commit(replace(foreign, product_id="SKU-1"), "INV-1")
