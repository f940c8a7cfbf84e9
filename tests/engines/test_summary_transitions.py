"""
Tests for the pure stock summary transitions (moving average cost).
"""

from datetime import UTC, datetime
from decimal import Decimal
from uuid import uuid4

import pytest

from costing_engines.summary import (
    SummaryState,
    apply_issue,
    apply_receipt,
    apply_restoration,
    moving_average_cost,
    replay_ledger,
)
from costing_kernel.domain.dtos import LedgerEntry, LedgerEntryKind
from costing_kernel.exceptions import BalanceMismatchError, InvalidQuantityError


@pytest.fixture
def empty():
    return SummaryState.zero("SKU-1")


class TestReceipt:
    def test_first_receipt_sets_average(self, empty):
        state = apply_receipt(empty, Decimal("10"), Decimal("2"))

        assert state.total_in == Decimal("10")
        assert state.balance == Decimal("10")
        assert state.average_cost == Decimal("2")
        assert state.total_value == Decimal("20")

    def test_weighted_average(self, empty):
        state = apply_receipt(apply_receipt(empty, Decimal("10"), Decimal("2")), Decimal("5"), Decimal("4"))

        assert state.average_cost == Decimal("2.666666667")
        assert state.total_value == Decimal("40.000000005")
        assert state.total_value.quantize(Decimal("0.01")) == Decimal("40.00")

    def test_zero_cost_receipt_dilutes_average(self, empty):
        state = apply_receipt(apply_receipt(empty, Decimal("1"), Decimal("10")), Decimal("1"), Decimal("0"))

        assert state.average_cost == Decimal("5")

    def test_receipt_after_sell_out_uses_new_cost(self, empty):
        state = apply_receipt(empty, Decimal("4"), Decimal("3"))
        state = apply_issue(state, Decimal("4"))
        state = apply_receipt(state, Decimal("2"), Decimal("7"))

        assert state.average_cost == Decimal("7")

    def test_rejects_negative_cost(self, empty):
        with pytest.raises(InvalidQuantityError):
            apply_receipt(empty, Decimal("1"), Decimal("-1"))

    def test_average_unchanged_when_denominator_is_zero(self):
        assert moving_average_cost(Decimal("0"), Decimal("3"), Decimal("0"), Decimal("9")) == Decimal("3")


class TestIssueAndRestoration:
    def test_issue_keeps_average(self, empty):
        state = apply_receipt(empty, Decimal("10"), Decimal("2"))
        state = apply_receipt(state, Decimal("5"), Decimal("4"))

        issued = apply_issue(state, Decimal("12"))

        assert issued.average_cost == state.average_cost
        assert issued.total_out == Decimal("12")
        assert issued.balance == Decimal("3")
        assert issued.total_value == Decimal("8.000000001")

    def test_issue_beyond_balance(self, empty):
        state = apply_receipt(empty, Decimal("1"), Decimal("1"))

        with pytest.raises(BalanceMismatchError):
            apply_issue(state, Decimal("2"))

    def test_restoration_undoes_issue(self, empty):
        state = apply_receipt(empty, Decimal("10"), Decimal("2"))

        restored = apply_restoration(apply_issue(state, Decimal("6")), Decimal("6"))

        assert restored == state

    def test_restoration_beyond_total_out(self, empty):
        state = apply_receipt(empty, Decimal("10"), Decimal("2"))

        with pytest.raises(BalanceMismatchError):
            apply_restoration(state, Decimal("1"))


def entry(kind, layer_id, quantity, unit_cost):
    quantity, unit_cost = Decimal(quantity), Decimal(unit_cost)
    return LedgerEntry(
        entry_id=uuid4(),
        seq=0,
        product_id="SKU-1",
        kind=kind,
        reference_id="DOC-1",
        layer_id=layer_id,
        quantity=quantity,
        unit_cost=unit_cost,
        total_cost=abs(quantity) * unit_cost,
        occurred_at=datetime(2024, 1, 1, tzinfo=UTC),
    )


class TestReplayLedger:
    def test_matches_live_transitions(self, empty):
        first, second, found = uuid4(), uuid4(), uuid4()
        live = apply_receipt(empty, Decimal("10"), Decimal("2"))
        live = apply_receipt(live, Decimal("5"), Decimal("4"))
        live = apply_issue(live, Decimal("12"))
        live = apply_restoration(live, Decimal("4"))
        live = apply_receipt(live, Decimal("1"), Decimal("9"))

        replayed = replay_ledger("SKU-1", [
            entry(LedgerEntryKind.INBOUND, first, "10", "2"),
            entry(LedgerEntryKind.INBOUND, second, "5", "4"),
            entry(LedgerEntryKind.OUTBOUND, first, "-10", "2"),
            entry(LedgerEntryKind.OUTBOUND, second, "-2", "4"),
            entry(LedgerEntryKind.ADJUSTMENT, first, "4", "2"),
            entry(LedgerEntryKind.ADJUSTMENT, found, "1", "9"),
        ])

        assert replayed == live

    def test_write_off_is_an_issue(self, empty):
        layer = uuid4()

        replayed = replay_ledger("SKU-1", [
            entry(LedgerEntryKind.INBOUND, layer, "10", "3"),
            entry(LedgerEntryKind.ADJUSTMENT, layer, "-4", "3"),
        ])

        assert (replayed.total_out, replayed.balance, replayed.average_cost) == (
            Decimal("4"), Decimal("6"), Decimal("3")
        )

    def test_empty_ledger(self, empty):
        assert replay_ledger("SKU-1", []) == empty
