"""
Property-based tests for stock conservation.

Hypothesis generates sequences of receipts, sales, returns and stock
adjustments; after every sequence the summary balance must equal the layers'
remaining quantity, the ledger's net quantity and total_in - total_out.

Each example works on its own product, and every document reference carries
the product id, so examples sharing the function-scoped session cannot see
each other's stock or records.
"""

from decimal import Decimal
from itertools import count

from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from costing_kernel.domain.quantities import ZERO
from costing_kernel.exceptions import InsufficientStockError, StockSummaryMissingError

_product_ids = count()

quantities = st.decimals(min_value=Decimal("0.001"), max_value=Decimal("500"), places=3)
costs = st.decimals(min_value=Decimal("0"), max_value=Decimal("100"), places=2)

movements = [
    st.tuples(st.just("receive"), quantities, costs),
    st.tuples(st.just("sell"), quantities),
    st.tuples(st.just("reverse"), st.integers(min_value=0, max_value=20)),
    st.tuples(st.just("return"), st.integers(min_value=0, max_value=20), quantities),
]
operations = st.lists(st.one_of(*movements), min_size=1, max_size=15)
operations_with_adjustments = st.lists(
    st.one_of(*movements, st.tuples(st.just("adjust"), quantities, st.booleans())),
    min_size=1,
    max_size=15,
)

FUZZ_SETTINGS = settings(
    max_examples=40,
    deadline=None,
    suppress_health_check=[HealthCheck.function_scoped_fixture, HealthCheck.too_slow],
)


def _run(service, product_id, ops):
    """Apply ``ops``; return sale line id -> quantity not yet returned."""
    outstanding = {}
    for n, op in enumerate(ops):
        kind = op[0]
        if kind == "receive":
            service.receive(product_id, op[1], op[2], f"PO-{product_id}-{n}")
        elif kind == "sell":
            sale_line_id = f"SL-{product_id}-{n}"
            try:
                breakdown = service.allocate(product_id, op[1], sale_line_id=sale_line_id)
            except InsufficientStockError:
                continue
            service.commit(breakdown, f"INV-{product_id}-{n}")
            outstanding[sale_line_id] = breakdown.required_quantity
        elif kind == "adjust":
            delta = op[1] if op[2] else -op[1]
            try:
                service.adjust_stock(product_id, delta, f"CNT-{product_id}-{n}", unit_cost=Decimal("1"))
            except (InsufficientStockError, StockSummaryMissingError):
                continue
        elif outstanding:
            sale_line_id = sorted(outstanding)[op[1] % len(outstanding)]
            if kind == "reverse":
                quantity = outstanding[sale_line_id]
            else:
                quantity = min(op[2], outstanding[sale_line_id])
            result = service.reverse_sale_line(sale_line_id, f"RET-{product_id}-{n}", quantity)
            if result.returnable_quantity == 0:
                del outstanding[sale_line_id]
            else:
                outstanding[sale_line_id] = result.returnable_quantity
    return outstanding


def _assert_conserved(service, product_id):
    summary = service.get_summary(product_id)
    layers = service.list_available_layers(product_id)
    assert summary.balance >= ZERO
    assert summary.balance == sum((layer.quantity_remaining for layer in layers), ZERO)
    assert summary.balance == summary.total_in - summary.total_out
    assert service.check_consistency(product_id).is_consistent
    for layer in layers:
        assert ZERO < layer.quantity_remaining <= layer.quantity_received


class TestConservation:
    @FUZZ_SETTINGS
    @given(ops=operations_with_adjustments)
    def test_balance_matches_layers_and_ledger(self, service, ops):
        product_id = f"FUZZ-{next(_product_ids)}"

        _run(service, product_id, ops)

        _assert_conserved(service, product_id)

    @FUZZ_SETTINGS
    @given(ops=operations)
    def test_returning_every_sale_restores_receipts(self, service, ops):
        product_id = f"FUZZ-R-{next(_product_ids)}"

        outstanding = _run(service, product_id, ops)
        for sale_line_id in sorted(outstanding):
            service.reverse_sale_line(sale_line_id)

        summary = service.get_summary(product_id)
        assert summary.total_out == ZERO
        assert summary.balance == summary.total_in
        assert all(
            layer.quantity_remaining == layer.quantity_received
            for layer in service.list_available_layers(product_id)
        )

    @FUZZ_SETTINGS
    @given(ops=operations_with_adjustments)
    def test_rebuild_reproduces_live_summary(self, service, ops):
        product_id = f"FUZZ-B-{next(_product_ids)}"
        _run(service, product_id, ops)
        live = service.get_summary(product_id)

        rebuilt = service.rebuild_summary(product_id)

        assert (rebuilt.total_in, rebuilt.total_out, rebuilt.balance) == (
            live.total_in, live.total_out, live.balance
        )
        assert rebuilt.average_cost == live.average_cost
        assert rebuilt.total_value == live.total_value
        _assert_conserved(service, product_id)


class TestAverageIgnoresOutbound:
    @FUZZ_SETTINGS
    @given(receipts=st.lists(st.tuples(quantities, costs), min_size=1, max_size=5), sell=quantities)
    def test_sales_do_not_move_average(self, service, receipts, sell):
        product_id = f"FUZZ-A-{next(_product_ids)}"
        for n, (quantity, unit_cost) in enumerate(receipts):
            service.receive(product_id, quantity, unit_cost, f"PO-{product_id}-{n}")
        before = service.get_summary(product_id).average_cost

        try:
            service.commit(service.allocate(product_id, sell), f"INV-{product_id}")
        except InsufficientStockError:
            pass

        assert service.get_summary(product_id).average_cost == before
