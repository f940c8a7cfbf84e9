"""ORM row -> domain DTO conversion shared by selectors and services."""

from costing_kernel.domain.dtos import (
    AllocationBreakdown,
    AllocationRecord,
    BreakdownLine,
    CostLayer,
    LedgerEntry,
    LedgerEntryKind,
    StockSummary,
)
from costing_kernel.domain.quantities import quantize
from costing_kernel.models.allocation import AllocationRecordModel
from costing_kernel.models.cost_layer import CostLayerModel
from costing_kernel.models.ledger_entry import LedgerEntryModel
from costing_kernel.models.stock_summary import StockSummaryModel


def layer_to_dto(model: CostLayerModel) -> CostLayer:
    return CostLayer(
        layer_id=model.id,
        seq=model.seq,
        product_id=model.product_id,
        quantity_received=quantize(model.quantity_received),
        quantity_remaining=quantize(model.quantity_remaining),
        unit_cost=quantize(model.unit_cost),
        received_at=model.received_at,
        reference_id=model.reference_id,
        batch_label=model.batch_label,
        expires_at=model.expires_at,
        version=model.version,
    )


def summary_to_dto(model: StockSummaryModel) -> StockSummary:
    return StockSummary(
        product_id=model.product_id,
        total_in=quantize(model.total_in),
        total_out=quantize(model.total_out),
        balance=quantize(model.balance),
        average_cost=quantize(model.average_cost),
        total_value=quantize(model.total_value),
        last_updated_at=model.last_updated_at,
    )


def ledger_entry_to_dto(model: LedgerEntryModel) -> LedgerEntry:
    return LedgerEntry(
        entry_id=model.id,
        seq=model.seq,
        product_id=model.product_id,
        kind=LedgerEntryKind(model.kind),
        reference_id=model.reference_id,
        layer_id=model.layer_id,
        quantity=quantize(model.quantity),
        unit_cost=quantize(model.unit_cost),
        total_cost=quantize(model.total_cost),
        occurred_at=model.occurred_at,
        notes=model.notes,
    )


def record_to_breakdown(model: AllocationRecordModel) -> AllocationBreakdown:
    return AllocationBreakdown(
        product_id=model.product_id,
        required_quantity=quantize(model.required_quantity),
        lines=tuple(
            BreakdownLine(
                layer_id=line.layer_id,
                quantity_used=quantize(line.quantity_used),
                unit_cost=quantize(line.unit_cost),
                line_cost=quantize(line.line_cost),
            )
            for line in sorted(model.lines, key=lambda l: l.position)
        ),
        sale_line_id=model.sale_line_id,
    )


def record_to_dto(model: AllocationRecordModel) -> AllocationRecord:
    return AllocationRecord(
        record_id=model.id,
        sale_line_id=model.sale_line_id,
        reference_id=model.reference_id,
        breakdown=record_to_breakdown(model),
        total_cost=quantize(model.total_cost),
        committed_at=model.committed_at,
    )
