"""Selectors for the costing kernel (read side)."""

from costing_kernel.selectors.ledger_selector import LedgerSelector
from costing_kernel.selectors.stock_selector import StockSelector

__all__ = [
    "LedgerSelector",
    "StockSelector",
]
