"""
Costing Kernel - FIFO inventory costing core

Append-only, transactionally consistent inventory costing with:
- Purchase cost layers consumed strictly oldest-first
- A per-product stock summary (balance, moving average cost, valuation)
- An append-only stock transaction ledger
- Exact reversal of recorded allocations
"""

__version__ = "0.1.0"
