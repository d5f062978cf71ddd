"""
Stock Kernel

An append-only inventory movement ledger with:
- Exactly-once application of stock-affecting documents
- A transactional per-product stock cache
- Daily movement aggregates as a rebuildable read cache
- Ideal versus actual stock reconciliation
"""

__version__ = "0.1.0"
