"""Stock ledger API endpoints"""

from . import audits, history, items, snapshots, transactions

__all__ = ["audits", "history", "items", "snapshots", "transactions"]
