"""Stock ledger services"""

from stockledger.services.stock.ledger import StockLedgerService
from stockledger.services.stock.resolver import PointInTimeResolver
from stockledger.services.stock.snapshots import SnapshotMaterializerService
from stockledger.services.stock.stock_audit import StockAuditService

__all__ = [
    "StockLedgerService",
    "PointInTimeResolver",
    "SnapshotMaterializerService",
    "StockAuditService",
]
