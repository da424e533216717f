"""SQLAlchemy models"""

from stockledger.models.access import Company, CompanyMembership
from stockledger.models.batch import BatchJobExecution, JobStatus
from stockledger.models.catalog import Container, Ingredient
from stockledger.models.stock import (
    DailyStockSnapshot, StockItem, StockItemType, StockTransaction, TransactionType
)
from stockledger.models.stock_audit import (
    AuditItemStatus, AuditStatus, StockAudit, StockAuditItem
)

__all__ = [
    "Company", "CompanyMembership",
    "BatchJobExecution", "JobStatus",
    "Container", "Ingredient",
    "DailyStockSnapshot", "StockItem", "StockItemType", "StockTransaction", "TransactionType",
    "AuditItemStatus", "AuditStatus", "StockAudit", "StockAuditItem",
]
