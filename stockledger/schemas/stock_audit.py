"""Stock Audit Schemas"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from stockledger.models.stock import StockItemType
from stockledger.models.stock_audit import AuditItemStatus, AuditStatus


class AuditAction(str, Enum):
    COMPLETE = "complete"
    APPLY_DIFFERENCES = "apply_differences"


class AuditCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    audit_date: Optional[date] = None
    item_types: Optional[List[StockItemType]] = None


class AuditResponse(BaseModel):
    id: int
    company_id: int
    name: str
    description: Optional[str] = None
    audit_date: date
    status: AuditStatus
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    completed_by: Optional[str] = None
    differences_applied_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class AuditCreateResponse(BaseModel):
    audit: AuditResponse
    items_count: int
    errors: List[str] = []


class AuditListResponse(BaseModel):
    audits: List[AuditResponse]
    total: int
    skip: int
    limit: int


class AuditItemResponse(BaseModel):
    id: int
    audit_id: int
    stock_item_id: int
    item_name: str
    item_code: Optional[str] = None
    item_type: StockItemType
    unit: str
    book_quantity: Decimal
    actual_quantity: Optional[Decimal] = None
    difference: Optional[Decimal] = None
    status: AuditItemStatus
    notes: Optional[str] = None
    audited_by: Optional[str] = None
    audited_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class AuditStats(BaseModel):
    total_items: int
    completed_items: int
    pending_items: int
    discrepancy_items: int
    completion_rate: int


class AuditDetailResponse(BaseModel):
    audit: AuditResponse
    items: List[AuditItemResponse]
    stats: AuditStats
    total: int
    skip: int
    limit: int


class AuditUpdate(BaseModel):
    action: AuditAction
    apply_differences: bool = Field(False, description="With action=complete, also apply differences")


class ApplyDifferencesSummary(BaseModel):
    applied_count: int
    unchanged_count: int
    errors: List[str] = []


class AuditUpdateResponse(BaseModel):
    audit: AuditResponse
    applied: Optional[ApplyDifferencesSummary] = None


class AuditItemUpdate(BaseModel):
    actual_quantity: Decimal = Field(..., ge=0, max_digits=15, decimal_places=3)
    notes: Optional[str] = None


class AuditItemBatchEntry(BaseModel):
    # Range checks happen per line in the service so one bad line cannot reject the batch
    item_id: int
    actual_quantity: Decimal
    notes: Optional[str] = None


class AuditItemBatchUpdate(BaseModel):
    items: List[AuditItemBatchEntry] = Field(..., min_length=1)


class AuditItemBatchResponse(BaseModel):
    updated: List[AuditItemResponse]
    errors: List[str] = []
