"""Stock Ledger Schemas"""

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from stockledger.models.stock import StockItemType, TransactionType


# Stock Item Schemas
class StockItemCreate(BaseModel):
    item_type: StockItemType
    item_id: int = Field(..., gt=0, description="Catalog id of the ingredient or container")
    unit: Optional[str] = Field(None, max_length=20)
    opening_quantity: Optional[Decimal] = Field(
        None, max_digits=15, decimal_places=3, description="Recorded as an adjustment"
    )


class StockItemResponse(BaseModel):
    id: int
    company_id: int
    item_type: StockItemType
    item_id: int
    unit: str
    current_quantity: Decimal
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    last_updated: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class StockItemListResponse(BaseModel):
    items: List[StockItemResponse]
    total: int
    skip: int
    limit: int


class StockItemSyncResponse(BaseModel):
    added: int
    ingredients_found: int
    containers_found: int
    items: List[StockItemResponse]


class ResyncResponse(BaseModel):
    stock_item_id: int
    previous_quantity: Decimal
    recomputed_quantity: Decimal
    drift: Decimal


# Transaction Schemas
class TransactionCreate(BaseModel):
    stock_item_id: int
    transaction_type: TransactionType
    quantity: Decimal = Field(
        ..., max_digits=15, decimal_places=3, description="Magnitude; signed delta for adjustments"
    )
    transaction_date: Optional[datetime] = None
    notes: Optional[str] = None
    reference_type: Optional[str] = Field(None, max_length=50)
    reference_id: Optional[str] = Field(None, max_length=64)


class TransactionBatchCreate(BaseModel):
    transactions: List[TransactionCreate] = Field(..., min_length=1)


class TransactionResponse(BaseModel):
    id: int
    stock_item_id: int
    transaction_type: TransactionType
    quantity: Decimal
    transaction_date: datetime
    user_id: Optional[str] = None
    reference_type: Optional[str] = None
    reference_id: Optional[str] = None
    notes: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class TransactionListResponse(BaseModel):
    transactions: List[TransactionResponse]
    total: int
    skip: int
    limit: int


# Point-in-time Schemas
class HistoricalQuantityResponse(BaseModel):
    stock_item_id: int
    date: date
    quantity: Decimal
    unit: str
    calculation_method: str
    snapshot_date: Optional[date] = None
    transactions_applied: int
    calculation_time_ms: float


class StockAtDateRowResponse(BaseModel):
    stock_item_id: int
    item_type: StockItemType
    item_id: int
    item_name: str
    unit: str
    quantity: Decimal
    calculation_method: str


class StockAtDateResponse(BaseModel):
    target_date: date
    items: List[StockAtDateRowResponse]
    total: int
    errors: List[str] = []


# Snapshot Schemas
class SnapshotResponse(BaseModel):
    id: int
    company_id: int
    stock_item_id: int
    snapshot_date: date
    quantity: Decimal
    unit: str
    item_type: StockItemType
    item_name: str

    model_config = ConfigDict(from_attributes=True)


class SnapshotListResponse(BaseModel):
    snapshots: List[SnapshotResponse]
    total: int
    skip: int
    limit: int


class SnapshotRunResponse(BaseModel):
    success: bool
    processed: int
    date: date
    skipped: bool = False
    execution_id: Optional[int] = None
    errors: List[str] = []


class JobExecutionResponse(BaseModel):
    id: int
    job_name: str
    target_date: Optional[date] = None
    status: str
    processed_count: int
    error_count: int
    message: Optional[str] = None
    started_at: datetime
    finished_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class JobExecutionListResponse(BaseModel):
    executions: List[JobExecutionResponse]
    total: int
