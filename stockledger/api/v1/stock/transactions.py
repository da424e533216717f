"""Stock Transaction API endpoints"""

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from stockledger.api import deps
from stockledger.models.stock import TransactionType
from stockledger.schemas.stock import (
    TransactionBatchCreate, TransactionCreate, TransactionListResponse, TransactionResponse
)
from stockledger.services.stock.ledger import StockLedgerService

router = APIRouter()


@router.get("", response_model=TransactionListResponse)
async def list_transactions(
    stock_item_id: Optional[int] = Query(None, description="Filter by stock item"),
    transaction_type: Optional[TransactionType] = Query(None, description="Filter by type"),
    start_date: Optional[date] = Query(None, description="First calendar day"),
    end_date: Optional[date] = Query(None, description="Last calendar day"),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
    db: Session = Depends(deps.get_db),
    ctx: deps.CompanyContext = Depends(deps.get_company_context),
):
    """List ledger transactions, newest first."""
    rows, total = StockLedgerService(db).list_transactions(
        ctx.company_id,
        stock_item_id=stock_item_id,
        transaction_type=transaction_type.value if transaction_type else None,
        start_date=start_date,
        end_date=end_date,
        skip=skip,
        limit=limit,
    )
    return TransactionListResponse(transactions=rows, total=total, skip=skip, limit=limit)


@router.post("", response_model=TransactionResponse, status_code=status.HTTP_201_CREATED)
async def create_transaction(
    txn_in: TransactionCreate,
    db: Session = Depends(deps.get_db),
    ctx: deps.CompanyContext = Depends(deps.get_company_context),
):
    """
    Record one stock movement.

    The item's current quantity moves in the same database transaction.
    """
    return StockLedgerService(db).append_transaction(
        ctx.company_id,
        txn_in.stock_item_id,
        txn_in.transaction_type,
        txn_in.quantity,
        transaction_date=txn_in.transaction_date,
        notes=txn_in.notes,
        user_id=ctx.user_id,
        reference_type=txn_in.reference_type,
        reference_id=txn_in.reference_id,
    )


@router.post("/batch", response_model=List[TransactionResponse], status_code=status.HTTP_201_CREATED)
async def create_transactions(
    batch_in: TransactionBatchCreate,
    db: Session = Depends(deps.get_db),
    ctx: deps.CompanyContext = Depends(deps.get_company_context),
):
    """Record a group of movements; either all are stored or none."""
    return StockLedgerService(db).append_transactions(
        ctx.company_id,
        [entry.model_dump() for entry in batch_in.transactions],
        user_id=ctx.user_id,
    )
