"""Stock Item API endpoints"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from stockledger.api import deps
from stockledger.models.stock import StockItemType
from stockledger.schemas.stock import (
    ResyncResponse, StockItemCreate, StockItemListResponse, StockItemResponse,
    StockItemSyncResponse
)
from stockledger.services.stock.ledger import StockLedgerService

router = APIRouter()


@router.get("", response_model=StockItemListResponse)
async def list_stock_items(
    item_type: Optional[StockItemType] = Query(None, alias="itemType", description="Filter by kind"),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
    db: Session = Depends(deps.get_db),
    ctx: deps.CompanyContext = Depends(deps.get_company_context),
):
    """List tracked stock items with their current quantities."""
    items, total = StockLedgerService(db).list_stock_items(
        ctx.company_id, item_type=item_type.value if item_type else None, skip=skip, limit=limit
    )
    return StockItemListResponse(items=items, total=total, skip=skip, limit=limit)


@router.post("", response_model=StockItemResponse, status_code=status.HTTP_201_CREATED)
async def register_stock_item(
    item_in: StockItemCreate,
    db: Session = Depends(deps.get_db),
    ctx: deps.CompanyContext = Depends(deps.get_company_context),
):
    """
    Start tracking one ingredient or container.

    An opening quantity is booked as an adjustment transaction.
    """
    return StockLedgerService(db).register_stock_item(
        ctx.company_id,
        item_type=item_in.item_type.value,
        item_id=item_in.item_id,
        unit=item_in.unit,
        user_id=ctx.user_id,
        opening_quantity=item_in.opening_quantity,
    )


@router.post("/sync", response_model=StockItemSyncResponse)
async def sync_stock_items(
    db: Session = Depends(deps.get_db),
    ctx: deps.CompanyContext = Depends(deps.get_company_context),
):
    """Enroll graded ingredients and containers that are not tracked yet."""
    result = StockLedgerService(db).sync_stock_items(ctx.company_id, user_id=ctx.user_id)
    return StockItemSyncResponse(
        added=result.added,
        ingredients_found=result.ingredients_found,
        containers_found=result.containers_found,
        items=result.added_items,
    )


@router.get("/{stock_item_id}", response_model=StockItemResponse)
async def get_stock_item(
    stock_item_id: int,
    db: Session = Depends(deps.get_db),
    ctx: deps.CompanyContext = Depends(deps.get_company_context),
):
    return StockLedgerService(db).get_stock_item(ctx.company_id, stock_item_id)


@router.post("/{stock_item_id}/resync", response_model=ResyncResponse)
async def resync_stock_item(
    stock_item_id: int,
    db: Session = Depends(deps.get_db),
    ctx: deps.CompanyContext = Depends(deps.get_company_context),
):
    """Rebuild the cached quantity from the transaction ledger."""
    result = StockLedgerService(db).resync_stock_item(ctx.company_id, stock_item_id)
    return ResyncResponse(
        stock_item_id=result.stock_item_id,
        previous_quantity=result.previous_quantity,
        recomputed_quantity=result.recomputed_quantity,
        drift=result.drift,
    )
