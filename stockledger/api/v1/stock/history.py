"""Point-in-time quantity API endpoints"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from stockledger.api import deps
from stockledger.models.stock import StockItemType
from stockledger.schemas.stock import (
    HistoricalQuantityResponse, StockAtDateResponse, StockAtDateRowResponse
)
from stockledger.services.stock.periods import parse_iso_date
from stockledger.services.stock.resolver import PointInTimeResolver

router = APIRouter()


@router.get("/items/{stock_item_id}/historical", response_model=HistoricalQuantityResponse)
async def get_historical_quantity(
    stock_item_id: int,
    target: str = Query(..., alias="date", description="Calendar date, YYYY-MM-DD"),
    db: Session = Depends(deps.get_db),
    ctx: deps.CompanyContext = Depends(deps.get_company_context),
):
    """
    Quantity on hand at the end of a calendar day.

    Answered from the exact day's snapshot, the nearest earlier snapshot plus
    later transactions, or a full replay of the ledger, in that order.
    """
    target_date = parse_iso_date(target, "date")
    resolver = PointInTimeResolver(db)
    resolved = resolver.quantity_at(stock_item_id, target_date, company_id=ctx.company_id)
    item = resolver.ledger.get_stock_item(ctx.company_id, stock_item_id)
    return HistoricalQuantityResponse(
        stock_item_id=resolved.stock_item_id,
        date=resolved.target_date,
        quantity=resolved.quantity,
        unit=item.unit,
        calculation_method=resolved.method,
        snapshot_date=resolved.snapshot_date,
        transactions_applied=resolved.transactions_applied,
        calculation_time_ms=resolved.elapsed_ms,
    )


@router.get("/at-date", response_model=StockAtDateResponse)
async def get_stock_at_date(
    target: str = Query(..., alias="targetDate", description="Calendar date, YYYY-MM-DD"),
    item_type: Optional[StockItemType] = Query(None, alias="itemType"),
    db: Session = Depends(deps.get_db),
    ctx: deps.CompanyContext = Depends(deps.get_company_context),
):
    """End-of-day quantities for every tracked item of the company."""
    target_date = parse_iso_date(target, "targetDate")
    rows, errors = PointInTimeResolver(db).stock_at_date(
        ctx.company_id, target_date, item_type=item_type.value if item_type else None
    )
    return StockAtDateResponse(
        target_date=target_date,
        items=[
            StockAtDateRowResponse(
                stock_item_id=row.stock_item_id,
                item_type=row.item_type,
                item_id=row.item_id,
                item_name=row.item_name,
                unit=row.unit,
                quantity=row.quantity,
                calculation_method=row.method,
            )
            for row in rows
        ],
        total=len(rows),
        errors=errors,
    )
