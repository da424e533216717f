"""Daily Snapshot API endpoints"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from stockledger.api import deps
from stockledger.schemas.stock import SnapshotListResponse
from stockledger.services.stock.snapshots import SnapshotMaterializerService

router = APIRouter()


@router.get("", response_model=SnapshotListResponse)
async def list_snapshots(
    stock_item_id: Optional[int] = Query(None),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
    db: Session = Depends(deps.get_db),
    ctx: deps.CompanyContext = Depends(deps.get_company_context),
):
    rows, total = SnapshotMaterializerService(db).list_snapshots(
        ctx.company_id,
        stock_item_id=stock_item_id,
        start_date=start_date,
        end_date=end_date,
        skip=skip,
        limit=limit,
    )
    return SnapshotListResponse(snapshots=rows, total=total, skip=skip, limit=limit)
