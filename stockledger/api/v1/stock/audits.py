"""Stock Audit API endpoints"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from stockledger.api import deps
from stockledger.models.stock import StockItemType
from stockledger.models.stock_audit import AuditItemStatus, AuditStatus
from stockledger.schemas.stock_audit import (
    ApplyDifferencesSummary, AuditAction, AuditCreate, AuditCreateResponse,
    AuditDetailResponse, AuditItemBatchResponse, AuditItemBatchUpdate,
    AuditItemResponse, AuditItemUpdate, AuditListResponse, AuditStats,
    AuditUpdate, AuditUpdateResponse
)
from stockledger.services.stock.stock_audit import StockAuditService

router = APIRouter()


def _summary(applied) -> Optional[ApplyDifferencesSummary]:
    if applied is None:
        return None
    return ApplyDifferencesSummary(
        applied_count=applied.applied_count,
        unchanged_count=applied.unchanged_count,
        errors=applied.errors,
    )


@router.get("", response_model=AuditListResponse)
async def list_audits(
    audit_status: Optional[AuditStatus] = Query(None, alias="status"),
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(deps.get_db),
    ctx: deps.CompanyContext = Depends(deps.get_company_context),
):
    """List audits, newest first."""
    audits, total = StockAuditService(db).list_audits(
        ctx.company_id, status=audit_status.value if audit_status else None, skip=skip, limit=limit
    )
    return AuditListResponse(audits=audits, total=total, skip=skip, limit=limit)


@router.post("", response_model=AuditCreateResponse, status_code=status.HTTP_201_CREATED)
async def create_audit(
    audit_in: AuditCreate,
    db: Session = Depends(deps.get_db),
    ctx: deps.CompanyContext = Depends(deps.get_company_context),
):
    """
    Open a stock audit.

    Book quantities are frozen from current stock at this moment.
    """
    result = StockAuditService(db).create_audit(
        ctx.company_id,
        ctx.user_id,
        name=audit_in.name,
        description=audit_in.description,
        audit_date=audit_in.audit_date,
        item_types=[t.value for t in audit_in.item_types] if audit_in.item_types else None,
    )
    return AuditCreateResponse(audit=result.audit, items_count=result.items_count, errors=result.errors)


@router.get("/{audit_id}", response_model=AuditDetailResponse)
async def get_audit(
    audit_id: int,
    item_type: Optional[StockItemType] = Query(None, alias="itemType"),
    item_status: Optional[AuditItemStatus] = Query(None, alias="status"),
    search: Optional[str] = Query(None, description="Match item name or code"),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
    db: Session = Depends(deps.get_db),
    ctx: deps.CompanyContext = Depends(deps.get_company_context),
):
    """Audit header, a page of its items sorted by name, and progress stats."""
    service = StockAuditService(db)
    audit = service.get_audit(ctx.company_id, audit_id)
    items, total = service.get_audit_items(
        ctx.company_id, audit_id,
        item_type=item_type.value if item_type else None,
        status=item_status.value if item_status else None,
        search=search,
        skip=skip,
        limit=limit,
    )
    return AuditDetailResponse(
        audit=audit,
        items=items,
        stats=AuditStats(**service.audit_stats(audit_id)),
        total=total,
        skip=skip,
        limit=limit,
    )


@router.patch("/{audit_id}", response_model=AuditUpdateResponse)
async def update_audit(
    audit_id: int,
    update_in: AuditUpdate,
    db: Session = Depends(deps.get_db),
    ctx: deps.CompanyContext = Depends(deps.get_company_context),
):
    """
    Close an audit (action=complete) or post its counts to stock
    (action=apply_differences).
    """
    service = StockAuditService(db)
    if update_in.action == AuditAction.COMPLETE:
        result = service.complete_audit(
            ctx.company_id, audit_id, ctx.user_id, apply_differences=update_in.apply_differences
        )
        return AuditUpdateResponse(audit=result.audit, applied=_summary(result.applied))

    applied = service.apply_differences(ctx.company_id, audit_id, ctx.user_id)
    return AuditUpdateResponse(audit=service.get_audit(ctx.company_id, audit_id), applied=_summary(applied))


@router.patch("/{audit_id}/items/batch", response_model=AuditItemBatchResponse)
async def batch_update_audit_items(
    audit_id: int,
    batch_in: AuditItemBatchUpdate,
    db: Session = Depends(deps.get_db),
    ctx: deps.CompanyContext = Depends(deps.get_company_context),
):
    """Record several counts; rejected lines are listed in errors."""
    result = StockAuditService(db).batch_update_items(
        ctx.company_id, audit_id, [entry.model_dump() for entry in batch_in.items], ctx.user_id
    )
    return AuditItemBatchResponse(updated=result.updated, errors=result.errors)


@router.get("/{audit_id}/items/{item_id}", response_model=AuditItemResponse)
async def get_audit_item(
    audit_id: int,
    item_id: int,
    db: Session = Depends(deps.get_db),
    ctx: deps.CompanyContext = Depends(deps.get_company_context),
):
    return StockAuditService(db).get_audit_item(ctx.company_id, audit_id, item_id)


@router.patch("/{audit_id}/items/{item_id}", response_model=AuditItemResponse)
async def update_audit_item(
    audit_id: int,
    item_id: int,
    item_in: AuditItemUpdate,
    db: Session = Depends(deps.get_db),
    ctx: deps.CompanyContext = Depends(deps.get_company_context),
):
    """Record the counted quantity for one item."""
    return StockAuditService(db).update_audit_item(
        ctx.company_id, audit_id, item_id, item_in.actual_quantity, ctx.user_id, notes=item_in.notes
    )
