"""
Stock Audit Service
Physical count sessions: freeze book quantities, collect counts, close out
and optionally post the counted quantities back to the ledger
"""
import logging
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from stockledger.core.exceptions import (
    InsufficientPermissionsError, IntegrationError, InvalidStateTransitionError,
    NotFoundError, ValidationError
)
from stockledger.models.stock import StockItem, StockItemType
from stockledger.models.stock_audit import (
    AuditItemStatus, AuditStatus, StockAudit, StockAuditItem
)
from stockledger.services.catalog import CatalogService, placeholder_name
from stockledger.services.stock.ledger import StockLedgerService, coerce_quantity
from stockledger.services.stock.periods import current_business_date, parse_iso_date, utcnow

logger = logging.getLogger(__name__)

AUDIT_REFERENCE_TYPE = "stock_audit"


def derive_audit_item_status(book_quantity, actual_quantity) -> AuditItemStatus:
    """pending until counted, then completed when the count matches the book, else discrepancy"""
    if actual_quantity is None:
        return AuditItemStatus.PENDING
    if Decimal(actual_quantity) == Decimal(book_quantity):
        return AuditItemStatus.COMPLETED
    return AuditItemStatus.DISCREPANCY


@dataclass
class AuditCreationResult:
    audit: StockAudit
    items_count: int
    errors: List[str] = field(default_factory=list)


@dataclass
class BatchUpdateResult:
    updated: List[StockAuditItem] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)


@dataclass
class ApplyDifferencesResult:
    applied_count: int = 0
    unchanged_count: int = 0
    errors: List[str] = field(default_factory=list)


@dataclass
class CompletionResult:
    audit: StockAudit
    applied: Optional[ApplyDifferencesResult] = None


class StockAuditService:
    """
    Stock audit workflow

    An audit moves in_progress -> completed exactly once. Counts can only be
    entered while it is in progress; differences can only be applied after.
    """

    def __init__(self, db: Session, catalog: Optional[CatalogService] = None,
                 ledger: Optional[StockLedgerService] = None):
        self.db = db
        self.catalog = catalog or CatalogService(db)
        self.ledger = ledger or StockLedgerService(db, catalog=self.catalog)

    def create_audit(self, company_id: int, user_id: str, name: str,
                     description: Optional[str] = None, audit_date=None,
                     item_types: Optional[Sequence[str]] = None) -> AuditCreationResult:
        """
        Open an audit over the company's tracked items

        Each line's book quantity is the item's cached quantity at this moment.
        Items the catalog cannot name still get a line, under a placeholder name.
        """
        if not name or not name.strip():
            raise ValidationError("Audit name is required")
        kinds = self._parse_item_types(item_types)
        audit_day = parse_iso_date(audit_date, "audit_date") if audit_date else current_business_date()

        stock_items = self.db.query(StockItem).filter(
            StockItem.company_id == company_id,
            StockItem.item_type.in_(kinds),
        ).order_by(StockItem.id).all()

        errors = []
        try:
            audit = StockAudit(
                company_id=company_id,
                name=name.strip(),
                description=description,
                audit_date=audit_day,
                status=AuditStatus.IN_PROGRESS.value,
                created_by=user_id,
            )
            self.db.add(audit)
            self.db.flush()

            for stock_item in stock_items:
                try:
                    entry = self.catalog.resolve(stock_item.item_type, stock_item.item_id, company_id)
                    item_name, item_code = entry.name, entry.code
                except (NotFoundError, IntegrationError) as e:
                    errors.append(f"{stock_item.item_type} {stock_item.item_id}: {e}")
                    item_name, item_code = placeholder_name(stock_item.item_type), None

                self.db.add(StockAuditItem(
                    audit_id=audit.id,
                    stock_item_id=stock_item.id,
                    item_name=item_name,
                    item_code=item_code,
                    item_type=stock_item.item_type,
                    unit=stock_item.unit,
                    book_quantity=Decimal(stock_item.current_quantity or 0),
                    status=AuditItemStatus.PENDING.value,
                ))
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(audit)
        logger.info(f"Created stock audit {audit.id} '{audit.name}' with {len(stock_items)} items for company {company_id}")
        return AuditCreationResult(audit=audit, items_count=len(stock_items), errors=errors)

    def _parse_item_types(self, item_types: Optional[Sequence[str]]) -> List[str]:
        if not item_types:
            return [t.value for t in StockItemType]
        kinds = []
        for value in item_types:
            try:
                kinds.append(StockItemType(value).value)
            except ValueError as e:
                raise ValidationError(f"Unknown item type {value!r}") from e
        return kinds

    # Reads

    def get_audit(self, company_id: int, audit_id: int, for_update: bool = False) -> StockAudit:
        query = self.db.query(StockAudit).filter(StockAudit.id == audit_id)
        if for_update:
            query = query.with_for_update()
        audit = query.first()
        if audit is None:
            raise NotFoundError(f"Stock audit {audit_id} not found")
        if audit.company_id != company_id:
            raise InsufficientPermissionsError(f"Stock audit {audit_id} belongs to another company")
        return audit

    def list_audits(self, company_id: int, status: Optional[str] = None,
                    skip: int = 0, limit: int = 20) -> Tuple[List[StockAudit], int]:
        query = self.db.query(StockAudit).filter(StockAudit.company_id == company_id)
        if status:
            query = query.filter(StockAudit.status == AuditStatus(status).value)
        total = query.count()
        audits = query.order_by(StockAudit.created_at.desc(), StockAudit.id.desc()).offset(skip).limit(limit).all()
        return audits, total

    def get_audit_items(self, company_id: int, audit_id: int, item_type: Optional[str] = None,
                        search: Optional[str] = None, status: Optional[str] = None,
                        skip: int = 0, limit: int = 100) -> Tuple[List[StockAuditItem], int]:
        self.get_audit(company_id, audit_id)
        query = self.db.query(StockAuditItem).filter(StockAuditItem.audit_id == audit_id)
        if item_type:
            query = query.filter(StockAuditItem.item_type == StockItemType(item_type).value)
        if status:
            query = query.filter(StockAuditItem.status == AuditItemStatus(status).value)
        if search:
            pattern = f"%{search}%"
            query = query.filter(or_(
                StockAuditItem.item_name.ilike(pattern),
                StockAuditItem.item_code.ilike(pattern),
            ))
        total = query.count()
        items = query.order_by(StockAuditItem.item_name, StockAuditItem.id).offset(skip).limit(limit).all()
        return items, total

    def get_audit_item(self, company_id: int, audit_id: int, item_id: int) -> StockAuditItem:
        self.get_audit(company_id, audit_id)
        return self._load_item(audit_id, item_id)

    def audit_stats(self, audit_id: int) -> Dict[str, Any]:
        counts = dict(
            self.db.query(StockAuditItem.status, func.count(StockAuditItem.id))
            .filter(StockAuditItem.audit_id == audit_id)
            .group_by(StockAuditItem.status)
            .all()
        )
        completed = counts.get(AuditItemStatus.COMPLETED.value, 0)
        discrepancy = counts.get(AuditItemStatus.DISCREPANCY.value, 0)
        pending = counts.get(AuditItemStatus.PENDING.value, 0)
        total = completed + discrepancy + pending
        rate = 0
        if total:
            rate = int((Decimal(completed + discrepancy) * 100 / total).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
        return {
            "total_items": total,
            "completed_items": completed,
            "pending_items": pending,
            "discrepancy_items": discrepancy,
            "completion_rate": rate,
        }

    def _load_item(self, audit_id: int, item_id: int) -> StockAuditItem:
        item = self.db.query(StockAuditItem).filter(
            StockAuditItem.id == item_id,
            StockAuditItem.audit_id == audit_id,
        ).first()
        if item is None:
            raise NotFoundError(f"Audit item {item_id} not found in audit {audit_id}")
        return item

    # Count entry

    def _require_open(self, audit: StockAudit):
        if audit.status != AuditStatus.IN_PROGRESS.value:
            raise InvalidStateTransitionError(f"Stock audit {audit.id} is already completed")

    def _record_count(self, item: StockAuditItem, actual_quantity, user_id: str, notes: Optional[str]):
        actual = coerce_quantity(actual_quantity, "actual_quantity")
        if actual < 0:
            raise ValidationError("actual_quantity must not be negative")
        book = Decimal(item.book_quantity)
        item.actual_quantity = actual
        item.difference = actual - book
        item.status = derive_audit_item_status(book, actual).value
        item.audited_by = user_id
        item.audited_at = utcnow()
        if notes is not None:
            item.notes = notes

    def update_audit_item(self, company_id: int, audit_id: int, item_id: int, actual_quantity,
                          user_id: str, notes: Optional[str] = None) -> StockAuditItem:
        """Record the counted quantity for one line"""
        audit = self.get_audit(company_id, audit_id)
        self._require_open(audit)
        item = self._load_item(audit_id, item_id)
        try:
            self._record_count(item, actual_quantity, user_id, notes)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(item)
        logger.info(f"Audit {audit_id} item {item_id} counted {item.actual_quantity} ({item.status}) by {user_id}")
        return item

    def batch_update_items(self, company_id: int, audit_id: int, updates: List[Dict[str, Any]],
                           user_id: str) -> BatchUpdateResult:
        """
        Record several counts at once

        Audit-level problems reject the whole batch. A bad line is reported in
        errors and does not undo the lines around it.
        """
        audit = self.get_audit(company_id, audit_id)
        self._require_open(audit)
        if not updates:
            raise ValidationError("At least one item update is required")

        result = BatchUpdateResult()
        for update in updates:
            item_id = update.get("item_id")
            try:
                item = self._load_item(audit_id, item_id)
                self._record_count(item, update.get("actual_quantity"), user_id, update.get("notes"))
                self.db.commit()
            except (ValidationError, NotFoundError) as e:
                self.db.rollback()
                result.errors.append(f"item {item_id}: {e}")
                continue
            except Exception:
                self.db.rollback()
                raise
            result.updated.append(item)

        for item in result.updated:
            self.db.refresh(item)
        logger.info(f"Audit {audit_id}: {len(result.updated)} counts recorded, {len(result.errors)} rejected")
        return result

    # Close out

    def complete_audit(self, company_id: int, audit_id: int, user_id: str,
                       apply_differences: bool = False) -> CompletionResult:
        try:
            audit = self.get_audit(company_id, audit_id, for_update=True)
            self._require_open(audit)
            audit.status = AuditStatus.COMPLETED.value
            audit.completed_at = utcnow()
            audit.completed_by = user_id
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(audit)
        logger.info(f"Stock audit {audit_id} completed by {user_id}")
        result = CompletionResult(audit=audit)
        if apply_differences:
            result.applied = self.apply_differences(company_id, audit_id, user_id)
            self.db.refresh(audit)
        return result

    def apply_differences(self, company_id: int, audit_id: int, user_id: str) -> ApplyDifferencesResult:
        """
        Bring each counted item's quantity to its counted value

        Posts one adjustment per item through the ledger, sized against the
        item's quantity at posting time so the cache and ledger stay in step.
        Allowed once per completed audit.
        """
        try:
            audit = self.get_audit(company_id, audit_id, for_update=True)
            if audit.status != AuditStatus.COMPLETED.value:
                raise InvalidStateTransitionError("Stock audit must be completed before applying differences")
            if audit.differences_applied_at is not None:
                raise InvalidStateTransitionError(f"Differences for stock audit {audit_id} were already applied")
            audit.differences_applied_at = utcnow()
            audit_name = audit.name
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        counted = self.db.query(StockAuditItem).filter(
            StockAuditItem.audit_id == audit_id,
            StockAuditItem.actual_quantity.isnot(None),
        ).order_by(StockAuditItem.stock_item_id).all()

        result = ApplyDifferencesResult()
        for line in counted:
            stock_item_id, actual = line.stock_item_id, line.actual_quantity
            try:
                txn = self.ledger.adjust_to(
                    company_id, stock_item_id, actual,
                    user_id=user_id,
                    reference_type=AUDIT_REFERENCE_TYPE,
                    reference_id=str(audit_id),
                    notes=f"Stock audit: {audit_name}",
                )
            except (ValidationError, NotFoundError, InsufficientPermissionsError,
                    InvalidStateTransitionError) as e:
                result.errors.append(f"stock item {stock_item_id}: {e}")
                continue
            if txn is None:
                result.unchanged_count += 1
            else:
                result.applied_count += 1

        logger.info(
            f"Applied stock audit {audit_id}: {result.applied_count} adjusted, "
            f"{result.unchanged_count} unchanged, {len(result.errors)} failed"
        )
        return result
