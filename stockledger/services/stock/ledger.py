"""
Stock Ledger Service
Append-only transaction ledger and the current-quantity cache it maintains

Every change to a stock item's quantity is a StockTransaction. The cached
StockItem.current_quantity is written in the same unit of work as the
transaction that moves it, so the cache always equals the fold of the ledger.
"""
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from stockledger.core.config import settings
from stockledger.core.exceptions import (
    BackdatedTransactionError, InsufficientPermissionsError, NotFoundError, ValidationError
)
from stockledger.models.stock import (
    DailyStockSnapshot, StockItem, StockItemType, StockTransaction, TransactionType
)
from stockledger.services.catalog import CatalogService
from stockledger.services.stock.periods import (
    business_date_of, day_end, day_start, to_utc_naive, utcnow
)

logger = logging.getLogger(__name__)

ZERO = Decimal("0")

# Quantity columns are Numeric(15, 3)
MAX_INTEGER_DIGITS = 12


def quantize_quantity(value) -> Decimal:
    """Round a quantity to the stored precision"""
    places = Decimal(1).scaleb(-settings.QUANTITY_DECIMAL_PLACES)
    return Decimal(value).quantize(places, rounding=ROUND_HALF_UP)


def coerce_quantity(value, field_name: str = "quantity") -> Decimal:
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{field_name} must be a number")
    try:
        # str() first so binary floats keep their printed value
        number = Decimal(str(value)) if isinstance(value, float) else Decimal(value)
    except (InvalidOperation, TypeError, ValueError) as e:
        raise ValidationError(f"{field_name} must be a number") from e
    if not number.is_finite():
        raise ValidationError(f"{field_name} must be finite")
    too_large = ValidationError(f"{field_name} must have at most {MAX_INTEGER_DIGITS} integer digits")
    if number and number.adjusted() >= MAX_INTEGER_DIGITS:
        raise too_large
    try:
        quantized = quantize_quantity(number)
    except InvalidOperation as e:
        raise too_large from e
    # Rounding can carry into a thirteenth digit
    if quantized and quantized.adjusted() >= MAX_INTEGER_DIGITS:
        raise too_large
    return quantized


def coerce_transaction_type(value) -> TransactionType:
    try:
        return TransactionType(value)
    except ValueError as e:
        allowed = ", ".join(t.value for t in TransactionType)
        raise ValidationError(f"Unknown transaction type {value!r}; expected one of {allowed}") from e


def signed_effect(transaction_type, magnitude) -> Decimal:
    """
    Signed change a transaction makes to on-hand quantity

    incoming adds, outgoing and disposal subtract, adjustment carries its own sign.
    """
    txn_type = TransactionType(transaction_type)
    magnitude = Decimal(magnitude)
    if txn_type in (TransactionType.OUTGOING, TransactionType.DISPOSAL):
        return -magnitude
    return magnitude


def fold_transactions(transactions: Iterable, start=ZERO) -> Decimal:
    """Apply transactions, in the order given, to a starting quantity"""
    total = Decimal(start)
    for txn in transactions:
        total += signed_effect(txn.transaction_type, txn.quantity)
    return total


@dataclass
class ResyncResult:
    stock_item_id: int
    previous_quantity: Decimal
    recomputed_quantity: Decimal

    @property
    def drift(self) -> Decimal:
        return self.recomputed_quantity - self.previous_quantity


@dataclass
class SyncResult:
    added: int = 0
    ingredients_found: int = 0
    containers_found: int = 0
    added_items: List[StockItem] = field(default_factory=list)


class StockLedgerService:
    """
    Ledger writes, cache maintenance and stock item enrollment
    """

    def __init__(self, db: Session, catalog: Optional[CatalogService] = None):
        self.db = db
        self.catalog = catalog or CatalogService(db)

    # Stock items

    def get_stock_item(self, company_id: Optional[int], stock_item_id: int,
                       for_update: bool = False) -> StockItem:
        """
        Load a stock item, checking it belongs to the company

        Raises:
            NotFoundError: no such item
            InsufficientPermissionsError: the item belongs to another company
        """
        query = self.db.query(StockItem).filter(StockItem.id == stock_item_id)
        if for_update:
            query = query.with_for_update()
        item = query.first()
        if item is None:
            raise NotFoundError(f"Stock item {stock_item_id} not found")
        if company_id is not None and item.company_id != company_id:
            raise InsufficientPermissionsError(f"Stock item {stock_item_id} belongs to another company")
        return item

    def list_stock_items(self, company_id: int, item_type: Optional[str] = None,
                         skip: int = 0, limit: int = 100) -> Tuple[List[StockItem], int]:
        query = self.db.query(StockItem).filter(StockItem.company_id == company_id)
        if item_type:
            query = query.filter(StockItem.item_type == StockItemType(item_type).value)
        total = query.count()
        items = query.order_by(StockItem.item_type, StockItem.id).offset(skip).limit(limit).all()
        return items, total

    def register_stock_item(self, company_id: int, item_type: str, item_id: int,
                            unit: Optional[str] = None, user_id: Optional[str] = None,
                            opening_quantity=None) -> StockItem:
        """
        Start tracking one catalog entry

        An opening quantity is recorded as an adjustment so the cache never
        holds anything the ledger cannot explain.
        """
        try:
            kind = StockItemType(item_type)
        except ValueError as e:
            raise ValidationError(f"Unknown item type {item_type!r}") from e
        entry = self.catalog.resolve(kind.value, item_id, company_id)

        existing = self.db.query(StockItem).filter(
            StockItem.company_id == company_id,
            StockItem.item_type == kind.value,
            StockItem.item_id == item_id,
        ).first()
        if existing:
            raise ValidationError(f"{kind.value} {item_id} is already tracked as stock item {existing.id}")

        opening = coerce_quantity(opening_quantity, "opening_quantity") if opening_quantity is not None else ZERO

        try:
            item = StockItem(
                company_id=company_id,
                item_type=kind.value,
                item_id=item_id,
                unit=unit or entry.unit,
                current_quantity=ZERO,
                created_by=user_id,
                last_updated=utcnow(),
            )
            self.db.add(item)
            self.db.flush()
            if opening != ZERO:
                self._post(item, TransactionType.ADJUSTMENT, opening, utcnow(),
                           user_id=user_id, reference_type="opening_balance",
                           notes="Opening balance")
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(item)
        logger.info(f"Registered stock item {item.id} ({kind.value} {item_id}) for company {company_id}")
        return item

    def sync_stock_items(self, company_id: int, user_id: Optional[str] = None) -> SyncResult:
        """Enroll every trackable catalog entry of a company that is not tracked yet"""
        ingredients, containers = self.catalog.list_trackable(company_id)
        result = SyncResult(ingredients_found=len(ingredients), containers_found=len(containers))

        tracked = {
            (row.item_type, row.item_id)
            for row in self.db.query(StockItem.item_type, StockItem.item_id)
            .filter(StockItem.company_id == company_id)
        }

        now = utcnow()
        candidates = [(StockItemType.INGREDIENT.value, i.id, i.unit) for i in ingredients]
        candidates += [(StockItemType.CONTAINER.value, c.id, settings.DEFAULT_CONTAINER_UNIT) for c in containers]

        try:
            for item_type, catalog_id, unit in candidates:
                if (item_type, catalog_id) in tracked:
                    continue
                item = StockItem(
                    company_id=company_id,
                    item_type=item_type,
                    item_id=catalog_id,
                    unit=unit,
                    current_quantity=ZERO,
                    created_by=user_id,
                    last_updated=now,
                )
                self.db.add(item)
                result.added_items.append(item)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        result.added = len(result.added_items)
        logger.info(
            f"Stock item sync for company {company_id}: {result.added} added "
            f"({result.ingredients_found} ingredients, {result.containers_found} containers found)"
        )
        return result

    # Ledger writes

    def append_transaction(self, company_id: Optional[int], stock_item_id: int, transaction_type,
                           quantity, transaction_date: Optional[datetime] = None,
                           notes: Optional[str] = None, user_id: Optional[str] = None,
                           reference_type: Optional[str] = None,
                           reference_id: Optional[str] = None) -> StockTransaction:
        """
        Record one stock movement and move the cache with it

        Raises:
            ValidationError: bad type or magnitude
            NotFoundError / InsufficientPermissionsError: unknown or foreign item
            BackdatedTransactionError: the effective day is already materialized
        """
        txn_type, magnitude = self._validate_entry(transaction_type, quantity)
        effective_at = to_utc_naive(transaction_date) if transaction_date else utcnow()

        try:
            item = self.get_stock_item(company_id, stock_item_id, for_update=True)
            self._check_cutoff(item, effective_at)
            txn = self._post(item, txn_type, magnitude, effective_at, user_id=user_id,
                             reference_type=reference_type, reference_id=reference_id, notes=notes)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(txn)
        logger.info(
            f"{txn_type.value} {magnitude} on stock item {stock_item_id} "
            f"at {effective_at.isoformat()} -> {item.current_quantity}"
        )
        return txn

    def append_transactions(self, company_id: int, entries: List[Dict[str, Any]],
                            user_id: Optional[str] = None) -> List[StockTransaction]:
        """
        Record a group of movements atomically

        Every entry is validated before anything is written; any failure
        rejects the whole group.
        """
        if not entries:
            raise ValidationError("At least one transaction is required")

        prepared = []
        problems = []
        for index, entry in enumerate(entries):
            try:
                txn_type, magnitude = self._validate_entry(entry.get("transaction_type"), entry.get("quantity"))
                if entry.get("stock_item_id") is None:
                    raise ValidationError("stock_item_id is required")
            except ValidationError as e:
                problems.append(f"entry {index}: {e}")
                continue
            effective_at = entry.get("transaction_date")
            effective_at = to_utc_naive(effective_at) if effective_at else utcnow()
            prepared.append((entry, txn_type, magnitude, effective_at))
        if problems:
            raise ValidationError("; ".join(problems))

        posted = []
        try:
            # Lock rows in id order so concurrent groups cannot deadlock
            for stock_item_id in sorted({p[0]["stock_item_id"] for p in prepared}):
                self.get_stock_item(company_id, stock_item_id, for_update=True)
            for entry, txn_type, magnitude, effective_at in prepared:
                item = self.get_stock_item(company_id, entry["stock_item_id"])
                self._check_cutoff(item, effective_at)
                posted.append(self._post(
                    item, txn_type, magnitude, effective_at, user_id=user_id,
                    reference_type=entry.get("reference_type"),
                    reference_id=entry.get("reference_id"),
                    notes=entry.get("notes"),
                ))
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        for txn in posted:
            self.db.refresh(txn)
        logger.info(f"Recorded {len(posted)} transactions for company {company_id}")
        return posted

    def adjust_to(self, company_id: Optional[int], stock_item_id: int, target_quantity,
                  user_id: Optional[str] = None, reference_type: Optional[str] = None,
                  reference_id: Optional[str] = None,
                  notes: Optional[str] = None) -> Optional[StockTransaction]:
        """
        Post the adjustment that brings an item's quantity to target_quantity

        The delta is taken against the cache while the item row is locked.
        Returns None when the item already holds the target quantity.
        """
        target = coerce_quantity(target_quantity, "target quantity")
        effective_at = utcnow()

        try:
            item = self.get_stock_item(company_id, stock_item_id, for_update=True)
            delta = target - Decimal(item.current_quantity or 0)
            if delta == ZERO:
                self.db.commit()
                return None
            self._check_cutoff(item, effective_at)
            txn = self._post(item, TransactionType.ADJUSTMENT, delta, effective_at, user_id=user_id,
                             reference_type=reference_type, reference_id=reference_id, notes=notes)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(txn)
        logger.info(f"Adjusted stock item {stock_item_id} by {delta} to {target}")
        return txn

    def _validate_entry(self, transaction_type, quantity) -> Tuple[TransactionType, Decimal]:
        txn_type = coerce_transaction_type(transaction_type)
        magnitude = coerce_quantity(quantity)
        if txn_type == TransactionType.ADJUSTMENT:
            if magnitude == ZERO:
                raise ValidationError("Adjustment quantity must not be zero")
        elif magnitude < ZERO:
            raise ValidationError(f"{txn_type.value} quantity must not be negative")
        return txn_type, magnitude

    def _check_cutoff(self, item: StockItem, effective_at: datetime):
        if not settings.ENFORCE_SNAPSHOT_CUTOFF:
            return
        latest = self.latest_snapshot_date(item.id)
        effective_day = business_date_of(effective_at)
        if latest is not None and effective_day <= latest:
            raise BackdatedTransactionError(
                f"Stock item {item.id} is already snapshotted through {latest.isoformat()}; "
                f"transactions dated {effective_day.isoformat()} are not accepted"
            )

    def _post(self, item: StockItem, txn_type: TransactionType, magnitude: Decimal,
              effective_at: datetime, user_id: Optional[str] = None,
              reference_type: Optional[str] = None, reference_id: Optional[str] = None,
              notes: Optional[str] = None) -> StockTransaction:
        txn = StockTransaction(
            stock_item_id=item.id,
            transaction_type=txn_type.value,
            quantity=magnitude,
            transaction_date=effective_at,
            user_id=user_id,
            reference_type=reference_type,
            reference_id=str(reference_id) if reference_id is not None else None,
            notes=notes,
        )
        self.db.add(txn)
        item.current_quantity = quantize_quantity(
            Decimal(item.current_quantity or 0) + signed_effect(txn_type, magnitude)
        )
        item.last_updated = utcnow()
        return txn

    # Ledger reads

    def latest_snapshot_date(self, stock_item_id: int) -> Optional[date]:
        return self.db.query(func.max(DailyStockSnapshot.snapshot_date)).filter(
            DailyStockSnapshot.stock_item_id == stock_item_id
        ).scalar()

    def transactions_for_item(self, stock_item_id: int, after: Optional[datetime] = None,
                              before: Optional[datetime] = None) -> List[StockTransaction]:
        """Transactions with after <= transaction_date < before, oldest first"""
        query = self.db.query(StockTransaction).filter(StockTransaction.stock_item_id == stock_item_id)
        if after is not None:
            query = query.filter(StockTransaction.transaction_date >= after)
        if before is not None:
            query = query.filter(StockTransaction.transaction_date < before)
        return query.order_by(StockTransaction.transaction_date, StockTransaction.id).all()

    def list_transactions(self, company_id: int, stock_item_id: Optional[int] = None,
                          transaction_type: Optional[str] = None,
                          start_date: Optional[date] = None, end_date: Optional[date] = None,
                          skip: int = 0, limit: int = 100) -> Tuple[List[StockTransaction], int]:
        query = self.db.query(StockTransaction).join(StockItem).filter(StockItem.company_id == company_id)
        if stock_item_id is not None:
            query = query.filter(StockTransaction.stock_item_id == stock_item_id)
        if transaction_type:
            query = query.filter(StockTransaction.transaction_type == coerce_transaction_type(transaction_type).value)
        if start_date:
            query = query.filter(StockTransaction.transaction_date >= day_start(start_date))
        if end_date:
            query = query.filter(StockTransaction.transaction_date < day_end(end_date))
        total = query.count()
        rows = query.order_by(
            StockTransaction.transaction_date.desc(), StockTransaction.id.desc()
        ).offset(skip).limit(limit).all()
        return rows, total

    # Cache maintenance

    def resync_stock_item(self, company_id: Optional[int], stock_item_id: int) -> ResyncResult:
        """Rebuild one item's cached quantity from a full fold of its ledger"""
        try:
            item = self.get_stock_item(company_id, stock_item_id, for_update=True)
            previous = Decimal(item.current_quantity or 0)
            recomputed = quantize_quantity(fold_transactions(self.transactions_for_item(item.id)))
            if recomputed != previous:
                item.current_quantity = recomputed
                item.last_updated = utcnow()
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        result = ResyncResult(item.id, previous, recomputed)
        if result.drift:
            logger.warning(f"Stock item {item.id} cache drift {result.drift} repaired: {previous} -> {recomputed}")
        return result

    def resync_company(self, company_id: int) -> List[ResyncResult]:
        """Resync every item of a company; returns only the items that had drifted"""
        ids = [row.id for row in self.db.query(StockItem.id).filter(StockItem.company_id == company_id)]
        drifted = [r for r in (self.resync_stock_item(company_id, i) for i in ids) if r.drift]
        logger.info(f"Resynced {len(ids)} stock items for company {company_id}, {len(drifted)} drifted")
        return drifted
