"""
Daily Snapshot Materializer
Writes one end-of-day quantity per stock item per calendar day

Runs from the scheduler once a day for the previous day. The scheduler may
fire more than once, so a run is skipped when the day already has rows and
every write is an upsert keyed by (company, stock item, date).
"""
import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session
from sqlalchemy.sql import func

from stockledger.core.exceptions import IntegrationError, NotFoundError, ValidationError
from stockledger.models.stock import DailyStockSnapshot, StockItem, StockTransaction
from stockledger.services.catalog import CatalogService
from stockledger.services.stock.ledger import (
    StockLedgerService, fold_transactions, quantize_quantity, signed_effect
)
from stockledger.services.stock.periods import current_business_date, day_end, parse_iso_date

logger = logging.getLogger(__name__)

UPSERT_CHUNK_SIZE = 500
SNAPSHOT_KEY = ("company_id", "stock_item_id", "snapshot_date")


@dataclass
class MaterializationResult:
    snapshot_date: date
    processed_count: int = 0
    skipped: bool = False
    failed_count: int = 0
    errors: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        # Only a run where every item failed name resolution counts as failed
        return not (self.processed_count == 0 and self.failed_count > 0)


def default_snapshot_date() -> date:
    """Yesterday in the reference timezone"""
    return current_business_date() - timedelta(days=1)


class SnapshotMaterializerService:

    def __init__(self, db: Session, catalog: Optional[CatalogService] = None):
        self.db = db
        self.catalog = catalog or CatalogService(db)
        self.ledger = StockLedgerService(db, catalog=self.catalog)

    def snapshots_exist(self, snapshot_date: date) -> bool:
        return self.db.query(DailyStockSnapshot.id).filter(
            DailyStockSnapshot.snapshot_date == snapshot_date
        ).limit(1).first() is not None

    def materialize_snapshots_for(self, snapshot_date, force: bool = False) -> MaterializationResult:
        """
        Materialize end-of-day quantities for every tracked item of every company

        Args:
            snapshot_date: a fully elapsed day (date or YYYY-MM-DD)
            force: rewrite the day even if it already has snapshots, computing
                quantities by replaying the ledger up to the end of the day

        Returns:
            MaterializationResult with the number of rows written and any
            per-item name resolution failures
        """
        snapshot_date = parse_iso_date(snapshot_date, "snapshot date")
        if snapshot_date >= current_business_date():
            raise ValidationError(f"{snapshot_date.isoformat()} has not finished yet")

        result = MaterializationResult(snapshot_date=snapshot_date)

        if not force and self.snapshots_exist(snapshot_date):
            result.skipped = True
            result.errors.append(f"Snapshots for {snapshot_date.isoformat()} already exist")
            logger.info(result.errors[0])
            return result

        items = self.db.query(StockItem).order_by(StockItem.id).all()
        if not items:
            logger.info(f"No stock items to snapshot for {snapshot_date.isoformat()}")
            return result

        boundary = day_end(snapshot_date)
        late_effects = {} if force else self._effects_since(boundary)

        rows = []
        for item in items:
            try:
                name = self.catalog.resolve_name(item.item_type, item.item_id, item.company_id)
            except (NotFoundError, IntegrationError) as e:
                result.failed_count += 1
                result.errors.append(f"{item.item_type} {item.item_id}: {e}")
                continue

            if force:
                quantity = fold_transactions(self.ledger.transactions_for_item(item.id, before=boundary))
            else:
                # The cache includes anything posted after the day closed; take it back out
                quantity = Decimal(item.current_quantity or 0) - late_effects.get(item.id, Decimal("0"))

            rows.append({
                "company_id": item.company_id,
                "stock_item_id": item.id,
                "snapshot_date": snapshot_date,
                "quantity": quantize_quantity(quantity),
                "unit": item.unit,
                "item_type": item.item_type,
                "item_name": name,
            })

        if not rows:
            result.errors.append("No valid snapshots to create")
            logger.error(f"Snapshot run for {snapshot_date.isoformat()} produced no rows")
            return result

        try:
            for start in range(0, len(rows), UPSERT_CHUNK_SIZE):
                self._upsert(rows[start:start + UPSERT_CHUNK_SIZE])
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Snapshot upsert for {snapshot_date.isoformat()} failed: {e}")
            raise

        result.processed_count = len(rows)
        logger.info(
            f"Materialized {result.processed_count} snapshots for {snapshot_date.isoformat()} "
            f"({result.failed_count} skipped, force={force})"
        )
        return result

    def _effects_since(self, boundary) -> Dict[int, Decimal]:
        effects: Dict[int, Decimal] = {}
        late = self.db.query(StockTransaction).filter(StockTransaction.transaction_date >= boundary)
        for txn in late:
            effects[txn.stock_item_id] = effects.get(txn.stock_item_id, Decimal("0")) + signed_effect(
                txn.transaction_type, txn.quantity
            )
        return effects

    def _upsert(self, rows: List[dict]):
        dialect = self.db.get_bind().dialect.name
        if dialect in ("postgresql", "sqlite"):
            insert = pg_insert if dialect == "postgresql" else sqlite_insert
            stmt = insert(DailyStockSnapshot).values(rows)
            stmt = stmt.on_conflict_do_update(
                index_elements=list(SNAPSHOT_KEY),
                set_={
                    "quantity": stmt.excluded.quantity,
                    "unit": stmt.excluded.unit,
                    "item_type": stmt.excluded.item_type,
                    "item_name": stmt.excluded.item_name,
                    "updated_at": func.current_timestamp(),
                },
            )
            self.db.execute(stmt)
            return

        # Backends without ON CONFLICT: merge by key inside the same transaction
        for row in rows:
            existing = self.db.query(DailyStockSnapshot).filter_by(
                **{key: row[key] for key in SNAPSHOT_KEY}
            ).first()
            if existing:
                for column in ("quantity", "unit", "item_type", "item_name"):
                    setattr(existing, column, row[column])
            else:
                self.db.add(DailyStockSnapshot(**row))
        self.db.flush()

    def list_snapshots(self, company_id: int, stock_item_id: Optional[int] = None,
                       start_date: Optional[date] = None, end_date: Optional[date] = None,
                       skip: int = 0, limit: int = 100) -> Tuple[List[DailyStockSnapshot], int]:
        query = self.db.query(DailyStockSnapshot).filter(DailyStockSnapshot.company_id == company_id)
        if stock_item_id is not None:
            query = query.filter(DailyStockSnapshot.stock_item_id == stock_item_id)
        if start_date:
            query = query.filter(DailyStockSnapshot.snapshot_date >= start_date)
        if end_date:
            query = query.filter(DailyStockSnapshot.snapshot_date <= end_date)
        total = query.count()
        rows = query.order_by(
            DailyStockSnapshot.snapshot_date.desc(), DailyStockSnapshot.stock_item_id
        ).offset(skip).limit(limit).all()
        return rows, total
