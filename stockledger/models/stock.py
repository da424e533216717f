"""
Stock Ledger Models
Tracked stock items, the append-only transaction ledger and daily snapshots
"""
from enum import Enum

from sqlalchemy import (
    CheckConstraint, Column, Date, DateTime, ForeignKey, Index, Integer,
    Numeric, String, Text, UniqueConstraint
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from stockledger.core.database import Base


class StockItemType(str, Enum):
    INGREDIENT = "ingredient"
    CONTAINER = "container"


class TransactionType(str, Enum):
    INCOMING = "incoming"
    OUTGOING = "outgoing"
    DISPOSAL = "disposal"
    ADJUSTMENT = "adjustment"


class StockItem(Base):
    """
    A tracked unit of inventory for one company

    current_quantity is a cache of the fold of every transaction for the item.
    It is only ever written together with a ledger append or by a resync.
    """
    __tablename__ = "stock_items"
    __table_args__ = (
        UniqueConstraint("company_id", "item_type", "item_id", name="uq_stock_items_company_catalog"),
        CheckConstraint("item_type IN ('ingredient', 'container')", name="valid_item_type"),
    )

    id = Column(Integer, primary_key=True)
    company_id = Column(Integer, ForeignKey("companies.id", ondelete="RESTRICT"), nullable=False, index=True)
    item_type = Column(String(20), nullable=False, doc="ingredient or container")
    item_id = Column(Integer, nullable=False, doc="Catalog id of the ingredient or container")
    unit = Column(String(20), nullable=False)
    current_quantity = Column(Numeric(15, 3), nullable=False, default=0, doc="Cached ledger fold")
    created_by = Column(String(64))
    created_at = Column(DateTime, nullable=False, server_default=func.current_timestamp())
    last_updated = Column(DateTime, doc="Time of the last cache write")

    transactions = relationship(
        "StockTransaction", back_populates="stock_item", lazy="dynamic", passive_deletes="all"
    )
    snapshots = relationship(
        "DailyStockSnapshot", back_populates="stock_item", lazy="dynamic", passive_deletes="all"
    )

    def __repr__(self):
        return f"<StockItem {self.id} {self.item_type}:{self.item_id} qty={self.current_quantity}>"


class StockTransaction(Base):
    """
    Immutable ledger fact

    quantity is a non-negative magnitude for incoming, outgoing and disposal;
    adjustment rows carry a signed delta.
    """
    __tablename__ = "stock_transactions"
    __table_args__ = (
        Index("ix_stock_transactions_item_date", "stock_item_id", "transaction_date"),
        CheckConstraint(
            "transaction_type IN ('incoming', 'outgoing', 'disposal', 'adjustment')",
            name="valid_transaction_type"
        ),
        CheckConstraint(
            "transaction_type = 'adjustment' OR quantity >= 0",
            name="non_negative_magnitude"
        ),
    )

    id = Column(Integer, primary_key=True)
    stock_item_id = Column(Integer, ForeignKey("stock_items.id", ondelete="RESTRICT"), nullable=False)
    transaction_type = Column(String(20), nullable=False)
    quantity = Column(Numeric(15, 3), nullable=False)
    transaction_date = Column(DateTime, nullable=False, doc="Effective time, naive UTC")
    user_id = Column(String(64))
    reference_type = Column(String(50), doc="Kind of document that caused the movement")
    reference_id = Column(String(64))
    notes = Column(Text)
    created_at = Column(DateTime, nullable=False, server_default=func.current_timestamp())

    stock_item = relationship("StockItem", back_populates="transactions")


class DailyStockSnapshot(Base):
    """End-of-day quantity for one stock item, with denormalized display fields"""
    __tablename__ = "daily_stock_snapshots"
    __table_args__ = (
        UniqueConstraint("company_id", "stock_item_id", "snapshot_date", name="uq_daily_stock_snapshots_key"),
        Index("ix_daily_stock_snapshots_item_date", "stock_item_id", "snapshot_date"),
    )

    id = Column(Integer, primary_key=True)
    company_id = Column(Integer, ForeignKey("companies.id", ondelete="RESTRICT"), nullable=False)
    stock_item_id = Column(Integer, ForeignKey("stock_items.id", ondelete="RESTRICT"), nullable=False)
    snapshot_date = Column(Date, nullable=False, index=True)
    quantity = Column(Numeric(15, 3), nullable=False)
    unit = Column(String(20), nullable=False)
    item_type = Column(String(20), nullable=False)
    item_name = Column(String(200), nullable=False)
    created_at = Column(DateTime, nullable=False, server_default=func.current_timestamp())
    updated_at = Column(DateTime, server_default=func.current_timestamp(), onupdate=func.current_timestamp())

    stock_item = relationship("StockItem", back_populates="snapshots")
