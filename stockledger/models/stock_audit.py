"""
Stock Audit Models
A physical count session and its per-item lines
"""
from enum import Enum

from sqlalchemy import (
    CheckConstraint, Column, Date, DateTime, ForeignKey, Integer, Numeric,
    String, Text, UniqueConstraint
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from stockledger.core.database import Base


class AuditStatus(str, Enum):
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class AuditItemStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    DISCREPANCY = "discrepancy"


class StockAudit(Base):
    __tablename__ = "stock_audits"
    __table_args__ = (
        CheckConstraint("status IN ('in_progress', 'completed')", name="valid_status"),
    )

    id = Column(Integer, primary_key=True)
    company_id = Column(Integer, ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    description = Column(Text)
    audit_date = Column(Date, nullable=False)
    status = Column(String(20), nullable=False, default=AuditStatus.IN_PROGRESS.value)
    created_by = Column(String(64))
    created_at = Column(DateTime, nullable=False, server_default=func.current_timestamp())
    completed_at = Column(DateTime)
    completed_by = Column(String(64))
    differences_applied_at = Column(DateTime, doc="Set once counted quantities were posted to the ledger")

    items = relationship(
        "StockAuditItem",
        back_populates="audit",
        cascade="all, delete-orphan",
        order_by="StockAuditItem.item_name",
    )


class StockAuditItem(Base):
    """
    One counted line

    book_quantity is frozen at audit creation; later ledger activity never touches it.
    """
    __tablename__ = "stock_audit_items"
    __table_args__ = (
        UniqueConstraint("audit_id", "stock_item_id", name="uq_stock_audit_items_audit_item"),
        CheckConstraint("status IN ('pending', 'completed', 'discrepancy')", name="valid_status"),
        CheckConstraint("actual_quantity IS NULL OR actual_quantity >= 0", name="non_negative_actual"),
    )

    id = Column(Integer, primary_key=True)
    audit_id = Column(Integer, ForeignKey("stock_audits.id", ondelete="CASCADE"), nullable=False, index=True)
    stock_item_id = Column(Integer, ForeignKey("stock_items.id", ondelete="RESTRICT"), nullable=False)
    item_name = Column(String(200), nullable=False)
    item_code = Column(String(50))
    item_type = Column(String(20), nullable=False)
    unit = Column(String(20), nullable=False)
    book_quantity = Column(Numeric(15, 3), nullable=False)
    actual_quantity = Column(Numeric(15, 3))
    difference = Column(Numeric(15, 3), doc="actual - book")
    status = Column(String(20), nullable=False, default=AuditItemStatus.PENDING.value)
    notes = Column(Text)
    audited_by = Column(String(64))
    audited_at = Column(DateTime)
    created_at = Column(DateTime, nullable=False, server_default=func.current_timestamp())
    updated_at = Column(DateTime, server_default=func.current_timestamp(), onupdate=func.current_timestamp())

    audit = relationship("StockAudit", back_populates="items")
    stock_item = relationship("StockItem")
