"""
Tenant models
Companies and the memberships the access gate reads
"""
from sqlalchemy import Column, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import relationship

from stockledger.core.database import Base


class Company(Base):
    """A catering business; every stock record belongs to exactly one"""
    __tablename__ = "companies"

    id = Column(Integer, primary_key=True)
    name = Column(String(200), nullable=False)

    memberships = relationship("CompanyMembership", back_populates="company", cascade="all, delete-orphan")


class CompanyMembership(Base):
    """Links an external user id to a company with a role"""
    __tablename__ = "company_memberships"
    __table_args__ = (
        UniqueConstraint("company_id", "user_id", name="uq_company_memberships_company_user"),
    )

    id = Column(Integer, primary_key=True)
    company_id = Column(Integer, ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(64), nullable=False, index=True, doc="External user id")
    role = Column(String(30), nullable=False, default="member")

    company = relationship("Company", back_populates="memberships")
