"""
Catalog models
Ingredients and containers are owned by the menu side of the back office;
the ledger only reads their names, codes and units.
"""
from sqlalchemy import Column, ForeignKey, Integer, String

from stockledger.core.database import Base


class Ingredient(Base):
    __tablename__ = "ingredients"

    id = Column(Integer, primary_key=True)
    company_id = Column(Integer, ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    code_name = Column(String(50), doc="Short code shown on count sheets")
    unit = Column(String(20), nullable=False, default="g")
    stock_grade = Column(String(10), doc="Grade set when the ingredient is stock managed")


class Container(Base):
    __tablename__ = "containers"

    id = Column(Integer, primary_key=True)
    company_id = Column(Integer, ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    code_name = Column(String(50))
    parent_container_id = Column(Integer, ForeignKey("containers.id"), doc="Set for container components")
