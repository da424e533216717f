"""
Catalog lookups
Resolves what a stock item is (name, code, unit) from the ingredient and
container tables owned by the menu side of the back office.
"""
import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from stockledger.core.config import settings
from stockledger.core.exceptions import NotFoundError
from stockledger.models.catalog import Container, Ingredient
from stockledger.models.stock import StockItemType

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CatalogEntry:
    name: str
    code: Optional[str]
    unit: str


class CatalogService:
    """Read-only view over the ingredient and container catalog"""

    def __init__(self, db: Session):
        self.db = db

    def resolve(self, item_type: str, catalog_id: int, company_id: Optional[int] = None) -> CatalogEntry:
        """
        Look up the display data of one catalog entry

        Raises:
            NotFoundError: the entry does not exist (or belongs to another company)
        """
        if item_type == StockItemType.INGREDIENT.value:
            row = self.db.get(Ingredient, catalog_id)
            if row is not None and (company_id is None or row.company_id == company_id):
                return CatalogEntry(name=row.name, code=row.code_name, unit=row.unit)
        elif item_type == StockItemType.CONTAINER.value:
            row = self.db.get(Container, catalog_id)
            if row is not None and (company_id is None or row.company_id == company_id):
                return CatalogEntry(name=row.name, code=row.code_name, unit=settings.DEFAULT_CONTAINER_UNIT)
        else:
            raise NotFoundError(f"Unknown item type {item_type!r}")
        raise NotFoundError(f"{item_type} {catalog_id} not found in catalog")

    def resolve_name(self, item_type: str, catalog_id: int, company_id: Optional[int] = None) -> str:
        return self.resolve(item_type, catalog_id, company_id).name

    def list_trackable(self, company_id: int) -> Tuple[List[Ingredient], List[Container]]:
        """Ingredients with a stock grade, and top-level containers, for one company"""
        ingredient_query = self.db.query(Ingredient).filter(
            Ingredient.company_id == company_id,
            Ingredient.stock_grade.isnot(None),
        )
        if settings.SYNC_INGREDIENT_STOCK_GRADES:
            ingredient_query = ingredient_query.filter(
                Ingredient.stock_grade.in_(settings.SYNC_INGREDIENT_STOCK_GRADES)
            )
        containers = self.db.query(Container).filter(
            Container.company_id == company_id,
            Container.parent_container_id.is_(None),
        ).order_by(Container.id).all()
        return ingredient_query.order_by(Ingredient.id).all(), containers


def placeholder_name(item_type: str) -> str:
    """Display name used when the catalog cannot name an item"""
    if item_type == StockItemType.CONTAINER.value:
        return "Unknown Container"
    return "Unknown Ingredient"
