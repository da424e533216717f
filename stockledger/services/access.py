"""
Access gate
Answers whether a user may act on a company's stock records
"""
import logging
from typing import Optional

from sqlalchemy.orm import Session

from stockledger.core.exceptions import InsufficientPermissionsError
from stockledger.models.access import CompanyMembership

logger = logging.getLogger(__name__)


class AccessGate:

    def __init__(self, db: Session):
        self.db = db

    def check_access(self, user_id: str, company_id: int) -> Optional[str]:
        """Return the user's role in the company, or None when they have no access"""
        membership = self.db.query(CompanyMembership).filter(
            CompanyMembership.company_id == company_id,
            CompanyMembership.user_id == str(user_id),
        ).first()
        return membership.role if membership else None

    def require_member(self, user_id: str, company_id: int) -> str:
        role = self.check_access(user_id, company_id)
        if role is None:
            logger.warning(f"User {user_id} denied access to company {company_id}")
            raise InsufficientPermissionsError("No access to this company")
        return role
