"""
API Dependencies
Common dependencies for API endpoints
"""
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, HTTPException, Path, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from stockledger.core.database import get_db
from stockledger.core.security import verify_cron_secret, verify_token
from stockledger.services.access import AccessGate

# Security scheme; missing credentials are turned into 401 below rather than 403
security = HTTPBearer(auto_error=False)


@dataclass
class CompanyContext:
    company_id: int
    user_id: str
    role: str


def _unauthorized(detail: str = "Could not validate credentials") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> str:
    """External user id from the bearer token's subject."""
    if credentials is None:
        raise _unauthorized("Not authenticated")
    payload = verify_token(credentials.credentials)
    if not payload:
        raise _unauthorized()
    return str(payload["sub"])


def get_company_context(
    company_id: int = Path(..., description="Company id"),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> CompanyContext:
    """
    Resolve the caller's membership in the company in the path.

    Raises InsufficientPermissionsError (403) when there is none.
    """
    role = AccessGate(db).require_member(user_id, company_id)
    return CompanyContext(company_id=company_id, user_id=user_id, role=role)


async def require_cron_secret(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> None:
    if credentials is None or not verify_cron_secret(credentials.credentials):
        raise _unauthorized("Unauthorized")
