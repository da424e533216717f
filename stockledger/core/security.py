"""
Security utilities for the stock ledger
Bearer token handling for users and the shared secret used by the scheduler
"""
import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import JWTError, jwt

from stockledger.core.config import settings

logger = logging.getLogger(__name__)


def create_access_token(subject: str, expires_delta: Optional[timedelta] = None,
                        extra_claims: Optional[Dict[str, Any]] = None) -> str:
    """Create JWT access token for an external user id"""
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)

    to_encode = dict(extra_claims or {})
    to_encode.update({"sub": str(subject), "exp": expire})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def verify_token(token: str) -> Optional[Dict[str, Any]]:
    """
    Decode a JWT access token

    Returns:
        The token payload, or None when the token is invalid or expired
    """
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError as e:
        logger.warning(f"Rejected access token: {e}")
        return None
    if not payload.get("sub"):
        return None
    return payload


def verify_cron_secret(presented: Optional[str]) -> bool:
    """Constant-time comparison of a presented scheduler secret"""
    expected = settings.CRON_SECRET
    if not expected or not presented:
        return False
    return secrets.compare_digest(presented.encode("utf-8"), expected.encode("utf-8"))
