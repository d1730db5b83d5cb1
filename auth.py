"""
Authentication dependencies
"""

import logging
from typing import Optional
from fastapi import Depends, Header, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from auth_utils import decode_jwt
from database import get_db
from database_models import User
from services.entitlement_service import has_feature_access
from services.trial_service import TrialService

logger = logging.getLogger(__name__)


async def get_current_auth_id(authorization: Optional[str] = Header(default=None)) -> str:
    """Extract and verify the bearer token; return the identity-provider subject."""
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Missing or invalid authorization header")

    token = authorization.split(" ", 1)[1].strip()
    try:
        payload = decode_jwt(token)
    except ValueError as e:
        logger.error(f"Token verification unavailable: {e}")
        raise HTTPException(status_code=500, detail="Authentication error")

    if not payload or not payload.get("sub"):
        raise HTTPException(status_code=401, detail="Invalid or expired token")
    return str(payload["sub"])


async def get_current_user(
    external_auth_id: str = Depends(get_current_auth_id),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Resolve the caller to a User row, provisioning the trial on first contact."""
    return await TrialService(db).get_or_create_user(external_auth_id)


async def require_active_access(current_user: User = Depends(get_current_user)) -> User:
    """Gate for Pro features: allows Pro and trial users, rejects expired ones."""
    if not has_feature_access(current_user):
        raise HTTPException(status_code=403, detail="subscription_required")
    return current_user
