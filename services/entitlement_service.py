"""
Entitlement evaluation - the single gate for Pro feature access
"""
from datetime import datetime
from typing import Any, Dict, Optional

from config.settings import PLAN_PRO, PLAN_TRIAL, PLAN_EXPIRED
from database_models import User
from utils.shared_utils import utcnow, isoformat_or_none


class AccessStatus:
    PRO = PLAN_PRO
    TRIAL = PLAN_TRIAL
    EXPIRED = PLAN_EXPIRED


def access_status(user: User, now: Optional[datetime] = None) -> str:
    """
    Compute a user's current access tier from stored state. Pure, no I/O.

    Rules:
    - is_pro -> "pro" (pro_expires_at is not consulted; nothing downgrades
      a lapsed Pro flag here)
    - trial_end_date set and still in the future -> "trial"
    - otherwise -> "expired"
    """
    if user.is_pro:
        return AccessStatus.PRO

    now = now or utcnow()
    if user.trial_end_date is not None and now < user.trial_end_date:
        return AccessStatus.TRIAL

    return AccessStatus.EXPIRED


def has_feature_access(user: User, now: Optional[datetime] = None) -> bool:
    return access_status(user, now) != AccessStatus.EXPIRED


def entitlement_payload(user: User, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Client-facing entitlement summary for GET /api/payments/status."""
    return {
        "isPro": bool(user.is_pro),
        "proExpiresAt": isoformat_or_none(user.pro_expires_at),
        "trialStartDate": isoformat_or_none(user.trial_start_date),
        "trialEndDate": isoformat_or_none(user.trial_end_date),
        "accessStatus": access_status(user, now),
    }
