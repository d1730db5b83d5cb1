"""
Trial Service for provisioning users and their free trial window
"""
import logging
from datetime import datetime, timedelta

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from crud.user import UserRepository
from database_models import User
from utils.shared_utils import utcnow

logger = logging.getLogger(__name__)


class TrialService:
    """
    Service for managing user trial periods.
    Every user gets exactly one trial window, set on first contact.
    """

    def __init__(self, db: AsyncSession, user_repo: UserRepository = None):
        """
        Initialize the trial service with database session and user repository.

        Args:
            db: AsyncSession instance for database operations
            user_repo: UserRepository instance for user operations
        """
        self.db = db
        self.user_repo = user_repo or UserRepository(db)

    def trial_window(self, start: datetime):
        return start, start + timedelta(days=settings.trial_days)

    async def get_or_create_user(self, external_auth_id: str) -> User:
        """
        Return the user for an identity, creating it with a fresh trial if needed.

        Legacy users with no trial and no Pro get the trial backfilled once;
        an existing trial window is never moved or shortened.

        Args:
            external_auth_id: Verified identity-provider subject

        Returns:
            The persisted User
        """
        user = await self.user_repo.get_user_by_external_auth_id(external_auth_id)

        if user is None:
            trial_start, trial_end = self.trial_window(utcnow())
            try:
                user = await self.user_repo.create_user({
                    "external_auth_id": external_auth_id,
                    "is_pro": False,
                    "trial_start_date": trial_start,
                    "trial_end_date": trial_end,
                })
                await self.db.commit()
            except IntegrityError:
                # Another request created this identity first; use its row
                await self.db.rollback()
                user = await self.user_repo.get_user_by_external_auth_id(external_auth_id)
                if user is None:
                    raise
                return await self._backfill_if_needed(user)

            logger.info(f"User {user.id} created with trial until {trial_end.isoformat()}")
            return user

        return await self._backfill_if_needed(user)

    async def _backfill_if_needed(self, user: User) -> User:
        if user.trial_end_date is not None or user.is_pro:
            return user

        trial_start, trial_end = self.trial_window(utcnow())
        try:
            written = await self.user_repo.set_trial_if_missing(user, trial_start, trial_end)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        if written:
            logger.info(f"User {user.id} backfilled with trial until {trial_end.isoformat()}")
        return user
