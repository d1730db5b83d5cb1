"""
UserRepository for database operations on User model
"""

from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update
from database_models import User


class UserRepository:
    """
    Repository class for User database operations.
    Encapsulates all database logic for the User model.
    """

    def __init__(self, db: AsyncSession):
        """
        Initialize the repository with a database session.

        Args:
            db: AsyncSession instance for database operations
        """
        self.db = db

    async def get_user_by_external_auth_id(self, external_auth_id: str) -> Optional[User]:
        """
        Retrieve a user by identity-provider subject.

        Args:
            external_auth_id: Verified subject handed over by the auth layer

        Returns:
            User object if found, None otherwise
        """
        result = await self.db.execute(
            select(User).where(User.external_auth_id == external_auth_id)
        )
        return result.scalar_one_or_none()

    async def get_user_by_id(self, user_id: str, for_update: bool = False) -> Optional[User]:
        """
        Retrieve a user by ID.

        Args:
            user_id: User's ID
            for_update: Lock the row (SELECT ... FOR UPDATE where supported)
                and discard any stale copy held by the session

        Returns:
            User object if found, None otherwise
        """
        stmt = select(User).where(User.id == user_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def create_user(self, user_data: dict) -> User:
        """
        Create a new user in the database.

        Args:
            user_data: Dictionary containing user data. Must include:
                - external_auth_id: str
                Optional:
                - is_pro: bool (defaults to False)
                - trial_start_date: datetime
                - trial_end_date: datetime

        Returns:
            Created User object
        """
        user = User(
            external_auth_id=user_data["external_auth_id"],
            is_pro=user_data.get("is_pro", False),
            trial_start_date=user_data.get("trial_start_date"),
            trial_end_date=user_data.get("trial_end_date"),
        )
        self.db.add(user)
        await self.db.flush()  # Flush to get the ID without committing
        await self.db.refresh(user)
        return user

    async def update_user(self, user: User, updates: dict) -> User:
        """
        Update user fields.

        Args:
            user: User object to update
            updates: Dictionary of fields to update (e.g., {"is_pro": True})

        Returns:
            Updated User object
        """
        for key, value in updates.items():
            if hasattr(user, key):
                setattr(user, key, value)

        await self.db.flush()
        await self.db.refresh(user)
        return user

    async def set_trial_if_missing(self, user: User, trial_start, trial_end) -> bool:
        """
        Backfill a trial window only if the row still has none and is not Pro.

        The condition is evaluated by the database, so concurrent backfills of
        the same user cannot overwrite each other.

        Returns:
            True if this call wrote the window
        """
        result = await self.db.execute(
            update(User)
            .where(User.id == user.id, User.trial_end_date.is_(None), User.is_pro.is_(False))
            .values(trial_start_date=trial_start, trial_end_date=trial_end)
            .execution_options(synchronize_session=False)
        )
        await self.db.refresh(user)
        return result.rowcount == 1
