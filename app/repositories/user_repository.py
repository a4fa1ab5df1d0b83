"""
User repository.

Read access to the user directory for chain resolution and the
referral tree.
"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.user import User
from app.repositories.base import BaseRepository


class UserRepository(BaseRepository[User]):
    """User repository with referral lookups."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize user repository."""
        super().__init__(User, session)

    async def get_by_user_name(self, user_name: str) -> User | None:
        """
        Get user by userName (exact, case-sensitive).

        Args:
            user_name: userName / referral code

        Returns:
            User or None
        """
        if not user_name:
            return None
        return await self.get_by(user_name=user_name)

    async def find_referred_by(
        self, referral_codes: list[str]
    ) -> list[User]:
        """
        Get users whose referrer is one of the given codes.

        Args:
            referral_codes: userNames of the referrers

        Returns:
            Direct referrals ordered by signup time
        """
        if not referral_codes:
            return []

        stmt = (
            select(User)
            .where(User.referred_by_code.in_(referral_codes))
            .order_by(User.created_at, User.id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
