"""
ReferralRegistration repository.

Data access layer for counts issued at signup.
"""

from sqlalchemy.ext.asyncio import AsyncSession

from app.models.referral_registration import ReferralRegistration
from app.repositories.base import BaseRepository


class ReferralRegistrationRepository(BaseRepository[ReferralRegistration]):
    """ReferralRegistration repository."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize referral registration repository."""
        super().__init__(ReferralRegistration, session)

    async def is_registered(
        self, ancestor_id: int, referred_user_id: int, generation: int
    ) -> bool:
        """Check if signup already counted this relationship."""
        return await self.exists(
            ancestor_id=ancestor_id,
            referred_user_id=referred_user_id,
            generation=generation,
        )

    async def register(
        self, ancestor_id: int, referred_user_id: int, generation: int
    ) -> ReferralRegistration:
        """
        Record a counted relationship.

        Raises IntegrityError on flush when it was already recorded.
        """
        return await self.create(
            ancestor_id=ancestor_id,
            referred_user_id=referred_user_id,
            generation=generation,
        )
