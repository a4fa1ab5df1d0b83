"""
Referral aggregate store.

Applies commission and rollback deltas to ReferralStats. Methods other
than ensure_exists leave the transaction open so the caller can commit
the delta together with its ledger write.
"""

from decimal import Decimal

from loguru import logger
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.repositories.commission_record_repository import (
    CommissionRecordRepository,
)
from app.repositories.referral_stats_repository import (
    ReferralStatsRepository,
)


class ReferralAggregateStore:
    """Field-wise maintenance of per-user referral aggregates."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize aggregate store."""
        self.session = session
        self.stats_repo = ReferralStatsRepository(session)
        self.ledger_repo = CommissionRecordRepository(session)

    async def ensure_exists(self, user_id: int) -> None:
        """
        Create a zeroed aggregate for the user if there is none.

        Commits its own insert. A concurrent creator winning the race is
        not an error.
        """
        if await self.stats_repo.get_by_user_id(user_id) is not None:
            return

        try:
            await self.stats_repo.create_empty(user_id)
            await self.session.commit()
            logger.debug("Referral stats created", extra={"user_id": user_id})
        except IntegrityError:
            await self.session.rollback()
            if await self.stats_repo.get_by_user_id(user_id) is None:
                raise

    async def apply_commission(
        self,
        user_id: int,
        generation: int,
        amount: Decimal,
        count_new_referral: bool,
    ) -> None:
        """
        Add a persisted commission to the beneficiary's aggregate.

        Args:
            user_id: Beneficiary
            generation: Commission generation
            amount: Commission amount
            count_new_referral: Whether the purchaser is new to this
                beneficiary at this generation
        """
        if not await self.stats_repo.add_earnings(user_id, generation, amount):
            logger.warning(
                "Referral stats missing while applying commission",
                extra={"user_id": user_id, "generation": generation},
            )
            return

        if count_new_referral:
            await self.stats_repo.increment_count(user_id, generation)

        # A resync rebuilds counts from completed records only, so the
        # signals behind count_new_referral can lag behind the ledger
        distinct_referred = await self.ledger_repo.count_distinct_referred(
            user_id, generation
        )
        await self.stats_repo.set_count_at_least(
            user_id, generation, distinct_referred
        )

    async def reverse_commission(
        self, user_id: int, generation: int, amount: Decimal
    ) -> None:
        """
        Remove a rolled-back commission's earnings, floored at zero.

        Counts are left as they are.
        """
        if not await self.stats_repo.subtract_earnings(user_id, generation, amount):
            logger.warning(
                "Referral stats missing while reversing commission",
                extra={"user_id": user_id, "generation": generation},
            )

    async def count_registration(self, user_id: int, generation: int) -> None:
        """Count a newly registered referral at a generation."""
        await self.stats_repo.increment_count(user_id, generation)
