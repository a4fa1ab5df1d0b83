"""
ReferralStats repository.

Field-wise increments and decrements on per-user referral aggregates.
Concurrent deltas for one beneficiary compose because every write is an
UPDATE relative to the stored value, never a read-modify-write.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import case, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.referral_stats import (
    ReferralStats,
    count_column,
    earnings_column,
)
from app.repositories.base import BaseRepository


def _floored_subtract(column, amount: Decimal):
    """SQL expression for max(column - amount, 0)."""
    return case((column - amount < 0, 0), else_=column - amount)


class ReferralStatsRepository(BaseRepository[ReferralStats]):
    """ReferralStats repository with atomic delta updates."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize referral stats repository."""
        super().__init__(ReferralStats, session)

    async def get_by_user_id(self, user_id: int) -> ReferralStats | None:
        """Get aggregate of a user."""
        return await self.get_by(user_id=user_id)

    async def create_empty(self, user_id: int) -> ReferralStats:
        """
        Insert a zeroed aggregate.

        Raises IntegrityError on flush when the row already exists.
        """
        return await self.create(
            user_id=user_id,
            referred_users=0,
            total_earnings=Decimal("0"),
            gen1_count=0,
            gen1_earnings=Decimal("0"),
            gen2_count=0,
            gen2_earnings=Decimal("0"),
            gen3_count=0,
            gen3_earnings=Decimal("0"),
        )

    async def add_earnings(
        self, user_id: int, generation: int, amount: Decimal
    ) -> bool:
        """
        Add amount to a generation's earnings and to the total.

        Args:
            user_id: Beneficiary
            generation: Generation 1-3
            amount: Commission amount

        Returns:
            True if the aggregate row exists and was updated
        """
        gen_col = getattr(ReferralStats, earnings_column(generation))
        stmt = (
            update(ReferralStats)
            .where(ReferralStats.user_id == user_id)
            .values(
                {
                    gen_col: gen_col + amount,
                    ReferralStats.total_earnings: ReferralStats.total_earnings + amount,
                }
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def subtract_earnings(
        self, user_id: int, generation: int, amount: Decimal
    ) -> bool:
        """
        Subtract amount from a generation's earnings and from the total.

        Both fields are floored at zero.

        Returns:
            True if the aggregate row exists and was updated
        """
        gen_col = getattr(ReferralStats, earnings_column(generation))
        stmt = (
            update(ReferralStats)
            .where(ReferralStats.user_id == user_id)
            .values(
                {
                    gen_col: _floored_subtract(gen_col, amount),
                    ReferralStats.total_earnings: _floored_subtract(
                        ReferralStats.total_earnings, amount
                    ),
                }
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def increment_count(
        self, user_id: int, generation: int, by: int = 1
    ) -> bool:
        """
        Increment a generation's referred user count.

        Generation 1 also bumps referred_users.

        Returns:
            True if the aggregate row exists and was updated
        """
        count_col = getattr(ReferralStats, count_column(generation))
        values = {count_col: count_col + by}
        if generation == 1:
            values[ReferralStats.referred_users] = ReferralStats.referred_users + by

        stmt = (
            update(ReferralStats)
            .where(ReferralStats.user_id == user_id)
            .values(values)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def set_count_at_least(
        self, user_id: int, generation: int, distinct_count: int
    ) -> None:
        """
        Raise a generation's count to a freshly computed distinct count.

        Never lowers the stored value, so counts stay monotonic between
        reconciliations. Generation 1 raises referred_users the same way.

        Args:
            user_id: Beneficiary
            generation: Generation 1-3
            distinct_count: Distinct purchasers on completed records
        """
        count_col = getattr(ReferralStats, count_column(generation))
        stmt = (
            update(ReferralStats)
            .where(ReferralStats.user_id == user_id, count_col < distinct_count)
            .values({count_col: distinct_count})
            .execution_options(synchronize_session=False)
        )
        await self.session.execute(stmt)

        if generation == 1:
            stmt = (
                update(ReferralStats)
                .where(
                    ReferralStats.user_id == user_id,
                    ReferralStats.referred_users < distinct_count,
                )
                .values(referred_users=distinct_count)
                .execution_options(synchronize_session=False)
            )
            await self.session.execute(stmt)

    async def overwrite(
        self,
        stats: ReferralStats,
        counts: dict[int, int],
        earnings: dict[int, Decimal],
        synced_at: datetime,
    ) -> ReferralStats:
        """
        Replace every aggregate field with recomputed values.

        Args:
            stats: Loaded aggregate row
            counts: Referred user count per generation
            earnings: Earnings per generation
            synced_at: Reconciliation timestamp

        Returns:
            Updated aggregate
        """
        for generation in (1, 2, 3):
            setattr(stats, count_column(generation), counts.get(generation, 0))
            setattr(
                stats,
                earnings_column(generation),
                earnings.get(generation, Decimal("0")),
            )

        stats.referred_users = counts.get(1, 0)
        stats.total_earnings = sum(
            (earnings.get(generation, Decimal("0")) for generation in (1, 2, 3)),
            Decimal("0"),
        )
        stats.last_synced_at = synced_at

        await self.session.flush()
        return stats

    async def user_ids(self) -> list[int]:
        """Get every user that has an aggregate row."""
        rows = await self.find_by()
        return [row.user_id for row in rows]
