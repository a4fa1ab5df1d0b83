"""
Referral stats reconciler.

Recomputes aggregates from the completed ledger. This is the repair path
for drift left by partial writes, signup counts or manual edits.
"""

from dataclasses import dataclass

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config.business_constants import REFERRAL_GENERATIONS, RESYNC_BATCH_SIZE
from app.models.referral_stats import ReferralStats
from app.repositories.commission_record_repository import (
    CommissionRecordRepository,
)
from app.repositories.referral_stats_repository import (
    ReferralStatsRepository,
)
from app.services.referral.aggregate_store import ReferralAggregateStore
from app.utils.datetime_utils import utc_now


@dataclass
class ResyncSummary:
    """Result of a bulk reconciliation run."""

    users_total: int = 0
    users_synced: int = 0
    users_failed: int = 0


class ReferralStatsReconciler:
    """Rebuilds ReferralStats from CommissionRecord."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize reconciler."""
        self.session = session
        self.ledger_repo = CommissionRecordRepository(session)
        self.stats_repo = ReferralStatsRepository(session)
        self.aggregates = ReferralAggregateStore(session)

    async def resync(self, user_id: int) -> ReferralStats:
        """
        Recompute one user's aggregate from the ledger and store it.

        Creates the aggregate if absent. Running it twice in a row yields
        the same row.

        Args:
            user_id: Beneficiary

        Returns:
            Fresh aggregate
        """
        await self.aggregates.ensure_exists(user_id)

        totals = await self.ledger_repo.totals_by_generation(user_id)
        counts = {g: totals[g].referred_count for g in REFERRAL_GENERATIONS if g in totals}
        earnings = {g: totals[g].earnings for g in REFERRAL_GENERATIONS if g in totals}

        stats = await self.stats_repo.get_by_user_id(user_id)
        if stats is None:
            raise RuntimeError(f"Referral stats for user {user_id} disappeared")

        # Aggregate updates issued through UPDATE statements are not in the identity map
        await self.session.refresh(stats)
        before = stats.total_earnings

        stats = await self.stats_repo.overwrite(
            stats, counts=counts, earnings=earnings, synced_at=utc_now()
        )
        await self.session.commit()

        if before != stats.total_earnings:
            logger.warning(
                "Referral stats drift corrected",
                extra={
                    "user_id": user_id,
                    "stored_total": str(before),
                    "ledger_total": str(stats.total_earnings),
                },
            )
        logger.info(
            "Referral stats resynced",
            extra={
                "user_id": user_id,
                "total_earnings": str(stats.total_earnings),
                "referred_users": stats.referred_users,
            },
        )
        return stats

    async def resync_all(self) -> ResyncSummary:
        """
        Resync every user present in the ledger or the aggregate table.

        A failure for one user is logged and does not stop the run.

        Returns:
            Counts of processed users
        """
        user_ids = sorted(
            set(await self.ledger_repo.beneficiary_ids())
            | set(await self.stats_repo.user_ids())
        )
        summary = ResyncSummary(users_total=len(user_ids))

        for index, user_id in enumerate(user_ids, start=1):
            try:
                await self.resync(user_id)
                summary.users_synced += 1
            except SQLAlchemyError as e:
                await self.session.rollback()
                summary.users_failed += 1
                logger.error(
                    "Referral stats resync failed",
                    extra={"user_id": user_id, "error": str(e)},
                )

            if index % RESYNC_BATCH_SIZE == 0:
                self.session.expunge_all()
                logger.debug(
                    "Referral stats resync progress",
                    extra={"processed": index, "users_total": summary.users_total},
                )

        logger.info(
            "Referral stats bulk resync finished",
            extra={
                "users_total": summary.users_total,
                "users_synced": summary.users_synced,
                "users_failed": summary.users_failed,
            },
        )
        return summary
