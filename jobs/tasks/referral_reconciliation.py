"""
Referral stats reconciliation task.

Rebuilds every ReferralStats row from the commission ledger so that
aggregate drift left by partial writes is repaired in the background.
"""

import dramatiq
from loguru import logger

import jobs.broker  # noqa: F401
from app.config.operational_constants import (
    DRAMATIQ_TIME_LIMIT_LONG,
    RESYNC_MAX_RETRIES,
)
from app.services.referral.reconciler import ReferralStatsReconciler, ResyncSummary
from jobs.async_runner import create_local_session, run_async


@dramatiq.actor(max_retries=RESYNC_MAX_RETRIES, time_limit=DRAMATIQ_TIME_LIMIT_LONG)
def resync_referral_stats(trigger: str = "interval") -> None:
    """
    Resync referral aggregates of every beneficiary.

    Args:
        trigger: What scheduled this run ("interval" or "daily")
    """
    logger.info(f"Starting referral stats resync ({trigger})...")

    summary = run_async(_resync_referral_stats_async())

    logger.info(
        "Referral stats resync task completed",
        extra={
            "trigger": trigger,
            "users_total": summary.users_total,
            "users_synced": summary.users_synced,
            "users_failed": summary.users_failed,
        },
    )


async def _resync_referral_stats_async() -> ResyncSummary:
    """Async implementation of the resync task."""
    async with create_local_session() as session:
        return await ReferralStatsReconciler(session).resync_all()
