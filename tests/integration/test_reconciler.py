"""
Integration tests for the referral stats reconciler.
"""

from decimal import Decimal

import pytest
from sqlalchemy import delete, update

from app.models import ReferralStats
from app.services.referral import (
    CommissionEngine,
    CommissionRollbackCoordinator,
    ReferralRegistrarHook,
    ReferralStatsReconciler,
)
from tests.integration.helpers import count_rows, fetch_records, fetch_stats


async def _buy(session, purchaser, tx, amount="1000", purchase_type="share"):
    await CommissionEngine(session).on_purchase_completed(
        purchaser_id=purchaser.id,
        base_amount=Decimal(amount),
        purchase_type=purchase_type,
        source_transaction_id=tx,
    )


async def _corrupt(session_maker, user_id, **values):
    async with session_maker() as s:
        await s.execute(
            update(ReferralStats).where(ReferralStats.user_id == user_id).values(**values)
        )
        await s.commit()


class TestResync:
    """Single-user resync."""

    @pytest.mark.asyncio
    async def test_repairs_drifted_aggregate(self, session, session_maker, chain, make_user):
        """Corrupted fields are rebuilt from completed records."""
        erin = await make_user("erin", referred_by="carol")
        await _buy(session, chain["D"], "t1", amount="1000")
        await _buy(session, erin, "t2", amount="200")
        await _corrupt(
            session_maker,
            chain["C"].id,
            gen1_earnings=Decimal("999"),
            total_earnings=Decimal("5"),
            gen1_count=7,
            gen2_count=3,
            referred_users=0,
        )

        stats = await ReferralStatsReconciler(session).resync(chain["C"].id)

        assert stats.gen1_earnings == Decimal("180")
        assert stats.total_earnings == Decimal("180")
        assert stats.gen1_count == 2
        assert stats.gen2_count == 0
        assert stats.referred_users == 2
        assert stats.last_synced_at is not None

        stored = await fetch_stats(session_maker, chain["C"].id)
        assert stored.gen1_earnings == Decimal("180")
        assert stored.gen1_count == 2

    @pytest.mark.asyncio
    async def test_is_idempotent(self, session, session_maker, chain):
        """Two resyncs in a row leave identical values."""
        await _buy(session, chain["D"], "t1")
        reconciler = ReferralStatsReconciler(session)

        first = (await reconciler.resync(chain["B"].id)).to_dict()
        second = (await reconciler.resync(chain["B"].id)).to_dict()

        first.pop("lastSyncedAt")
        second.pop("lastSyncedAt")
        assert first == second
        assert first["generation2"]["count"] == 1
        assert Decimal(first["generation2"]["earnings"]) == Decimal("30")

    @pytest.mark.asyncio
    async def test_excludes_rolled_back_records(self, session, session_maker, chain):
        """Rolled back commissions contribute neither earnings nor counts."""
        await _buy(session, chain["D"], "t1")
        await CommissionRollbackCoordinator(session).rollback("t1", "UserShare", "refund")

        stats = await ReferralStatsReconciler(session).resync(chain["C"].id)

        assert stats.total_earnings == Decimal("0")
        assert stats.gen1_count == 0
        assert stats.referred_users == 0

    @pytest.mark.asyncio
    async def test_creates_missing_aggregate(self, session, session_maker, chain):
        """A user with ledger rows but no aggregate gets one."""
        await _buy(session, chain["D"], "t1")
        async with session_maker() as s:
            await s.execute(delete(ReferralStats).where(ReferralStats.user_id == chain["A"].id))
            await s.commit()

        stats = await ReferralStatsReconciler(session).resync(chain["A"].id)

        assert stats.gen3_earnings == Decimal("20")
        assert stats.gen3_count == 1

    @pytest.mark.asyncio
    async def test_user_without_records_gets_zeroes(self, session, session_maker, chain):
        """Resync of a user with no commissions yields an empty aggregate."""
        stats = await ReferralStatsReconciler(session).resync(chain["D"].id)

        assert stats.total_earnings == Decimal("0")
        assert stats.referred_users == 0
        assert await count_rows(session_maker, ReferralStats) == 1

    @pytest.mark.asyncio
    async def test_resets_signup_only_counts(self, session, session_maker, chain):
        """Counts from the signup hook without a purchase are not ledger-backed."""
        await ReferralRegistrarHook(session).on_new_user(chain["D"].id)
        assert (await fetch_stats(session_maker, chain["C"].id)).gen1_count == 1

        stats = await ReferralStatsReconciler(session).resync(chain["C"].id)

        assert stats.gen1_count == 0
        assert stats.referred_users == 0

    @pytest.mark.asyncio
    async def test_purchase_after_signup_reset_is_counted(self, session, session_maker, chain):
        """A signup count dropped by resync comes back with the first commission."""
        await ReferralRegistrarHook(session).on_new_user(chain["D"].id)
        await ReferralStatsReconciler(session).resync(chain["C"].id)

        await _buy(session, chain["D"], tx="tx1")

        stats_c = await fetch_stats(session_maker, chain["C"].id)
        completed = await fetch_records(
            session_maker, beneficiary_id=chain["C"].id, generation=1, status="completed"
        )
        assert stats_c.gen1_count == len({r.referred_user_id for r in completed}) == 1
        assert stats_c.referred_users == stats_c.gen1_count
        assert stats_c.gen1_earnings == Decimal("150")
        # Ancestors that were not resynced keep their signup count
        stats_b = await fetch_stats(session_maker, chain["B"].id)
        assert stats_b.gen2_count == 1


class TestResyncAll:
    """Bulk resync."""

    @pytest.mark.asyncio
    async def test_covers_ledger_and_aggregate_users(self, session, session_maker, chain):
        """Users found only in the ledger or only in aggregates are both processed."""
        await _buy(session, chain["D"], "t1")
        async with session_maker() as s:
            await s.execute(delete(ReferralStats).where(ReferralStats.user_id == chain["B"].id))
            s.add(
                ReferralStats(
                    user_id=chain["D"].id,
                    referred_users=4,
                    total_earnings=Decimal("12"),
                    gen1_count=4,
                    gen1_earnings=Decimal("12"),
                )
            )
            await s.commit()

        summary = await ReferralStatsReconciler(session).resync_all()

        assert summary.users_total == 4
        assert summary.users_synced == 4
        assert summary.users_failed == 0

        stats_b = await fetch_stats(session_maker, chain["B"].id)
        assert stats_b.gen2_earnings == Decimal("30")
        stats_d = await fetch_stats(session_maker, chain["D"].id)
        assert stats_d.total_earnings == Decimal("0")
        assert stats_d.referred_users == 0

    @pytest.mark.asyncio
    async def test_aggregates_match_ledger_after_run(self, session, session_maker, chain, make_user):
        """Every aggregate equals its ledger-derived values after a bulk run."""
        erin = await make_user("erin", referred_by="bob")
        await _buy(session, chain["D"], "t1")
        await _buy(session, erin, "t2", amount="300", purchase_type="other")
        await _corrupt(session_maker, chain["A"].id, gen2_earnings=Decimal("1"))

        await ReferralStatsReconciler(session).resync_all()

        records = await fetch_records(session_maker, status="completed")

        for user in (chain["A"], chain["B"], chain["C"]):
            stats = await fetch_stats(session_maker, user.id)
            own = [r for r in records if r.beneficiary_id == user.id]
            assert stats.total_earnings == sum((r.amount for r in own), Decimal("0"))
            for generation in (1, 2, 3):
                expected = len({r.referred_user_id for r in own if r.generation == generation})
                assert stats.count_for(generation) == expected
