"""
Integration tests for commission rollback.
"""

from decimal import Decimal

import pytest
from sqlalchemy import update

from app.models import CommissionRecord, ReferralStats
from app.services.referral import (
    CommissionEngine,
    CommissionErrorKind,
    CommissionRollbackCoordinator,
    ReferralStatsReconciler,
)
from tests.integration.helpers import fetch_records, fetch_stats


async def _buy(session, purchaser, tx="tx1", amount="1000"):
    return await CommissionEngine(session).on_purchase_completed(
        purchaser_id=purchaser.id,
        base_amount=Decimal(amount),
        purchase_type="share",
        source_transaction_id=tx,
    )


class TestRollback:
    """Reversing a canceled purchase."""

    @pytest.mark.asyncio
    async def test_marks_records_and_reverses_earnings(self, session, session_maker, chain):
        """All three records roll back; earnings drop, counts stay."""
        await _buy(session, chain["D"])

        result = await CommissionRollbackCoordinator(session).rollback(
            "tx1", "UserShare", "refund"
        )

        assert result.success is True
        assert result.rolled_back == 3
        assert result.total_amount == Decimal("200")

        records = await fetch_records(session_maker, source_transaction="tx1")
        for record in records:
            assert record.status == "rolled_back"
            assert record.rolled_back_at is not None
            assert record.rollback_reason == "refund"

        stats_c = await fetch_stats(session_maker, chain["C"].id)
        assert stats_c.gen1_earnings == Decimal("0")
        assert stats_c.total_earnings == Decimal("0")
        assert stats_c.gen1_count == 1
        assert stats_c.referred_users == 1

        stats_a = await fetch_stats(session_maker, chain["A"].id)
        assert stats_a.gen3_earnings == Decimal("0")
        assert stats_a.gen3_count == 1

    @pytest.mark.asyncio
    async def test_only_target_purchase_is_reversed(self, session, session_maker, chain):
        """Other purchases of the same purchaser keep their earnings."""
        await _buy(session, chain["D"], tx="tx1")
        await _buy(session, chain["D"], tx="tx2", amount="200")

        await CommissionRollbackCoordinator(session).rollback("tx1", "UserShare", "refund")

        stats_c = await fetch_stats(session_maker, chain["C"].id)
        assert stats_c.gen1_earnings == Decimal("30")
        assert stats_c.total_earnings == Decimal("30")
        assert [r.status for r in await fetch_records(session_maker, source_transaction="tx2")] == [
            "completed",
            "completed",
            "completed",
        ]

    @pytest.mark.asyncio
    async def test_second_rollback_is_noop(self, session, session_maker, chain):
        """Rolling back twice changes nothing the second time."""
        await _buy(session, chain["D"])
        coordinator = CommissionRollbackCoordinator(session)
        await coordinator.rollback("tx1", "UserShare", "refund")

        again = await coordinator.rollback("tx1", "UserShare", "refund")

        assert again.success is True
        assert again.rolled_back == 0
        stats_c = await fetch_stats(session_maker, chain["C"].id)
        assert stats_c.total_earnings == Decimal("0")

    @pytest.mark.asyncio
    async def test_unknown_source_rolls_back_nothing(self, session):
        """No records for the purchase is a successful zero."""
        result = await CommissionRollbackCoordinator(session).rollback(
            "missing", "UserShare", "refund"
        )

        assert result.success is True
        assert result.rolled_back == 0

    @pytest.mark.asyncio
    async def test_model_tag_must_match(self, session, session_maker, chain):
        """Rollback under another model tag leaves records alone."""
        await _buy(session, chain["D"])

        result = await CommissionRollbackCoordinator(session).rollback(
            "tx1", "OtherPurchase", "refund"
        )

        assert result.rolled_back == 0
        stats_c = await fetch_stats(session_maker, chain["C"].id)
        assert stats_c.gen1_earnings == Decimal("150")

    @pytest.mark.asyncio
    async def test_pending_and_failed_records_untouched(self, session, session_maker, chain):
        """Only completed records transition."""
        await _buy(session, chain["D"])
        async with session_maker() as s:
            await s.execute(
                update(CommissionRecord)
                .where(CommissionRecord.generation == 2)
                .values(status="pending")
            )
            await s.execute(
                update(CommissionRecord)
                .where(CommissionRecord.generation == 3)
                .values(status="failed")
            )
            await s.commit()

        result = await CommissionRollbackCoordinator(session).rollback(
            "tx1", "UserShare", "refund"
        )

        assert result.rolled_back == 1
        records = await fetch_records(session_maker, source_transaction="tx1")
        assert [r.status for r in records] == ["rolled_back", "pending", "failed"]

    @pytest.mark.asyncio
    async def test_earnings_floor_at_zero(self, session, session_maker, chain):
        """A drifted aggregate never goes negative."""
        await _buy(session, chain["D"])
        async with session_maker() as s:
            await s.execute(
                update(ReferralStats)
                .where(ReferralStats.user_id == chain["C"].id)
                .values(gen1_earnings=Decimal("100"), total_earnings=Decimal("100"))
            )
            await s.commit()

        await CommissionRollbackCoordinator(session).rollback("tx1", "UserShare", "refund")

        stats_c = await fetch_stats(session_maker, chain["C"].id)
        assert stats_c.gen1_earnings == Decimal("0")
        assert stats_c.total_earnings == Decimal("0")

    @pytest.mark.asyncio
    async def test_reprocessing_after_rollback_does_not_recredit(
        self, session, session_maker, chain
    ):
        """The rolled back record keeps its slot in the ledger."""
        await _buy(session, chain["D"])
        await CommissionRollbackCoordinator(session).rollback("tx1", "UserShare", "refund")

        result = await _buy(session, chain["D"])

        assert result.commissions_created == 0
        assert result.error_kind is CommissionErrorKind.ALREADY_PROCESSED
        stats_c = await fetch_stats(session_maker, chain["C"].id)
        assert stats_c.total_earnings == Decimal("0")

    @pytest.mark.asyncio
    async def test_new_purchase_after_rollback_keeps_count(self, session, session_maker, chain):
        """A later purchase by the same user does not count them twice."""
        await _buy(session, chain["D"], tx="tx1")
        await CommissionRollbackCoordinator(session).rollback("tx1", "UserShare", "refund")

        await _buy(session, chain["D"], tx="tx2")

        stats_c = await fetch_stats(session_maker, chain["C"].id)
        assert stats_c.gen1_count == 1
        assert stats_c.gen1_earnings == Decimal("150")

    @pytest.mark.asyncio
    async def test_purchase_after_rollback_and_resync_is_counted(
        self, session, session_maker, chain
    ):
        """Resync drops the rolled back referral, the next purchase restores it."""
        await _buy(session, chain["D"], tx="tx1")
        await CommissionRollbackCoordinator(session).rollback("tx1", "UserShare", "refund")
        resynced = await ReferralStatsReconciler(session).resync(chain["B"].id)
        assert resynced.gen2_count == 0

        await _buy(session, chain["D"], tx="tx2")

        stats_b = await fetch_stats(session_maker, chain["B"].id)
        completed = await fetch_records(
            session_maker, beneficiary_id=chain["B"].id, generation=2, status="completed"
        )
        assert stats_b.gen2_count == len({r.referred_user_id for r in completed}) == 1
        assert stats_b.gen2_earnings == Decimal("30")
        assert stats_b.referred_users == stats_b.gen1_count

    @pytest.mark.asyncio
    async def test_rolled_back_at_is_set_once(self, session, session_maker, chain):
        """The rollback timestamp is not rewritten by a repeat call."""
        await _buy(session, chain["D"])
        coordinator = CommissionRollbackCoordinator(session)
        await coordinator.rollback("tx1", "UserShare", "refund")
        first = [r.rolled_back_at for r in await fetch_records(session_maker)]

        await coordinator.rollback("tx1", "UserShare", "another reason")

        records = await fetch_records(session_maker)
        assert [r.rolled_back_at for r in records] == first
        assert all(r.rollback_reason == "refund" for r in records)


class TestRollbackValidation:
    """Malformed rollback requests."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(("tx", "model"), [("", "UserShare"), ("  ", "UserShare"), ("tx1", "Deposit")])
    async def test_rejected(self, session, tx, model):
        """Blank id or unknown model tag is invalid input."""
        result = await CommissionRollbackCoordinator(session).rollback(tx, model, "refund")

        assert result.success is False
        assert result.error_kind is CommissionErrorKind.INVALID_INPUT
        assert result.to_dict()["error"] == "invalid_input"
