"""
Referral statistics module.

Read models for the referral endpoints: stats with the shareable link,
the downstream tree, the earnings listing and invite validation.
"""

from decimal import Decimal
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from app.config.business_constants import (
    EARNINGS_DEFAULT_PAGE_SIZE,
    EARNINGS_MAX_PAGE_SIZE,
    REFERRAL_DEPTH,
    REFERRAL_GENERATIONS,
)
from app.config.settings import settings
from app.models.enums import PurchaseType
from app.models.user import User
from app.repositories.commission_record_repository import (
    CommissionRecordRepository,
)
from app.repositories.referral_stats_repository import (
    ReferralStatsRepository,
)
from app.repositories.user_repository import UserRepository
from app.services.referral.reconciler import ReferralStatsReconciler
from app.utils.datetime_utils import to_iso


def _tree_node(user: User) -> dict[str, Any]:
    return {
        "id": user.id,
        "userName": user.user_name,
        "name": user.name,
        "email": user.email,
        "referredBy": user.referred_by_code,
        "createdAt": to_iso(user.created_at),
    }


class ReferralStatisticsManager:
    """Builds referral read models."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize statistics manager."""
        self.session = session
        self.user_repo = UserRepository(session)
        self.ledger_repo = CommissionRecordRepository(session)
        self.stats_repo = ReferralStatsRepository(session)
        self.reconciler = ReferralStatsReconciler(session)

    async def get_stats(
        self, user_id: int, sync: bool = False
    ) -> dict[str, Any] | None:
        """
        Get referral stats of a user.

        The reconciler runs when the user has no aggregate yet or when
        sync is requested.

        Args:
            user_id: User ID
            sync: Force recomputation from the ledger

        Returns:
            Stats with referral code and link, or None if user not found
        """
        user = await self.user_repo.get_by_id(user_id)
        if user is None:
            return None
        referral_code = user.referral_code

        stats = await self.stats_repo.get_by_user_id(user_id)
        if stats is None or sync:
            stats = await self.reconciler.resync(user_id)
        else:
            await self.session.refresh(stats)

        return {
            "userId": user_id,
            "referralCode": referral_code,
            "referralLink": settings.referral_link(referral_code),
            **stats.to_dict(),
        }

    async def get_tree(self, user_id: int) -> dict[str, Any] | None:
        """
        Get downstream referrals by generation.

        Args:
            user_id: Root user ID

        Returns:
            Dict with generation1..generation3 lists, or None if user not found
        """
        user = await self.user_repo.get_by_id(user_id)
        if user is None:
            return None

        tree: dict[str, Any] = {"userId": user.id, "userName": user.user_name}
        visited = {user.id}
        codes = [user.user_name]

        for generation in range(1, REFERRAL_DEPTH + 1):
            members = [
                member
                for member in await self.user_repo.find_referred_by(codes)
                if member.id not in visited
            ]
            visited.update(member.id for member in members)
            tree[f"generation{generation}"] = [_tree_node(m) for m in members]
            codes = [member.user_name for member in members]

        return tree

    async def get_earnings(
        self,
        user_id: int,
        page: int = 1,
        per_page: int = EARNINGS_DEFAULT_PAGE_SIZE,
        sync: bool = False,
    ) -> dict[str, Any] | None:
        """
        Get completed commissions of a beneficiary with a summary.

        Args:
            user_id: Beneficiary
            page: Page number (1-indexed)
            per_page: Items per page, capped at EARNINGS_MAX_PAGE_SIZE
            sync: Resync aggregates first

        Returns:
            Summary and page of records, or None if user not found
        """
        if await self.user_repo.get_by_id(user_id) is None:
            return None

        if sync:
            await self.reconciler.resync(user_id)

        page = max(page, 1)
        per_page = min(max(per_page, 1), EARNINGS_MAX_PAGE_SIZE)

        summary: dict[str, Any] = {}
        for generation in REFERRAL_GENERATIONS:
            summary[f"generation{generation}"] = {
                "total": Decimal("0"),
                "transactions": 0,
                **{purchase_type.value: Decimal("0") for purchase_type in PurchaseType},
            }

        grand_total = Decimal("0")
        rows = await self.ledger_repo.totals_by_generation_and_type(user_id)
        for generation, purchase_type, total, transactions in rows:
            bucket = summary[f"generation{generation}"]
            bucket["total"] += total
            bucket["transactions"] += transactions
            bucket[purchase_type] = bucket.get(purchase_type, Decimal("0")) + total
            grand_total += total

        records, total_count = await self.ledger_repo.list_completed_for_beneficiary(
            user_id, page=page, per_page=per_page
        )

        return {
            "userId": user_id,
            "summary": {
                key: {k: str(v) if isinstance(v, Decimal) else v for k, v in bucket.items()}
                for key, bucket in summary.items()
            },
            "totalEarnings": str(grand_total),
            "transactions": [record.to_dict() for record in records],
            "pagination": {
                "page": page,
                "perPage": per_page,
                "total": total_count,
                "pages": (total_count + per_page - 1) // per_page,
            },
        }

    async def validate_invite(self, invite_code: str) -> dict[str, Any] | None:
        """
        Look up the referrer behind an invite code.

        Args:
            invite_code: userName of the referrer (case-sensitive)

        Returns:
            Referrer summary, or None if no user has that userName
        """
        referrer = await self.user_repo.get_by_user_name((invite_code or "").strip())
        if referrer is None:
            return None

        return {
            "valid": True,
            "referrer": {
                "id": referrer.id,
                "userName": referrer.user_name,
                "name": referrer.name,
            },
        }
