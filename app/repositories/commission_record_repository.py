"""
CommissionRecord repository.

Data access layer for the commission ledger.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from sqlalchemy import and_, distinct, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.commission_record import CommissionRecord
from app.models.enums import CommissionStatus
from app.repositories.base import BaseRepository

_COMPLETED = CommissionStatus.COMPLETED.value


@dataclass
class GenerationTotals:
    """Ledger totals for one generation of one beneficiary."""

    generation: int
    earnings: Decimal
    referred_count: int


class CommissionRecordRepository(BaseRepository[CommissionRecord]):
    """CommissionRecord repository with ledger queries."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize commission record repository."""
        super().__init__(CommissionRecord, session)

    async def exists_completed_for_source(
        self, source_transaction: str, source_transaction_model: str
    ) -> bool:
        """
        Check if a source purchase already produced completed commissions.

        Fast path only; the unique constraint is the real duplicate guard.

        Args:
            source_transaction: Source purchase id
            source_transaction_model: Source purchase model tag

        Returns:
            True if at least one completed record exists
        """
        return await self.exists(
            source_transaction=source_transaction,
            source_transaction_model=source_transaction_model,
            status=_COMPLETED,
        )

    async def find_completed_for_source(
        self, source_transaction: str, source_transaction_model: str
    ) -> list[CommissionRecord]:
        """
        Get completed records of a source purchase in generation order.

        Args:
            source_transaction: Source purchase id
            source_transaction_model: Source purchase model tag

        Returns:
            Completed records
        """
        stmt = (
            select(CommissionRecord)
            .where(
                CommissionRecord.source_transaction == source_transaction,
                CommissionRecord.source_transaction_model == source_transaction_model,
                CommissionRecord.status == _COMPLETED,
            )
            .order_by(CommissionRecord.generation, CommissionRecord.id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_by_unique_key(
        self, beneficiary_id: int, source_transaction: str, generation: int
    ) -> CommissionRecord | None:
        """Get the record occupying (beneficiary, source, generation)."""
        return await self.get_by(
            beneficiary_id=beneficiary_id,
            source_transaction=source_transaction,
            generation=generation,
        )

    async def count_for_referred(
        self, beneficiary_id: int, referred_user_id: int, generation: int
    ) -> int:
        """
        Count records tying a referred user to a beneficiary.

        Rolled-back records are included: the relationship they prove
        still counts.

        Args:
            beneficiary_id: Ancestor
            referred_user_id: Purchaser
            generation: Generation

        Returns:
            Number of records in any status
        """
        return await self.count(
            beneficiary_id=beneficiary_id,
            referred_user_id=referred_user_id,
            generation=generation,
        )

    async def has_any_for_referred(
        self, beneficiary_id: int, referred_user_id: int, generation: int
    ) -> bool:
        """Check if any record, whatever its status, ties the two users."""
        return await self.exists(
            beneficiary_id=beneficiary_id,
            referred_user_id=referred_user_id,
            generation=generation,
        )

    async def count_distinct_referred(
        self, beneficiary_id: int, generation: int
    ) -> int:
        """
        Count distinct purchasers credited to a beneficiary at a generation.

        Args:
            beneficiary_id: Beneficiary
            generation: Generation

        Returns:
            Distinct referred user count over completed records
        """
        stmt = select(
            func.count(distinct(CommissionRecord.referred_user_id))
        ).where(
            CommissionRecord.beneficiary_id == beneficiary_id,
            CommissionRecord.generation == generation,
            CommissionRecord.status == _COMPLETED,
        )
        result = await self.session.execute(stmt)
        return result.scalar() or 0

    async def totals_by_generation(
        self, beneficiary_id: int
    ) -> dict[int, GenerationTotals]:
        """
        Aggregate a beneficiary's completed ledger per generation.

        Args:
            beneficiary_id: Beneficiary

        Returns:
            Totals keyed by generation (generations without records absent)
        """
        stmt = (
            select(
                CommissionRecord.generation,
                func.coalesce(func.sum(CommissionRecord.amount), 0),
                func.count(distinct(CommissionRecord.referred_user_id)),
            )
            .where(
                CommissionRecord.beneficiary_id == beneficiary_id,
                CommissionRecord.status == _COMPLETED,
            )
            .group_by(CommissionRecord.generation)
        )
        result = await self.session.execute(stmt)

        totals: dict[int, GenerationTotals] = {}
        for generation, earnings, referred_count in result.all():
            totals[generation] = GenerationTotals(
                generation=generation,
                earnings=Decimal(str(earnings)),
                referred_count=referred_count,
            )
        return totals

    async def totals_by_generation_and_type(
        self, beneficiary_id: int
    ) -> list[tuple[int, str, Decimal, int]]:
        """
        Sum completed commissions per (generation, purchase type).

        Returns:
            Rows of (generation, purchase_type, total, transactions)
        """
        stmt = (
            select(
                CommissionRecord.generation,
                CommissionRecord.purchase_type,
                func.coalesce(func.sum(CommissionRecord.amount), 0),
                func.count(CommissionRecord.id),
            )
            .where(
                CommissionRecord.beneficiary_id == beneficiary_id,
                CommissionRecord.status == _COMPLETED,
            )
            .group_by(CommissionRecord.generation, CommissionRecord.purchase_type)
            .order_by(CommissionRecord.generation, CommissionRecord.purchase_type)
        )
        result = await self.session.execute(stmt)
        return [
            (generation, purchase_type, Decimal(str(total)), transactions)
            for generation, purchase_type, total, transactions in result.all()
        ]

    async def list_completed_for_beneficiary(
        self,
        beneficiary_id: int,
        page: int = 1,
        per_page: int = 50,
    ) -> tuple[list[CommissionRecord], int]:
        """
        Page through a beneficiary's completed commissions, newest first.

        Args:
            beneficiary_id: Beneficiary
            page: Page number (1-indexed)
            per_page: Items per page

        Returns:
            Tuple of (records, total_count)
        """
        criteria = and_(
            CommissionRecord.beneficiary_id == beneficiary_id,
            CommissionRecord.status == _COMPLETED,
        )
        total = await self.count(criteria)

        stmt = (
            select(CommissionRecord)
            .where(criteria)
            .order_by(CommissionRecord.created_at.desc(), CommissionRecord.id.desc())
            .offset((page - 1) * per_page)
            .limit(per_page)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all()), total

    async def mark_rolled_back(
        self, record_id: int, rolled_back_at: datetime, reason: str
    ) -> bool:
        """
        Move a record from completed to rolled_back.

        The status predicate makes concurrent rollbacks of the same record
        settle on exactly one winner.

        Args:
            record_id: Record id
            rolled_back_at: Rollback timestamp
            reason: Rollback reason

        Returns:
            True if this call performed the transition
        """
        stmt = (
            update(CommissionRecord)
            .where(
                CommissionRecord.id == record_id,
                CommissionRecord.status == _COMPLETED,
            )
            .values(
                status=CommissionStatus.ROLLED_BACK.value,
                rolled_back_at=rolled_back_at,
                rollback_reason=reason,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def beneficiary_ids(self) -> list[int]:
        """Get every user that ever received a commission."""
        stmt = (
            select(distinct(CommissionRecord.beneficiary_id))
            .order_by(CommissionRecord.beneficiary_id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
