"""Database read helpers for integration tests."""

from sqlalchemy import func, select

from app.models import CommissionRecord, ReferralStats


async def fetch_stats(session_maker, user_id: int) -> ReferralStats | None:
    """Read an aggregate through a fresh session."""
    async with session_maker() as s:
        return (
            await s.execute(select(ReferralStats).where(ReferralStats.user_id == user_id))
        ).scalar_one_or_none()


async def fetch_records(session_maker, **filters) -> list[CommissionRecord]:
    """Read ledger rows through a fresh session, ordered by generation."""
    async with session_maker() as s:
        stmt = (
            select(CommissionRecord)
            .filter_by(**filters)
            .order_by(CommissionRecord.generation, CommissionRecord.id)
        )
        return list((await s.execute(stmt)).scalars().all())


async def count_rows(session_maker, model) -> int:
    """Count rows of a table through a fresh session."""
    async with session_maker() as s:
        return (await s.execute(select(func.count()).select_from(model))).scalar()
