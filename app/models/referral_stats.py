"""
ReferralStats model.

Per-user materialized view of the commission ledger: referred user counts
and earnings per generation plus totals.
"""

from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Integer
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base
from app.models.types import MoneyType
from app.utils.datetime_utils import to_iso


class ReferralStats(Base):
    """
    ReferralStats entity.

    Invariants (restored by the reconciler when drifted):
    - gen{i}_earnings = sum of completed commission amounts at generation i
    - total_earnings = gen1_earnings + gen2_earnings + gen3_earnings
    - gen{i}_count = distinct referred users in completed records at generation i
    - referred_users = gen1_count

    Attributes:
        id: Primary key
        user_id: Beneficiary the aggregate belongs to
        referred_users: Distinct direct (generation 1) referrals
        total_earnings: Earnings across all generations
        gen1_count / gen2_count / gen3_count: Referred users per generation
        gen1_earnings / gen2_earnings / gen3_earnings: Earnings per generation
        last_synced_at: Last reconciler run
        created_at / updated_at: Timestamps
    """

    __tablename__ = "referral_stats"
    __table_args__ = (
        CheckConstraint("referred_users >= 0", name="check_stats_referred_users_non_negative"),
        CheckConstraint("total_earnings >= 0", name="check_stats_total_earnings_non_negative"),
        CheckConstraint("gen1_count >= 0", name="check_stats_gen1_count_non_negative"),
        CheckConstraint("gen2_count >= 0", name="check_stats_gen2_count_non_negative"),
        CheckConstraint("gen3_count >= 0", name="check_stats_gen3_count_non_negative"),
        CheckConstraint("gen1_earnings >= 0", name="check_stats_gen1_earnings_non_negative"),
        CheckConstraint("gen2_earnings >= 0", name="check_stats_gen2_earnings_non_negative"),
        CheckConstraint("gen3_earnings >= 0", name="check_stats_gen3_earnings_non_negative"),
    )

    # Primary key
    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )

    user_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        unique=True,
        index=True,
        nullable=False,
    )

    referred_users: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_earnings: Mapped[Decimal] = mapped_column(
        MoneyType, default=Decimal("0"), nullable=False
    )

    gen1_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    gen1_earnings: Mapped[Decimal] = mapped_column(
        MoneyType, default=Decimal("0"), nullable=False
    )
    gen2_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    gen2_earnings: Mapped[Decimal] = mapped_column(
        MoneyType, default=Decimal("0"), nullable=False
    )
    gen3_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    gen3_earnings: Mapped[Decimal] = mapped_column(
        MoneyType, default=Decimal("0"), nullable=False
    )

    last_synced_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
        nullable=False,
    )

    def count_for(self, generation: int) -> int:
        """Referred user count at a generation."""
        return getattr(self, f"gen{generation}_count")

    def earnings_for(self, generation: int) -> Decimal:
        """Earnings at a generation."""
        return getattr(self, f"gen{generation}_earnings")

    def to_dict(self) -> dict[str, Any]:
        """Serialize for JSON responses."""
        return {
            "referredUsers": self.referred_users,
            "totalEarnings": str(self.total_earnings),
            "generation1": {"count": self.gen1_count, "earnings": str(self.gen1_earnings)},
            "generation2": {"count": self.gen2_count, "earnings": str(self.gen2_earnings)},
            "generation3": {"count": self.gen3_count, "earnings": str(self.gen3_earnings)},
            "lastSyncedAt": to_iso(self.last_synced_at),
        }

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<ReferralStats(user_id={self.user_id}, "
            f"referred_users={self.referred_users}, "
            f"total_earnings={self.total_earnings})>"
        )


def count_column(generation: int) -> str:
    """Column name holding the referred user count of a generation."""
    if generation not in (1, 2, 3):
        raise ValueError(f"Invalid generation: {generation}")
    return f"gen{generation}_count"


def earnings_column(generation: int) -> str:
    """Column name holding the earnings of a generation."""
    if generation not in (1, 2, 3):
        raise ValueError(f"Invalid generation: {generation}")
    return f"gen{generation}_earnings"
