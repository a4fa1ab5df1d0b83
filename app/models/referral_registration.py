"""
ReferralRegistration model.

Records that the registrar hook already counted a new user toward an
ancestor's generation count, so the first purchase does not count the
same relationship again.
"""

from datetime import UTC, datetime

from sqlalchemy import DateTime, ForeignKey, Integer, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base


class ReferralRegistration(Base):
    """Referral registration - one counted (ancestor, new user, generation)."""

    __tablename__ = "referral_registrations"
    __table_args__ = (
        UniqueConstraint(
            "ancestor_id",
            "referred_user_id",
            "generation",
            name="uq_registration_ancestor_referred_generation",
        ),
    )

    # Primary key
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)

    ancestor_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    referred_user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # 1 = direct, 2 = second level, 3 = third level
    generation: Mapped[int] = mapped_column(Integer, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<ReferralRegistration(ancestor_id={self.ancestor_id}, "
            f"referred_user_id={self.referred_user_id}, "
            f"generation={self.generation})>"
        )
