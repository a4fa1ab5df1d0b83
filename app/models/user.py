"""
User model.

Represents a platform user as seen by the referral engine. The user
directory is owned by the account subsystem; the engine only reads it.
"""

from datetime import UTC, datetime

from sqlalchemy import DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base


class User(Base):
    """User model - referral directory entry."""

    __tablename__ = "users"

    # Primary key
    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )

    # userName doubles as the user's referral code (case-sensitive)
    user_name: Mapped[str] = mapped_column(
        String(255), unique=True, index=True, nullable=False
    )
    name: Mapped[str | None] = mapped_column(
        String(255), nullable=True
    )
    email: Mapped[str | None] = mapped_column(
        String(255), nullable=True
    )

    # userName of the direct referrer, if any
    referred_by_code: Mapped[str | None] = mapped_column(
        String(255), nullable=True, index=True
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )

    @property
    def referral_code(self) -> str:
        """Referral code is the user name."""
        return self.user_name

    @property
    def has_referrer(self) -> bool:
        """Check if user signed up with a referral code."""
        return bool(self.referred_by_code and self.referred_by_code.strip())

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<User(id={self.id}, user_name={self.user_name!r}, "
            f"referred_by_code={self.referred_by_code!r})>"
        )
