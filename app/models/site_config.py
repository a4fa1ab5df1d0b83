"""
SiteConfig model.

Single configuration row holding commission percentages and the
co-founder to regular share ratio.
"""

from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import DateTime, Integer
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base
from app.models.types import RatePercentType

# The configuration table holds exactly one row with this id
SITE_CONFIG_ID = 1


class SiteConfig(Base):
    """
    SiteConfig entity.

    Fields are nullable so that a partially written row can be detected and
    completed with defaults on first read.

    Attributes:
        id: Always SITE_CONFIG_ID
        gen1_rate / gen2_rate / gen3_rate: Commission percentages
        cofounder_ratio: Regular shares per co-founder share
        updated_at: Last change
    """

    __tablename__ = "site_config"

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, default=SITE_CONFIG_ID
    )

    gen1_rate: Mapped[Decimal | None] = mapped_column(RatePercentType, nullable=True)
    gen2_rate: Mapped[Decimal | None] = mapped_column(RatePercentType, nullable=True)
    gen3_rate: Mapped[Decimal | None] = mapped_column(RatePercentType, nullable=True)
    cofounder_ratio: Mapped[int | None] = mapped_column(Integer, nullable=True)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
        nullable=False,
    )

    @property
    def is_complete(self) -> bool:
        """Check if every field has a value."""
        return None not in (
            self.gen1_rate,
            self.gen2_rate,
            self.gen3_rate,
            self.cofounder_ratio,
        )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<SiteConfig(gen1={self.gen1_rate}, gen2={self.gen2_rate}, "
            f"gen3={self.gen3_rate}, ratio={self.cofounder_ratio})>"
        )
