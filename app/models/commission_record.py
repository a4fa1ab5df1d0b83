"""
CommissionRecord model.

Append-only ledger of referral commissions. The ledger is the source of
truth for referral earnings; ReferralStats is derived from it.
"""

from datetime import UTC, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from sqlalchemy import (
    JSON,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base
from app.models.enums import CommissionStatus
from app.models.types import MoneyType, RatePercentType
from app.utils.datetime_utils import to_iso

if TYPE_CHECKING:
    from app.models.user import User


class CommissionRecord(Base):
    """
    CommissionRecord entity.

    One commission due to one ancestor from one source purchase:
    - (beneficiary, source_transaction, generation) is unique
    - referred_user is always the original purchaser
    - amount = base_amount * rate / 100 (recorded in the purchase currency)
    - rolled_back_at / rollback_reason are set iff status is rolled_back

    Attributes:
        id: Primary key
        beneficiary_id: User receiving the commission
        referred_user_id: Purchaser whose payment triggered it
        source_transaction: Stable id of the source purchase
        source_transaction_model: UserShare / PaymentTransaction / OtherPurchase
        generation: 1, 2 or 3
        purchase_type: share / cofounder / other
        currency: naira / usdt / USD
        amount: Commission amount
        status: pending / completed / failed / rolled_back
        base_amount: Purchase amount the commission was computed from
        rate: Percentage applied
        calculated_at: When the amount was computed
        purchase_metadata: Purchase-kind-specific details
        rolled_back_at: When the commission was reversed
        rollback_reason: Why it was reversed
        created_at: Ledger insert timestamp
    """

    __tablename__ = "commission_records"
    __table_args__ = (
        UniqueConstraint(
            "beneficiary_id",
            "source_transaction",
            "generation",
            name="uq_commission_beneficiary_source_generation",
        ),
        CheckConstraint("amount >= 0", name="check_commission_amount_non_negative"),
        CheckConstraint(
            "generation IN (1, 2, 3)", name="check_commission_generation_range"
        ),
        CheckConstraint(
            "status IN ('pending', 'completed', 'failed', 'rolled_back')",
            name="check_commission_status_values",
        ),
        Index("idx_commission_beneficiary_status", "beneficiary_id", "status"),
        Index(
            "idx_commission_beneficiary_generation_status",
            "beneficiary_id",
            "generation",
            "status",
        ),
        Index(
            "idx_commission_source",
            "source_transaction",
            "source_transaction_model",
        ),
    )

    # Primary key
    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )

    # Parties
    beneficiary_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    referred_user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )

    # Source purchase
    source_transaction: Mapped[str] = mapped_column(
        String(128), nullable=False
    )
    source_transaction_model: Mapped[str] = mapped_column(
        String(32), nullable=False
    )

    generation: Mapped[int] = mapped_column(Integer, nullable=False)
    purchase_type: Mapped[str] = mapped_column(String(16), nullable=False)
    currency: Mapped[str] = mapped_column(String(8), nullable=False)

    amount: Mapped[Decimal] = mapped_column(
        MoneyType, nullable=False, default=Decimal("0")
    )
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=CommissionStatus.COMPLETED.value
    )

    # Commission details
    base_amount: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    rate: Mapped[Decimal] = mapped_column(RatePercentType, nullable=False)
    calculated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )

    # "metadata" is reserved by the declarative API
    purchase_metadata: Mapped[dict[str, Any] | None] = mapped_column(
        "metadata", JSON, nullable=True
    )

    # Rollback audit
    rolled_back_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    rollback_reason: Mapped[str | None] = mapped_column(
        String(500), nullable=True
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )

    # Relationships
    beneficiary: Mapped["User"] = relationship(
        "User", foreign_keys=[beneficiary_id], lazy="raise"
    )
    referred_user: Mapped["User"] = relationship(
        "User", foreign_keys=[referred_user_id], lazy="raise"
    )

    # Properties

    @property
    def commission_details(self) -> dict[str, Any]:
        """Base amount, rate and calculation time as one mapping."""
        return {
            "baseAmount": self.base_amount,
            "rate": self.rate,
            "calculatedAt": self.calculated_at,
        }

    @property
    def is_completed(self) -> bool:
        """Check if commission currently counts toward earnings."""
        return self.status == CommissionStatus.COMPLETED.value

    @property
    def is_rolled_back(self) -> bool:
        """Check if commission was reversed."""
        return self.status == CommissionStatus.ROLLED_BACK.value

    def to_dict(self) -> dict[str, Any]:
        """Serialize for JSON responses."""
        return {
            "id": self.id,
            "beneficiary": self.beneficiary_id,
            "referredUser": self.referred_user_id,
            "sourceTransaction": self.source_transaction,
            "sourceTransactionModel": self.source_transaction_model,
            "generation": self.generation,
            "purchaseType": self.purchase_type,
            "currency": self.currency,
            "amount": str(self.amount),
            "status": self.status,
            "commissionDetails": {
                "baseAmount": str(self.base_amount),
                "rate": str(self.rate),
                "calculatedAt": to_iso(self.calculated_at),
            },
            "metadata": self.purchase_metadata,
            "rolledBackAt": to_iso(self.rolled_back_at),
            "rollbackReason": self.rollback_reason,
            "createdAt": to_iso(self.created_at),
        }

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"CommissionRecord(id={self.id}, "
            f"beneficiary_id={self.beneficiary_id}, "
            f"source_transaction={self.source_transaction!r}, "
            f"generation={self.generation}, "
            f"amount={self.amount}, "
            f"status={self.status})"
        )


# Newest-first listing of a beneficiary's ledger
Index(
    "idx_commission_created_desc",
    CommissionRecord.created_at.desc(),
)
