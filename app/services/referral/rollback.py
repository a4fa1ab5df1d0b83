"""
Commission rollback coordinator.

Reverses the commissions of a canceled source purchase. Records stay in
the ledger as rolled_back; beneficiaries lose the earnings but keep the
referral counts.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.enums import SourceTransactionModel
from app.repositories.commission_record_repository import (
    CommissionRecordRepository,
)
from app.services.referral.aggregate_store import ReferralAggregateStore
from app.services.referral.errors import CommissionErrorKind
from app.utils.datetime_utils import utc_now


@dataclass
class RollbackResult:
    """Result of rolling back one source purchase."""

    success: bool
    rolled_back: int = 0
    record_ids: list[int] = field(default_factory=list)
    total_amount: Decimal = Decimal("0")
    error_kind: CommissionErrorKind | None = None
    error_message: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize for JSON responses."""
        data: dict[str, Any] = {
            "success": self.success,
            "rolledBack": self.rolled_back,
            "recordIds": self.record_ids,
        }
        if self.error_kind is not None:
            data["error"] = self.error_kind.value
            data["message"] = self.error_message
        return data


@dataclass(frozen=True)
class _Reversal:
    record_id: int
    beneficiary_id: int
    generation: int
    amount: Decimal


class CommissionRollbackCoordinator:
    """Marks commissions rolled back and compensates aggregates."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize rollback coordinator."""
        self.session = session
        self.ledger_repo = CommissionRecordRepository(session)
        self.aggregates = ReferralAggregateStore(session)

    async def rollback(
        self,
        source_transaction_id: str,
        source_transaction_model: SourceTransactionModel | str,
        reason: str,
    ) -> RollbackResult:
        """
        Roll back every completed commission of a source purchase.

        Already rolled back records are skipped; pending and failed
        records are untouched. Each record transition and its aggregate
        decrement are committed together, so a retry after a storage
        fault only processes what is left.

        Args:
            source_transaction_id: Source purchase id
            source_transaction_model: Source purchase model tag
            reason: Why the purchase was reversed

        Returns:
            Number of records rolled back by this call
        """
        source_transaction_id = (source_transaction_id or "").strip()
        if not source_transaction_id:
            return RollbackResult(
                success=False,
                error_kind=CommissionErrorKind.INVALID_INPUT,
                error_message="sourceTransactionId is required",
            )
        try:
            model = SourceTransactionModel(source_transaction_model)
        except ValueError:
            return RollbackResult(
                success=False,
                error_kind=CommissionErrorKind.INVALID_INPUT,
                error_message=f"Unknown sourceTransactionModel: {source_transaction_model}",
            )

        records = await self.ledger_repo.find_completed_for_source(
            source_transaction_id, model.value
        )
        reversals = [
            _Reversal(
                record_id=record.id,
                beneficiary_id=record.beneficiary_id,
                generation=record.generation,
                amount=record.amount,
            )
            for record in records
        ]

        result = RollbackResult(success=True)
        for reversal in reversals:
            try:
                transitioned = await self.ledger_repo.mark_rolled_back(
                    reversal.record_id, utc_now(), reason
                )
                if not transitioned:
                    # Another rollback got there first
                    await self.session.rollback()
                    continue

                await self.aggregates.reverse_commission(
                    reversal.beneficiary_id, reversal.generation, reversal.amount
                )
                await self.session.commit()
            except SQLAlchemyError:
                await self.session.rollback()
                logger.exception(
                    "Commission rollback failed",
                    extra={
                        "record_id": reversal.record_id,
                        "source_transaction": source_transaction_id,
                        "rolled_back_so_far": result.rolled_back,
                    },
                )
                raise

            result.rolled_back += 1
            result.record_ids.append(reversal.record_id)
            result.total_amount += reversal.amount

            logger.info(
                "Commission rolled back",
                extra={
                    "record_id": reversal.record_id,
                    "beneficiary_id": reversal.beneficiary_id,
                    "generation": reversal.generation,
                    "amount": str(reversal.amount),
                    "reason": reason,
                },
            )

        logger.info(
            "Source purchase rollback finished",
            extra={
                "source_transaction": source_transaction_id,
                "source_transaction_model": model.value,
                "rolled_back": result.rolled_back,
                "total_amount": str(result.total_amount),
            },
        )
        return result
