"""
Commission engine.

Turns a completed purchase into commission records for up to three
ancestors of the purchaser and keeps their aggregates in step.

Each (ledger insert, aggregate delta) pair is committed on its own. The
unique key (beneficiary, source_transaction, generation) is the only
duplicate guard that holds under concurrent retries; the read before the
chain walk is a fast path.
"""

from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from loguru import logger
from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config.business_constants import MONEY_QUANTUM
from app.models.enums import CommissionStatus, PurchaseType
from app.repositories.commission_record_repository import (
    CommissionRecordRepository,
)
from app.repositories.referral_registration_repository import (
    ReferralRegistrationRepository,
)
from app.repositories.user_repository import UserRepository
from app.services.referral.aggregate_store import ReferralAggregateStore
from app.services.referral.chain_resolver import (
    ChainMember,
    ReferralChainResolver,
)
from app.services.referral.config import CommissionConfigProvider, CommissionRates
from app.services.referral.errors import CommissionErrorKind
from app.services.referral.schemas import PurchaseEvent
from app.utils.datetime_utils import utc_now


def calculate_commission(base_amount: Decimal, rate: Decimal) -> Decimal:
    """
    Calculate commission for a percentage rate.

    Args:
        base_amount: Purchase amount
        rate: Percentage (15 means 15%)

    Returns:
        base_amount * rate / 100 rounded to the money column scale
    """
    return (base_amount * rate / Decimal("100")).quantize(
        MONEY_QUANTUM, rounding=ROUND_HALF_UP
    )


@dataclass
class CommissionNotification:
    """Data for notifying a beneficiary about a new commission."""

    beneficiary_id: int
    beneficiary_user_name: str
    amount: Decimal
    currency: str
    generation: int
    purchaser_user_name: str
    purchase_type: str


@dataclass
class CreatedCommission:
    """Commission persisted during one engine call."""

    record_id: int
    beneficiary_id: int
    generation: int
    amount: Decimal
    rate: Decimal
    currency: str

    def to_dict(self) -> dict[str, Any]:
        """Serialize for JSON responses."""
        return {
            "id": self.record_id,
            "beneficiary": self.beneficiary_id,
            "generation": self.generation,
            "amount": str(self.amount),
            "rate": str(self.rate),
            "currency": self.currency,
        }


@dataclass
class CommissionResult:
    """Result of processing one purchase event."""

    success: bool
    commissions_created: int = 0
    commissions: list[CreatedCommission] = field(default_factory=list)
    error_kind: CommissionErrorKind | None = None
    error_message: str | None = None
    failed_generation: int | None = None
    notifications: list[CommissionNotification] = field(default_factory=list)

    @classmethod
    def failure(
        cls, kind: CommissionErrorKind, message: str
    ) -> "CommissionResult":
        """Build a result for a call that wrote nothing."""
        return cls(success=False, error_kind=kind, error_message=message)

    @property
    def total_amount(self) -> Decimal:
        """Sum of persisted commissions."""
        return sum((c.amount for c in self.commissions), Decimal("0"))

    def to_dict(self) -> dict[str, Any]:
        """Serialize for JSON responses."""
        data: dict[str, Any] = {
            "success": self.success,
            "commissionsCreated": self.commissions_created,
            "commissions": [c.to_dict() for c in self.commissions],
        }
        if self.error_kind is not None:
            data["error"] = self.error_kind.value
            data["message"] = self.error_message
        if self.failed_generation is not None:
            data["failedGeneration"] = self.failed_generation
        return data


class CommissionEngine:
    """
    Processes completed purchases into referral commissions.

    Callers must only report purchases that reached the completed state in
    their own subsystem.
    """

    def __init__(self, session: AsyncSession) -> None:
        """
        Initialize commission engine.

        Args:
            session: Async database session
        """
        self.session = session
        self.user_repo = UserRepository(session)
        self.ledger_repo = CommissionRecordRepository(session)
        self.registration_repo = ReferralRegistrationRepository(session)
        self.config_provider = CommissionConfigProvider(session)
        self.chain_resolver = ReferralChainResolver(session)
        self.aggregates = ReferralAggregateStore(session)

    async def on_purchase_completed(
        self,
        purchaser_id: int,
        base_amount: Decimal | int | str,
        purchase_type: str,
        source_transaction_id: str,
        **details: Any,
    ) -> CommissionResult:
        """
        Validate raw purchase fields and process them.

        Args:
            purchaser_id: Purchasing user id
            base_amount: Purchase amount (>= 0)
            purchase_type: share, cofounder or other
            source_transaction_id: Stable id of the source purchase
            **details: currency, source_transaction_model,
                co_founder_shares, metadata

        Returns:
            Processing result; invalid input yields invalid_input
        """
        try:
            event = PurchaseEvent(
                purchaser_id=purchaser_id,
                base_amount=base_amount,
                purchase_type=purchase_type,
                source_transaction_id=source_transaction_id,
                **details,
            )
        except (ValidationError, TypeError) as e:
            logger.warning(
                "Rejected malformed purchase event",
                extra={
                    "purchaser_id": purchaser_id,
                    "source_transaction": source_transaction_id,
                    "error": str(e),
                },
            )
            return CommissionResult.failure(
                CommissionErrorKind.INVALID_INPUT, str(e)
            )

        return await self.process(event)

    async def process(self, event: PurchaseEvent) -> CommissionResult:
        """
        Create commissions for a validated purchase event.

        Args:
            event: Completed purchase

        Returns:
            Processing result
        """
        purchaser = await self.user_repo.get_by_id(event.purchaser_id)
        if purchaser is None:
            logger.warning(
                "Purchaser not found",
                extra={
                    "purchaser_id": event.purchaser_id,
                    "source_transaction": event.source_transaction_id,
                },
            )
            return CommissionResult.failure(
                CommissionErrorKind.PURCHASER_NOT_FOUND,
                f"User {event.purchaser_id} not found",
            )

        purchaser_name = purchaser.user_name
        if not purchaser.has_referrer:
            logger.debug(
                "Purchaser has no referrer, no commissions",
                extra={"purchaser_id": event.purchaser_id},
            )
            return CommissionResult(success=True)

        rates = await self.config_provider.get_rates()
        model = event.resolved_model.value
        metadata = self._build_metadata(event, rates)

        if await self.ledger_repo.exists_completed_for_source(
            event.source_transaction_id, model
        ):
            logger.info(
                "Purchase already processed",
                extra={
                    "source_transaction": event.source_transaction_id,
                    "source_transaction_model": model,
                },
            )
            return CommissionResult(
                success=True,
                error_kind=CommissionErrorKind.ALREADY_PROCESSED,
                error_message="Commissions already exist for this purchase",
            )

        chain = await self.chain_resolver.resolve(purchaser)
        result = CommissionResult(success=True)
        collisions = 0

        for member in chain:
            rate = rates.rate_for(member.generation)
            if rate <= 0:
                logger.debug(
                    "Skipping generation with non-positive rate",
                    extra={"generation": member.generation, "rate": str(rate)},
                )
                continue

            amount = calculate_commission(event.base_amount, rate)
            if amount <= 0:
                logger.debug(
                    "Skipping zero commission",
                    extra={
                        "generation": member.generation,
                        "base_amount": str(event.base_amount),
                    },
                )
                continue

            try:
                created = await self._credit(
                    member=member,
                    event=event,
                    model=model,
                    rate=rate,
                    amount=amount,
                    metadata=metadata,
                )
            except SQLAlchemyError as e:
                await self.session.rollback()
                if not result.commissions:
                    logger.exception(
                        "Commission write failed",
                        extra={
                            "source_transaction": event.source_transaction_id,
                            "generation": member.generation,
                        },
                    )
                    raise

                logger.error(
                    "Commission write failed after partial success",
                    extra={
                        "source_transaction": event.source_transaction_id,
                        "generation": member.generation,
                        "persisted": result.commissions_created,
                        "error": str(e),
                    },
                )
                result.success = False
                result.error_kind = CommissionErrorKind.PARTIAL_WRITE
                result.error_message = str(e)
                result.failed_generation = member.generation
                return result

            if created is None:
                collisions += 1
                continue

            result.commissions.append(created)
            result.commissions_created += 1
            result.notifications.append(
                CommissionNotification(
                    beneficiary_id=member.user_id,
                    beneficiary_user_name=member.user_name,
                    amount=amount,
                    currency=event.currency.value,
                    generation=member.generation,
                    purchaser_user_name=purchaser_name,
                    purchase_type=event.purchase_type.value,
                )
            )

        if collisions and not result.commissions:
            # A concurrent call for the same purchase won every slot
            result.error_kind = CommissionErrorKind.ALREADY_PROCESSED
            result.error_message = "Commissions already exist for this purchase"

        logger.info(
            "Purchase commissions processed",
            extra={
                "source_transaction": event.source_transaction_id,
                "purchaser_id": event.purchaser_id,
                "chain_length": len(chain),
                "commissions_created": result.commissions_created,
                "total_amount": str(result.total_amount),
            },
        )
        return result

    async def _credit(
        self,
        member: ChainMember,
        event: PurchaseEvent,
        model: str,
        rate: Decimal,
        amount: Decimal,
        metadata: dict[str, Any] | None,
    ) -> CreatedCommission | None:
        """
        Insert one commission and apply its aggregate delta.

        Returns:
            Created commission, or None if the unique key was already taken
        """
        await self.aggregates.ensure_exists(member.user_id)

        try:
            record = await self.ledger_repo.create(
                beneficiary_id=member.user_id,
                referred_user_id=event.purchaser_id,
                source_transaction=event.source_transaction_id,
                source_transaction_model=model,
                generation=member.generation,
                purchase_type=event.purchase_type.value,
                currency=event.currency.value,
                amount=amount,
                status=CommissionStatus.COMPLETED.value,
                base_amount=event.base_amount,
                rate=rate,
                calculated_at=utc_now(),
                purchase_metadata=metadata,
            )
        except IntegrityError:
            await self.session.rollback()
            existing = await self.ledger_repo.get_by_unique_key(
                member.user_id, event.source_transaction_id, member.generation
            )
            if existing is None:
                raise
            if existing.is_rolled_back:
                logger.warning(
                    "Commission slot holds a rolled back record, not re-crediting",
                    extra={
                        "beneficiary_id": member.user_id,
                        "source_transaction": event.source_transaction_id,
                        "generation": member.generation,
                    },
                )
            else:
                logger.info(
                    "Commission already credited",
                    extra={
                        "beneficiary_id": member.user_id,
                        "source_transaction": event.source_transaction_id,
                        "generation": member.generation,
                        "status": existing.status,
                    },
                )
            return None

        created = CreatedCommission(
            record_id=record.id,
            beneficiary_id=member.user_id,
            generation=member.generation,
            amount=amount,
            rate=rate,
            currency=event.currency.value,
        )

        # The new record is flushed, so exactly one row means first contact
        first_for_referred = (
            await self.ledger_repo.count_for_referred(
                member.user_id, event.purchaser_id, member.generation
            )
            == 1
        )
        already_counted = await self.registration_repo.is_registered(
            member.user_id, event.purchaser_id, member.generation
        )

        await self.aggregates.apply_commission(
            user_id=member.user_id,
            generation=member.generation,
            amount=amount,
            count_new_referral=first_for_referred and not already_counted,
        )
        await self.session.commit()

        logger.info(
            "Commission recorded",
            extra={
                "record_id": created.record_id,
                "beneficiary_id": member.user_id,
                "referred_user_id": event.purchaser_id,
                "source_transaction": event.source_transaction_id,
                "generation": member.generation,
                "amount": str(amount),
                "currency": created.currency,
            },
        )
        return created

    @staticmethod
    def _build_metadata(
        event: PurchaseEvent, rates: CommissionRates
    ) -> dict[str, Any] | None:
        """Purchase-kind-specific metadata stored on every record."""
        metadata = dict(event.metadata) if event.metadata else {}

        if event.purchase_type is PurchaseType.COFOUNDER:
            shares = event.shares_bought or 0
            metadata.update(
                coFounderShares=shares,
                equivalentRegularShares=shares * rates.cofounder_ratio,
                shareToRegularRatio=rates.cofounder_ratio,
            )

        return metadata or None
