"""
New-user registrar hook.

Counts a new signup toward each ancestor's generation count before any
purchase exists. Earnings are untouched.
"""

from dataclasses import dataclass, field
from typing import Any

from loguru import logger
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.repositories.commission_record_repository import (
    CommissionRecordRepository,
)
from app.repositories.referral_registration_repository import (
    ReferralRegistrationRepository,
)
from app.repositories.user_repository import UserRepository
from app.services.referral.aggregate_store import ReferralAggregateStore
from app.services.referral.chain_resolver import ReferralChainResolver
from app.services.referral.errors import CommissionErrorKind


@dataclass
class RegistrationResult:
    """Result of the signup hook."""

    ok: bool
    counted_ancestors: list[int] = field(default_factory=list)
    error_kind: CommissionErrorKind | None = None
    error_message: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize for JSON responses."""
        data: dict[str, Any] = {
            "ok": self.ok,
            "countedAncestors": self.counted_ancestors,
        }
        if self.error_kind is not None:
            data["error"] = self.error_kind.value
            data["message"] = self.error_message
        return data


class ReferralRegistrarHook:
    """Signup hook keeping generation counts aligned with the referral tree."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize registrar hook."""
        self.session = session
        self.user_repo = UserRepository(session)
        self.ledger_repo = CommissionRecordRepository(session)
        self.registration_repo = ReferralRegistrationRepository(session)
        self.chain_resolver = ReferralChainResolver(session)
        self.aggregates = ReferralAggregateStore(session)

    async def on_new_user(self, new_user_id: int) -> RegistrationResult:
        """
        Count a new user toward up to three ancestors.

        An ancestor is skipped when a commission record or an earlier
        registration already ties the new user to it at that generation,
        so calling this twice counts once.

        Args:
            new_user_id: Newly registered user

        Returns:
            Ancestors whose count was incremented
        """
        user = await self.user_repo.get_by_id(new_user_id)
        if user is None:
            return RegistrationResult(
                ok=False,
                error_kind=CommissionErrorKind.PURCHASER_NOT_FOUND,
                error_message=f"User {new_user_id} not found",
            )

        if not user.has_referrer:
            return RegistrationResult(ok=True)

        chain = await self.chain_resolver.resolve(user)
        result = RegistrationResult(ok=True)

        for member in chain:
            await self.aggregates.ensure_exists(member.user_id)

            if await self.ledger_repo.has_any_for_referred(
                member.user_id, new_user_id, member.generation
            ):
                continue

            try:
                await self.registration_repo.register(
                    member.user_id, new_user_id, member.generation
                )
                await self.aggregates.count_registration(
                    member.user_id, member.generation
                )
                await self.session.commit()
            except IntegrityError:
                await self.session.rollback()
                logger.debug(
                    "Signup already counted",
                    extra={
                        "ancestor_id": member.user_id,
                        "new_user_id": new_user_id,
                        "generation": member.generation,
                    },
                )
                continue

            result.counted_ancestors.append(member.user_id)

        logger.info(
            "New referral registered",
            extra={
                "new_user_id": new_user_id,
                "counted_ancestors": result.counted_ancestors,
            },
        )
        return result
