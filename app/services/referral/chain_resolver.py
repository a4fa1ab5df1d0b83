"""
Referral chain resolver.

Walks referredByCode -> userName links upward from a user.
"""

from dataclasses import dataclass

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from app.config.business_constants import REFERRAL_DEPTH
from app.models.user import User
from app.repositories.user_repository import UserRepository


@dataclass(frozen=True)
class ChainMember:
    """
    Ancestor of a user.

    Plain values are kept instead of the ORM row so members stay usable
    after the session rolls back a failed write.
    """

    user_id: int
    user_name: str
    generation: int


class ReferralChainResolver:
    """Resolves up to REFERRAL_DEPTH ancestors of a user."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize chain resolver."""
        self.session = session
        self.user_repo = UserRepository(session)

    async def resolve(
        self, user: User, depth: int = REFERRAL_DEPTH
    ) -> list[ChainMember]:
        """
        Get ancestors of a user, direct referrer first.

        The walk stops silently when a code matches no user or when an
        ancestor was already visited. A user whose code is their own
        userName has no referrer.

        Args:
            user: Starting user (purchaser or new signup)
            depth: Maximum number of ancestors

        Returns:
            Between 0 and depth ancestors
        """
        chain: list[ChainMember] = []
        visited = {user.id}
        current = user

        while len(chain) < depth:
            code = (current.referred_by_code or "").strip()
            if not code:
                break

            if code == current.user_name:
                logger.warning(
                    "Ignoring self-referral",
                    extra={"user_id": current.id, "user_name": current.user_name},
                )
                break

            ancestor = await self.user_repo.get_by_user_name(code)
            if ancestor is None:
                logger.warning(
                    "Referral chain stops at unknown referral code",
                    extra={
                        "user_id": current.id,
                        "referred_by_code": code,
                        "generation": len(chain) + 1,
                    },
                )
                break

            if ancestor.id in visited:
                logger.warning(
                    "Referral cycle detected, truncating chain",
                    extra={
                        "start_user_id": user.id,
                        "repeated_user_id": ancestor.id,
                        "chain_length": len(chain),
                    },
                )
                break

            visited.add(ancestor.id)
            chain.append(
                ChainMember(
                    user_id=ancestor.id,
                    user_name=ancestor.user_name,
                    generation=len(chain) + 1,
                )
            )
            current = ancestor

        logger.debug(
            "Referral chain resolved",
            extra={
                "user_id": user.id,
                "depth": depth,
                "chain": [member.user_id for member in chain],
            },
        )
        return chain
