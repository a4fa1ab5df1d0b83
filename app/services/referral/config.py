"""
Commission configuration provider.

Reads generation percentages and the co-founder ratio from the site
configuration row, writing defaults on first read.
"""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any

from loguru import logger
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config.business_constants import (
    DEFAULT_COFOUNDER_RATIO,
    DEFAULT_COMMISSION_RATES,
)
from app.models.site_config import SiteConfig
from app.repositories.site_config_repository import SiteConfigRepository
from app.services.referral.errors import InvalidInputError

# Site config field -> default
_DEFAULTS: dict[str, Decimal | int] = {
    "gen1_rate": DEFAULT_COMMISSION_RATES[1],
    "gen2_rate": DEFAULT_COMMISSION_RATES[2],
    "gen3_rate": DEFAULT_COMMISSION_RATES[3],
    "cofounder_ratio": DEFAULT_COFOUNDER_RATIO,
}


@dataclass(frozen=True)
class CommissionRates:
    """Rates in effect for one engine call."""

    gen1: Decimal
    gen2: Decimal
    gen3: Decimal
    cofounder_ratio: int

    def rate_for(self, generation: int) -> Decimal:
        """Percentage for a generation."""
        return {1: self.gen1, 2: self.gen2, 3: self.gen3}[generation]

    def to_dict(self) -> dict[str, Any]:
        """Serialize for JSON responses."""
        return {
            "gen1Commission": str(self.gen1),
            "gen2Commission": str(self.gen2),
            "gen3Commission": str(self.gen3),
            "coFounderRatio": self.cofounder_ratio,
        }

    @classmethod
    def from_config(cls, config: SiteConfig) -> "CommissionRates":
        """Build from a complete configuration row."""
        return cls(
            gen1=Decimal(config.gen1_rate),
            gen2=Decimal(config.gen2_rate),
            gen3=Decimal(config.gen3_rate),
            cofounder_ratio=int(config.cofounder_ratio),
        )


def parse_percentage(value: Any, field: str) -> Decimal:
    """
    Parse a commission percentage.

    Raises:
        InvalidInputError: Not a number or outside [0, 100]
    """
    if isinstance(value, bool) or value is None:
        raise InvalidInputError(f"{field} must be a number", field=field)
    try:
        rate = Decimal(str(value))
    except InvalidOperation:
        raise InvalidInputError(f"{field} must be a number", field=field) from None

    if not rate.is_finite() or rate < 0 or rate > 100:
        raise InvalidInputError(f"{field} must be between 0 and 100", field=field)
    return rate


class CommissionConfigProvider:
    """Loads and updates commission rates."""

    def __init__(self, session: AsyncSession) -> None:
        """
        Initialize config provider.

        Args:
            session: Async database session
        """
        self.session = session
        self.config_repo = SiteConfigRepository(session)

    async def get_rates(self) -> CommissionRates:
        """
        Get current rates.

        Missing row or missing fields are filled with defaults and
        committed before returning.

        Returns:
            Rates snapshot
        """
        config = await self._load_or_initialize()

        if await self.config_repo.fill_missing(config, _DEFAULTS):
            await self.session.commit()
            logger.info(
                "Filled missing commission settings with defaults",
                extra={"config": repr(config)},
            )

        return CommissionRates.from_config(config)

    async def update_rates(
        self,
        gen1: Any,
        gen2: Any,
        gen3: Any,
        cofounder_ratio: Any = None,
    ) -> CommissionRates:
        """
        Update commission rates.

        Only future commissions are affected; existing records keep the
        rate stored with them.

        Args:
            gen1: Generation 1 percentage
            gen2: Generation 2 percentage
            gen3: Generation 3 percentage
            cofounder_ratio: Optional regular shares per co-founder share

        Returns:
            Updated rates

        Raises:
            InvalidInputError: Invalid percentage or ratio
        """
        rates = {
            "gen1_rate": parse_percentage(gen1, "gen1Commission"),
            "gen2_rate": parse_percentage(gen2, "gen2Commission"),
            "gen3_rate": parse_percentage(gen3, "gen3Commission"),
        }
        if cofounder_ratio is not None:
            if (
                isinstance(cofounder_ratio, bool)
                or not isinstance(cofounder_ratio, int)
                or cofounder_ratio <= 0
            ):
                raise InvalidInputError(
                    "coFounderRatio must be a positive integer",
                    field="coFounderRatio",
                )

        config = await self._load_or_initialize()
        for field_name, value in rates.items():
            setattr(config, field_name, value)
        if cofounder_ratio is not None:
            config.cofounder_ratio = cofounder_ratio
        await self.config_repo.fill_missing(config, _DEFAULTS)
        await self.session.commit()

        logger.info(
            "Commission settings updated",
            extra={
                "gen1": str(config.gen1_rate),
                "gen2": str(config.gen2_rate),
                "gen3": str(config.gen3_rate),
                "cofounder_ratio": config.cofounder_ratio,
            },
        )
        return CommissionRates.from_config(config)

    async def _load_or_initialize(self) -> SiteConfig:
        """Get the configuration row, creating it with defaults if absent."""
        config = await self.config_repo.get_current()
        if config is not None:
            return config

        try:
            config = await self.config_repo.create_current(**_DEFAULTS)
            await self.session.commit()
            logger.info("Initialized commission settings with defaults")
            return config
        except IntegrityError:
            # Another request initialized it first
            await self.session.rollback()
            config = await self.config_repo.get_current()
            if config is None:
                raise
            return config
