"""
SiteConfig repository.

Data access layer for the single configuration row.
"""

from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from app.models.site_config import SITE_CONFIG_ID, SiteConfig
from app.repositories.base import BaseRepository


class SiteConfigRepository(BaseRepository[SiteConfig]):
    """SiteConfig repository."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize site config repository."""
        super().__init__(SiteConfig, session)

    async def get_current(self) -> SiteConfig | None:
        """Get the configuration row if present."""
        return await self.get_by_id(SITE_CONFIG_ID)

    async def create_current(self, **data: Decimal | int) -> SiteConfig:
        """
        Insert the configuration row.

        Raises IntegrityError on flush when another writer created it first.
        """
        return await self.create(id=SITE_CONFIG_ID, **data)

    async def fill_missing(
        self, config: SiteConfig, defaults: dict[str, Decimal | int]
    ) -> bool:
        """
        Set every absent field to its default.

        Args:
            config: Loaded configuration row
            defaults: Default per field name

        Returns:
            True if any field was filled
        """
        changed = False
        for field_name, default in defaults.items():
            if getattr(config, field_name) is None:
                setattr(config, field_name, default)
                changed = True

        if changed:
            await self.session.flush()
        return changed
