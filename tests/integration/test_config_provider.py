"""
Integration tests for commission settings.
"""

from decimal import Decimal

import pytest

from app.models import SITE_CONFIG_ID, SiteConfig
from app.services.referral import (
    CommissionConfigProvider,
    CommissionEngine,
    InvalidInputError,
)
from tests.integration.helpers import count_rows, fetch_records


@pytest.mark.asyncio
async def test_first_read_initializes_defaults(session, session_maker):
    """No row yet: defaults are returned and persisted."""
    rates = await CommissionConfigProvider(session).get_rates()

    assert (rates.gen1, rates.gen2, rates.gen3) == (Decimal("15"), Decimal("3"), Decimal("2"))
    assert rates.cofounder_ratio == 29
    assert await count_rows(session_maker, SiteConfig) == 1


@pytest.mark.asyncio
async def test_partial_row_is_completed(session, session_maker):
    """Missing fields of an existing row are filled, present ones kept."""
    async with session_maker() as s:
        s.add(SiteConfig(id=SITE_CONFIG_ID, gen1_rate=Decimal("10")))
        await s.commit()

    rates = await CommissionConfigProvider(session).get_rates()

    assert rates.gen1 == Decimal("10")
    assert rates.gen2 == Decimal("3")
    assert rates.gen3 == Decimal("2")

    async with session_maker() as s:
        stored = await s.get(SiteConfig, SITE_CONFIG_ID)
        assert stored.is_complete
        assert stored.gen2_rate == Decimal("3")


@pytest.mark.asyncio
async def test_update_persists(session, session_maker):
    """Updated rates are visible to a new provider."""
    updated = await CommissionConfigProvider(session).update_rates("12.5", 4, 1, cofounder_ratio=30)

    assert updated.gen1 == Decimal("12.5")
    assert updated.to_dict()["coFounderRatio"] == 30

    async with session_maker() as s:
        rates = await CommissionConfigProvider(s).get_rates()
    assert rates.gen1 == Decimal("12.5")
    assert rates.gen2 == Decimal("4")
    assert rates.cofounder_ratio == 30


@pytest.mark.asyncio
async def test_update_without_ratio_keeps_it(session):
    """Omitting coFounderRatio leaves the stored ratio alone."""
    provider = CommissionConfigProvider(session)
    await provider.update_rates(15, 3, 2, cofounder_ratio=40)

    rates = await provider.update_rates(16, 3, 2)

    assert rates.cofounder_ratio == 40


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("gen1", "gen2", "gen3", "ratio", "field"),
    [
        (101, 3, 2, None, "gen1Commission"),
        (15, -1, 2, None, "gen2Commission"),
        (15, 3, "two", None, "gen3Commission"),
        (15, 3, None, None, "gen3Commission"),
        (15, 3, 2, 0, "coFounderRatio"),
        (15, 3, 2, 2.5, "coFounderRatio"),
        (15, 3, 2, True, "coFounderRatio"),
    ],
)
async def test_update_rejects_invalid_values(session, session_maker, gen1, gen2, gen3, ratio, field):
    """Invalid values raise and leave settings untouched."""
    with pytest.raises(InvalidInputError) as exc_info:
        await CommissionConfigProvider(session).update_rates(gen1, gen2, gen3, cofounder_ratio=ratio)

    assert exc_info.value.field == field
    assert await count_rows(session_maker, SiteConfig) == 0


@pytest.mark.asyncio
async def test_rate_change_affects_only_new_commissions(session, session_maker, chain):
    """Existing records keep the rate they were computed with."""
    engine = CommissionEngine(session)
    await engine.on_purchase_completed(
        purchaser_id=chain["D"].id,
        base_amount=Decimal("1000"),
        purchase_type="share",
        source_transaction_id="before",
    )

    await CommissionConfigProvider(session).update_rates(20, 3, 2)
    await engine.on_purchase_completed(
        purchaser_id=chain["D"].id,
        base_amount=Decimal("1000"),
        purchase_type="share",
        source_transaction_id="after",
    )

    before = await fetch_records(session_maker, source_transaction="before", generation=1)
    after = await fetch_records(session_maker, source_transaction="after", generation=1)
    assert (before[0].rate, before[0].amount) == (Decimal("15"), Decimal("150"))
    assert (after[0].rate, after[0].amount) == (Decimal("20"), Decimal("200"))
