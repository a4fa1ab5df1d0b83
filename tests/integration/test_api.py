"""
Integration tests for the referral HTTP API.
"""

from collections.abc import AsyncIterator
from decimal import Decimal

import pytest
import pytest_asyncio
from aiohttp import test_utils

from app.api import create_app
from app.models import CommissionRecord
from tests.integration.helpers import count_rows


@pytest_asyncio.fixture
async def client(session_maker) -> AsyncIterator[test_utils.TestClient]:
    """HTTP client for an app bound to the test database."""
    server = test_utils.TestServer(create_app(session_maker))
    async with test_utils.TestClient(server) as test_client:
        yield test_client


def _purchase_body(purchaser_id, **overrides):
    body = {
        "purchaserId": purchaser_id,
        "baseAmount": "1000",
        "purchaseType": "share",
        "sourceTransactionId": "web-1",
    }
    body.update(overrides)
    return body


class TestEngineHooks:
    """Hooks called by the payment and account subsystems."""

    @pytest.mark.asyncio
    async def test_purchase_completed(self, client, chain):
        """200 with one entry per created commission."""
        resp = await client.post(
            "/referral/engine/purchase-completed", json=_purchase_body(chain["D"].id)
        )

        assert resp.status == 200
        data = await resp.json()
        assert data["success"] is True
        assert data["commissionsCreated"] == 3
        assert [c["generation"] for c in data["commissions"]] == [1, 2, 3]
        assert Decimal(data["commissions"][0]["amount"]) == Decimal("150")

    @pytest.mark.asyncio
    async def test_duplicate_purchase(self, client, chain):
        """Replayed event answers 200 with already_processed."""
        await client.post("/referral/engine/purchase-completed", json=_purchase_body(chain["D"].id))

        resp = await client.post(
            "/referral/engine/purchase-completed", json=_purchase_body(chain["D"].id)
        )

        assert resp.status == 200
        data = await resp.json()
        assert data["error"] == "already_processed"
        assert data["commissionsCreated"] == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "overrides",
        [
            {"baseAmount": "-1"},
            {"purchaseType": "bond"},
            {"sourceTransactionId": ""},
            {"purchaseType": "cofounder"},
            {"purchaserId": "abc"},
        ],
    )
    async def test_invalid_purchase(self, client, session_maker, chain, overrides):
        """Malformed body is a 400 and writes nothing."""
        resp = await client.post(
            "/referral/engine/purchase-completed",
            json=_purchase_body(chain["D"].id, **overrides),
        )

        assert resp.status == 400
        data = await resp.json()
        assert data["success"] is False
        assert data["error"] == "invalid_input"
        assert await count_rows(session_maker, CommissionRecord) == 0

    @pytest.mark.asyncio
    async def test_non_json_body(self, client):
        """A body that is not JSON is rejected."""
        resp = await client.post("/referral/engine/purchase-completed", data="not json")

        assert resp.status == 400
        assert (await resp.json())["error"] == "invalid_input"

    @pytest.mark.asyncio
    async def test_unknown_purchaser(self, client):
        """404 when the purchaser does not exist."""
        resp = await client.post("/referral/engine/purchase-completed", json=_purchase_body(999))

        assert resp.status == 404
        assert (await resp.json())["error"] == "purchaser_not_found"

    @pytest.mark.asyncio
    async def test_rollback(self, client, chain):
        """Rollback reports how many records were reversed."""
        await client.post("/referral/engine/purchase-completed", json=_purchase_body(chain["D"].id))

        resp = await client.post(
            "/referral/engine/purchase-rolled-back",
            json={"sourceTransactionId": "web-1", "sourceTransactionModel": "UserShare"},
        )

        assert resp.status == 200
        data = await resp.json()
        assert data["rolledBack"] == 3
        assert len(data["recordIds"]) == 3

    @pytest.mark.asyncio
    async def test_rollback_unknown_model(self, client):
        """Unknown model tag is a 400."""
        resp = await client.post(
            "/referral/engine/purchase-rolled-back",
            json={"sourceTransactionId": "web-1", "sourceTransactionModel": "Deposit"},
        )

        assert resp.status == 400

    @pytest.mark.asyncio
    async def test_user_registered(self, client, chain):
        """Signup hook returns the counted ancestors."""
        resp = await client.post(
            "/referral/engine/user-registered", json={"userId": chain["D"].id}
        )

        assert resp.status == 200
        assert (await resp.json())["countedAncestors"] == [
            chain["C"].id,
            chain["B"].id,
            chain["A"].id,
        ]

    @pytest.mark.asyncio
    async def test_user_registered_unknown(self, client):
        """404 for an unknown user."""
        resp = await client.post("/referral/engine/user-registered", json={"userId": 5000})

        assert resp.status == 404


class TestReadEndpoints:
    """Endpoints used by the frontend."""

    @pytest.mark.asyncio
    async def test_stats(self, client, chain):
        """Stats wrap the aggregate with code and link."""
        await client.post("/referral/engine/purchase-completed", json=_purchase_body(chain["D"].id))

        resp = await client.get(f"/referral/stats/{chain['C'].id}")

        assert resp.status == 200
        stats = (await resp.json())["stats"]
        assert stats["referralCode"] == "carol"
        assert stats["referredUsers"] == 1
        assert Decimal(stats["generation1"]["earnings"]) == Decimal("150")

    @pytest.mark.asyncio
    async def test_stats_resync(self, client, chain):
        """Explicit resync answers with fresh stats."""
        resp = await client.post(f"/referral/stats/{chain['A'].id}/resync")

        assert resp.status == 200
        assert (await resp.json())["stats"]["lastSyncedAt"] is not None

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "path",
        ["/referral/stats/404", "/referral/tree/404", "/referral/earnings/404"],
    )
    async def test_unknown_user(self, client, path):
        """404 for every read endpoint."""
        resp = await client.get(path)

        assert resp.status == 404
        assert (await resp.json())["success"] is False

    @pytest.mark.asyncio
    async def test_non_integer_user_id(self, client):
        """Non-numeric ids are a 400."""
        resp = await client.get("/referral/stats/abc")

        assert resp.status == 400
        assert (await resp.json())["field"] == "userId"

    @pytest.mark.asyncio
    async def test_tree(self, client, chain):
        """Tree lists descendants per generation."""
        resp = await client.get(f"/referral/tree/{chain['A'].id}")

        assert resp.status == 200
        tree = (await resp.json())["tree"]
        assert [n["userName"] for n in tree["generation3"]] == ["dave"]

    @pytest.mark.asyncio
    async def test_earnings(self, client, chain):
        """Earnings include summary, transactions and pagination."""
        await client.post("/referral/engine/purchase-completed", json=_purchase_body(chain["D"].id))

        resp = await client.get(f"/referral/earnings/{chain['B'].id}?page=1&per_page=10")

        assert resp.status == 200
        data = await resp.json()
        assert data["success"] is True
        assert Decimal(data["totalEarnings"]) == Decimal("30")
        assert data["transactions"][0]["generation"] == 2
        assert data["pagination"]["perPage"] == 10

    @pytest.mark.asyncio
    async def test_earnings_bad_page(self, client, chain):
        """Non-numeric page is a 400."""
        resp = await client.get(f"/referral/earnings/{chain['B'].id}?page=first")

        assert resp.status == 400

    @pytest.mark.asyncio
    async def test_validate_invite(self, client, chain):
        """Known invite code returns the referrer."""
        resp = await client.get("/referral/validate-invite/carol")

        assert resp.status == 200
        data = await resp.json()
        assert data["valid"] is True
        assert data["referrer"]["id"] == chain["C"].id

    @pytest.mark.asyncio
    async def test_validate_invite_unknown(self, client, chain):
        """Unknown invite code is a 404."""
        resp = await client.get("/referral/validate-invite/Carol")

        assert resp.status == 404
        assert (await resp.json())["valid"] is False


class TestSettingsEndpoints:
    """Commission settings."""

    @pytest.mark.asyncio
    async def test_defaults(self, client):
        """First read returns default rates."""
        resp = await client.get("/referral/settings")

        assert resp.status == 200
        settings = (await resp.json())["settings"]
        assert Decimal(settings["gen1Commission"]) == Decimal("15")
        assert settings["coFounderRatio"] == 29

    @pytest.mark.asyncio
    async def test_update(self, client):
        """Updated rates are returned and persisted."""
        resp = await client.post(
            "/referral/settings",
            json={"gen1Commission": 10, "gen2Commission": 5, "gen3Commission": 1},
        )
        assert resp.status == 200

        settings = (await (await client.get("/referral/settings")).json())["settings"]
        assert Decimal(settings["gen1Commission"]) == Decimal("10")
        assert Decimal(settings["gen2Commission"]) == Decimal("5")

    @pytest.mark.asyncio
    async def test_update_out_of_range(self, client):
        """Percentages above 100 are rejected."""
        resp = await client.post(
            "/referral/settings",
            json={"gen1Commission": 150, "gen2Commission": 5, "gen3Commission": 1},
        )

        assert resp.status == 400
        data = await resp.json()
        assert data["error"] == "invalid_input"
        assert data["details"]
