"""
Referral API routes.

Engine hooks for the payment and account subsystems plus the read
endpoints used by the frontend.
"""

import json
from typing import Any

from aiohttp import web
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.app import SESSION_MAKER_KEY, error_response
from app.config.business_constants import EARNINGS_DEFAULT_PAGE_SIZE
from app.services.referral import (
    CommissionConfigProvider,
    CommissionEngine,
    CommissionErrorKind,
    CommissionRollbackCoordinator,
    InvalidInputError,
    PurchaseEvent,
    ReferralRegistrarHook,
    ReferralStatisticsManager,
)
from app.services.referral.schemas import (
    CommissionSettingsUpdate,
    RollbackRequest,
    UserRegistered,
)

routes = web.RouteTableDef()

# Engine result kind -> HTTP status
_STATUS_BY_KIND = {
    CommissionErrorKind.INVALID_INPUT: 400,
    CommissionErrorKind.PURCHASER_NOT_FOUND: 404,
    CommissionErrorKind.ALREADY_PROCESSED: 200,
    CommissionErrorKind.PARTIAL_WRITE: 207,
    CommissionErrorKind.INTERNAL: 500,
}


def _session(request: web.Request) -> AsyncSession:
    return request.app[SESSION_MAKER_KEY]()


async def _json_body(request: web.Request) -> dict[str, Any]:
    try:
        body = await request.json()
    except json.JSONDecodeError:
        raise InvalidInputError("Request body must be valid JSON") from None
    if not isinstance(body, dict):
        raise InvalidInputError("Request body must be a JSON object")
    return body


def _int_param(value: str | None, name: str, default: int | None = None) -> int:
    if value is None or value == "":
        if default is None:
            raise InvalidInputError(f"{name} is required", field=name)
        return default
    try:
        return int(value)
    except ValueError:
        raise InvalidInputError(f"{name} must be an integer", field=name) from None


def _flag(request: web.Request, name: str) -> bool:
    return request.query.get(name, "").lower() in ("1", "true", "yes")


def _user_not_found(user_id: int) -> web.Response:
    return error_response(
        CommissionErrorKind.PURCHASER_NOT_FOUND, f"User {user_id} not found", 404
    )


@routes.post("/referral/engine/purchase-completed")
async def purchase_completed(request: web.Request) -> web.Response:
    """Create commissions for a completed purchase."""
    event = PurchaseEvent.model_validate(await _json_body(request))

    async with _session(request) as session:
        result = await CommissionEngine(session).process(event)

    status = _STATUS_BY_KIND[result.error_kind] if result.error_kind else 200
    return web.json_response(result.to_dict(), status=status)


@routes.post("/referral/engine/purchase-rolled-back")
async def purchase_rolled_back(request: web.Request) -> web.Response:
    """Roll back the commissions of a canceled purchase."""
    payload = RollbackRequest.model_validate(await _json_body(request))

    async with _session(request) as session:
        result = await CommissionRollbackCoordinator(session).rollback(
            payload.source_transaction_id,
            payload.source_transaction_model,
            payload.reason,
        )

    status = 400 if result.error_kind else 200
    return web.json_response(result.to_dict(), status=status)


@routes.post("/referral/engine/user-registered")
async def user_registered(request: web.Request) -> web.Response:
    """Count a new signup toward its ancestors."""
    payload = UserRegistered.model_validate(await _json_body(request))

    async with _session(request) as session:
        result = await ReferralRegistrarHook(session).on_new_user(payload.user_id)

    status = 404 if result.error_kind else 200
    return web.json_response(result.to_dict(), status=status)


@routes.get("/referral/stats/{user_id}")
async def get_stats(request: web.Request) -> web.Response:
    """Referral stats with the shareable link."""
    user_id = _int_param(request.match_info["user_id"], "userId")

    async with _session(request) as session:
        stats = await ReferralStatisticsManager(session).get_stats(
            user_id, sync=_flag(request, "sync")
        )

    if stats is None:
        return _user_not_found(user_id)
    return web.json_response({"success": True, "stats": stats})


@routes.post("/referral/stats/{user_id}/resync")
async def resync_stats(request: web.Request) -> web.Response:
    """Recompute stats from the ledger."""
    user_id = _int_param(request.match_info["user_id"], "userId")

    async with _session(request) as session:
        stats = await ReferralStatisticsManager(session).get_stats(user_id, sync=True)

    if stats is None:
        return _user_not_found(user_id)
    return web.json_response({"success": True, "stats": stats})


@routes.get("/referral/tree/{user_id}")
async def get_tree(request: web.Request) -> web.Response:
    """Downstream referrals, three generations deep."""
    user_id = _int_param(request.match_info["user_id"], "userId")

    async with _session(request) as session:
        tree = await ReferralStatisticsManager(session).get_tree(user_id)

    if tree is None:
        return _user_not_found(user_id)
    return web.json_response({"success": True, "tree": tree})


@routes.get("/referral/earnings/{user_id}")
async def get_earnings(request: web.Request) -> web.Response:
    """Completed commissions of a beneficiary, newest first."""
    user_id = _int_param(request.match_info["user_id"], "userId")
    page = _int_param(request.query.get("page"), "page", default=1)
    per_page = _int_param(
        request.query.get("per_page"), "per_page", default=EARNINGS_DEFAULT_PAGE_SIZE
    )

    async with _session(request) as session:
        earnings = await ReferralStatisticsManager(session).get_earnings(
            user_id, page=page, per_page=per_page, sync=_flag(request, "sync")
        )

    if earnings is None:
        return _user_not_found(user_id)
    return web.json_response({"success": True, **earnings})


@routes.get("/referral/validate-invite/{invite_code}")
async def validate_invite(request: web.Request) -> web.Response:
    """Check that an invite code belongs to a user."""
    invite_code = request.match_info["invite_code"]

    async with _session(request) as session:
        invite = await ReferralStatisticsManager(session).validate_invite(invite_code)

    if invite is None:
        return web.json_response(
            {"success": False, "valid": False, "message": "Invalid invite code"},
            status=404,
        )
    return web.json_response({"success": True, **invite})


@routes.get("/referral/settings")
async def get_settings(request: web.Request) -> web.Response:
    """Current commission settings."""
    async with _session(request) as session:
        rates = await CommissionConfigProvider(session).get_rates()

    return web.json_response({"success": True, "settings": rates.to_dict()})


@routes.post("/referral/settings")
async def update_settings(request: web.Request) -> web.Response:
    """Update commission settings for future commissions."""
    payload = CommissionSettingsUpdate.model_validate(await _json_body(request))

    async with _session(request) as session:
        rates = await CommissionConfigProvider(session).update_rates(
            payload.gen1_commission,
            payload.gen2_commission,
            payload.gen3_commission,
            payload.co_founder_ratio,
        )

    return web.json_response({"success": True, "settings": rates.to_dict()})
