"""
aiohttp application factory.

Each request gets its own AsyncSession from the configured session maker.
"""

from collections.abc import Awaitable, Callable

from aiohttp import web
from loguru import logger
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.services.referral.errors import CommissionErrorKind, InvalidInputError

SESSION_MAKER_KEY: web.AppKey[async_sessionmaker[AsyncSession]] = web.AppKey(
    "session_maker", async_sessionmaker
)

Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]


def error_response(
    kind: CommissionErrorKind, message: str, status: int, **extra: object
) -> web.Response:
    """JSON error body shared by all endpoints."""
    return web.json_response(
        {"success": False, "error": kind.value, "message": message, **extra},
        status=status,
    )


@web.middleware
async def error_middleware(
    request: web.Request, handler: Handler
) -> web.StreamResponse:
    """
    Convert exceptions into JSON responses.

    Validation problems become 400; anything unexpected is logged and
    becomes 500.
    """
    try:
        return await handler(request)
    except web.HTTPException:
        raise
    except ValidationError as e:
        return error_response(
            CommissionErrorKind.INVALID_INPUT,
            "Invalid request body",
            400,
            details=e.errors(include_url=False, include_context=False, include_input=False),
        )
    except InvalidInputError as e:
        extra = {"field": e.field} if e.field else {}
        return error_response(CommissionErrorKind.INVALID_INPUT, str(e), 400, **extra)
    except Exception:
        logger.exception(
            "Unhandled API error",
            extra={"method": request.method, "path": request.path},
        )
        return error_response(
            CommissionErrorKind.INTERNAL, "Internal server error", 500
        )


def create_app(
    session_maker: async_sessionmaker[AsyncSession] | None = None,
) -> web.Application:
    """
    Build the referral API application.

    Args:
        session_maker: Session factory; defaults to the process-wide one

    Returns:
        Configured aiohttp application
    """
    from app.api.routes import routes

    if session_maker is None:
        from app.config.database import async_session_maker

        session_maker = async_session_maker

    app = web.Application(middlewares=[error_middleware])
    app[SESSION_MAKER_KEY] = session_maker
    app.add_routes(routes)
    return app
