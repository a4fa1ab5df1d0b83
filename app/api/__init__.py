"""
HTTP API.

aiohttp application exposing the referral engine to the payment
subsystems and to the frontend.
"""

from app.api.app import SESSION_MAKER_KEY, create_app

__all__ = ["SESSION_MAKER_KEY", "create_app"]
