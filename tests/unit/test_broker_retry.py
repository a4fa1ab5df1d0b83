"""
Unit tests for the resync retry policy of the dramatiq broker.
"""

import pytest
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError

from app.config.operational_constants import RESYNC_MAX_RETRIES
from jobs.broker import should_retry_resync


def _operational() -> OperationalError:
    return OperationalError("SELECT 1", {}, Exception("connection refused"))


class TestShouldRetryResync:
    """Which resync failures are retried."""

    def test_operational_error_is_retried(self):
        """Lost connections are transient."""
        assert should_retry_resync(0, _operational()) is True

    def test_invalidated_connection_is_retried(self):
        """A DBAPI error that dropped the connection is transient."""
        exc = DBAPIError("SELECT 1", {}, Exception("reset"), connection_invalidated=True)

        assert should_retry_resync(1, exc) is True

    @pytest.mark.parametrize(
        "exc",
        [
            IntegrityError("INSERT", {}, Exception("duplicate")),
            ValueError("bad ledger row"),
            RuntimeError("boom"),
        ],
    )
    def test_other_errors_are_final(self, exc):
        """Anything that is not a connection failure is not retried."""
        assert should_retry_resync(0, exc) is False

    def test_retries_are_bounded(self):
        """No retry once the limit is reached."""
        assert should_retry_resync(RESYNC_MAX_RETRIES - 1, _operational()) is True
        assert should_retry_resync(RESYNC_MAX_RETRIES, _operational()) is False
