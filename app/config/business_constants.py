"""
Business logic constants for the referral commission engine.

Central location for business rules used across services, repositories and
the API layer. Live commission rates are stored in the ``site_config`` row;
the values here are only the defaults written on first read.
"""

from decimal import Decimal


# Number of upstream generations credited for a purchase
REFERRAL_DEPTH = 3
REFERRAL_GENERATIONS = (1, 2, 3)

# Default commission percentages per generation (15% / 3% / 2%)
DEFAULT_COMMISSION_RATES = {
    1: Decimal("15"),
    2: Decimal("3"),
    3: Decimal("2"),
}

# One co-founder share is worth this many regular shares
DEFAULT_COFOUNDER_RATIO = 29

# Maximum allowed drift between a stored amount and base_amount * rate / 100
COMMISSION_AMOUNT_TOLERANCE = Decimal("0.01")

# Money columns keep 8 decimal places (see app.models.types.MoneyType)
MONEY_QUANTUM = Decimal("0.00000001")

# Earnings listing pagination
EARNINGS_DEFAULT_PAGE_SIZE = 50
EARNINGS_MAX_PAGE_SIZE = 200

# Reconciliation batch size for the periodic resync job
RESYNC_BATCH_SIZE = 500
