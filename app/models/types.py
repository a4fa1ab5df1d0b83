"""
Standard type definitions for database models.

Provides consistent types for monetary and percentage fields across all models.
"""

from sqlalchemy import DECIMAL

# Standard money type for commission amounts, purchase amounts and earnings
# Precision: 18 digits total, 8 after decimal point
# Suitable for: naira, usdt and USD amounts (never converted between each other)
# Range: up to 9,999,999,999.99999999
MoneyType = DECIMAL(18, 8)

# Commission percentage type
# Precision: 7 digits total, 4 after decimal point
# Suitable for: generation rates (e.g., 15.0000%, 2.5000%)
# Range: 0.0000 to 999.9999
RatePercentType = DECIMAL(7, 4)
