"""
Database models.

Exports all SQLAlchemy models for easy imports.
"""

from app.models.base import Base

# Ledger
from app.models.commission_record import CommissionRecord
from app.models.enums import (
    CommissionStatus,
    Currency,
    PurchaseType,
    SourceTransactionModel,
)

# Aggregates
from app.models.referral_registration import ReferralRegistration
from app.models.referral_stats import ReferralStats

# Configuration
from app.models.site_config import SITE_CONFIG_ID, SiteConfig

# Core Models
from app.models.user import User

__all__ = [
    # Base
    "Base",
    # Enums
    "CommissionStatus",
    "Currency",
    "PurchaseType",
    "SourceTransactionModel",
    # Core Models
    "User",
    # Ledger
    "CommissionRecord",
    # Aggregates
    "ReferralStats",
    "ReferralRegistration",
    # Configuration
    "SiteConfig",
    "SITE_CONFIG_ID",
]
