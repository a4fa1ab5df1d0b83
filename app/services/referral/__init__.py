"""
Referral services package.

Contains modular services for the referral commission engine:
- config: Commission rates provider (site configuration row)
- chain_resolver: Walks referral codes up to three ancestors
- commission_engine: Creates commissions for completed purchases
- aggregate_store: Field-wise ReferralStats deltas
- rollback: Reverses commissions of canceled purchases
- reconciler: Rebuilds ReferralStats from the ledger
- registrar: Counts new signups toward ancestors
- statistics: Stats, tree, earnings and invite read models
"""

from app.services.referral.aggregate_store import ReferralAggregateStore
from app.services.referral.chain_resolver import ChainMember, ReferralChainResolver
from app.services.referral.commission_engine import (
    CommissionEngine,
    CommissionNotification,
    CommissionResult,
    CreatedCommission,
    calculate_commission,
)
from app.services.referral.config import CommissionConfigProvider, CommissionRates
from app.services.referral.errors import CommissionErrorKind, InvalidInputError
from app.services.referral.reconciler import ReferralStatsReconciler, ResyncSummary
from app.services.referral.registrar import ReferralRegistrarHook, RegistrationResult
from app.services.referral.rollback import (
    CommissionRollbackCoordinator,
    RollbackResult,
)
from app.services.referral.schemas import PurchaseEvent
from app.services.referral.statistics import ReferralStatisticsManager


__all__ = [
    # Configuration
    "CommissionConfigProvider",
    "CommissionRates",
    # Chain
    "ChainMember",
    "ReferralChainResolver",
    # Engine
    "CommissionEngine",
    "CommissionNotification",
    "CommissionResult",
    "CreatedCommission",
    "PurchaseEvent",
    "calculate_commission",
    # Aggregates
    "ReferralAggregateStore",
    "ReferralStatsReconciler",
    "ResyncSummary",
    # Rollback
    "CommissionRollbackCoordinator",
    "RollbackResult",
    # Registrar
    "ReferralRegistrarHook",
    "RegistrationResult",
    # Read models
    "ReferralStatisticsManager",
    # Errors
    "CommissionErrorKind",
    "InvalidInputError",
]
