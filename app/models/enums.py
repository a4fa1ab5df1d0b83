"""
Enumerations used by referral models.

Values are stored verbatim in string columns.
"""

from enum import StrEnum


class PurchaseType(StrEnum):
    """Kind of purchase that triggered a commission."""

    SHARE = "share"
    COFOUNDER = "cofounder"
    OTHER = "other"


class SourceTransactionModel(StrEnum):
    """Tag of the subsystem that owns the source purchase."""

    USER_SHARE = "UserShare"
    PAYMENT_TRANSACTION = "PaymentTransaction"
    OTHER_PURCHASE = "OtherPurchase"

    @classmethod
    def for_purchase_type(cls, purchase_type: PurchaseType) -> "SourceTransactionModel":
        """Map a purchase type to the model tag used in the ledger."""
        return _MODEL_BY_PURCHASE_TYPE[purchase_type]


_MODEL_BY_PURCHASE_TYPE = {
    PurchaseType.SHARE: SourceTransactionModel.USER_SHARE,
    PurchaseType.COFOUNDER: SourceTransactionModel.PAYMENT_TRANSACTION,
    PurchaseType.OTHER: SourceTransactionModel.OTHER_PURCHASE,
}


class Currency(StrEnum):
    """Recognized denominations. Amounts are never converted."""

    NAIRA = "naira"
    USDT = "usdt"
    USD = "USD"


class CommissionStatus(StrEnum):
    """
    CommissionRecord lifecycle.

    The engine only creates COMPLETED records; PENDING and FAILED belong to
    externally initiated flows. COMPLETED -> ROLLED_BACK is the only
    transition allowed after creation.
    """

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    ROLLED_BACK = "rolled_back"
