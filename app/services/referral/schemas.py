"""Pydantic models for referral engine inputs."""

from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from app.models.enums import Currency, PurchaseType, SourceTransactionModel


class PurchaseEvent(BaseModel):
    """Completed purchase reported by a payment subsystem.

    Accepts both snake_case names and the camelCase keys used on the wire.
    """

    model_config = ConfigDict(
        populate_by_name=True,
        str_strip_whitespace=True,
        frozen=True,
    )

    purchaser_id: int = Field(..., alias="purchaserId", ge=1, description="Purchasing user id")
    base_amount: Decimal = Field(
        ..., alias="baseAmount", ge=0, allow_inf_nan=False, description="Purchase amount"
    )
    purchase_type: PurchaseType = Field(..., alias="purchaseType", description="share, cofounder or other")
    source_transaction_id: str = Field(
        ..., alias="sourceTransactionId", min_length=1, max_length=128,
        description="Stable id of the source purchase",
    )
    currency: Currency = Field(default=Currency.NAIRA, description="Recorded verbatim")
    source_transaction_model: SourceTransactionModel | None = Field(
        default=None,
        alias="sourceTransactionModel",
        description="Must match the model implied by purchase_type when given",
    )
    co_founder_shares: int | None = Field(
        default=None, alias="coFounderShares", ge=0,
        description="Co-founder shares bought (cofounder purchases only)",
    )
    metadata: dict[str, Any] | None = Field(default=None, description="Extra purchase details")

    @field_validator("source_transaction_id")
    @classmethod
    def source_transaction_not_blank(cls, v: str) -> str:
        """Reject whitespace-only ids."""
        if not v:
            raise ValueError("sourceTransactionId must not be blank")
        return v

    @model_validator(mode="after")
    def check_purchase_kind(self) -> "PurchaseEvent":
        """Validate model tag and co-founder share count against purchase type."""
        expected = SourceTransactionModel.for_purchase_type(self.purchase_type)
        if (
            self.source_transaction_model is not None
            and self.source_transaction_model is not expected
        ):
            raise ValueError(
                f"sourceTransactionModel {self.source_transaction_model.value} "
                f"does not match purchaseType {self.purchase_type.value}"
            )

        if self.purchase_type is PurchaseType.COFOUNDER and self.shares_bought is None:
            raise ValueError("coFounderShares is required for cofounder purchases")
        return self

    @property
    def resolved_model(self) -> SourceTransactionModel:
        """Model tag written to the ledger."""
        return SourceTransactionModel.for_purchase_type(self.purchase_type)

    @property
    def shares_bought(self) -> int | None:
        """Co-founder shares from the field or from metadata."""
        if self.co_founder_shares is not None:
            return self.co_founder_shares
        raw = (self.metadata or {}).get("coFounderShares")
        if isinstance(raw, int) and not isinstance(raw, bool) and raw >= 0:
            return raw
        return None


class RollbackRequest(BaseModel):
    """Canceled or reversed source purchase."""

    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    source_transaction_id: str = Field(..., alias="sourceTransactionId", min_length=1, max_length=128)
    source_transaction_model: SourceTransactionModel = Field(..., alias="sourceTransactionModel")
    reason: str = Field(default="Source purchase canceled", max_length=500)


class UserRegistered(BaseModel):
    """New user signup."""

    model_config = ConfigDict(populate_by_name=True)

    user_id: int = Field(..., alias="userId", ge=1)


class CommissionSettingsUpdate(BaseModel):
    """Admin update of commission percentages."""

    model_config = ConfigDict(populate_by_name=True)

    gen1_commission: Decimal = Field(..., alias="gen1Commission", ge=0, le=100, allow_inf_nan=False)
    gen2_commission: Decimal = Field(..., alias="gen2Commission", ge=0, le=100, allow_inf_nan=False)
    gen3_commission: Decimal = Field(..., alias="gen3Commission", ge=0, le=100, allow_inf_nan=False)
    co_founder_ratio: int | None = Field(default=None, alias="coFounderRatio", ge=1)
