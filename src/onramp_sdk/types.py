"""Pydantic models for the payment service wire format.

Models allow extra fields so server payloads can be passed through untouched.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

COMPLETE_STATUS = "COMPLETE"


class WireModel(BaseModel):
    model_config = {"extra": "allow"}


class AssetAmount(WireModel):
    """An asset identifier and a decimal-string amount."""
    asset: str
    amount: str


class QuoteFees(WireModel):
    total_fees: str
    conversion_fees: str
    network_fees: str
    business_fees: str
    currency_symbol: str


class Quote(WireModel):
    """A priced offer to convert a fixed input amount via one on-ramp method."""
    payment_id: str
    onramp: str
    onramp_method: str
    output_amount: AssetAmount
    fees: QuoteFees

    model_config = {"extra": "allow", "frozen": True}

    @property
    def provider_key(self) -> str:
        """Case-normalized on-ramp name used for grouping."""
        return self.onramp.upper()

    @property
    def method_label(self) -> str:
        """Human readable on-ramp method (``credit_card`` -> ``credit card``)."""
        return self.onramp_method.replace("_", " ")


class QuoteBatch(WireModel):
    """Quotes returned together by one quote request."""
    quotes: List[Quote] = Field(default_factory=list)
    current_prices: Dict[str, str] = Field(default_factory=dict)
    price_currency: str = "USD"
    state_token: str
    quoted_at: Optional[datetime] = None
    accept_by: Optional[datetime] = None

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        """Whether ``accept_by`` has passed. A batch without one never expires."""
        if self.accept_by is None:
            return False
        now = now or datetime.now(timezone.utc)
        accept_by = self.accept_by
        if accept_by.tzinfo is None:
            accept_by = accept_by.replace(tzinfo=timezone.utc)
        return now >= accept_by


class NextInstruction(WireModel):
    funding_page_url: Optional[str] = None


class ConfirmResult(WireModel):
    """Response of a payment confirmation."""
    payment_id: Optional[str] = None
    next_instruction: Optional[NextInstruction] = None

    @property
    def funding_page_url(self) -> Optional[str]:
        if self.next_instruction is None:
            return None
        return self.next_instruction.funding_page_url


class PaymentStatus(WireModel):
    """Point-in-time status of a payment."""
    payment_id: Optional[str] = None
    status: Optional[str] = None
    funded: bool = False


class QuotedOutput(WireModel):
    output_amount: AssetAmount


class HistoryEntry(WireModel):
    payment_id: str
    status: str
    created_at: str = ""
    quoted: Optional[QuotedOutput] = None

    @property
    def is_complete(self) -> bool:
        return self.status == COMPLETE_STATUS


class PaymentHistory(WireModel):
    payment_statuses: List[HistoryEntry] = Field(default_factory=list)


class BalanceValue(WireModel):
    amount: str


class BalanceResult(WireModel):
    token: str
    value: BalanceValue


class BalanceResponse(WireModel):
    balance_results: List[BalanceResult] = Field(default_factory=list)


class TokenAmount(BaseModel):
    token: str
    amount: str


class WithdrawConfirmation(WireModel):
    transaction_hash: str


class RecoverablePayment(BaseModel):
    """A past, non-complete payment holding a non-zero stranded balance."""
    payment_id: str
    created_at: str
    status: str
    token: str
    amount: str
    output_asset: str

    model_config = {"frozen": True}


class ScanSkip(BaseModel):
    """A payment whose balance lookup failed during a recovery scan."""
    payment_id: str
    error: str


def to_payload(model: BaseModel) -> Dict[str, Any]:
    """Serialize a model for a request body, dropping unset optionals."""
    return model.model_dump(mode="json", exclude_none=True)
