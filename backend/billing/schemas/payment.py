from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from billing.models.credit_transaction import TransactionStatus, TransactionType


class WebhookTransactionData(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str = ""
    status: str = ""
    customer_id: Optional[str] = None
    currency_code: Optional[str] = None
    custom_data: Optional[dict[str, Any]] = None


class WebhookEvent(BaseModel):
    """Envelope of a provider notification; ``data`` stays untyped until the event type is known."""

    model_config = ConfigDict(extra="ignore")

    event_type: str = ""
    event_id: Optional[str] = None
    occurred_at: Optional[str] = None
    data: Any = None


class CreateCheckoutRequest(BaseModel):
    user_id: str = Field(min_length=1)
    emails_count: int


class CreateCheckoutResponse(BaseModel):
    checkout_url: str
    transaction_id: str
    amount: Decimal
    credits_count: int


class WebhookProcessedResponse(BaseModel):
    success: bool
    transaction_id: Optional[str] = None
    user_id: Optional[str] = None
    credits_added: int = 0
    event_type: Optional[str] = None


class CreditTransactionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    credits_change: int
    amount: Decimal
    type: TransactionType
    status: TransactionStatus
    description: Optional[str] = None
    external_transaction_id: Optional[str] = None
    created_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class ReconciliationAlertOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    kind: str
    external_transaction_id: Optional[str] = None
    event_type: Optional[str] = None
    detail: Optional[str] = None
    created_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
