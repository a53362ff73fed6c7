import enum
from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import Column, DateTime, Enum, ForeignKey, Integer, Numeric, String
from sqlalchemy.sql import func

from billing.core.database import Base


class TransactionType(str, enum.Enum):
    PURCHASE = "purchase"
    USAGE = "usage"
    REFUND = "refund"
    BONUS = "bonus"


class TransactionStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _enum_values(enum_cls):
    return [m.value for m in enum_cls]


class CreditTransaction(Base):
    __tablename__ = "credit_transactions"

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    user_id = Column(String, ForeignKey("users.id"), index=True, nullable=False)

    credits_change = Column(Integer, nullable=False)
    amount = Column(Numeric(10, 2), nullable=False, default=0)
    type = Column(Enum(TransactionType, values_callable=_enum_values, name="transactiontype"), nullable=False)
    status = Column(
        Enum(TransactionStatus, values_callable=_enum_values, name="transactionstatus"),
        nullable=False,
        default=TransactionStatus.PENDING,
    )
    description = Column(String, nullable=True)

    # idempotency key for webhook delivery; unique once assigned
    external_transaction_id = Column(String, unique=True, index=True, nullable=True)

    created_at = Column(DateTime(timezone=True), default=_utcnow, server_default=func.now(), index=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
