from sqlalchemy import JSON, Column, DateTime, Integer, String, Text
from sqlalchemy.sql import func

from billing.core.database import Base


class ReconciliationAlert(Base):
    """A payment the provider reported that could not be matched to a credit grant."""

    __tablename__ = "reconciliation_alerts"

    id = Column(Integer, primary_key=True, index=True)
    kind = Column(String, index=True)
    external_transaction_id = Column(String, index=True, nullable=True)
    event_type = Column(String, nullable=True)
    detail = Column(Text, nullable=True)
    alert_payload = Column("payload", JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    resolved_at = Column(DateTime(timezone=True), nullable=True)
