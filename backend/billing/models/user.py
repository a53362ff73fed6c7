from uuid import uuid4

from sqlalchemy import Column, DateTime, Integer, Numeric, String
from sqlalchemy.sql import func

from billing.core.database import Base


class User(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True, index=True, default=lambda: uuid4().hex)
    email = Column(String, index=True)
    display_name = Column(String, nullable=True)

    # written only through conditional in-SQL updates in the ledger
    credits_available = Column(Integer, nullable=False, default=0)
    credits_used = Column(Integer, nullable=False, default=0)
    total_spent = Column(Numeric(10, 2), nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
