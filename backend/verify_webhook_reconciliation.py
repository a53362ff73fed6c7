from decimal import Decimal
import json

from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from billing.core.database import Base, build_engine
from billing.core.errors import AuthenticationFailure, OrphanTransaction
from billing.core.signatures import build_paddle_header
from billing.models.credit_transaction import TransactionStatus
from billing.models.reconciliation_alert import ReconciliationAlert
from billing.models.user import User
from billing.services import ledger
from billing.services.checkout import create_checkout
from billing.services.paddle import ProviderCheckout
from billing.services.reconciler import handle_webhook


SECRET = "verify-secret"


class _Provider:
    def create_transaction(self, *, user_id, credits_count):
        return ProviderCheckout(transaction_id="ext-123", checkout_url="https://checkout.example.com/ext-123")


def _deliver(db, payload: dict, secret: str = SECRET):
    body = json.dumps(payload).encode("utf-8")
    return handle_webhook(db, body, build_paddle_header(body, secret), secret=SECRET, scheme="paddle", max_age_s=300)


def main() -> None:
    engine = build_engine("sqlite://", poolclass=StaticPool)
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)

    db = TestingSessionLocal()
    try:
        db.add(User(id="U1", email="u1@example.com"))
        db.commit()

        checkout = create_checkout(db, "U1", 1000, provider=_Provider(), min_credits=100, max_credits=100_000)
        assert checkout.amount == Decimal("10.00"), checkout.amount
        tx = ledger.get_transaction(db, checkout.transaction_id)
        assert tx.status == TransactionStatus.PENDING, tx.status
        assert tx.external_transaction_id == "ext-123", tx.external_transaction_id

        event = {
            "event_type": "transaction.completed",
            "data": {"id": "ext-123", "status": "completed", "custom_data": {"user_id": "U1", "credits_count": 1000}},
        }

        try:
            _deliver(db, event, secret="forged")
            raise AssertionError("forged signature accepted")
        except AuthenticationFailure:
            pass

        first = _deliver(db, event)
        second = _deliver(db, event)
        assert first.credits_added == 1000, first
        assert second.credits_added == 0, second

        db.expire_all()
        user = ledger.get_user(db, "U1")
        assert user.credits_available == 1000, user.credits_available
        assert user.total_spent == Decimal("10.00"), user.total_spent
        assert ledger.get_transaction(db, checkout.transaction_id).status == TransactionStatus.COMPLETED

        orphan = {
            "event_type": "transaction.completed",
            "data": {"id": "ext-999", "status": "completed", "custom_data": {"user_id": "U1", "credits_count": 500}},
        }
        try:
            _deliver(db, orphan)
            raise AssertionError("orphan payment accepted")
        except OrphanTransaction:
            pass
        assert db.query(ReconciliationAlert).count() == 1
        db.expire_all()
        assert ledger.get_user(db, "U1").credits_available == 1000
    finally:
        db.close()


if __name__ == "__main__":
    main()
    print("OK")
