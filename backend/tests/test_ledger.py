import unittest
from decimal import Decimal

from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from billing.core.database import Base, build_engine
from billing.core.errors import (
    DuplicateExternalId,
    InsufficientCredits,
    InvalidAmount,
    InvalidQuantity,
    TransactionNotFound,
    TransactionNotPending,
    UserNotFound,
)
from billing.models.credit_transaction import CreditTransaction, TransactionStatus, TransactionType
from billing.models.reconciliation_alert import ReconciliationAlert  # noqa: F401
from billing.models.user import User
from billing.services import ledger


class LedgerTestCase(unittest.TestCase):
    def setUp(self):
        self.engine = build_engine("sqlite://", poolclass=StaticPool)
        Base.metadata.create_all(bind=self.engine)
        self.db = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)()
        self.user = User(id="u1", email="u1@example.com")
        self.db.add(self.user)
        self.db.commit()

    def tearDown(self):
        self.db.close()
        self.engine.dispose()

    def _pending(self, credits=500, amount="5.00"):
        return ledger.create_pending_transaction(self.db, "u1", credits, Decimal(amount))


class TestCreatePending(LedgerTestCase):
    def test_creates_pending_purchase(self):
        tx = self._pending()
        self.assertEqual(tx.status, TransactionStatus.PENDING)
        self.assertEqual(tx.type, TransactionType.PURCHASE)
        self.assertEqual(tx.amount, Decimal("5.00"))
        self.assertIsNone(tx.external_transaction_id)
        self.assertIsNone(tx.completed_at)

    def test_amount_must_follow_pricing(self):
        with self.assertRaises(InvalidAmount):
            ledger.create_pending_transaction(self.db, "u1", 500, Decimal("4.99"))
        self.assertEqual(self.db.query(CreditTransaction).count(), 0)

    def test_unknown_user(self):
        with self.assertRaises(UserNotFound):
            ledger.create_pending_transaction(self.db, "nobody", 500, Decimal("5.00"))


class TestAttachExternalId(LedgerTestCase):
    def test_attach(self):
        tx = self._pending()
        ledger.attach_external_id(self.db, tx.id, "txn_1")
        self.assertEqual(ledger.find_by_external_id(self.db, "txn_1").id, tx.id)

    def test_reattach_same_is_noop(self):
        tx = self._pending()
        ledger.attach_external_id(self.db, tx.id, "txn_1")
        again = ledger.attach_external_id(self.db, tx.id, "txn_1")
        self.assertEqual(again.id, tx.id)

    def test_duplicate_external_id(self):
        first = self._pending()
        second = self._pending()
        ledger.attach_external_id(self.db, first.id, "txn_1")
        with self.assertRaises(DuplicateExternalId):
            ledger.attach_external_id(self.db, second.id, "txn_1")
        self.db.expire_all()
        self.assertIsNone(ledger.get_transaction(self.db, second.id).external_transaction_id)

    def test_unknown_transaction(self):
        with self.assertRaises(TransactionNotFound):
            ledger.attach_external_id(self.db, "missing", "txn_9")

    def test_failed_transaction_refuses_external_id(self):
        tx = self._pending()
        ledger.mark_failed(self.db, tx.id)
        with self.assertRaises(TransactionNotPending):
            ledger.attach_external_id(self.db, tx.id, "txn_late")
        self.assertIsNone(ledger.get_transaction(self.db, tx.id).external_transaction_id)
        self.assertIsNone(ledger.find_by_external_id(self.db, "txn_late"))

    def test_attached_transaction_refuses_second_id(self):
        tx = self._pending()
        ledger.attach_external_id(self.db, tx.id, "txn_1")
        with self.assertRaises(DuplicateExternalId):
            ledger.attach_external_id(self.db, tx.id, "txn_2")
        self.assertEqual(ledger.get_transaction(self.db, tx.id).external_transaction_id, "txn_1")


class TestCompleteAndCredit(LedgerTestCase):
    def test_credits_once(self):
        tx = self._pending(credits=1000, amount="10.00")

        first = ledger.complete_and_credit(self.db, tx.id)
        second = ledger.complete_and_credit(self.db, tx.id)

        self.assertTrue(first.applied)
        self.assertEqual(first.credits_added, 1000)
        self.assertFalse(second.applied)
        self.assertEqual(second.credits_added, 0)
        self.assertEqual(second.status, TransactionStatus.COMPLETED)

        user = ledger.get_user(self.db, "u1")
        self.assertEqual(user.credits_available, 1000)
        self.assertEqual(user.total_spent, Decimal("10.00"))
        done = ledger.get_transaction(self.db, tx.id)
        self.assertEqual(done.status, TransactionStatus.COMPLETED)
        self.assertIsNotNone(done.completed_at)

    def test_failed_transaction_is_not_credited(self):
        tx = self._pending()
        self.assertTrue(ledger.mark_failed(self.db, tx.id))
        self.assertFalse(ledger.mark_failed(self.db, tx.id))

        outcome = ledger.complete_and_credit(self.db, tx.id)
        self.assertFalse(outcome.applied)
        self.assertEqual(outcome.status, TransactionStatus.FAILED)
        self.assertEqual(ledger.get_user(self.db, "u1").credits_available, 0)

    def test_unknown_transaction(self):
        with self.assertRaises(TransactionNotFound):
            ledger.complete_and_credit(self.db, "missing")


class TestUsage(LedgerTestCase):
    def test_usage_decrements_balance(self):
        tx = self._pending()
        ledger.complete_and_credit(self.db, tx.id)

        usage = ledger.record_usage(self.db, "u1", 120, description="Validated 120 emails")
        self.assertEqual(usage.credits_change, -120)
        self.assertEqual(usage.type, TransactionType.USAGE)
        self.assertEqual(usage.status, TransactionStatus.COMPLETED)

        user = ledger.get_user(self.db, "u1")
        self.assertEqual(user.credits_available, 380)
        self.assertEqual(user.credits_used, 120)

    def test_insufficient_credits(self):
        with self.assertRaises(InsufficientCredits):
            ledger.record_usage(self.db, "u1", 1)
        self.assertEqual(ledger.get_user(self.db, "u1").credits_used, 0)

    def test_unknown_user(self):
        with self.assertRaises(UserNotFound):
            ledger.record_usage(self.db, "nobody", 1)

    def test_non_positive(self):
        with self.assertRaises(InvalidQuantity):
            ledger.record_usage(self.db, "u1", 0)

    def test_history_is_newest_first(self):
        tx = self._pending()
        ledger.complete_and_credit(self.db, tx.id)
        ledger.record_usage(self.db, "u1", 10)
        rows = ledger.list_transactions_for_user(self.db, "u1")
        self.assertEqual([r.type for r in rows], [TransactionType.USAGE, TransactionType.PURCHASE])
        self.assertEqual(len(ledger.list_transactions_for_user(self.db, "u1", limit=1)), 1)


if __name__ == "__main__":
    unittest.main()
