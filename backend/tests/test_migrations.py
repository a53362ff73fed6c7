import importlib.util
import unittest
from decimal import Decimal
from pathlib import Path
from unittest.mock import patch

from alembic.migration import MigrationContext
from alembic.operations import Operations
import sqlalchemy as sa
from sqlalchemy import inspect
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from billing.core.database import build_engine
from billing.models.user import User
from billing.services import ledger


VERSIONS_DIR = Path(__file__).resolve().parents[1] / "alembic" / "versions"


def _load_revision(name: str):
    spec = importlib.util.spec_from_file_location(name, VERSIONS_DIR / f"{name}.py")
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


class TestBillingInitRevision(unittest.TestCase):
    def setUp(self):
        self.engine = build_engine("sqlite://", poolclass=StaticPool)
        self.revision = _load_revision("0001_billing_init")

    def tearDown(self):
        self.engine.dispose()

    def _run(self, fn_name: str) -> None:
        with self.engine.begin() as conn:
            ctx = MigrationContext.configure(connection=conn)
            with Operations.context(ctx):
                getattr(self.revision, fn_name)()

    def test_upgrade_creates_schema(self):
        self._run("upgrade")
        inspector = inspect(self.engine)
        self.assertTrue({"users", "credit_transactions", "reconciliation_alerts"} <= set(inspector.get_table_names()))

        indexes = {idx["name"]: idx for idx in inspector.get_indexes("credit_transactions")}
        self.assertTrue(indexes["ix_credit_transactions_external_transaction_id"]["unique"])
        self.assertIn("ix_credit_transactions_user_id", indexes)

    def test_upgrade_is_idempotent_and_reversible(self):
        self._run("upgrade")
        self._run("upgrade")
        self._run("downgrade")
        self.assertNotIn("credit_transactions", inspect(self.engine).get_table_names())

    def test_downgrade_drops_enum_types(self):
        self._run("upgrade")
        with patch.object(sa.Enum, "drop", autospec=True) as drop:
            self._run("downgrade")

        dropped = {c.args[0].name for c in drop.call_args_list}
        self.assertEqual(dropped, {"transactiontype", "transactionstatus"})
        for c in drop.call_args_list:
            self.assertTrue(c.kwargs.get("checkfirst"))

        self._run("upgrade")
        self.assertIn("credit_transactions", inspect(self.engine).get_table_names())

    def test_ledger_runs_on_migrated_schema(self):
        self._run("upgrade")
        db = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)()
        try:
            db.add(User(id="u1", email="u1@example.com"))
            db.commit()
            tx = ledger.create_pending_transaction(db, "u1", 500, Decimal("5.00"))
            ledger.attach_external_id(db, tx.id, "txn_1")
            self.assertTrue(ledger.complete_and_credit(db, tx.id).applied)
            self.assertEqual(ledger.get_user(db, "u1").credits_available, 500)
        finally:
            db.close()


if __name__ == "__main__":
    unittest.main()
