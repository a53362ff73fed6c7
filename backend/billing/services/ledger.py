"""Prepaid credit ledger.

Every balance change goes through a conditional UPDATE evaluated by the
database, so concurrent webhook deliveries and concurrent usage never
read-modify-write the ``users`` row in Python.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

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
from billing.models.user import User
from billing.services.pricing import amount_matches, to_money

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CreditOutcome:
    transaction_id: str
    user_id: str
    status: TransactionStatus
    applied: bool
    credits_added: int


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def get_user(db: Session, user_id: str) -> User | None:
    if not user_id:
        return None
    return db.query(User).filter(User.id == str(user_id)).first()


def get_transaction(db: Session, transaction_id: str) -> CreditTransaction | None:
    if not transaction_id:
        return None
    return db.query(CreditTransaction).filter(CreditTransaction.id == str(transaction_id)).first()


def find_by_external_id(db: Session, external_id: str) -> CreditTransaction | None:
    ext = str(external_id or "").strip()
    if not ext:
        return None
    return db.query(CreditTransaction).filter(CreditTransaction.external_transaction_id == ext).first()


def list_transactions_for_user(db: Session, user_id: str, limit: int | None = None) -> list[CreditTransaction]:
    q = (
        db.query(CreditTransaction)
        .filter(CreditTransaction.user_id == str(user_id))
        .order_by(CreditTransaction.created_at.desc(), CreditTransaction.id.desc())
    )
    if limit:
        q = q.limit(int(limit))
    return q.all()


def create_pending_transaction(
    db: Session,
    user_id: str,
    credits_change: int,
    amount,
    type: TransactionType = TransactionType.PURCHASE,
    description: str | None = None,
) -> CreditTransaction:
    if get_user(db, user_id) is None:
        raise UserNotFound(f"User {user_id} not found", user_id=user_id)

    credits_change = int(credits_change)
    if type == TransactionType.PURCHASE:
        if credits_change <= 0 or not amount_matches(credits_change, amount):
            raise InvalidAmount(
                f"Amount {amount} does not match {credits_change} credits",
                credits_change=credits_change,
                amount=str(amount),
            )
    try:
        money = to_money(amount)
    except ValueError as exc:
        raise InvalidAmount(str(exc))
    if money < 0:
        raise InvalidAmount("Amount cannot be negative", amount=str(amount))

    tx = CreditTransaction(
        user_id=str(user_id),
        credits_change=credits_change,
        amount=money,
        type=type,
        status=TransactionStatus.PENDING,
        description=description,
    )
    db.add(tx)
    try:
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(tx)
    logger.info(
        "ledger.pending_created transaction_id=%s user_id=%s credits=%s amount=%s",
        tx.id,
        tx.user_id,
        tx.credits_change,
        tx.amount,
    )
    return tx


def attach_external_id(db: Session, transaction_id: str, external_id: str) -> CreditTransaction:
    ext = str(external_id or "").strip()
    if not ext:
        raise ValueError("external_id must be a non-empty string")

    owner = find_by_external_id(db, ext)
    if owner is not None:
        if owner.id == transaction_id:
            return owner
        raise DuplicateExternalId(
            f"External id {ext} already belongs to transaction {owner.id}",
            external_id=ext,
            transaction_id=transaction_id,
        )

    # only a pending, unattached row may take an id; a swept (failed) row never does
    try:
        changed = (
            db.query(CreditTransaction)
            .filter(
                CreditTransaction.id == str(transaction_id),
                CreditTransaction.status == TransactionStatus.PENDING,
                CreditTransaction.external_transaction_id.is_(None),
            )
            .update({CreditTransaction.external_transaction_id: ext}, synchronize_session=False)
        )
        db.commit()
    except IntegrityError:
        # lost a race with another writer on the unique index
        db.rollback()
        raise DuplicateExternalId(f"External id {ext} is already attached", external_id=ext)
    except Exception:
        db.rollback()
        raise

    db.expire_all()
    tx = get_transaction(db, transaction_id)
    if tx is None:
        raise TransactionNotFound(f"Transaction {transaction_id} not found")
    if not changed and tx.external_transaction_id != ext:
        if tx.external_transaction_id:
            raise DuplicateExternalId(
                f"Transaction {transaction_id} is already attached to {tx.external_transaction_id}",
                external_id=ext,
                transaction_id=transaction_id,
            )
        logger.warning(
            "ledger.attach_refused transaction_id=%s external_id=%s status=%s",
            tx.id,
            ext,
            tx.status.value,
        )
        raise TransactionNotPending(
            f"Transaction {transaction_id} is {tx.status.value}; external id {ext} was not attached",
            external_id=ext,
            transaction_id=transaction_id,
        )
    logger.info("ledger.external_id_attached transaction_id=%s external_id=%s", tx.id, ext)
    return tx


def complete_and_credit(db: Session, transaction_id: str) -> CreditOutcome:
    """Move a pending transaction to completed and credit its user, atomically.

    The status flip is a single ``UPDATE ... WHERE status = 'pending'``; only the
    caller whose update matched a row increments the balance, inside the same
    database transaction. Every other caller gets ``applied=False`` and
    ``credits_added=0``.
    """
    tx = get_transaction(db, transaction_id)
    if tx is None:
        raise TransactionNotFound(f"Transaction {transaction_id} not found")

    tx_id = tx.id
    user_id = tx.user_id
    credits = int(tx.credits_change or 0)
    amount = tx.amount
    if tx.status != TransactionStatus.PENDING:
        return CreditOutcome(tx_id, user_id, TransactionStatus(tx.status), applied=False, credits_added=0)

    now = utcnow()
    try:
        changed = (
            db.query(CreditTransaction)
            .filter(CreditTransaction.id == tx_id, CreditTransaction.status == TransactionStatus.PENDING)
            .update(
                {
                    CreditTransaction.status: TransactionStatus.COMPLETED,
                    CreditTransaction.completed_at: now,
                },
                synchronize_session=False,
            )
        )
        if changed != 1:
            db.rollback()
            db.expire_all()
            current = get_transaction(db, tx_id)
            status = TransactionStatus(current.status) if current is not None else TransactionStatus.COMPLETED
            logger.info("ledger.complete.lost_race transaction_id=%s status=%s", tx_id, status.value)
            return CreditOutcome(tx_id, user_id, status, applied=False, credits_added=0)

        credited = (
            db.query(User)
            .filter(User.id == user_id)
            .update(
                {
                    User.credits_available: User.credits_available + credits,
                    User.total_spent: User.total_spent + amount,
                    User.updated_at: now,
                },
                synchronize_session=False,
            )
        )
        if credited != 1:
            db.rollback()
            raise UserNotFound(f"User {user_id} not found", user_id=user_id)
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.expire_all()
    logger.info(
        "ledger.completed transaction_id=%s user_id=%s credits_added=%s amount=%s",
        tx_id,
        user_id,
        credits,
        amount,
    )
    return CreditOutcome(tx_id, user_id, TransactionStatus.COMPLETED, applied=True, credits_added=credits)


def mark_failed(db: Session, transaction_id: str) -> bool:
    try:
        changed = (
            db.query(CreditTransaction)
            .filter(CreditTransaction.id == str(transaction_id), CreditTransaction.status == TransactionStatus.PENDING)
            .update(
                {
                    CreditTransaction.status: TransactionStatus.FAILED,
                    CreditTransaction.completed_at: utcnow(),
                },
                synchronize_session=False,
            )
        )
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.expire_all()
    if changed:
        logger.info("ledger.failed transaction_id=%s", transaction_id)
    return bool(changed)


def find_stale_unattached(db: Session, older_than: datetime) -> list[CreditTransaction]:
    return (
        db.query(CreditTransaction)
        .filter(
            CreditTransaction.status == TransactionStatus.PENDING,
            CreditTransaction.external_transaction_id.is_(None),
            CreditTransaction.created_at < older_than,
        )
        .order_by(CreditTransaction.created_at.asc())
        .all()
    )


def record_usage(db: Session, user_id: str, credits: int, description: str | None = None) -> CreditTransaction:
    credits = int(credits)
    if credits <= 0:
        raise InvalidQuantity("credits must be positive", credits=credits)

    now = utcnow()
    try:
        changed = (
            db.query(User)
            .filter(User.id == str(user_id), User.credits_available >= credits)
            .update(
                {
                    User.credits_available: User.credits_available - credits,
                    User.credits_used: User.credits_used + credits,
                    User.updated_at: now,
                },
                synchronize_session=False,
            )
        )
        if changed != 1:
            db.rollback()
            if get_user(db, user_id) is None:
                raise UserNotFound(f"User {user_id} not found", user_id=user_id)
            raise InsufficientCredits(f"User {user_id} has fewer than {credits} credits", user_id=user_id)

        tx = CreditTransaction(
            user_id=str(user_id),
            credits_change=-credits,
            amount=to_money(0),
            type=TransactionType.USAGE,
            status=TransactionStatus.COMPLETED,
            description=description,
            completed_at=now,
        )
        db.add(tx)
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(tx)
    logger.info("ledger.usage_recorded user_id=%s credits=%s transaction_id=%s", user_id, credits, tx.id)
    return tx
