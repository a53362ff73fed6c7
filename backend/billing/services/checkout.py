"""Checkout creation: pending ledger row first, provider call second."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Protocol

from sqlalchemy.orm import Session

from billing.core.errors import InvalidQuantity, ProviderUnavailable, TransactionNotPending, UserNotFound
from billing.core.settings import settings
from billing.models.credit_transaction import TransactionType
from billing.services import ledger
from billing.services.paddle import ProviderCheckout, default_client
from billing.services.pricing import CREDITS_PER_CURRENCY_UNIT, amount_for_credits

logger = logging.getLogger(__name__)


class CheckoutProvider(Protocol):
    def create_transaction(self, *, user_id: str, credits_count: int) -> ProviderCheckout: ...


@dataclass(frozen=True)
class CheckoutResult:
    checkout_url: str
    external_transaction_id: str
    amount: Decimal
    credits_count: int
    transaction_id: str


def validate_quantity(credits_count: int, min_credits: int | None = None, max_credits: int | None = None) -> int:
    lo = settings.credits_min_purchase if min_credits is None else int(min_credits)
    hi = settings.credits_max_purchase if max_credits is None else int(max_credits)
    try:
        count = int(credits_count)
    except (TypeError, ValueError):
        raise InvalidQuantity("Credits count must be an integer", requested=credits_count)
    if count < lo:
        raise InvalidQuantity(f"Minimum purchase is {lo:,} email credits", requested=count, minimum=lo)
    if count > hi:
        raise InvalidQuantity(f"Maximum purchase is {hi:,} email credits", requested=count, maximum=hi)
    # the provider sells whole currency-unit packages only
    if count % CREDITS_PER_CURRENCY_UNIT:
        raise InvalidQuantity(
            f"Credits are sold in multiples of {CREDITS_PER_CURRENCY_UNIT}",
            requested=count,
            step=CREDITS_PER_CURRENCY_UNIT,
        )
    return count


def create_checkout(
    db: Session,
    user_id: str,
    credits_count: int,
    *,
    provider: CheckoutProvider | None = None,
    min_credits: int | None = None,
    max_credits: int | None = None,
) -> CheckoutResult:
    count = validate_quantity(credits_count, min_credits=min_credits, max_credits=max_credits)
    if ledger.get_user(db, user_id) is None:
        raise UserNotFound(f"User {user_id} not found", user_id=user_id)

    amount = amount_for_credits(count)
    client = provider or default_client()
    logger.info("checkout.start user_id=%s credits=%s amount=%s", user_id, count, amount)

    tx = ledger.create_pending_transaction(
        db,
        user_id=user_id,
        credits_change=count,
        amount=amount,
        type=TransactionType.PURCHASE,
        description=f"Purchase of {count} email credits",
    )
    tx_id = tx.id

    try:
        opened = client.create_transaction(user_id=str(user_id), credits_count=count)
    except ProviderUnavailable:
        # row stays pending with no external id until the abandoned-checkout sweep
        logger.warning("checkout.provider_unavailable user_id=%s transaction_id=%s", user_id, tx_id)
        raise

    try:
        ledger.attach_external_id(db, tx_id, opened.transaction_id)
    except TransactionNotPending:
        # swept while the provider call was in flight; the checkout URL is never handed out
        logger.warning(
            "checkout.expired_before_attach user_id=%s transaction_id=%s external_transaction_id=%s",
            user_id,
            tx_id,
            opened.transaction_id,
        )
        raise
    logger.info(
        "checkout.created user_id=%s transaction_id=%s external_transaction_id=%s",
        user_id,
        tx_id,
        opened.transaction_id,
    )
    return CheckoutResult(
        checkout_url=opened.checkout_url,
        external_transaction_id=opened.transaction_id,
        amount=amount,
        credits_count=count,
        transaction_id=tx_id,
    )
