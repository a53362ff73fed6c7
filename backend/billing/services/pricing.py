from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

CREDITS_PER_CURRENCY_UNIT = 100
CENTS = Decimal("0.01")


def to_money(value) -> Decimal:
    try:
        return Decimal(str(value)).quantize(CENTS, rounding=ROUND_HALF_UP)
    except (InvalidOperation, ValueError):
        raise ValueError(f"not a monetary value: {value!r}")


def amount_for_credits(credits: int) -> Decimal:
    return to_money(Decimal(int(credits)) / Decimal(CREDITS_PER_CURRENCY_UNIT))


def provider_quantity(credits: int) -> int:
    """Number of one-currency-unit packages sold through the provider price."""
    credits = int(credits)
    if credits <= 0 or credits % CREDITS_PER_CURRENCY_UNIT:
        raise ValueError(f"{credits} credits is not a whole number of {CREDITS_PER_CURRENCY_UNIT}-credit packages")
    return credits // CREDITS_PER_CURRENCY_UNIT


def amount_matches(credits: int, amount) -> bool:
    try:
        return to_money(amount) == amount_for_credits(credits)
    except ValueError:
        return False
