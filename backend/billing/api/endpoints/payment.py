from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from billing.core.database import get_db
from billing.core.errors import AuthenticationFailure, BillingError
from billing.core.settings import settings
from billing.schemas.payment import (
    CreateCheckoutRequest,
    CreateCheckoutResponse,
    CreditTransactionOut,
    WebhookProcessedResponse,
)
from billing.services import ledger
from billing.services.checkout import create_checkout
from billing.services.reconciler import handle_webhook


logger = logging.getLogger(__name__)

router = APIRouter()

SIGNATURE_HEADER = "Paddle-Signature"


def _http_error(exc: BillingError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=exc.message or exc.code)


@router.post("/payment/checkout", response_model=CreateCheckoutResponse)
async def create_checkout_session(body: CreateCheckoutRequest, db: Session = Depends(get_db)):
    # blocking db and provider work stays off the event loop
    try:
        result = await run_in_threadpool(create_checkout, db, body.user_id, body.emails_count)
    except BillingError as exc:
        raise _http_error(exc)

    return CreateCheckoutResponse(
        checkout_url=result.checkout_url,
        transaction_id=result.external_transaction_id,
        amount=result.amount,
        credits_count=result.credits_count,
    )


@router.post("/payment/webhook", response_model=WebhookProcessedResponse)
async def paddle_webhook(request: Request, db: Session = Depends(get_db)):
    raw_body = await request.body()
    if not raw_body:
        raise HTTPException(status_code=400, detail="Missing request body")

    signature = (request.headers.get(SIGNATURE_HEADER) or "").strip()
    if not signature:
        raise HTTPException(status_code=400, detail=f"Missing {SIGNATURE_HEADER}")

    if not settings.paddle_webhook_secret:
        logger.error("payment.webhook.unconfigured")
        raise HTTPException(status_code=500, detail="PADDLE_WEBHOOK_SECRET is not configured")

    try:
        result = await run_in_threadpool(handle_webhook, db, raw_body, signature)
    except AuthenticationFailure as exc:
        raise _http_error(exc)
    except BillingError as exc:
        logger.warning("payment.webhook.rejected code=%s detail=%s", exc.code, exc.message)
        raise HTTPException(status_code=400, detail=exc.message or exc.code)

    return WebhookProcessedResponse(
        success=result.success,
        transaction_id=result.transaction_id,
        user_id=result.user_id,
        credits_added=result.credits_added,
        event_type=result.event_type,
    )


@router.get("/payment/transactions/{user_id}", response_model=list[CreditTransactionOut])
async def list_transactions(user_id: str, limit: int = 100, db: Session = Depends(get_db)):
    if ledger.get_user(db, user_id) is None:
        raise HTTPException(status_code=404, detail="User not found")
    rows = ledger.list_transactions_for_user(db, user_id, limit=max(1, min(int(limit), 500)))
    return [CreditTransactionOut.model_validate(r) for r in rows]
