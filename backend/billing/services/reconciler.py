"""Payment webhook reconciliation.

A verified provider notification moves a pending ``CreditTransaction`` to
``completed`` and credits the user exactly once, no matter how many times or
how concurrently the same notification is delivered. Everything that reports
money received without a matching pending row is raised to the caller and
recorded as a ``ReconciliationAlert``.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from pydantic import ValidationError
from sqlalchemy.orm import Session

from billing.core.errors import (
    AuthenticationFailure,
    MalformedPayload,
    MetadataMismatch,
    MissingMetadata,
    OrphanTransaction,
    UnrecognizedEvent,
)
from billing.core.settings import settings
from billing.core.signatures import verify_signature
from billing.models.credit_transaction import TransactionStatus
from billing.schemas.payment import WebhookEvent, WebhookTransactionData
from billing.services import alerts, ledger

logger = logging.getLogger(__name__)

SUPPORTED_EVENT_TYPES = frozenset({"transaction.completed", "transaction.updated"})
PROVIDER_STATUS_COMPLETED = "completed"


@dataclass(frozen=True)
class WebhookResult:
    success: bool
    transaction_id: str | None
    user_id: str | None
    credits_added: int
    event_type: str | None
    message: str | None = None


def _parse_credits_count(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value > 0 else None
    if isinstance(value, float) and value.is_integer():
        return int(value) if value > 0 else None
    if isinstance(value, str) and value.strip().isdigit():
        n = int(value.strip())
        return n if n > 0 else None
    return None


def extract_metadata(custom_data: Any) -> tuple[str, int]:
    if not isinstance(custom_data, dict):
        raise MissingMetadata("Missing custom data")
    raw_user = custom_data.get("user_id")
    if isinstance(raw_user, bool) or not isinstance(raw_user, (str, int)) or not str(raw_user).strip():
        raise MissingMetadata("Missing user ID in custom data")
    credits = _parse_credits_count(custom_data.get("credits_count"))
    if credits is None:
        raise MissingMetadata("Missing or invalid credits count in custom data")
    return str(raw_user).strip(), credits


def parse_event(raw_body: bytes) -> tuple[WebhookEvent, dict[str, Any]]:
    try:
        payload = json.loads(raw_body.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as exc:
        raise MalformedPayload(f"Invalid JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise MalformedPayload("Webhook payload must be a JSON object")
    try:
        event = WebhookEvent.model_validate(payload)
    except ValidationError as exc:
        raise MalformedPayload("Webhook envelope does not match the expected schema") from exc
    return event, payload


def reconcile(db: Session, event: WebhookEvent, payload: dict[str, Any] | None = None) -> WebhookResult:
    event_type = (event.event_type or "").strip()
    if event_type not in SUPPORTED_EVENT_TYPES:
        logger.info("reconciler.ignored_event event_type=%s", event_type or "-")
        return WebhookResult(True, None, None, 0, event_type or None, UnrecognizedEvent.code)

    if event.data is None:
        raise MalformedPayload("Webhook data is null", event_type=event_type)
    if not isinstance(event.data, dict):
        raise MalformedPayload("Webhook data must be a JSON object", event_type=event_type)
    try:
        data = WebhookTransactionData.model_validate(event.data)
    except ValidationError as exc:
        raise MalformedPayload("Webhook transaction data does not match the expected schema") from exc
    external_id = (data.id or "").strip()
    if not external_id:
        raise MalformedPayload("Webhook transaction id is missing", event_type=event_type)

    provider_status = (data.status or "").strip().lower()
    if provider_status != PROVIDER_STATUS_COMPLETED:
        logger.info(
            "reconciler.not_completed external_transaction_id=%s status=%s",
            external_id,
            provider_status or "-",
        )
        return WebhookResult(True, external_id, None, 0, event_type, f"status {provider_status or 'unknown'}")

    try:
        user_id, credits = extract_metadata(data.custom_data)
    except MissingMetadata as exc:
        alerts.record_alert(
            db,
            kind=alerts.KIND_MISSING_METADATA,
            detail=exc.message,
            external_transaction_id=external_id,
            event_type=event_type,
            payload=payload,
        )
        raise

    tx = ledger.find_by_external_id(db, external_id)
    if tx is None:
        alerts.record_alert(
            db,
            kind=alerts.KIND_ORPHAN_TRANSACTION,
            detail=f"Completed payment {external_id} has no pending transaction (user {user_id}, {credits} credits)",
            external_transaction_id=external_id,
            event_type=event_type,
            payload=payload,
        )
        raise OrphanTransaction("Transaction not found", external_id=external_id, user_id=user_id)

    if tx.user_id != user_id or int(tx.credits_change) != credits:
        detail = (
            f"Webhook metadata user={user_id} credits={credits} does not match "
            f"transaction {tx.id} user={tx.user_id} credits={tx.credits_change}"
        )
        alerts.record_alert(
            db,
            kind=alerts.KIND_METADATA_MISMATCH,
            detail=detail,
            external_transaction_id=external_id,
            event_type=event_type,
            payload=payload,
        )
        raise MetadataMismatch(detail, external_id=external_id)

    outcome = ledger.complete_and_credit(db, tx.id)
    if outcome.applied:
        logger.info(
            "reconciler.credited external_transaction_id=%s user_id=%s credits=%s",
            external_id,
            outcome.user_id,
            outcome.credits_added,
        )
    elif outcome.status == TransactionStatus.COMPLETED:
        logger.info("reconciler.replay external_transaction_id=%s user_id=%s", external_id, outcome.user_id)
    else:
        alerts.record_alert(
            db,
            kind=alerts.KIND_TERMINAL_TRANSACTION,
            detail=f"Completed payment {external_id} arrived for a {outcome.status.value} transaction {outcome.transaction_id}",
            external_transaction_id=external_id,
            event_type=event_type,
            payload=payload,
        )
    return WebhookResult(True, external_id, outcome.user_id, outcome.credits_added, event_type)


def handle_webhook(
    db: Session,
    raw_body: bytes,
    signature_header: str | None,
    *,
    secret: bytes | str | None = None,
    scheme: str | None = None,
    max_age_s: int | None = None,
) -> WebhookResult:
    """Authenticate, parse and reconcile one delivery.

    The signature is checked on the raw bytes; nothing is deserialized before
    it passes.
    """
    ok = verify_signature(
        raw_body,
        signature_header,
        settings.paddle_webhook_secret if secret is None else secret,
        scheme=scheme or settings.paddle_signature_scheme,
        max_age_s=settings.paddle_signature_max_age_s if max_age_s is None else max_age_s,
    )
    if not ok:
        logger.warning("reconciler.invalid_signature body_bytes=%s", len(raw_body or b""))
        raise AuthenticationFailure("Invalid signature")

    event, payload = parse_event(raw_body)
    logger.info(
        "reconciler.received event_type=%s event_id=%s",
        event.event_type or "-",
        event.event_id or "-",
    )
    return reconcile(db, event, payload)


def expire_abandoned_checkouts(
    db: Session,
    *,
    older_than_minutes: int | None = None,
    now: datetime | None = None,
) -> list[str]:
    """Fail pending purchases that never received a provider transaction id."""
    minutes = settings.pending_checkout_ttl_minutes if older_than_minutes is None else int(older_than_minutes)
    cutoff = (now or ledger.utcnow()) - timedelta(minutes=max(0, minutes))
    expired: list[str] = []
    stale_ids = [tx.id for tx in ledger.find_stale_unattached(db, cutoff)]
    for tx_id in stale_ids:
        if ledger.mark_failed(db, tx_id):
            expired.append(tx_id)
    if expired:
        logger.info("reconciler.expired_pending count=%s cutoff=%s", len(expired), cutoff.isoformat())
    return expired
