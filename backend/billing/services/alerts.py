from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from sqlalchemy.orm import Session

from billing.core.logging import alert_logger
from billing.models.reconciliation_alert import ReconciliationAlert

logger = logging.getLogger(__name__)

KIND_ORPHAN_TRANSACTION = "orphan_transaction"
KIND_MISSING_METADATA = "missing_metadata"
KIND_METADATA_MISMATCH = "metadata_mismatch"
KIND_TERMINAL_TRANSACTION = "terminal_transaction"


def record_alert(
    db: Session,
    *,
    kind: str,
    detail: str,
    external_transaction_id: str | None = None,
    event_type: str | None = None,
    payload: dict[str, Any] | None = None,
) -> ReconciliationAlert | None:
    """Log and persist a payment that arrived without a matching credit grant."""
    alert_logger().error(
        "reconciliation.alert kind=%s external_transaction_id=%s event_type=%s detail=%s",
        kind,
        external_transaction_id,
        event_type,
        detail,
    )
    alert = ReconciliationAlert(
        kind=kind,
        external_transaction_id=external_transaction_id,
        event_type=event_type,
        detail=detail,
        alert_payload=payload or None,
    )
    db.add(alert)
    try:
        db.commit()
    except Exception:
        db.rollback()
        # the log line above is the alert of record when persistence fails
        logger.exception("alerts.persist_failed kind=%s external_transaction_id=%s", kind, external_transaction_id)
        return None
    db.refresh(alert)
    return alert


def list_open_alerts(db: Session, limit: int = 100) -> list[ReconciliationAlert]:
    return (
        db.query(ReconciliationAlert)
        .filter(ReconciliationAlert.resolved_at.is_(None))
        .order_by(ReconciliationAlert.id.desc())
        .limit(max(1, min(int(limit or 100), 500)))
        .all()
    )


def resolve_alert(db: Session, alert_id: int) -> ReconciliationAlert | None:
    alert = db.query(ReconciliationAlert).filter(ReconciliationAlert.id == int(alert_id)).first()
    if alert is None:
        return None
    if alert.resolved_at is None:
        alert.resolved_at = datetime.now(timezone.utc)
        try:
            db.commit()
        except Exception:
            db.rollback()
            raise
        db.refresh(alert)
    return alert
