from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from billing.core.auth import require_admin_token
from billing.core.database import get_db
from billing.schemas.payment import ReconciliationAlertOut
from billing.services import alerts
from billing.services.reconciler import expire_abandoned_checkouts


router = APIRouter(dependencies=[Depends(require_admin_token)])


class ExpirePendingRequest(BaseModel):
    older_than_minutes: int | None = None


class ExpirePendingResponse(BaseModel):
    expired: int
    transaction_ids: list[str]


@router.get("/admin/reconciliation/alerts", response_model=list[ReconciliationAlertOut])
async def list_alerts(limit: int = 100, db: Session = Depends(get_db)):
    return [ReconciliationAlertOut.model_validate(a) for a in alerts.list_open_alerts(db, limit=limit)]


@router.post("/admin/reconciliation/alerts/{alert_id}/resolve", response_model=ReconciliationAlertOut)
async def resolve_alert(alert_id: int, db: Session = Depends(get_db)):
    alert = alerts.resolve_alert(db, alert_id)
    if alert is None:
        raise HTTPException(status_code=404, detail="Alert not found")
    return ReconciliationAlertOut.model_validate(alert)


@router.post("/admin/reconciliation/expire-pending", response_model=ExpirePendingResponse)
async def expire_pending(body: ExpirePendingRequest | None = None, db: Session = Depends(get_db)):
    minutes = body.older_than_minutes if body is not None else None
    if minutes is not None and minutes < 0:
        raise HTTPException(status_code=400, detail="older_than_minutes must be >= 0")
    expired = expire_abandoned_checkouts(db, older_than_minutes=minutes)
    return ExpirePendingResponse(expired=len(expired), transaction_ids=expired)
