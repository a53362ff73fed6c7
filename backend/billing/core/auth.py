import secrets

from fastapi import Header, HTTPException

from billing.core.settings import settings


ADMIN_TOKEN_HEADER = "X-Admin-Token"


def require_admin_token(x_admin_token: str | None = Header(default=None, alias=ADMIN_TOKEN_HEADER)) -> None:
    expected = settings.admin_api_token
    if not expected:
        raise HTTPException(status_code=403, detail="Admin API is disabled")

    supplied = (x_admin_token or "").strip()
    if not supplied:
        raise HTTPException(status_code=401, detail="Authentication required")

    if not secrets.compare_digest(supplied.encode("utf-8"), expected.encode("utf-8")):
        raise HTTPException(status_code=401, detail="Invalid credentials")
