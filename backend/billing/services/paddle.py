from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import requests

from billing.core.errors import InvalidQuantity, PaymentsNotConfigured, ProviderUnavailable
from billing.core.settings import settings
from billing.services.pricing import provider_quantity

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProviderCheckout:
    transaction_id: str
    checkout_url: str


class PaddleClient:
    def __init__(
        self,
        *,
        api_key: str,
        base_url: str,
        price_id: str,
        timeout_s: float = 30.0,
    ) -> None:
        self._api_key = (api_key or "").strip()
        self._base_url = (base_url or "").strip().rstrip("/")
        self._price_id = (price_id or "").strip()
        self._timeout_s = float(timeout_s or 30.0)

    def _headers(self) -> dict[str, str]:
        return {
            "Accept": "application/json",
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self._api_key}",
        }

    def build_transaction_payload(self, *, user_id: str, credits_count: int) -> dict[str, Any]:
        try:
            quantity = provider_quantity(credits_count)
        except ValueError as exc:
            raise InvalidQuantity(str(exc), requested=credits_count) from exc
        return {
            "items": [{"price_id": self._price_id, "quantity": quantity}],
            "custom_data": {"user_id": str(user_id), "credits_count": int(credits_count)},
        }

    def create_transaction(self, *, user_id: str, credits_count: int) -> ProviderCheckout:
        if not self._api_key or not self._price_id:
            raise PaymentsNotConfigured("Paddle is not configured")

        payload = self.build_transaction_payload(user_id=user_id, credits_count=credits_count)
        try:
            resp = requests.post(
                f"{self._base_url}/transactions",
                headers=self._headers(),
                json=payload,
                timeout=self._timeout_s,
            )
        except requests.Timeout as exc:
            logger.warning("paddle.create_transaction.timeout user_id=%s timeout_s=%s", user_id, self._timeout_s)
            raise ProviderUnavailable("Paddle request timed out") from exc
        except requests.RequestException as exc:
            logger.warning("paddle.create_transaction.request_error user_id=%s error=%s", user_id, exc)
            raise ProviderUnavailable("Paddle request failed") from exc

        if resp.status_code >= 400:
            logger.error(
                "paddle.create_transaction.http_error status=%s body=%s",
                resp.status_code,
                (resp.text or "")[:500],
            )
            raise ProviderUnavailable(f"Paddle error ({resp.status_code})", status=resp.status_code)

        try:
            body = resp.json() or {}
        except ValueError as exc:
            raise ProviderUnavailable("Invalid response from Paddle") from exc

        data = body.get("data") if isinstance(body, dict) else None
        data = data if isinstance(data, dict) else {}
        transaction_id = str(data.get("id") or "").strip()
        checkout = data.get("checkout") if isinstance(data.get("checkout"), dict) else {}
        checkout_url = str(checkout.get("url") or "").strip()
        if not transaction_id:
            raise ProviderUnavailable("Invalid response from Paddle: missing transaction id")
        if not checkout_url:
            raise ProviderUnavailable("No checkout URL in Paddle response", transaction_id=transaction_id)
        return ProviderCheckout(transaction_id=transaction_id, checkout_url=checkout_url)


def default_client() -> PaddleClient:
    if not settings.payments_configured:
        raise PaymentsNotConfigured("PADDLE_API_KEY / PADDLE_PRICE_ID are not configured")
    return PaddleClient(
        api_key=settings.paddle_api_key or "",
        base_url=settings.paddle_api_base_url,
        price_id=settings.paddle_price_id or "",
        timeout_s=settings.paddle_timeout_s,
    )
