"""Thin async client for the payment provider's REST API (form-encoded requests)."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any
from urllib.parse import quote, urlencode

import httpx
import structlog

from ngoportal.exceptions import ServiceUnavailable, UpstreamError

if TYPE_CHECKING:
    from ngoportal.config.settings import Settings

logger = structlog.get_logger(__name__)


def encode_form(params: dict[str, Any], prefix: str = "") -> list[tuple[str, str]]:
    """Flatten nested dicts and lists into bracketed form keys.

    ``{"metadata": {"userId": "u1"}}`` becomes ``[("metadata[userId]", "u1")]``.
    """
    pairs: list[tuple[str, str]] = []
    for key, value in params.items():
        name = f"{prefix}[{key}]" if prefix else str(key)
        if value is None:
            continue
        if isinstance(value, dict):
            pairs.extend(encode_form(value, name))
        elif isinstance(value, list | tuple):
            for index, item in enumerate(value):
                item_name = f"{name}[{index}]"
                if isinstance(item, dict):
                    pairs.extend(encode_form(item, item_name))
                else:
                    pairs.append((item_name, _scalar(item)))
        else:
            pairs.append((name, _scalar(value)))
    return pairs


def _scalar(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class StripeClient:
    def __init__(
        self,
        http: httpx.AsyncClient,
        *,
        secret_key: str | None,
        api_base: str = "https://api.stripe.com/v1",
    ) -> None:
        self._http = http
        self._secret_key = secret_key
        self._api_base = api_base.rstrip("/")

    @classmethod
    def from_settings(cls, settings: Settings, http: httpx.AsyncClient) -> StripeClient:
        return cls(http, secret_key=settings.stripe_secret_key, api_base=settings.stripe_api_base)

    @property
    def configured(self) -> bool:
        return bool(self._secret_key)

    async def _request(
        self,
        method: str,
        path: str,
        *,
        data: dict[str, Any] | None = None,
        idempotency_key: str | None = None,
    ) -> dict[str, Any]:
        if not self._secret_key:
            raise ServiceUnavailable(
                "Payment service not initialized", detail="STRIPE_SECRET_KEY is not set"
            )
        headers = {"Authorization": f"Bearer {self._secret_key}"}
        content = None
        if data:
            headers["Content-Type"] = "application/x-www-form-urlencoded"
            content = urlencode(encode_form(data))
        if idempotency_key:
            headers["Idempotency-Key"] = idempotency_key
        try:
            resp = await self._http.request(
                method,
                f"{self._api_base}{path}",
                content=content,
                headers=headers,
            )
        except httpx.HTTPError as exc:
            logger.error("stripe_request_failed", path=path, error=str(exc))
            raise UpstreamError("Payment provider request failed", detail=str(exc)) from exc

        if resp.status_code >= 400:
            try:
                message = resp.json().get("error", {}).get("message", resp.text)
            except ValueError:
                message = resp.text
            logger.error("stripe_error_response", path=path, status=resp.status_code)
            raise UpstreamError("Payment provider request failed", detail=message)
        body: dict[str, Any] = resp.json()
        return body

    async def create_customer(self, *, email: str, user_id: str) -> dict[str, Any]:
        # Keyed on the subject so a retried call cannot create a second customer.
        return await self._request(
            "POST",
            "/customers",
            data={"email": email, "metadata": {"userId": user_id}},
            idempotency_key=f"customer-{user_id}",
        )

    async def create_checkout_session(self, params: dict[str, Any]) -> dict[str, Any]:
        return await self._request("POST", "/checkout/sessions", data=params)

    async def retrieve_checkout_session(self, session_id: str) -> dict[str, Any]:
        return await self._request("GET", f"/checkout/sessions/{quote(session_id, safe='')}")

    async def retrieve_subscription(self, subscription_id: str) -> dict[str, Any]:
        return await self._request("GET", f"/subscriptions/{quote(subscription_id, safe='')}")
