"""OAuth 2.0 authorization-code flow for connected mail/drive accounts."""

from __future__ import annotations

import base64
import hashlib
import hmac
import json
import re
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any
from urllib.parse import urlencode

import httpx
import structlog

from ngoportal.exceptions import ServiceUnavailable, UpstreamError
from ngoportal.types import IntegrationProvider

if TYPE_CHECKING:
    from ngoportal.config.settings import Settings

logger = structlog.get_logger(__name__)

# Signed state is only honoured for 10 minutes.
STATE_MAX_AGE = 600


class StateError(ValueError):
    pass


@dataclass(frozen=True)
class ProviderConfig:
    provider: IntegrationProvider
    authorize_url: str
    token_url: str
    profile_url: str
    scopes: tuple[str, ...]
    client_id: str | None = None
    client_secret: str | None = None
    redirect_uri: str | None = None
    auth_params: dict[str, str] = field(default_factory=dict)
    # Microsoft wants the scope repeated on the token request.
    scope_on_exchange: bool = False

    @property
    def configured(self) -> bool:
        return bool(self.client_id and self.client_secret and self.redirect_uri)


def google_provider(settings: Settings) -> ProviderConfig:
    return ProviderConfig(
        provider=IntegrationProvider.GOOGLE,
        authorize_url="https://accounts.google.com/o/oauth2/v2/auth",
        token_url="https://oauth2.googleapis.com/token",
        profile_url="https://www.googleapis.com/oauth2/v2/userinfo",
        scopes=(
            "https://www.googleapis.com/auth/gmail.readonly",
            "https://www.googleapis.com/auth/drive.readonly",
            "https://www.googleapis.com/auth/userinfo.email",
        ),
        client_id=settings.google_client_id,
        client_secret=settings.google_client_secret,
        redirect_uri=settings.google_redirect_uri
        or f"{settings.app_base_url.rstrip('/')}/api/google/oauth2callback",
        auth_params={"access_type": "offline", "prompt": "consent"},
    )


def outlook_provider(settings: Settings) -> ProviderConfig:
    return ProviderConfig(
        provider=IntegrationProvider.OUTLOOK,
        authorize_url="https://login.microsoftonline.com/common/oauth2/v2.0/authorize",
        token_url="https://login.microsoftonline.com/common/oauth2/v2.0/token",
        profile_url="https://graph.microsoft.com/v1.0/me",
        scopes=(
            "https://graph.microsoft.com/Mail.Read",
            "https://graph.microsoft.com/Calendars.Read",
            "offline_access",
        ),
        client_id=settings.microsoft_client_id,
        client_secret=settings.microsoft_client_secret,
        redirect_uri=settings.microsoft_redirect_uri
        or f"{settings.app_base_url.rstrip('/')}/api/outlook/oauth2callback",
        auth_params={"response_mode": "query"},
        scope_on_exchange=True,
    )


def sign_state(uid: str, secret: str, *, now: float | None = None) -> str:
    issued = int(time.time() if now is None else now)
    body = base64.urlsafe_b64encode(json.dumps({"uid": uid, "ts": issued}).encode()).decode()
    mac = hmac.new(secret.encode(), body.encode(), hashlib.sha256).hexdigest()
    return f"{body}.{mac}"


def verify_state(
    state: str, secret: str, *, max_age: int = STATE_MAX_AGE, now: float | None = None
) -> str:
    """Return the uid carried by ``state`` or raise StateError."""
    body, _, mac = state.partition(".")
    expected = hmac.new(secret.encode(), body.encode(), hashlib.sha256).hexdigest()
    if not mac or not hmac.compare_digest(mac, expected):
        raise StateError("invalid_state")
    try:
        data = json.loads(base64.urlsafe_b64decode(body.encode()))
    except ValueError as exc:
        raise StateError("invalid_state") from exc
    current = time.time() if now is None else now
    if not isinstance(data, dict) or current - int(data.get("ts", 0)) > max_age:
        raise StateError("expired_state")
    uid = data.get("uid")
    if not isinstance(uid, str) or not uid:
        raise StateError("invalid_state")
    return uid


def integration_id(provider: str, email: str) -> str:
    return f"{provider}_{re.sub(r'[^a-zA-Z0-9]', '_', email).lower()}"


@dataclass(frozen=True, slots=True)
class AccountProfile:
    email: str = "Unknown"
    name: str = "Unknown"


class OAuthClient:
    def __init__(
        self,
        http: httpx.AsyncClient,
        providers: dict[IntegrationProvider, ProviderConfig],
        *,
        state_secret: str,
    ) -> None:
        self._http = http
        self._providers = providers
        self._state_secret = state_secret

    @classmethod
    def from_settings(cls, settings: Settings, http: httpx.AsyncClient) -> OAuthClient:
        providers = {
            IntegrationProvider.GOOGLE: google_provider(settings),
            IntegrationProvider.OUTLOOK: outlook_provider(settings),
        }
        return cls(http, providers, state_secret=settings.secret_key)

    def provider(self, provider: IntegrationProvider) -> ProviderConfig:
        return self._providers[provider]

    def authorization_url(self, provider: IntegrationProvider, uid: str) -> tuple[str, str]:
        config = self._providers[provider]
        if not config.client_id:
            raise ServiceUnavailable(
                f"{provider.value.title()} OAuth not configured",
                reason="oauth_not_configured",
            )
        state = sign_state(uid, self._state_secret)
        params = {
            "client_id": config.client_id,
            "redirect_uri": config.redirect_uri or "",
            "response_type": "code",
            "scope": " ".join(config.scopes),
            "state": state,
            **config.auth_params,
        }
        return f"{config.authorize_url}?{urlencode(params)}", state

    def read_state(self, state: str) -> str:
        return verify_state(state, self._state_secret)

    async def _token_request(self, config: ProviderConfig, form: dict[str, str]) -> dict[str, Any]:
        if not config.configured:
            raise ServiceUnavailable(
                f"{config.provider.value.title()} OAuth not configured",
                reason="oauth_not_configured",
            )
        form = {
            "client_id": config.client_id or "",
            "client_secret": config.client_secret or "",
            **form,
        }
        try:
            resp = await self._http.post(config.token_url, data=form)
        except httpx.HTTPError as exc:
            logger.error("oauth_token_request_failed", provider=config.provider, error=str(exc))
            raise UpstreamError("Token request failed", detail=str(exc)) from exc
        if resp.status_code >= 400:
            try:
                error = resp.json().get("error", "token_exchange_failed")
            except ValueError:
                error = "token_exchange_failed"
            logger.warning("oauth_token_rejected", provider=config.provider, error=error)
            raise UpstreamError("Token request failed", reason=str(error))
        tokens: dict[str, Any] = resp.json()
        return tokens

    async def exchange_code(self, provider: IntegrationProvider, code: str) -> dict[str, Any]:
        config = self._providers[provider]
        form = {
            "code": code,
            "redirect_uri": config.redirect_uri or "",
            "grant_type": "authorization_code",
        }
        if config.scope_on_exchange:
            form["scope"] = " ".join(config.scopes)
        return await self._token_request(config, form)

    async def refresh(self, provider: IntegrationProvider, refresh_token: str) -> dict[str, Any]:
        config = self._providers[provider]
        return await self._token_request(
            config, {"refresh_token": refresh_token, "grant_type": "refresh_token"}
        )

    async def fetch_profile(
        self, provider: IntegrationProvider, access_token: str
    ) -> AccountProfile:
        """Best effort: a failed lookup yields ``Unknown`` rather than aborting the connect."""
        config = self._providers[provider]
        try:
            resp = await self._http.get(
                config.profile_url, headers={"Authorization": f"Bearer {access_token}"}
            )
            resp.raise_for_status()
            info = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("oauth_profile_unavailable", provider=provider, error=str(exc))
            return AccountProfile()
        if provider == IntegrationProvider.OUTLOOK:
            email = info.get("mail") or info.get("userPrincipalName") or "Unknown"
            name = info.get("displayName") or info.get("mail") or "Unknown"
        else:
            email = info.get("email") or "Unknown"
            name = info.get("name") or info.get("email") or "Unknown"
        return AccountProfile(email=email, name=name)
