"""Stored OAuth grants: connect callback, listing, removal and access-token upkeep."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any
from urllib.parse import urlencode

import structlog

from ngoportal.auth.roles import RoleClaim
from ngoportal.exceptions import PortalError, ServiceUnavailable, ValidationFailed
from ngoportal.integrations.oauth import StateError, integration_id
from ngoportal.models.database import Integration, _utc_now
from ngoportal.types import IntegrationProvider

if TYPE_CHECKING:
    from ngoportal.integrations.oauth import OAuthClient
    from ngoportal.storage.repositories.integrations import IntegrationRepository
    from ngoportal.storage.repositories.users import UserRepository

logger = structlog.get_logger(__name__)

SETTINGS_PATH = "/admin/settings"
# Access tokens are refreshed this long before they expire.
REFRESH_MARGIN = timedelta(minutes=5)


def settings_redirect(**params: str) -> str:
    return f"{SETTINGS_PATH}?{urlencode(params)}"


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() + "Z" if value is not None else None


def integration_to_wire(integration: Integration) -> dict[str, Any]:
    """Listing view; token material is reduced to presence flags."""
    return {
        "id": integration.id,
        "type": integration.provider,
        "userEmail": integration.account_email,
        "userName": integration.account_name,
        "createdAt": _iso(integration.created_at),
        "updatedAt": _iso(integration.updated_at),
        "expiresAt": _iso(integration.expires_at),
        "hasAccessToken": bool(integration.access_token),
        "hasRefreshToken": bool(integration.refresh_token),
    }


class CredentialService:
    def __init__(
        self,
        oauth: OAuthClient,
        integrations: IntegrationRepository,
        users: UserRepository,
        *,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._oauth = oauth
        self._integrations = integrations
        self._users = users
        self._clock = clock

    async def complete_connect(
        self,
        provider: IntegrationProvider,
        *,
        code: str | None,
        state: str | None,
        error: str | None = None,
    ) -> str:
        """Finish the OAuth callback; always returns the settings-page redirect target."""
        if error:
            return settings_redirect(error=error)
        if not code or not state:
            return settings_redirect(error="missing_code_or_state")
        try:
            uid = self._oauth.read_state(state)
        except StateError as exc:
            logger.warning("oauth_state_rejected", provider=provider, error=str(exc))
            return settings_redirect(error=str(exc))

        # The grant is stored on behalf of uid, so re-check that uid is still an admin.
        account = await self._users.get(uid)
        if account is None or not RoleClaim.from_account(account).is_admin:
            logger.warning("oauth_connect_unauthorized", provider=provider, uid=uid)
            return settings_redirect(error="unauthorized")

        try:
            tokens = await self._oauth.exchange_code(provider, code)
            profile = await self._oauth.fetch_profile(provider, tokens["access_token"])
        except PortalError as exc:
            return settings_redirect(error=exc.reason)
        except KeyError:
            return settings_redirect(error="token_exchange_failed")

        now = self._clock()
        await self._integrations.upsert(
            Integration(
                id=integration_id(provider.value, profile.email),
                provider=provider.value,
                user_id=uid,
                account_email=profile.email,
                account_name=profile.name,
                access_token=tokens["access_token"],
                refresh_token=tokens.get("refresh_token"),
                expires_at=now + timedelta(seconds=int(tokens.get("expires_in", 3600))),
                scope=tokens.get("scope", ""),
            )
        )
        logger.info("integration_connected", provider=provider, uid=uid)
        return settings_redirect(success="connected", email=profile.email, type=provider.value)

    async def list_integrations(self, provider: str | None = None) -> list[dict[str, Any]]:
        return [integration_to_wire(i) for i in await self._integrations.list_all(provider)]

    async def remove(self, integration_id_: str | None) -> bool:
        if not integration_id_:
            raise ValidationFailed("Integration ID required")
        return await self._integrations.delete(integration_id_)

    async def status(self, provider: IntegrationProvider) -> dict[str, bool]:
        grant = await self._integrations.latest(provider.value)
        return {
            "connected": grant is not None,
            "hasAccessToken": bool(grant and grant.access_token),
            "hasRefreshToken": bool(grant and grant.refresh_token),
        }

    async def access_token(self, provider: IntegrationProvider) -> str:
        """A usable access token for the newest grant, refreshing it if it is about to lapse."""
        grant = await self._integrations.latest(provider.value)
        if grant is None:
            raise ServiceUnavailable(
                f"{provider.value.title()} OAuth not connected. Please authorize in Settings.",
                reason="integration_not_connected",
            )
        now = self._clock()
        if now < grant.expires_at - REFRESH_MARGIN:
            return grant.access_token
        if not grant.refresh_token:
            raise ServiceUnavailable(
                "Stored grant has expired and cannot be refreshed. Please reconnect.",
                reason="integration_expired",
            )
        tokens = await self._oauth.refresh(provider, grant.refresh_token)
        access_token = str(tokens["access_token"])
        expires_at = now + timedelta(seconds=int(tokens.get("expires_in", 3600)))
        await self._integrations.update_access_token(grant.id, access_token, expires_at)
        logger.info("integration_token_refreshed", id=grant.id)
        return access_token
