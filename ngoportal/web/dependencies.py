"""Service container and FastAPI dependencies.

Everything a handler needs is built once per application by ``build_services``
and stored on ``app.state.services``; handlers receive it through ``Depends``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

import httpx
import structlog
from fastapi import Depends, Header, Request

from ngoportal.audit.logger import AuditLogger
from ngoportal.auth.gate import AuthGate, AuthPolicy, Authorized
from ngoportal.auth.verifier import TokenVerifier
from ngoportal.billing.checkout import CheckoutService
from ngoportal.billing.stripe_client import StripeClient
from ngoportal.billing.webhooks import WebhookProcessor
from ngoportal.integrations.candidates import SearchBridge
from ngoportal.integrations.credentials import CredentialService
from ngoportal.integrations.google import GoogleWorkspaceClient
from ngoportal.integrations.oauth import OAuthClient
from ngoportal.notifications.mailer import Mailer, NotificationService, SmtpConfig
from ngoportal.storage.database import create_engine
from ngoportal.storage.repositories.integrations import IntegrationRepository, RosterRepository
from ngoportal.storage.repositories.payments import DonationRepository, SubscriptionRepository
from ngoportal.storage.repositories.prospects import ProspectRepository
from ngoportal.storage.repositories.requests import RequestRepository
from ngoportal.storage.repositories.slides import HomeSlidesRepository
from ngoportal.storage.repositories.users import UserRepository
from ngoportal.types import Capability
from ngoportal.workflows.intake import IntakeService
from ngoportal.workflows.invitations import InvitationService

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

    from ngoportal.config.settings import Settings

logger = structlog.get_logger(__name__)


@dataclass
class Services:
    settings: Settings
    engine: AsyncEngine
    http: httpx.AsyncClient
    users: UserRepository
    slides: HomeSlidesRepository
    integrations: IntegrationRepository
    gate: AuthGate
    intake: IntakeService
    invitations: InvitationService
    checkout: CheckoutService
    webhooks: WebhookProcessor
    oauth: OAuthClient
    credentials: CredentialService
    search: SearchBridge
    notifications: NotificationService
    audit: AuditLogger

    async def aclose(self) -> None:
        await self.http.aclose()
        await self.engine.dispose()
        logger.info("services_closed")


def build_services(
    settings: Settings,
    *,
    engine: AsyncEngine | None = None,
    http: httpx.AsyncClient | None = None,
) -> Services:
    """Wire every collaborator from settings. Tests pass their own engine and HTTP client."""
    engine = engine or create_engine(settings)
    http = http or httpx.AsyncClient(timeout=httpx.Timeout(settings.http_timeout_seconds))

    users = UserRepository(engine)
    integrations = IntegrationRepository(engine)
    stripe = StripeClient.from_settings(settings, http)
    oauth = OAuthClient.from_settings(settings, http)
    credentials = CredentialService(oauth, integrations, users)
    gate = AuthGate(
        TokenVerifier.from_settings(settings, http),
        users,
        policy=AuthPolicy(settings.auth_policy),
    )

    return Services(
        settings=settings,
        engine=engine,
        http=http,
        users=users,
        slides=HomeSlidesRepository(engine),
        integrations=integrations,
        gate=gate,
        intake=IntakeService(RequestRepository(engine), users),
        invitations=InvitationService(
            ProspectRepository(engine),
            app_base_url=settings.app_base_url,
            default_project_id=settings.default_project_id,
            ttl_days=settings.invitation_ttl_days,
        ),
        checkout=CheckoutService(
            stripe,
            users,
            price_id=settings.stripe_price_id,
            app_base_url=settings.app_base_url,
        ),
        webhooks=WebhookProcessor(
            secret=settings.stripe_webhook_secret,
            stripe=stripe,
            donations=DonationRepository(engine),
            subscriptions=SubscriptionRepository(engine),
            users=users,
        ),
        oauth=oauth,
        credentials=credentials,
        search=SearchBridge(
            credentials,
            GoogleWorkspaceClient(http),
            RosterRepository(engine),
            batch_size=settings.membership_batch_size,
            gmail_default_query=settings.gmail_default_query,
            drive_default_query=settings.drive_default_query,
        ),
        notifications=NotificationService(
            Mailer(SmtpConfig.from_settings(settings)),
            recipients=settings.notify_recipients,
        ),
        audit=AuditLogger(engine),
    )


def get_services(request: Request) -> Services:
    services: Services = request.app.state.services
    return services


async def require_user(
    services: Services = Depends(get_services),
    authorization: str | None = Header(default=None),
) -> Authorized:
    return await services.gate.authorize(authorization, Capability.AUTHENTICATED)


async def require_admin(
    services: Services = Depends(get_services),
    authorization: str | None = Header(default=None),
) -> Authorized:
    return await services.gate.authorize(authorization, Capability.ADMIN)


async def require_subscriber(
    services: Services = Depends(get_services),
    authorization: str | None = Header(default=None),
) -> Authorized:
    return await services.gate.authorize(authorization, Capability.SUBSCRIBER)


async def require_admin_or_bypass(
    services: Services = Depends(get_services),
    authorization: str | None = Header(default=None),
) -> Authorized:
    """Admin gate that the development bypass policy may waive."""
    return await services.gate.authorize(authorization, Capability.ADMIN, allow_bypass=True)


def client_context(request: Request) -> dict[str, str]:
    """IP and request id for audit entries."""
    return {
        "ip_address": request.client.host if request.client else "",
        "request_id": str(structlog.contextvars.get_contextvars().get("request_id", "")),
    }
