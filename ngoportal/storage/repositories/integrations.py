"""OAuth integration credentials and the roster they are searched against."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog
from sqlmodel import col, select
from sqlmodel.ext.asyncio.session import AsyncSession

from ngoportal.models.database import Integration, RosterMusician, _utc_now

if TYPE_CHECKING:
    from collections.abc import Iterable
    from datetime import datetime

    from sqlalchemy.ext.asyncio import AsyncEngine

logger = structlog.get_logger(__name__)


class IntegrationRepository:
    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine

    async def upsert(self, integration: Integration) -> Integration:
        async with AsyncSession(self._engine) as session:
            existing = await session.get(Integration, integration.id)
            if existing is not None:
                integration.created_at = existing.created_at
                # Providers omit the refresh token on re-consent; keep the old one.
                integration.refresh_token = integration.refresh_token or existing.refresh_token
            integration.updated_at = _utc_now()
            merged = await session.merge(integration)
            await session.commit()
            await session.refresh(merged)
        logger.info("integration_saved", id=merged.id, provider=merged.provider)
        return merged

    async def get(self, integration_id: str) -> Integration | None:
        async with AsyncSession(self._engine) as session:
            return await session.get(Integration, integration_id)

    async def list_all(self, provider: str | None = None) -> list[Integration]:
        statement = select(Integration).order_by(col(Integration.created_at))
        if provider:
            statement = statement.where(col(Integration.provider) == provider)
        async with AsyncSession(self._engine) as session:
            result = await session.exec(statement)
            return list(result.all())

    async def latest(self, provider: str) -> Integration | None:
        """Most recently updated grant for a provider."""
        async with AsyncSession(self._engine) as session:
            result = await session.exec(
                select(Integration)
                .where(col(Integration.provider) == provider)
                .order_by(col(Integration.updated_at).desc())
                .limit(1)
            )
            return result.first()

    async def update_access_token(
        self, integration_id: str, access_token: str, expires_at: datetime
    ) -> None:
        async with AsyncSession(self._engine) as session:
            integration = await session.get(Integration, integration_id)
            if integration is None:
                return
            integration.access_token = access_token
            integration.expires_at = expires_at
            integration.updated_at = _utc_now()
            session.add(integration)
            await session.commit()

    async def delete(self, integration_id: str) -> bool:
        async with AsyncSession(self._engine) as session:
            integration = await session.get(Integration, integration_id)
            if integration is None:
                return False
            await session.delete(integration)
            await session.commit()
        logger.info("integration_deleted", id=integration_id)
        return True


class RosterRepository:
    """Existing musicians, keyed by lower-cased email."""

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine

    async def add(self, musician: RosterMusician) -> RosterMusician:
        musician.email = musician.email.strip().lower()
        async with AsyncSession(self._engine) as session:
            session.add(musician)
            await session.commit()
            await session.refresh(musician)
        return musician

    async def existing_emails(self, emails: Iterable[str]) -> set[str]:
        """Membership check for one batch; callers keep batches within the store's IN limit."""
        batch = [e.lower() for e in emails]
        if not batch:
            return set()
        async with AsyncSession(self._engine) as session:
            result = await session.exec(
                select(RosterMusician.email).where(col(RosterMusician.email).in_(batch))
            )
            return {email.lower() for email in result.all()}
