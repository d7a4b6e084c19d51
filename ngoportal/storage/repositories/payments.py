"""Donation and subscription records reconciled from payment webhooks."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import structlog
from sqlalchemy.exc import IntegrityError
from sqlmodel import col, select
from sqlmodel.ext.asyncio.session import AsyncSession

from ngoportal.models.database import Donation, SubscriptionRecord, _utc_now

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

logger = structlog.get_logger(__name__)


class DonationRepository:
    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine

    async def add(self, donation: Donation) -> Donation | None:
        """Insert a donation; a redelivered checkout session returns ``None``."""
        try:
            async with AsyncSession(self._engine) as session:
                session.add(donation)
                await session.commit()
                await session.refresh(donation)
        except IntegrityError:
            logger.info("donation_duplicate_ignored", stripe_session_id=donation.stripe_session_id)
            return None
        logger.info("donation_saved", id=donation.id, amount=donation.amount)
        return donation

    async def list_all(self) -> list[Donation]:
        async with AsyncSession(self._engine) as session:
            result = await session.exec(select(Donation).order_by(col(Donation.created_at)))
            return list(result.all())


class SubscriptionRepository:
    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine

    async def get(self, subscription_id: str) -> SubscriptionRecord | None:
        async with AsyncSession(self._engine) as session:
            return await session.get(SubscriptionRecord, subscription_id)

    async def upsert(self, record: SubscriptionRecord) -> SubscriptionRecord:
        async with AsyncSession(self._engine) as session:
            merged = await session.merge(record)
            await session.commit()
            await session.refresh(merged)
            logger.info(
                "subscription_saved",
                id=merged.stripe_subscription_id,
                status=merged.status,
                user_id=merged.user_id,
            )
            return merged

    async def update(self, subscription_id: str, **changes: Any) -> SubscriptionRecord | None:
        async with AsyncSession(self._engine) as session:
            record = await session.get(SubscriptionRecord, subscription_id)
            if record is None:
                return None
            for key, value in changes.items():
                setattr(record, key, value)
            record.updated_at = _utc_now()
            session.add(record)
            await session.commit()
            await session.refresh(record)
            return record
