"""Prospect (invitation) repository with a compare-and-set status transition."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import structlog
from sqlalchemy import update
from sqlmodel import col
from sqlmodel.ext.asyncio.session import AsyncSession

from ngoportal.models.database import Prospect

if TYPE_CHECKING:
    from datetime import datetime

    from sqlalchemy.ext.asyncio import AsyncEngine

logger = structlog.get_logger(__name__)


class ProspectRepository:
    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine

    async def create(self, prospect: Prospect) -> Prospect:
        async with AsyncSession(self._engine) as session:
            session.add(prospect)
            await session.commit()
            await session.refresh(prospect)
        logger.info("prospect_created", id=prospect.id, project_id=prospect.project_id)
        return prospect

    async def get(self, prospect_id: str) -> Prospect | None:
        async with AsyncSession(self._engine) as session:
            return await session.get(Prospect, prospect_id)

    async def transition(
        self,
        prospect_id: str,
        token: str,
        now: datetime,
        **changes: Any,
    ) -> bool:
        """Apply ``changes`` only if the record is still pending, unexpired and the token matches.

        Runs as one conditional UPDATE so two concurrent responses cannot both win.
        """
        async with self._engine.begin() as conn:
            result = await conn.execute(
                update(Prospect)
                .where(
                    col(Prospect.id) == prospect_id,
                    col(Prospect.confirmation_token) == token,
                    col(Prospect.status) == "pending",
                    col(Prospect.expires_at) > now,
                )
                .values(updated_at=now, **changes)
            )
        won = result.rowcount == 1
        logger.info(
            "prospect_transition", id=prospect_id, applied=won, status=changes.get("status")
        )
        return won
