"""Per-tenant home slide documents."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from sqlmodel.ext.asyncio.session import AsyncSession

from ngoportal.models.database import HomeSlidesDocument, _utc_now

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine


class HomeSlidesRepository:
    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine

    async def get(self, tenant_id: str) -> list[dict[str, Any]] | None:
        """Raw stored slides, or ``None`` when the tenant has never saved any."""
        async with AsyncSession(self._engine) as session:
            doc = await session.get(HomeSlidesDocument, tenant_id)
            if doc is None:
                return None
            slides = json.loads(doc.slides_json)
            return slides if isinstance(slides, list) else []

    async def put(self, tenant_id: str, slides: list[dict[str, Any]]) -> None:
        async with AsyncSession(self._engine) as session:
            doc = await session.get(HomeSlidesDocument, tenant_id)
            if doc is None:
                doc = HomeSlidesDocument(tenant_id=tenant_id)
            doc.slides_json = json.dumps(slides)
            doc.updated_at = _utc_now()
            session.add(doc)
            await session.commit()
