"""Health probe."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

if TYPE_CHECKING:
    from ngoportal.web.dependencies import Services

logger = structlog.get_logger(__name__)


async def check_health(services: Services) -> dict[str, object]:
    result: dict[str, object] = {
        "status": "healthy",
        "version": "0.1.0",
        "authPolicy": services.gate.policy.value,
        "database": "connected",
    }
    try:
        async with services.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError) as exc:
        logger.warning("health_check_db_failed", error=str(exc))
        result["database"] = "unavailable"
        result["status"] = "degraded"
    return result
