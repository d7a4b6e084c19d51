"""Insert-only audit trail for administrative writes.

Entries are written in their own session, so a failed request still leaves
its audit row behind. Details are stripped of credential-like keys and capped
at 10KB.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import col, select
from sqlmodel.ext.asyncio.session import AsyncSession

from ngoportal.models.database import AuditLog

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

logger = structlog.get_logger(__name__)

_SENSITIVE_FIELDS = frozenset(
    {
        "password",
        "secret",
        "token",
        "access_token",
        "refresh_token",
        "confirmation_token",
        "authorization",
        "api_key",
        "secret_key",
        "cookie",
        "code",
        "state",
    }
)

_MAX_DETAILS_BYTES = 10_240


def sanitize_details(details: dict[str, Any]) -> str:
    cleaned = {k: v for k, v in details.items() if k.lower() not in _SENSITIVE_FIELDS}
    encoded = json.dumps(cleaned, default=str)
    return encoded[:_MAX_DETAILS_BYTES]


class AuditLogger:
    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine

    async def log(
        self,
        *,
        user_id: str,
        action: str,
        resource_type: str = "",
        resource_id: str = "",
        details: dict[str, Any] | None = None,
        ip_address: str = "",
        request_id: str = "",
    ) -> None:
        entry = AuditLog(
            user_id=user_id,
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            details_json=sanitize_details(details or {}),
            ip_address=ip_address,
            request_id=request_id,
        )
        try:
            async with AsyncSession(self._engine) as session:
                session.add(entry)
                await session.commit()
        except SQLAlchemyError:
            # Audit must never break the request.
            logger.exception("audit_log_failed", action=action, user_id=user_id)

    async def recent(self, action: str | None = None, limit: int = 100) -> list[AuditLog]:
        statement = select(AuditLog).order_by(col(AuditLog.created_at).desc()).limit(limit)
        if action:
            statement = statement.where(col(AuditLog.action) == action)
        async with AsyncSession(self._engine) as session:
            result = await session.exec(statement)
            return list(result.all())
