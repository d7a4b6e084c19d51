"""Persistence for intake requests (join requests, admin-role requests, bookings)."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog
from sqlalchemy import insert, update
from sqlmodel import col, func, select
from sqlmodel.ext.asyncio.session import AsyncSession

from ngoportal.models.database import (
    AdminRoleRequest,
    AdminStaffJoinRequest,
    BookingRequest,
    UserAccount,
    _utc_now,
)

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine
    from sqlmodel import SQLModel

logger = structlog.get_logger(__name__)


class InsufficientCreditsError(Exception):
    pass


class RequestRepository:
    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine

    async def _add(self, record: SQLModel) -> str:
        async with AsyncSession(self._engine) as session:
            session.add(record)
            await session.commit()
            await session.refresh(record)
            record_id: str = record.id  # type: ignore[attr-defined]
        logger.info("request_persisted", table=record.__tablename__, id=record_id)
        return record_id

    async def add_admin_staff_request(self, record: AdminStaffJoinRequest) -> str:
        return await self._add(record)

    async def add_admin_role_request(self, record: AdminRoleRequest) -> str:
        return await self._add(record)

    async def add_community_booking(self, record: BookingRequest) -> str:
        return await self._add(record)

    async def add_booking_with_credits(self, record: BookingRequest, credits: float) -> float:
        """Deduct ``credits`` from the requester and store the booking in one transaction.

        Returns the remaining balance. Raises InsufficientCreditsError without
        writing anything when the balance is too low.
        """
        async with self._engine.begin() as conn:
            deducted = await conn.execute(
                update(UserAccount)
                .where(
                    col(UserAccount.uid) == record.user_id,
                    col(UserAccount.booking_credits) >= credits,
                )
                .values(
                    booking_credits=UserAccount.booking_credits - credits,
                    updated_at=_utc_now(),
                )
                .returning(UserAccount.booking_credits)
            )
            row = deducted.first()
            if row is None:
                raise InsufficientCreditsError(record.user_id)
            await conn.execute(insert(BookingRequest).values(**record.model_dump()))
        logger.info("booking_persisted", id=record.id, user_id=record.user_id, credits=credits)
        return float(row[0])

    async def get_booking(self, booking_id: str) -> BookingRequest | None:
        async with AsyncSession(self._engine) as session:
            return await session.get(BookingRequest, booking_id)

    async def get_admin_staff_request(self, request_id: str) -> AdminStaffJoinRequest | None:
        async with AsyncSession(self._engine) as session:
            return await session.get(AdminStaffJoinRequest, request_id)

    async def count_admin_staff_requests(self, user_id: str) -> int:
        async with AsyncSession(self._engine) as session:
            result = await session.exec(
                select(func.count())
                .select_from(AdminStaffJoinRequest)
                .where(col(AdminStaffJoinRequest.user_id) == user_id)
            )
            return int(result.one())
