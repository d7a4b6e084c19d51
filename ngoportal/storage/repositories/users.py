"""Account repository: the single source of truth for role claims."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlmodel import col, select
from sqlmodel.ext.asyncio.session import AsyncSession

from ngoportal.models.database import UserAccount, _utc_now

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

logger = structlog.get_logger(__name__)

# Capability flags that mirror a primary role.
ROLE_FLAGS = ("beam_admin", "partner_admin", "board")


class UserRepository:
    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine

    async def get(self, uid: str) -> UserAccount | None:
        async with AsyncSession(self._engine) as session:
            return await session.get(UserAccount, uid)

    async def get_by_email(self, email: str) -> UserAccount | None:
        async with AsyncSession(self._engine) as session:
            result = await session.exec(
                select(UserAccount).where(col(UserAccount.email) == email.strip().lower())
            )
            return result.first()

    async def ensure(self, uid: str, email: str = "", display_name: str = "") -> UserAccount:
        """Return the account for ``uid``, creating it on first sight."""
        existing = await self.get(uid)
        if existing:
            return existing
        account = UserAccount(uid=uid, email=email.strip().lower(), display_name=display_name)
        try:
            async with AsyncSession(self._engine) as session:
                session.add(account)
                await session.commit()
                await session.refresh(account)
        except IntegrityError:
            # Another request registered the same subject first.
            found = await self.get(uid)
            if found is None:
                raise
            return found
        logger.info("user_registered", uid=uid)
        return account

    async def set_role(self, uid: str, role: str) -> UserAccount | None:
        """Set the primary role and turn on its matching capability flag."""
        async with AsyncSession(self._engine) as session:
            account = await session.get(UserAccount, uid)
            if account is None:
                return None
            account.role = role
            # Role flags mirror the primary role; a previous role flag is cleared.
            for flag in ROLE_FLAGS:
                setattr(account, flag, flag == role)
            if role == "subscriber":
                account.subscriber = True
            account.updated_at = _utc_now()
            session.add(account)
            await session.commit()
            await session.refresh(account)
            logger.info("user_role_set", uid=uid, role=role)
            return account

    async def set_subscriber(self, uid: str, active: bool, customer_id: str | None = None) -> None:
        values: dict[str, object] = {"subscriber": active, "updated_at": _utc_now()}
        if customer_id:
            values["stripe_customer_id"] = customer_id
        async with self._engine.begin() as conn:
            result = await conn.execute(
                update(UserAccount).where(col(UserAccount.uid) == uid).values(**values)
            )
        if result.rowcount == 0:
            await self.ensure(uid)
            async with self._engine.begin() as conn:
                await conn.execute(
                    update(UserAccount).where(col(UserAccount.uid) == uid).values(**values)
                )
        logger.info("user_subscriber_set", uid=uid, active=active)

    async def claim_customer_id(self, uid: str, customer_id: str) -> str:
        """Store ``customer_id`` only if none is set yet; return the id that is stored."""
        async with self._engine.begin() as conn:
            await conn.execute(
                update(UserAccount)
                .where(
                    col(UserAccount.uid) == uid,
                    col(UserAccount.stripe_customer_id).is_(None),
                )
                .values(stripe_customer_id=customer_id, updated_at=_utc_now())
            )
        account = await self.get(uid)
        if account is None or account.stripe_customer_id is None:
            msg = f"account {uid} vanished while storing customer id"
            raise LookupError(msg)
        return account.stripe_customer_id

