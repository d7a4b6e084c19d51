"""Role claims and capability checks."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from ngoportal.types import Capability, Role

if TYPE_CHECKING:
    from ngoportal.auth.verifier import IdentityClaims
    from ngoportal.models.database import UserAccount

VALID_ROLES = frozenset(r.value for r in Role)


@dataclass(frozen=True, slots=True)
class RoleClaim:
    """Primary role tag plus the boolean capability flags that mirror it."""

    role: str | None = None
    beam_admin: bool = False
    partner_admin: bool = False
    board: bool = False
    subscriber: bool = False

    @property
    def is_empty(self) -> bool:
        return not (
            self.role or self.beam_admin or self.partner_admin or self.board or self.subscriber
        )

    @property
    def is_admin(self) -> bool:
        return self.role == Role.BEAM_ADMIN or self.beam_admin

    @property
    def is_subscriber(self) -> bool:
        return self.role == Role.SUBSCRIBER or self.subscriber

    def grants(self, capability: Capability) -> bool:
        if capability == Capability.ADMIN:
            return self.is_admin
        if capability == Capability.SUBSCRIBER:
            return self.is_subscriber
        return True

    @classmethod
    def from_account(cls, account: UserAccount) -> RoleClaim:
        return cls(
            role=account.role,
            beam_admin=account.beam_admin,
            partner_admin=account.partner_admin,
            board=account.board,
            subscriber=account.subscriber,
        )

    @classmethod
    def from_token(cls, claims: IdentityClaims) -> RoleClaim:
        role = claims.role if claims.role in VALID_ROLES else None
        return cls(
            role=role,
            beam_admin=claims.flag("beam_admin"),
            partner_admin=claims.flag("partner_admin"),
            board=claims.flag("board"),
            subscriber=claims.flag("subscriber") or claims.flag("beam_subscriber"),
        )


def resolve_role_claim(account: UserAccount | None, token: IdentityClaims) -> RoleClaim:
    """The account record is authoritative.

    Token claims only fill in for accounts that have no role or flags yet.
    """
    if account is not None:
        stored = RoleClaim.from_account(account)
        if not stored.is_empty:
            return stored
    return RoleClaim.from_token(token)
