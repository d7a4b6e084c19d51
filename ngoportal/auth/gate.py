"""Authorization gate: bearer header -> verified identity -> role claim -> capability."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING

import jwt
import structlog

from ngoportal.auth.roles import RoleClaim, resolve_role_claim
from ngoportal.exceptions import Forbidden, Unauthenticated
from ngoportal.types import Capability

if TYPE_CHECKING:
    from ngoportal.auth.verifier import TokenVerifier
    from ngoportal.storage.repositories.users import UserRepository

logger = structlog.get_logger(__name__)

BYPASS_SUBJECT = "development-bypass"

_DENIED_MESSAGES = {
    Capability.ADMIN: "Insufficient permissions. Admin role required.",
    Capability.SUBSCRIBER: "Subscriber account required.",
}


class AuthPolicy(StrEnum):
    STRICT = "strict"
    DEVELOPMENT_BYPASS = "development_bypass"


@dataclass(frozen=True, slots=True)
class Authorized:
    subject_id: str
    claims: RoleClaim
    email: str = ""
    name: str = ""
    bypassed: bool = False


def extract_bearer(authorization: str | None) -> str | None:
    if not authorization or not authorization.startswith("Bearer "):
        return None
    token = authorization[len("Bearer ") :].strip()
    return token or None


class AuthGate:
    """Checks run cheapest-first so malformed requests never reach the verifier."""

    def __init__(
        self,
        verifier: TokenVerifier,
        users: UserRepository,
        policy: AuthPolicy = AuthPolicy.STRICT,
    ) -> None:
        self._verifier = verifier
        self._users = users
        self.policy = policy

    async def authorize(
        self,
        authorization: str | None,
        capability: Capability = Capability.AUTHENTICATED,
        *,
        allow_bypass: bool = False,
    ) -> Authorized:
        if allow_bypass and self.policy == AuthPolicy.DEVELOPMENT_BYPASS:
            logger.debug("auth_bypassed", capability=capability)
            return Authorized(
                subject_id=BYPASS_SUBJECT,
                claims=RoleClaim(beam_admin=True),
                bypassed=True,
            )

        token = extract_bearer(authorization)
        if token is None:
            raise Unauthenticated(reason="missing_token")

        try:
            identity = await self._verifier.verify(token)
        except jwt.PyJWTError as exc:
            logger.warning("token_invalid", error=str(exc))
            raise Unauthenticated("Invalid authorization token", reason="invalid_token") from exc

        account = await self._users.ensure(identity.sub, identity.email, identity.name)
        claims = resolve_role_claim(account, identity)
        if not claims.grants(capability):
            logger.info("authorization_denied", uid=identity.sub, capability=capability)
            raise Forbidden(_DENIED_MESSAGES.get(capability, "Insufficient permissions"))

        return Authorized(
            subject_id=identity.sub,
            claims=claims,
            email=identity.email,
            name=identity.name,
        )
