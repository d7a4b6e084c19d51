"""Musician invitations: creation, token lookup, and the one-shot confirm/decline transition.

A prospect moves ``pending -> confirmed`` or ``pending -> declined`` exactly
once. The transition is a single conditional UPDATE, so two concurrent
responses with the same valid token produce one winner; the loser re-reads
the record and gets the same error a later caller would.
"""

from __future__ import annotations

import secrets
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any
from urllib.parse import urlencode

import structlog

from ngoportal.exceptions import Conflict, Expired, InvalidToken, NotFound, ValidationFailed
from ngoportal.models.database import Prospect, _utc_now
from ngoportal.types import ProspectStatus
from ngoportal.utils.sanitize import clean_optional, clean_text

if TYPE_CHECKING:
    from ngoportal.storage.repositories.prospects import ProspectRepository

logger = structlog.get_logger(__name__)

DECISIONS = frozenset({ProspectStatus.CONFIRMED.value, ProspectStatus.DECLINED.value})


@dataclass(frozen=True, slots=True)
class CreatedInvitation:
    prospect_id: str
    confirmation_url: str
    token: str


@dataclass(frozen=True, slots=True)
class Responder:
    user_id: str | None = None
    email: str | None = None


def new_confirmation_token() -> str:
    """64 hex characters of CSPRNG output."""
    return secrets.token_hex(32)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() + "Z" if value is not None else None


def prospect_to_wire(prospect: Prospect) -> dict[str, Any]:
    """Public view of a prospect; the confirmation token never leaves the server."""
    return {
        "id": prospect.id,
        "name": prospect.name,
        "email": prospect.email,
        "phone": prospect.phone,
        "instrument": prospect.instrument,
        "projectId": prospect.project_id,
        "status": prospect.status,
        "invitedBy": prospect.invited_by,
        "invitedAt": _iso(prospect.invited_at),
        "expiresAt": _iso(prospect.expires_at),
        "confirmedAt": _iso(prospect.confirmed_at),
        "declinedAt": _iso(prospect.declined_at),
    }


class InvitationService:
    def __init__(
        self,
        prospects: ProspectRepository,
        *,
        app_base_url: str,
        default_project_id: str,
        ttl_days: int = 30,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._prospects = prospects
        self._base_url = app_base_url.rstrip("/")
        self._default_project_id = default_project_id
        self._ttl = timedelta(days=ttl_days)
        self._clock = clock

    def confirmation_url(self, prospect_id: str, token: str) -> str:
        query = urlencode({"token": token, "prospectId": prospect_id})
        return f"{self._base_url}/confirm-invite?{query}"

    async def create_invitation(
        self, inviter_id: str, payload: dict[str, Any]
    ) -> CreatedInvitation:
        name = clean_text(payload.get("name"))
        email = clean_optional(payload.get("email"))
        phone = clean_optional(payload.get("phone"))
        if not name or not (email or phone):
            raise ValidationFailed("Name and either email or phone are required")

        now = self._clock()
        token = new_confirmation_token()
        prospect = Prospect(
            name=name,
            email=email,
            phone=phone,
            instrument=clean_optional(payload.get("instrument")),
            project_id=clean_text(payload.get("projectId")) or self._default_project_id,
            confirmation_token=token,
            invited_by=inviter_id,
            invited_at=now,
            expires_at=now + self._ttl,
            created_at=now,
            updated_at=now,
        )
        prospect = await self._prospects.create(prospect)
        logger.info("invitation_created", prospect_id=prospect.id, inviter=inviter_id)
        return CreatedInvitation(
            prospect_id=prospect.id,
            confirmation_url=self.confirmation_url(prospect.id, token),
            token=token,
        )

    async def _load(self, prospect_id: str, token: str) -> Prospect:
        """Existence then token check, shared by lookup and confirm."""
        prospect = await self._prospects.get(prospect_id)
        if prospect is None:
            raise NotFound("Invitation not found", reason="invitation_not_found")
        if not secrets.compare_digest(prospect.confirmation_token.encode(), token.encode()):
            raise InvalidToken()
        return prospect

    def _check_open(self, prospect: Prospect, now: datetime) -> None:
        if now >= prospect.expires_at:
            raise Expired()
        if prospect.status != ProspectStatus.PENDING:
            raise Conflict(currentStatus=prospect.status)

    async def get_invitation(self, prospect_id: str | None, token: str | None) -> dict[str, Any]:
        if not prospect_id or not token:
            raise ValidationFailed("Missing prospectId or token")
        prospect = await self._load(prospect_id, token)
        self._check_open(prospect, self._clock())
        return prospect_to_wire(prospect)

    async def confirm(
        self,
        prospect_id: str | None,
        token: str | None,
        decision: Any,
        responder: Responder | None = None,
    ) -> str:
        """Apply ``decision`` and return the new status."""
        if not prospect_id or not token:
            raise ValidationFailed("Missing required fields")

        now = self._clock()
        prospect = await self._load(prospect_id, token)
        self._check_open(prospect, now)
        if not isinstance(decision, str) or decision not in DECISIONS:
            raise ValidationFailed(
                'Invalid decision. Must be "confirmed" or "declined"', reason="invalid_decision"
            )

        changes: dict[str, Any] = {"status": decision}
        if decision == ProspectStatus.CONFIRMED:
            changes["confirmed_at"] = now
            if responder is not None:
                if responder.user_id:
                    changes["confirmed_by_user_id"] = responder.user_id
                if responder.email:
                    changes["confirmed_by_email"] = responder.email
        else:
            changes["declined_at"] = now

        if not await self._prospects.transition(prospect_id, token, now, **changes):
            # Lost the race (or expired in between): report what the record says now.
            current = await self._load(prospect_id, token)
            self._check_open(current, now)
            raise Conflict(currentStatus=current.status)

        logger.info("invitation_responded", prospect_id=prospect_id, status=decision)
        return str(decision)
