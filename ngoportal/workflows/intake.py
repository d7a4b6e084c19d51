"""Request intake: structural validation then a single pending record per submission."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import structlog

from ngoportal.exceptions import ValidationFailed
from ngoportal.models.database import AdminRoleRequest, AdminStaffJoinRequest, BookingRequest
from ngoportal.models.domain import AreaSelection
from ngoportal.storage.repositories.requests import InsufficientCreditsError
from ngoportal.types import AreaId, BookingKind
from ngoportal.utils.sanitize import clean_optional, clean_str_list, clean_text, positive_number

if TYPE_CHECKING:
    from ngoportal.storage.repositories.requests import RequestRepository
    from ngoportal.storage.repositories.users import UserRepository

logger = structlog.get_logger(__name__)

VALID_AREA_IDS = frozenset(a.value for a in AreaId)


@dataclass(frozen=True, slots=True)
class BookingReceipt:
    booking_request_id: str
    remaining_credits: float
    monthly_allotment: float


def parse_selection(raw: Any) -> AreaSelection | None:
    """Clean one area selection, or ``None`` when it is structurally invalid."""
    if not isinstance(raw, dict):
        return None
    area_id = raw.get("areaId")
    if not isinstance(area_id, str) or area_id not in VALID_AREA_IDS:
        return None
    area_title = clean_text(raw.get("areaTitle"))
    role_ids = clean_str_list(raw.get("roleIds"))
    role_titles = clean_str_list(raw.get("roleTitles"))
    if not area_title or not role_ids or not role_titles:
        return None
    return AreaSelection(
        area_id=AreaId(area_id),
        area_title=area_title,
        role_ids=role_ids,
        role_titles=role_titles,
        intent=clean_text(raw.get("intent")),
    )


def parse_selections(payload: dict[str, Any]) -> list[AreaSelection]:
    """All selections, or ValidationFailed. One bad selection rejects the lot."""
    raw = payload.get("selections")
    selections = raw if isinstance(raw, list) else []
    if not selections:
        raise ValidationFailed(
            "Select at least one area before submitting.", reason="no_selections"
        )
    cleaned = [parse_selection(item) for item in selections]
    if any(item is None for item in cleaned):
        raise ValidationFailed(
            "Each selected area needs at least one role.", reason="invalid_selection"
        )
    return [item for item in cleaned if item is not None]


class IntakeService:
    def __init__(self, requests: RequestRepository, users: UserRepository) -> None:
        self._requests = requests
        self._users = users

    async def submit_admin_staff_request(self, subject_id: str, payload: dict[str, Any]) -> str:
        selections = parse_selections(payload)
        record = AdminStaffJoinRequest(
            user_id=subject_id,
            selections_json=json.dumps([s.to_wire() for s in selections]),
        )
        request_id = await self._requests.add_admin_staff_request(record)
        logger.info("admin_staff_request_created", id=request_id, selections=len(selections))
        return request_id

    async def submit_admin_role_request(self, subject_id: str, payload: dict[str, Any]) -> str:
        role_id = clean_text(payload.get("roleId"))
        role_label = clean_text(payload.get("roleLabel"))
        if not role_id or not role_label:
            raise ValidationFailed("roleId and roleLabel are required.")
        record = AdminRoleRequest(
            user_id=subject_id,
            role_id=role_id,
            role_label=role_label,
            area_id=clean_optional(payload.get("areaId")),
            area_title=clean_optional(payload.get("areaTitle")),
        )
        return await self._requests.add_admin_role_request(record)

    async def submit_booking(self, subject_id: str, payload: dict[str, Any]) -> BookingReceipt:
        """Store a booking and deduct its credits.

        The caller must already hold the subscriber capability.
        """
        date = clean_text(payload.get("date"))
        location = clean_text(payload.get("location"))
        instrumentation = clean_text(payload.get("instrumentation"))
        if not date or not location or not instrumentation:
            raise ValidationFailed("Date, location, and instrumentation are required.")
        credits = positive_number(payload.get("creditsToUse"))
        if credits is None:
            raise ValidationFailed("creditsToUse must be greater than 0.", reason="invalid_credits")

        record = BookingRequest(
            user_id=subject_id,
            kind=BookingKind.BOOKING.value,
            date=date,
            location=location,
            instrumentation=instrumentation,
            notes=clean_text(payload.get("notes")),
            credits_used=credits,
        )
        try:
            remaining = await self._requests.add_booking_with_credits(record, credits)
        except InsufficientCreditsError as exc:
            logger.info("booking_insufficient_credits", uid=subject_id, requested=credits)
            raise ValidationFailed(
                "Not enough credits available.", reason="insufficient_credits"
            ) from exc

        account = await self._users.get(subject_id)
        allotment = (
            account.monthly_credit_allotment
            if account is not None and account.monthly_credit_allotment is not None
            else remaining + credits
        )
        return BookingReceipt(
            booking_request_id=record.id,
            remaining_credits=remaining,
            monthly_allotment=allotment,
        )

    async def submit_community_booking(self, subject_id: str, payload: dict[str, Any]) -> str:
        orchestra_id = clean_text(payload.get("orchestraId"))
        orchestra_name = clean_text(payload.get("orchestraName"))
        instrument = clean_text(payload.get("instrument"))
        if not orchestra_id or not orchestra_name or not instrument:
            raise ValidationFailed("orchestraId, orchestraName, and instrument are required.")
        record = BookingRequest(
            user_id=subject_id,
            kind=BookingKind.COMMUNITY_INTEREST.value,
            orchestra_id=orchestra_id,
            orchestra_name=orchestra_name,
            instrument=instrument,
        )
        return await self._requests.add_community_booking(record)
