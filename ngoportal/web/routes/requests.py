"""Intake routes: join requests, admin-role requests and bookings."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends

from ngoportal.auth.gate import Authorized
from ngoportal.web.dependencies import Services, get_services, require_subscriber, require_user

router = APIRouter(prefix="/api", tags=["requests"])


@router.post("/admin-staff-requests")
async def create_admin_staff_request(
    payload: dict[str, Any] = Body(...),
    user: Authorized = Depends(require_user),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    request_id = await services.intake.submit_admin_staff_request(user.subject_id, payload)
    return {"success": True, "requestId": request_id}


@router.post("/admin-requests")
async def create_admin_request(
    payload: dict[str, Any] = Body(...),
    user: Authorized = Depends(require_user),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    request_id = await services.intake.submit_admin_role_request(user.subject_id, payload)
    return {"success": True, "adminRequestId": request_id}


@router.post("/bookings")
async def create_booking(
    payload: dict[str, Any] = Body(...),
    user: Authorized = Depends(require_subscriber),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    receipt = await services.intake.submit_booking(user.subject_id, payload)
    return {
        "success": True,
        "bookingRequestId": receipt.booking_request_id,
        "remainingCredits": receipt.remaining_credits,
        "monthlyAllotment": receipt.monthly_allotment,
    }


@router.post("/bookings/community")
async def create_community_booking(
    payload: dict[str, Any] = Body(...),
    user: Authorized = Depends(require_user),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    booking_id = await services.intake.submit_community_booking(user.subject_id, payload)
    return {"success": True, "bookingRequestId": booking_id}
