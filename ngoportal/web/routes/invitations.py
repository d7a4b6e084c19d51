"""Invitation routes. Lookup and confirmation use the emailed token as their only credential."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends, Query, Request

from ngoportal.auth.gate import Authorized
from ngoportal.utils.sanitize import clean_optional
from ngoportal.web.dependencies import Services, client_context, get_services, require_admin
from ngoportal.workflows.invitations import Responder

router = APIRouter(prefix="/api", tags=["invitations"])


@router.post("/invite")
async def create_invite(
    request: Request,
    payload: dict[str, Any] = Body(...),
    admin: Authorized = Depends(require_admin),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    created = await services.invitations.create_invitation(admin.subject_id, payload)
    await services.audit.log(
        user_id=admin.subject_id,
        action="invitation.create",
        resource_type="prospect",
        resource_id=created.prospect_id,
        **client_context(request),
    )
    return {
        "success": True,
        "prospectId": created.prospect_id,
        "confirmationUrl": created.confirmation_url,
        "message": "Invite created successfully. Send the confirmation URL to the musician.",
    }


@router.get("/prospect")
async def get_prospect(
    prospect_id: str | None = Query(default=None, alias="prospectId"),
    token: str | None = Query(default=None),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    prospect = await services.invitations.get_invitation(prospect_id, token)
    return {"prospect": prospect}


@router.post("/confirm-invite")
async def confirm_invite(
    request: Request,
    payload: dict[str, Any] = Body(...),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    prospect_id = clean_optional(payload.get("prospectId"))
    decision = payload.get("decision")
    responder = Responder(
        user_id=clean_optional(payload.get("userId")),
        email=clean_optional(payload.get("userEmail")),
    )
    status = await services.invitations.confirm(
        prospect_id,
        clean_optional(payload.get("token")),
        decision,
        responder,
    )
    await services.audit.log(
        user_id=responder.user_id or "anonymous",
        action=f"invitation.{status}",
        resource_type="prospect",
        resource_id=prospect_id or "",
        **client_context(request),
    )
    return {"success": True, "message": f"Invitation {status} successfully", "status": status}
