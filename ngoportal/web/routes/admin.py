"""Administrative routes: role assignment and home slide editing."""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import APIRouter, Body, Depends, Query, Request

from ngoportal.auth.gate import Authorized
from ngoportal.auth.roles import VALID_ROLES
from ngoportal.exceptions import NotFound, ValidationFailed
from ngoportal.portal.slides import MAX_SLIDES, sanitize_home_slides
from ngoportal.types import Role
from ngoportal.utils.sanitize import clean_text
from ngoportal.web.dependencies import (
    Services,
    client_context,
    get_services,
    require_admin,
    require_admin_or_bypass,
)
from ngoportal.web.routes.portal import tenant_key

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/admin", tags=["admin"])


@router.post("/set-role")
async def set_role(
    request: Request,
    payload: dict[str, Any] = Body(...),
    admin: Authorized = Depends(require_admin),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    email = clean_text(payload.get("email")).lower()
    role = clean_text(payload.get("role"))
    if not email or not role:
        raise ValidationFailed("Email and role are required")
    if role not in VALID_ROLES:
        raise ValidationFailed(
            f"Invalid role. Must be one of: {', '.join(r.value for r in Role)}",
            reason="invalid_role",
        )

    account = await services.users.get_by_email(email)
    if account is None:
        raise NotFound(
            f"User with email {email} not found. They must sign in at least once first.",
            reason="user_not_found",
        )
    updated = await services.users.set_role(account.uid, role)
    if updated is None:
        raise NotFound(f"User with email {email} not found.", reason="user_not_found")

    await services.audit.log(
        user_id=admin.subject_id,
        action="user.set_role",
        resource_type="user",
        resource_id=updated.uid,
        details={"email": email, "role": role},
        **client_context(request),
    )
    return {
        "success": True,
        "message": f'Set role "{role}" for {email}',
        "uid": updated.uid,
        "email": updated.email,
        "role": role,
    }


@router.get("/home-slides")
async def get_home_slides(
    ngo: str | None = Query(default=None),
    editor: Authorized = Depends(require_admin_or_bypass),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    stored = await services.slides.get(tenant_key(ngo, services.settings.default_tenant))
    slides = sanitize_home_slides(stored) if stored is not None else []
    return {"slides": [slide.to_wire() for slide in slides]}


@router.put("/home-slides")
async def put_home_slides(
    request: Request,
    payload: dict[str, Any] = Body(...),
    editor: Authorized = Depends(require_admin_or_bypass),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    ngo = payload.get("ngo")
    tenant = tenant_key(ngo if isinstance(ngo, str) else None, services.settings.default_tenant)
    slides = [s.to_wire() for s in sanitize_home_slides(payload.get("slides"))[:MAX_SLIDES]]
    await services.slides.put(tenant, slides)
    await services.audit.log(
        user_id=editor.subject_id,
        action="home_slides.update",
        resource_type="portal",
        resource_id=tenant,
        details={"count": len(slides), "bypassed": editor.bypassed},
        **client_context(request),
    )
    logger.info("home_slides_saved", tenant=tenant, count=len(slides))
    return {"success": True, "slides": slides}
