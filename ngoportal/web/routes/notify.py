"""Outbound notification routes."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends

from ngoportal.auth.gate import Authorized
from ngoportal.web.dependencies import Services, get_services, require_admin

router = APIRouter(prefix="/api", tags=["notifications"])


@router.post("/send-text-invite")
async def send_text_invite(
    payload: dict[str, Any] = Body(...),
    admin: Authorized = Depends(require_admin),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    return await services.notifications.send_text_invite(payload)


@router.post("/documents/notify")
async def notify_document(
    payload: dict[str, Any] = Body(...),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    return await services.notifications.notify_document(payload)
