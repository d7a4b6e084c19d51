"""Connected account routes: OAuth connect/callback, credential admin, and mailbox/drive search."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends, Query, Request
from fastapi.responses import RedirectResponse

from ngoportal.auth.gate import Authorized
from ngoportal.exceptions import NotFound
from ngoportal.types import IntegrationProvider, SearchKind
from ngoportal.web.dependencies import Services, client_context, get_services, require_admin

router = APIRouter(prefix="/api", tags=["integrations"])


def _auth_url(services: Services, provider: IntegrationProvider, uid: str) -> dict[str, str]:
    url, state = services.oauth.authorization_url(provider, uid)
    return {"authUrl": url, "state": state}


@router.get("/google/auth")
async def google_auth(
    admin: Authorized = Depends(require_admin),
    services: Services = Depends(get_services),
) -> dict[str, str]:
    return _auth_url(services, IntegrationProvider.GOOGLE, admin.subject_id)


@router.get("/outlook/auth")
async def outlook_auth(
    admin: Authorized = Depends(require_admin),
    services: Services = Depends(get_services),
) -> dict[str, str]:
    return _auth_url(services, IntegrationProvider.OUTLOOK, admin.subject_id)


async def _callback(
    services: Services,
    provider: IntegrationProvider,
    code: str | None,
    state: str | None,
    error: str | None,
) -> RedirectResponse:
    target = await services.credentials.complete_connect(
        provider, code=code, state=state, error=error
    )
    return RedirectResponse(url=target, status_code=307)


@router.get("/google/oauth2callback")
async def google_callback(
    code: str | None = Query(default=None),
    state: str | None = Query(default=None),
    error: str | None = Query(default=None),
    services: Services = Depends(get_services),
) -> RedirectResponse:
    return await _callback(services, IntegrationProvider.GOOGLE, code, state, error)


@router.get("/outlook/oauth2callback")
async def outlook_callback(
    code: str | None = Query(default=None),
    state: str | None = Query(default=None),
    error: str | None = Query(default=None),
    services: Services = Depends(get_services),
) -> RedirectResponse:
    return await _callback(services, IntegrationProvider.OUTLOOK, code, state, error)


@router.get("/integrations")
async def list_integrations(
    provider: str | None = Query(default=None, alias="type"),
    admin: Authorized = Depends(require_admin),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    integrations = await services.credentials.list_integrations(provider)
    return {"integrations": integrations, "count": len(integrations)}


@router.delete("/integrations")
async def delete_integration(
    request: Request,
    integration_id: str | None = Query(default=None, alias="id"),
    admin: Authorized = Depends(require_admin),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    if not await services.credentials.remove(integration_id):
        raise NotFound("Integration not found", reason="integration_not_found")
    await services.audit.log(
        user_id=admin.subject_id,
        action="integration.delete",
        resource_type="integration",
        resource_id=integration_id or "",
        **client_context(request),
    )
    return {"success": True, "message": "Integration removed successfully"}


@router.get("/google/check")
async def google_check(
    admin: Authorized = Depends(require_admin),
    services: Services = Depends(get_services),
) -> dict[str, bool]:
    return await services.credentials.status(IntegrationProvider.GOOGLE)


@router.post("/google/gmail")
async def search_gmail(
    payload: dict[str, Any] = Body(default_factory=dict),
    admin: Authorized = Depends(require_admin),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    return await services.search.search(
        SearchKind.MAIL, payload.get("query"), payload.get("maxResults")
    )


@router.post("/google/docs")
async def search_drive(
    payload: dict[str, Any] = Body(default_factory=dict),
    admin: Authorized = Depends(require_admin),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    return await services.search.search(
        SearchKind.DRIVE, payload.get("query"), payload.get("maxResults")
    )
