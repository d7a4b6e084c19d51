"""Tenant portal content: config, copy, navigation and home slides."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query

from ngoportal.portal.context import get_portal_context, get_portal_nav
from ngoportal.portal.slides import sanitize_home_slides
from ngoportal.web.dependencies import Services, get_services

router = APIRouter(prefix="/api", tags=["portal"])


def _portal_payload(tenant: str | None, scoped: bool) -> dict[str, Any]:
    context = get_portal_context(tenant)
    return {
        "config": context.config.to_wire(),
        "locale": context.locale,
        "nav": [item.to_wire() for item in get_portal_nav(context.config.id, scoped)],
    }


@router.get("/portal")
async def default_portal(scoped: bool = Query(default=False)) -> dict[str, Any]:
    return _portal_payload(None, scoped)


@router.get("/portal/{tenant}")
async def tenant_portal(tenant: str, scoped: bool = Query(default=False)) -> dict[str, Any]:
    return _portal_payload(tenant, scoped)


def tenant_key(ngo: str | None, default: str) -> str:
    return (ngo or "").strip() or default


@router.get("/home-slides")
async def public_home_slides(
    ngo: str | None = Query(default=None),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    stored = await services.slides.get(tenant_key(ngo, services.settings.default_tenant))
    slides = sanitize_home_slides(stored) if stored is not None else []
    return {"slides": [slide.to_wire() for slide in slides]}
