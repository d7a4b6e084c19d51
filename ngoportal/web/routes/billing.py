"""Checkout and payment webhook routes."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends, Header, Query, Request

from ngoportal.auth.gate import Authorized
from ngoportal.web.dependencies import Services, get_services, require_user

router = APIRouter(prefix="/api", tags=["billing"])


@router.post("/subscribe")
async def subscribe(
    user: Authorized = Depends(require_user),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    session = await services.checkout.create_subscription_checkout(user.subject_id, user.email)
    return {"sessionId": session.session_id, "url": session.url}


@router.post("/donations/create-checkout")
async def create_donation_checkout(
    payload: dict[str, Any] = Body(...),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    session = await services.checkout.create_donation_checkout(payload)
    return {"sessionId": session.session_id, "url": session.url}


@router.get("/donations/verify")
async def verify_donation(
    session_id: str | None = Query(default=None),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    return await services.checkout.verify_donation(session_id)


async def _webhook(request: Request, services: Services, signature: str | None) -> dict[str, bool]:
    # The signature covers the exact bytes received, so the body is read raw.
    body = await request.body()
    return await services.webhooks.handle(body, signature)


@router.post("/donations/webhook")
async def donations_webhook(
    request: Request,
    stripe_signature: str | None = Header(default=None),
    services: Services = Depends(get_services),
) -> dict[str, bool]:
    return await _webhook(request, services, stripe_signature)


@router.post("/stripe/webhook")
async def stripe_webhook(
    request: Request,
    stripe_signature: str | None = Header(default=None),
    services: Services = Depends(get_services),
) -> dict[str, bool]:
    return await _webhook(request, services, stripe_signature)
