"""Payment webhook receiver: signature check first, then event reconciliation."""

from __future__ import annotations

import hashlib
import hmac
import json
import time
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import structlog

from ngoportal.exceptions import ServiceUnavailable, SignatureError
from ngoportal.models.database import Donation, SubscriptionRecord

if TYPE_CHECKING:
    from ngoportal.billing.stripe_client import StripeClient
    from ngoportal.storage.repositories.payments import DonationRepository, SubscriptionRepository
    from ngoportal.storage.repositories.users import UserRepository

logger = structlog.get_logger(__name__)

# Signature tolerance in seconds (5 minutes)
_SIGNATURE_TOLERANCE = 300

ACTIVE_STATUSES = frozenset({"active", "trialing"})


def sign_payload(payload: bytes, secret: str, timestamp: int) -> str:
    """``v1`` signature over ``"{timestamp}.{payload}"``."""
    signed = f"{timestamp}.".encode() + payload
    return hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()


def verify_stripe_signature(
    payload: bytes,
    header: str | None,
    secret: str,
    *,
    tolerance: int = _SIGNATURE_TOLERANCE,
    now: float | None = None,
) -> bool:
    """Check a ``t=...,v1=...`` signature header against the raw body."""
    if not header:
        return False
    timestamp: int | None = None
    candidates: list[str] = []
    for item in header.split(","):
        key, _, value = item.strip().partition("=")
        if key == "t":
            try:
                timestamp = int(value)
            except ValueError:
                return False
        elif key == "v1" and value:
            candidates.append(value)
    if timestamp is None or not candidates:
        return False

    current = time.time() if now is None else now
    if abs(current - timestamp) > tolerance:
        logger.warning("webhook_timestamp_expired", delta=abs(current - timestamp))
        return False

    expected = sign_payload(payload, secret, timestamp)
    return any(hmac.compare_digest(expected, candidate) for candidate in candidates)


def _from_epoch(value: Any) -> datetime | None:
    if not isinstance(value, int | float):
        return None
    return datetime.fromtimestamp(value, UTC).replace(tzinfo=None)


def _period(subscription: dict[str, Any], field: str) -> datetime | None:
    """Billing period bounds moved from the subscription onto its items in newer API versions."""
    if field in subscription:
        return _from_epoch(subscription[field])
    items = (subscription.get("items") or {}).get("data") or []
    return _from_epoch(items[0].get(field)) if items else None


def _price_id(subscription: dict[str, Any]) -> str:
    items = (subscription.get("items") or {}).get("data") or []
    if not items:
        return ""
    return str((items[0].get("price") or {}).get("id", ""))


class WebhookProcessor:
    def __init__(
        self,
        *,
        secret: str | None,
        stripe: StripeClient,
        donations: DonationRepository,
        subscriptions: SubscriptionRepository,
        users: UserRepository,
    ) -> None:
        self._secret = secret
        self._stripe = stripe
        self._donations = donations
        self._subscriptions = subscriptions
        self._users = users

    async def handle(self, raw_body: bytes, signature_header: str | None) -> dict[str, bool]:
        if not self._secret:
            logger.error("webhook_secret_missing")
            raise ServiceUnavailable("Webhook secret not configured")
        if not signature_header:
            raise SignatureError("Missing stripe-signature header", reason="missing_signature")
        if not verify_stripe_signature(raw_body, signature_header, self._secret):
            logger.warning("webhook_signature_invalid")
            raise SignatureError()

        try:
            event = json.loads(raw_body)
        except ValueError as exc:
            raise SignatureError("Malformed event payload", reason="invalid_payload") from exc
        if not isinstance(event, dict):
            raise SignatureError("Malformed event payload", reason="invalid_payload")

        event_type = event.get("type", "")
        data = event.get("data")
        obj = data.get("object") if isinstance(data, dict) else None
        if not isinstance(obj, dict):
            obj = {}
        logger.info("webhook_received", event_type=event_type, event_id=event.get("id"))

        if event_type == "checkout.session.completed":
            if obj.get("mode") == "subscription":
                await self._subscription_started(obj)
            else:
                await self._donation_completed(obj)
        elif event_type == "customer.subscription.updated":
            await self._subscription_changed(obj, obj.get("status", ""))
        elif event_type == "customer.subscription.deleted":
            await self._subscription_changed(obj, "canceled")
        else:
            logger.debug("webhook_event_ignored", event_type=event_type)
        return {"received": True}

    async def _donation_completed(self, session: dict[str, Any]) -> None:
        if not session.get("id"):
            logger.warning("donation_session_without_id")
            return
        metadata = session.get("metadata") or {}
        total = session.get("amount_total")
        donation = Donation(
            donor_name=metadata.get("donorName") or "Anonymous",
            donor_email=session.get("customer_email") or "",
            musician_name=metadata.get("musicianName") or "",
            musician_email=metadata.get("musicianEmail") or "",
            amount=total / 100 if total else 0,
            message=metadata.get("message") or "",
            anonymous=metadata.get("isAnonymous") == "true",
            stripe_session_id=str(session["id"]),
        )
        await self._donations.add(donation)

    async def _subscription_started(self, session: dict[str, Any]) -> None:
        subscription_id = session.get("subscription")
        metadata = session.get("metadata") or {}
        user_id = metadata.get("userId")
        if not subscription_id or not user_id:
            logger.error("subscription_session_incomplete", session_id=session.get("id"))
            return

        subscription = await self._stripe.retrieve_subscription(subscription_id)
        customer_id = str(subscription.get("customer", ""))
        await self._users.set_subscriber(user_id, True, customer_id or None)
        await self._subscriptions.upsert(
            SubscriptionRecord(
                stripe_subscription_id=subscription["id"],
                user_id=user_id,
                user_email=session.get("customer_email") or metadata.get("userEmail") or "",
                stripe_customer_id=customer_id,
                stripe_price_id=_price_id(subscription),
                status=subscription.get("status", ""),
                current_period_start=_period(subscription, "current_period_start"),
                current_period_end=_period(subscription, "current_period_end"),
                cancel_at_period_end=bool(subscription.get("cancel_at_period_end")),
            )
        )
        logger.info("subscription_activated", uid=user_id, subscription_id=subscription["id"])

    async def _subscription_changed(self, subscription: dict[str, Any], status: str) -> None:
        subscription_id = subscription.get("id", "")
        changes: dict[str, Any] = {"status": status}
        if status != "canceled":
            changes.update(
                current_period_start=_period(subscription, "current_period_start"),
                current_period_end=_period(subscription, "current_period_end"),
                cancel_at_period_end=bool(subscription.get("cancel_at_period_end")),
            )
        record = await self._subscriptions.update(subscription_id, **changes)
        if record is None:
            logger.warning("subscription_unknown", subscription_id=subscription_id)
            return
        await self._users.set_subscriber(record.user_id, status in ACTIVE_STATUSES)
        logger.info("subscription_updated", subscription_id=subscription_id, status=status)
