"""Checkout session creation for subscriptions and one-off donations."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import structlog
from sqlalchemy.exc import IntegrityError

from ngoportal.exceptions import ServiceUnavailable, ValidationFailed
from ngoportal.utils.sanitize import clean_text, positive_number

if TYPE_CHECKING:
    from ngoportal.billing.stripe_client import StripeClient
    from ngoportal.storage.repositories.users import UserRepository

logger = structlog.get_logger(__name__)

_SESSION_ID = re.compile(r"cs_[A-Za-z0-9_]+")


@dataclass(frozen=True, slots=True)
class CheckoutSession:
    session_id: str
    url: str | None


class CheckoutService:
    def __init__(
        self,
        stripe: StripeClient,
        users: UserRepository,
        *,
        price_id: str | None,
        app_base_url: str,
    ) -> None:
        self._stripe = stripe
        self._users = users
        self._price_id = price_id
        self._base_url = app_base_url.rstrip("/")

    async def get_or_create_customer(self, subject_id: str, email: str) -> str:
        """Provider customer id for ``subject_id``, created at most once."""
        account = await self._users.ensure(subject_id, email)
        if account.stripe_customer_id:
            return account.stripe_customer_id

        customer = await self._stripe.create_customer(email=email, user_id=subject_id)
        try:
            stored = await self._users.claim_customer_id(subject_id, customer["id"])
        except IntegrityError:
            # The provider returned an id already bound elsewhere; trust what is stored.
            account = await self._users.get(subject_id)
            if account is None or not account.stripe_customer_id:
                raise
            stored = account.stripe_customer_id
        if stored != customer["id"]:
            logger.info("stripe_customer_race_resolved", uid=subject_id, kept=stored)
        else:
            logger.info("stripe_customer_created", uid=subject_id, customer_id=stored)
        return stored

    async def create_subscription_checkout(self, subject_id: str, email: str) -> CheckoutSession:
        if not self._stripe.configured or not self._price_id:
            raise ServiceUnavailable(
                "Stripe price ID not configured",
                detail="STRIPE_SECRET_KEY and STRIPE_PRICE_ID are required",
            )
        customer_id = await self.get_or_create_customer(subject_id, email)
        session = await self._stripe.create_checkout_session(
            {
                "customer": customer_id,
                "payment_method_types": ["card"],
                "line_items": [{"price": self._price_id, "quantity": 1}],
                "mode": "subscription",
                "success_url": f"{self._base_url}/subscribe/success"
                "?session_id={CHECKOUT_SESSION_ID}",
                "cancel_url": f"{self._base_url}/subscribe/canceled",
                "metadata": {"userId": subject_id, "userEmail": email},
            }
        )
        logger.info("subscription_checkout_created", uid=subject_id, session_id=session["id"])
        return CheckoutSession(session_id=session["id"], url=session.get("url"))

    async def create_donation_checkout(self, payload: dict[str, Any]) -> CheckoutSession:
        amount = positive_number(payload.get("amount"))
        if amount is None or int(amount) != amount:
            raise ValidationFailed("Invalid donation amount", reason="invalid_amount")
        musician_name = clean_text(payload.get("musicianName"))
        musician_email = clean_text(payload.get("musicianEmail"))
        if not musician_name or not musician_email:
            raise ValidationFailed("Musician information is required")

        anonymous = payload.get("isAnonymous") is True
        donor_email = clean_text(payload.get("donorEmail"))
        message = clean_text(payload.get("message"))
        session = await self._stripe.create_checkout_session(
            {
                "payment_method_types": ["card"],
                "line_items": [
                    {
                        "price_data": {
                            "currency": "usd",
                            "product_data": {
                                "name": f"Donation to {musician_name}",
                                "description": message
                                or f"Donation to support {musician_name}'s musical work",
                            },
                            "unit_amount": int(amount),
                        },
                        "quantity": 1,
                    }
                ],
                "mode": "payment",
                "success_url": f"{self._base_url}/donations/success"
                "?session_id={CHECKOUT_SESSION_ID}",
                "cancel_url": f"{self._base_url}?canceled=true",
                "metadata": {
                    "donorName": "Anonymous" if anonymous else clean_text(payload.get("donorName")),
                    "donorEmail": donor_email,
                    "musicianName": musician_name,
                    "musicianEmail": musician_email,
                    "message": message,
                    "isAnonymous": anonymous,
                },
                "customer_email": donor_email if donor_email and not anonymous else None,
            }
        )
        logger.info("donation_checkout_created", session_id=session["id"], amount_cents=int(amount))
        return CheckoutSession(session_id=session["id"], url=session.get("url"))

    async def verify_donation(self, session_id: str | None) -> dict[str, Any]:
        if not session_id:
            raise ValidationFailed("Session ID is required")
        if not _SESSION_ID.fullmatch(session_id):
            raise ValidationFailed("Invalid session ID", reason="invalid_session_id")
        session = await self._stripe.retrieve_checkout_session(session_id)
        metadata = session.get("metadata") or {}
        total = session.get("amount_total")
        return {
            "amount": f"{total / 100:.2f}" if total else "0.00",
            "musicianName": metadata.get("musicianName"),
            "donorName": metadata.get("donorName"),
            "message": metadata.get("message"),
            "isAnonymous": metadata.get("isAnonymous") == "true",
        }
