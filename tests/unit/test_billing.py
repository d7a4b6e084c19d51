"""Payment provider client, checkout sessions and webhook reconciliation."""

from __future__ import annotations

import time
from urllib.parse import parse_qs

import httpx
import pytest

from ngoportal.billing.stripe_client import StripeClient, encode_form
from ngoportal.billing.webhooks import sign_payload, verify_stripe_signature
from ngoportal.exceptions import ServiceUnavailable, SignatureError, UpstreamError, ValidationFailed
from ngoportal.storage.repositories.payments import DonationRepository, SubscriptionRepository


def _form(request: httpx.Request) -> dict[str, list[str]]:
    return parse_qs(request.content.decode())


@pytest.mark.unit
class TestEncodeForm:
    def test_nested_keys(self) -> None:
        pairs = encode_form(
            {
                "customer": "cus_1",
                "line_items": [{"price": "price_1", "quantity": 1}],
                "metadata": {"userId": "u1", "isAnonymous": False},
                "customer_email": None,
            }
        )
        assert pairs == [
            ("customer", "cus_1"),
            ("line_items[0][price]", "price_1"),
            ("line_items[0][quantity]", "1"),
            ("metadata[userId]", "u1"),
            ("metadata[isAnonymous]", "false"),
        ]

    def test_scalar_lists(self) -> None:
        assert encode_form({"payment_method_types": ["card"]}) == [
            ("payment_method_types[0]", "card")
        ]


@pytest.mark.unit
class TestStripeClient:
    async def test_unconfigured_client(self) -> None:
        async with httpx.AsyncClient() as http:
            client = StripeClient(http, secret_key=None)
            assert not client.configured
            with pytest.raises(ServiceUnavailable):
                await client.create_checkout_session({"mode": "payment"})

    async def test_customer_creation_is_idempotent_per_subject(self, services, provider) -> None:
        provider.add("POST", "/v1/customers", {"id": "cus_1"})
        client = StripeClient(services.http, secret_key="sk_test_123")
        await client.create_customer(email="a@example.org", user_id="u1")
        (request,) = provider.calls("POST", "/v1/customers")
        assert request.headers["Idempotency-Key"] == "customer-u1"
        assert request.headers["Authorization"] == "Bearer sk_test_123"
        assert _form(request) == {"email": ["a@example.org"], "metadata[userId]": ["u1"]}

    async def test_error_response_is_upstream_error(self, services, provider) -> None:
        provider.add(
            "GET", "/v1/subscriptions/sub_x", {"error": {"message": "No such subscription"}}, 404
        )
        client = StripeClient(services.http, secret_key="sk_test_123")
        with pytest.raises(UpstreamError) as exc_info:
            await client.retrieve_subscription("sub_x")
        assert exc_info.value.detail == "No such subscription"

    async def test_ids_cannot_escape_their_path_segment(self, provider, services) -> None:
        client = StripeClient(services.http, secret_key="sk_test_123")
        with pytest.raises(UpstreamError):
            await client.retrieve_checkout_session("../../customers/cus_X")
        with pytest.raises(UpstreamError):
            await client.retrieve_subscription("../../customers/cus_X")
        sessions, subscriptions = (r.url.raw_path for r in provider.requests)
        assert sessions == b"/v1/checkout/sessions/..%2F..%2Fcustomers%2Fcus_X"
        assert subscriptions == b"/v1/subscriptions/..%2F..%2Fcustomers%2Fcus_X"


@pytest.mark.unit
class TestCheckoutService:
    async def test_customer_created_once(self, services, provider) -> None:
        provider.add("POST", "/v1/customers", {"id": "cus_1"})
        first = await services.checkout.get_or_create_customer("u1", "u1@example.org")
        second = await services.checkout.get_or_create_customer("u1", "u1@example.org")
        assert first == second == "cus_1"
        assert len(provider.calls("POST", "/v1/customers")) == 1
        account = await services.users.get("u1")
        assert account is not None
        assert account.stripe_customer_id == "cus_1"

    async def test_subscription_session(self, services, provider) -> None:
        provider.add("POST", "/v1/customers", {"id": "cus_1"})
        provider.add(
            "POST", "/v1/checkout/sessions", {"id": "cs_1", "url": "https://pay.example/cs_1"}
        )
        session = await services.checkout.create_subscription_checkout("u1", "u1@example.org")
        assert session.session_id == "cs_1"
        assert session.url == "https://pay.example/cs_1"
        form = _form(provider.calls("POST", "/v1/checkout/sessions")[0])
        assert form["mode"] == ["subscription"]
        assert form["customer"] == ["cus_1"]
        assert form["line_items[0][price]"] == ["price_monthly"]
        assert form["metadata[userId]"] == ["u1"]
        assert form["success_url"] == [
            "https://portal.example.org/subscribe/success?session_id={CHECKOUT_SESSION_ID}"
        ]

    async def test_subscription_requires_price(self, services) -> None:
        services.checkout._price_id = None
        with pytest.raises(ServiceUnavailable):
            await services.checkout.create_subscription_checkout("u1", "u1@example.org")

    @pytest.mark.parametrize("amount", [0, -500, 12.5, "2500", None])
    async def test_donation_amount_validated(self, services, amount) -> None:
        payload = {"amount": amount, "musicianName": "Ana", "musicianEmail": "ana@example.org"}
        with pytest.raises(ValidationFailed):
            await services.checkout.create_donation_checkout(payload)

    async def test_anonymous_donation_hides_donor(self, services, provider) -> None:
        provider.add("POST", "/v1/checkout/sessions", {"id": "cs_2", "url": None})
        await services.checkout.create_donation_checkout(
            {
                "amount": 2500,
                "musicianName": "Ana",
                "musicianEmail": "ana@example.org",
                "donorName": "Pat",
                "donorEmail": "pat@example.org",
                "isAnonymous": True,
            }
        )
        form = _form(provider.calls("POST", "/v1/checkout/sessions")[0])
        assert form["mode"] == ["payment"]
        assert form["line_items[0][price_data][unit_amount]"] == ["2500"]
        assert form["metadata[donorName]"] == ["Anonymous"]
        assert form["metadata[isAnonymous]"] == ["true"]
        assert "customer_email" not in form

    async def test_verify_donation(self, services, provider) -> None:
        provider.add(
            "GET",
            "/v1/checkout/sessions/cs_3",
            {
                "id": "cs_3",
                "amount_total": 2550,
                "metadata": {"musicianName": "Ana", "donorName": "Pat", "isAnonymous": "false"},
            },
        )
        result = await services.checkout.verify_donation("cs_3")
        assert result["amount"] == "25.50"
        assert result["isAnonymous"] is False

    @pytest.mark.parametrize("session_id", ["../../customers/cus_X", "cus_1", "cs_1\n"])
    async def test_verify_rejects_foreign_ids(self, services, provider, session_id) -> None:
        with pytest.raises(ValidationFailed) as exc_info:
            await services.checkout.verify_donation(session_id)
        assert exc_info.value.reason == "invalid_session_id"
        assert provider.requests == []


@pytest.mark.unit
class TestSignature:
    def test_valid_signature(self) -> None:
        now = int(time.time())
        body = b'{"type": "ping"}'
        header = f"t={now},v1={sign_payload(body, 'secret', now)}"
        assert verify_stripe_signature(body, header, "secret")

    def test_any_matching_v1_accepted(self) -> None:
        now = int(time.time())
        body = b"{}"
        header = f"t={now},v1=deadbeef,v1={sign_payload(body, 'secret', now)}"
        assert verify_stripe_signature(body, header, "secret")

    @pytest.mark.parametrize(
        "header",
        [None, "", "v1=abc", "t=abc,v1=abc", "t=1700000000", "garbage"],
    )
    def test_malformed_headers(self, header: str | None) -> None:
        assert not verify_stripe_signature(b"{}", header, "secret")

    def test_tampered_body(self) -> None:
        now = int(time.time())
        header = f"t={now},v1={sign_payload(b'{}', 'secret', now)}"
        assert not verify_stripe_signature(b'{"x": 1}', header, "secret")

    def test_stale_timestamp(self) -> None:
        then = 1_700_000_000
        header = f"t={then},v1={sign_payload(b'{}', 'secret', then)}"
        assert not verify_stripe_signature(b"{}", header, "secret", now=then + 301)
        assert verify_stripe_signature(b"{}", header, "secret", now=then + 299)


def _session_event(session_id: str = "cs_1", amount_total: int = 2500) -> dict:
    return {
        "id": "evt_1",
        "type": "checkout.session.completed",
        "data": {
            "object": {
                "id": session_id,
                "mode": "payment",
                "amount_total": amount_total,
                "customer_email": "pat@example.org",
                "metadata": {
                    "donorName": "Pat",
                    "musicianName": "Ana",
                    "musicianEmail": "ana@example.org",
                    "message": "Bravo",
                    "isAnonymous": "false",
                },
            }
        },
    }


@pytest.mark.unit
class TestWebhookProcessor:
    async def test_missing_secret(self, services) -> None:
        services.webhooks._secret = None
        with pytest.raises(ServiceUnavailable):
            await services.webhooks.handle(b"{}", "t=1,v1=abc")

    async def test_missing_header(self, services) -> None:
        with pytest.raises(SignatureError) as exc_info:
            await services.webhooks.handle(b"{}", None)
        assert exc_info.value.reason == "missing_signature"

    async def test_bad_signature_writes_nothing(self, services, async_engine, signed_event) -> None:
        body, header = signed_event(_session_event(), secret="whsec_other")
        with pytest.raises(SignatureError):
            await services.webhooks.handle(body, header)
        assert await DonationRepository(async_engine).list_all() == []

    async def test_donation_recorded_once(self, services, async_engine, signed_event) -> None:
        body, header = signed_event(_session_event(amount_total=2550))
        assert await services.webhooks.handle(body, header) == {"received": True}
        assert await services.webhooks.handle(body, header) == {"received": True}

        (donation,) = await DonationRepository(async_engine).list_all()
        assert donation.amount == 25.5
        assert donation.stripe_session_id == "cs_1"
        assert donation.donor_name == "Pat"
        assert donation.anonymous is False

    @pytest.mark.parametrize("event", [[1, 2], "checkout.session.completed", 7])
    async def test_non_object_event_rejected(self, services, signed_event, event) -> None:
        body, header = signed_event(event)
        with pytest.raises(SignatureError) as exc_info:
            await services.webhooks.handle(body, header)
        assert exc_info.value.reason == "invalid_payload"

    async def test_session_without_id_skipped(self, services, async_engine, signed_event) -> None:
        event = _session_event()
        del event["data"]["object"]["id"]
        body, header = signed_event(event)
        assert await services.webhooks.handle(body, header) == {"received": True}
        assert await DonationRepository(async_engine).list_all() == []

    async def test_malformed_data_acknowledged(self, services, signed_event) -> None:
        body, header = signed_event({"type": "checkout.session.completed", "data": [1]})
        assert await services.webhooks.handle(body, header) == {"received": True}

    async def test_unhandled_event_acknowledged(self, services, signed_event) -> None:
        body, header = signed_event({"id": "evt_2", "type": "invoice.paid", "data": {}})
        assert await services.webhooks.handle(body, header) == {"received": True}

    async def test_subscription_lifecycle(
        self, services, provider, async_engine, signed_event
    ) -> None:
        await services.users.ensure("u1", "u1@example.org")
        provider.add(
            "GET",
            "/v1/subscriptions/sub_1",
            {
                "id": "sub_1",
                "customer": "cus_1",
                "status": "active",
                "cancel_at_period_end": False,
                "items": {
                    "data": [
                        {
                            "price": {"id": "price_monthly"},
                            "current_period_start": 1_767_225_600,
                            "current_period_end": 1_769_904_000,
                        }
                    ]
                },
            },
        )
        started = {
            "id": "evt_3",
            "type": "checkout.session.completed",
            "data": {
                "object": {
                    "id": "cs_sub",
                    "mode": "subscription",
                    "subscription": "sub_1",
                    "customer_email": "u1@example.org",
                    "metadata": {"userId": "u1", "userEmail": "u1@example.org"},
                }
            },
        }
        await services.webhooks.handle(*signed_event(started))

        subscriptions = SubscriptionRepository(async_engine)
        record = await subscriptions.get("sub_1")
        assert record is not None
        assert record.status == "active"
        assert record.stripe_price_id == "price_monthly"
        assert record.current_period_end is not None
        account = await services.users.get("u1")
        assert account is not None
        assert account.subscriber is True
        assert account.stripe_customer_id == "cus_1"

        deleted = {
            "id": "evt_4",
            "type": "customer.subscription.deleted",
            "data": {"object": {"id": "sub_1", "status": "canceled"}},
        }
        await services.webhooks.handle(*signed_event(deleted))
        record = await subscriptions.get("sub_1")
        assert record is not None
        assert record.status == "canceled"
        account = await services.users.get("u1")
        assert account is not None
        assert account.subscriber is False

    async def test_update_for_unknown_subscription_is_ignored(
        self, services, signed_event
    ) -> None:
        event = {
            "id": "evt_5",
            "type": "customer.subscription.updated",
            "data": {"object": {"id": "sub_missing", "status": "past_due"}},
        }
        assert await services.webhooks.handle(*signed_event(event)) == {"received": True}
