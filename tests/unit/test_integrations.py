"""OAuth state, stored grants, mailbox parsing and roster cross-checks."""

from __future__ import annotations

import base64
from datetime import timedelta
from urllib.parse import parse_qs, urlparse

import pytest

from ngoportal.exceptions import ServiceUnavailable, UpstreamError, ValidationFailed
from ngoportal.integrations.candidates import (
    DEFAULT_MAX_RESULTS,
    MAX_RESULTS_CAP,
    SearchBridge,
    clamp_max_results,
    extract_musician_info,
    partition,
)
from ngoportal.integrations.google import MailMessage, parse_message
from ngoportal.integrations.oauth import StateError, integration_id, sign_state, verify_state
from ngoportal.models.database import Integration, RosterMusician, _utc_now
from ngoportal.storage.repositories.integrations import RosterRepository
from ngoportal.types import IntegrationProvider, SearchKind


def _message(sender: str, subject: str = "", snippet: str = "") -> MailMessage:
    return MailMessage(
        id="m1", thread_id="t1", sender=sender, to="", subject=subject, date="", snippet=snippet
    )


def _grant(**fields) -> Integration:
    fields.setdefault("expires_at", _utc_now() + timedelta(hours=1))
    return Integration(
        id="google_recruiter_example_org",
        provider="google",
        user_id="admin-1",
        account_email="recruiter@example.org",
        access_token="at-current",
        **fields,
    )


@pytest.mark.unit
class TestOAuthState:
    def test_round_trip(self) -> None:
        state = sign_state("admin-1", "secret", now=1000)
        assert verify_state(state, "secret", now=1100) == "admin-1"

    def test_tampered_state(self) -> None:
        state = sign_state("admin-1", "secret", now=1000)
        body, _, mac = state.partition(".")
        forged = base64.urlsafe_b64encode(b'{"uid": "intruder", "ts": 1000}').decode()
        with pytest.raises(StateError, match="invalid_state"):
            verify_state(f"{forged}.{mac}", "secret", now=1000)
        with pytest.raises(StateError, match="invalid_state"):
            verify_state(state, "other-secret", now=1000)
        with pytest.raises(StateError, match="invalid_state"):
            verify_state(body, "secret", now=1000)

    def test_expired_state(self) -> None:
        state = sign_state("admin-1", "secret", now=1000)
        with pytest.raises(StateError, match="expired_state"):
            verify_state(state, "secret", now=1000 + 601)

    def test_integration_id(self) -> None:
        assert integration_id("google", "Jane.Doe+x@Example.org") == "google_jane_doe_x_example_org"


@pytest.mark.unit
class TestOAuthClient:
    def test_authorization_url(self, services) -> None:
        url, state = services.oauth.authorization_url(IntegrationProvider.GOOGLE, "admin-1")
        parsed = urlparse(url)
        query = parse_qs(parsed.query)
        assert parsed.netloc == "accounts.google.com"
        assert query["client_id"] == ["google-client"]
        assert query["access_type"] == ["offline"]
        assert query["state"] == [state]
        assert query["redirect_uri"] == [
            "https://portal.example.org/api/google/oauth2callback"
        ]
        assert services.oauth.read_state(state) == "admin-1"

    def test_unconfigured_provider(self, services) -> None:
        with pytest.raises(ServiceUnavailable) as exc_info:
            services.oauth.authorization_url(IntegrationProvider.OUTLOOK, "admin-1")
        assert exc_info.value.reason == "oauth_not_configured"

    async def test_profile_failure_is_unknown(self, services, provider) -> None:
        provider.add("GET", "/oauth2/v2/userinfo", {}, status=500)
        profile = await services.oauth.fetch_profile(IntegrationProvider.GOOGLE, "at")
        assert profile.email == "Unknown"
        assert profile.name == "Unknown"


@pytest.mark.unit
class TestCompleteConnect:
    async def _connect(self, services, uid: str = "admin-1", **kwargs) -> str:
        state = services.oauth.authorization_url(IntegrationProvider.GOOGLE, uid)[1]
        params = {"code": "auth-code", "state": state, "error": None, **kwargs}
        return await services.credentials.complete_connect(IntegrationProvider.GOOGLE, **params)

    async def test_provider_error_passed_through(self, services) -> None:
        target = await self._connect(services, error="access_denied")
        assert target == "/admin/settings?error=access_denied"

    async def test_missing_code(self, services) -> None:
        target = await self._connect(services, code=None)
        assert target == "/admin/settings?error=missing_code_or_state"

    async def test_bad_state(self, services) -> None:
        target = await self._connect(services, state="forged.state")
        assert target == "/admin/settings?error=invalid_state"

    async def test_non_admin_rejected(self, services, save_account) -> None:
        await save_account("member-1", role="musician")
        target = await self._connect(services, uid="member-1")
        assert target == "/admin/settings?error=unauthorized"

    async def test_connect_stores_grant(self, services, provider, admin_headers) -> None:
        provider.add(
            "POST",
            "/token",
            {"access_token": "at-1", "refresh_token": "rt-1", "expires_in": 3600, "scope": "s"},
        )
        provider.add(
            "GET", "/oauth2/v2/userinfo", {"email": "Recruiter@Example.org", "name": "Recruiter"}
        )
        target = await self._connect(services)
        assert target.startswith("/admin/settings?success=connected")
        assert "type=google" in target

        (grant,) = await services.integrations.list_all("google")
        assert grant.id == "google_recruiter_example_org"
        assert grant.user_id == "admin-1"
        assert grant.refresh_token == "rt-1"
        form = parse_qs(provider.calls("POST", "/token")[0].content.decode())
        assert form["grant_type"] == ["authorization_code"]
        assert form["code"] == ["auth-code"]

    async def test_exchange_rejected(self, services, provider, admin_headers) -> None:
        provider.add("POST", "/token", {"error": "invalid_grant"}, status=400)
        target = await self._connect(services)
        assert target == "/admin/settings?error=invalid_grant"
        assert await services.integrations.list_all() == []


@pytest.mark.unit
class TestAccessToken:
    async def test_not_connected(self, services) -> None:
        with pytest.raises(ServiceUnavailable) as exc_info:
            await services.credentials.access_token(IntegrationProvider.GOOGLE)
        assert exc_info.value.reason == "integration_not_connected"

    async def test_fresh_token_used_as_is(self, services, provider) -> None:
        await services.integrations.upsert(_grant(refresh_token="rt-1"))
        assert await services.credentials.access_token(IntegrationProvider.GOOGLE) == "at-current"
        assert provider.requests == []

    async def test_expiring_token_refreshed(self, services, provider) -> None:
        await services.integrations.upsert(
            _grant(refresh_token="rt-1", expires_at=_utc_now() + timedelta(minutes=4))
        )
        provider.add("POST", "/token", {"access_token": "at-new", "expires_in": 3600})
        assert await services.credentials.access_token(IntegrationProvider.GOOGLE) == "at-new"
        stored = await services.integrations.get("google_recruiter_example_org")
        assert stored is not None
        assert stored.access_token == "at-new"
        assert stored.refresh_token == "rt-1"
        assert stored.expires_at > _utc_now() + timedelta(minutes=50)

    async def test_expired_without_refresh_token(self, services) -> None:
        await services.integrations.upsert(_grant(expires_at=_utc_now() - timedelta(minutes=1)))
        with pytest.raises(ServiceUnavailable) as exc_info:
            await services.credentials.access_token(IntegrationProvider.GOOGLE)
        assert exc_info.value.reason == "integration_expired"

    async def test_remove_requires_id(self, services) -> None:
        with pytest.raises(ValidationFailed):
            await services.credentials.remove(None)
        assert await services.credentials.remove("missing") is False


@pytest.mark.unit
class TestCandidateExtraction:
    def test_named_sender(self) -> None:
        candidate = extract_musician_info(
            _message(
                '"Ana Ruiz" <ana@example.org>',
                subject="Joining the orchestra",
                snippet="I play cello and can be reached at (555) 123-4567.",
            )
        )
        assert candidate.name == "Ana Ruiz"
        assert candidate.email == "ana@example.org"
        assert candidate.phone == "(555) 123-4567"
        assert candidate.instrument == "Cello"
        assert candidate.notes.startswith('Found in email: "Joining the orchestra"')

    def test_bare_address(self) -> None:
        candidate = extract_musician_info(_message("solo@example.org", subject="Hello"))
        assert candidate.name == candidate.email == "solo@example.org"
        assert candidate.phone is None
        assert candidate.instrument is None

    def test_instrument_from_subject(self) -> None:
        candidate = extract_musician_info(_message("a@example.org", subject="Trumpet audition"))
        assert candidate.instrument == "Trumpet"

    def test_parse_message_prefers_plain_text_part(self) -> None:
        body = base64.urlsafe_b64encode(b"Full body text").decode().rstrip("=")
        message = parse_message(
            {
                "id": "m9",
                "threadId": "t9",
                "snippet": "short",
                "payload": {
                    "headers": [
                        {"name": "From", "value": "a@example.org"},
                        {"name": "Subject", "value": "Hi"},
                    ],
                    "parts": [{"mimeType": "text/plain", "body": {"data": body}}],
                },
            }
        )
        assert message.snippet == "Full body text"
        assert message.sender == "a@example.org"
        assert message.subject == "Hi"


class RecordingRoster:
    def __init__(self, known: set[str]) -> None:
        self.known = known
        self.batches: list[list[str]] = []

    async def existing_emails(self, emails):
        batch = list(emails)
        self.batches.append(batch)
        return {e for e in batch if e in self.known}


@pytest.mark.unit
class TestRosterBatching:
    def test_partition(self) -> None:
        assert [list(b) for b in partition([1, 2, 3, 4, 5], 2)] == [[1, 2], [3, 4], [5]]
        with pytest.raises(ValueError):
            list(partition([1], 0))

    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            (None, DEFAULT_MAX_RESULTS),
            (0, DEFAULT_MAX_RESULTS),
            (True, DEFAULT_MAX_RESULTS),
            (10, 10),
            (10_000, MAX_RESULTS_CAP),
        ],
    )
    def test_clamp_max_results(self, value, expected) -> None:
        assert clamp_max_results(value) == expected

    @pytest.mark.parametrize("count", [0, 1, 10, 11, 25, 101])
    async def test_batches_never_exceed_limit(self, services, count: int) -> None:
        roster = RecordingRoster({"m3@example.org"})
        bridge = SearchBridge(services.credentials, services.search._google, roster, batch_size=10)
        emails = [f"M{i}@example.org" for i in range(count)] + ["m0@example.org"]
        known = await bridge.known_emails(emails)

        assert all(len(batch) <= 10 for batch in roster.batches)
        checked = [e for batch in roster.batches for e in batch]
        assert len(checked) == len(set(checked)) == len({e.lower() for e in emails})
        assert known == ({"m3@example.org"} if count > 3 else set())


@pytest.mark.unit
class TestSearchBridge:
    @pytest.fixture()
    async def connected(self, services) -> None:
        await services.integrations.upsert(_grant(refresh_token="rt-1"))

    async def test_mail_search_flags_new_candidates(
        self, services, provider, async_engine, connected
    ) -> None:
        await RosterRepository(async_engine).add(
            RosterMusician(project_id="orchestra-annual", name="Known", email="Known@Example.org")
        )
        provider.add(
            "GET",
            "/gmail/v1/users/me/messages",
            {"messages": [{"id": "m1"}, {"id": "m2"}, {"id": "m3"}]},
        )
        for mid, sender in (("m1", "Known <known@example.org>"), ("m2", "New <new@example.org>")):
            provider.add(
                "GET",
                f"/gmail/v1/users/me/messages/{mid}",
                {
                    "id": mid,
                    "snippet": "violin player",
                    "payload": {"headers": [{"name": "From", "value": sender}]},
                },
            )
        provider.add("GET", "/gmail/v1/users/me/messages/m3", {"error": {}}, status=500)

        result = await services.search.search(SearchKind.MAIL, "  ", 5)

        assert result["total"] == 2
        assert result["new"] == 1
        assert result["existing"] == 1
        by_email = {r["email"]: r for r in result["results"]}
        assert by_email["new@example.org"]["isNew"] is True
        assert by_email["known@example.org"]["isNew"] is False
        listing = provider.calls("GET", "/gmail/v1/users/me/messages")[0]
        assert listing.url.params["q"] == services.settings.gmail_default_query
        assert listing.url.params["maxResults"] == "5"
        assert listing.headers["Authorization"] == "Bearer at-current"

    async def test_drive_search(self, services, provider, connected) -> None:
        provider.add("GET", "/drive/v3/files", {"files": [{"id": "f1", "name": "Roster 2026"}]})
        result = await services.search.search("drive", 'name contains "roster"', None)
        assert result["total"] == 1
        assert result["results"] == [{"id": "f1", "name": "Roster 2026"}]
        request = provider.calls("GET", "/drive/v3/files")[0]
        assert request.url.params["pageSize"] == str(DEFAULT_MAX_RESULTS)

    async def test_listing_failure_is_upstream_error(self, services, provider, connected) -> None:
        provider.add(
            "GET", "/gmail/v1/users/me/messages", {"error": {"message": "quota"}}, status=429
        )
        with pytest.raises(UpstreamError, match="Google API error: quota"):
            await services.search.search(SearchKind.MAIL)

    async def test_unknown_kind(self, services) -> None:
        with pytest.raises(ValidationFailed):
            await services.search.search("calendar")
