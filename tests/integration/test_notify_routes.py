import pytest


@pytest.mark.integration
class TestNotifyRoutes:
    async def test_text_invite_requires_admin(self, client, bearer) -> None:
        resp = await client.post(
            "/api/send-text-invite",
            json={"phone": "5551234567", "carrier": "att", "link": "https://x"},
            headers=bearer("member-1"),
        )
        assert resp.status_code == 403

    async def test_text_invite_without_smtp(self, client, admin_headers) -> None:
        resp = await client.post(
            "/api/send-text-invite",
            json={"phone": "5551234567", "carrier": "att", "link": "https://x"},
            headers=admin_headers,
        )
        assert resp.status_code == 500
        assert resp.json() == {
            "error": "service_unavailable",
            "message": "Email service not configured",
        }

    async def test_unknown_carrier(self, client, admin_headers) -> None:
        resp = await client.post(
            "/api/send-text-invite",
            json={"phone": "5551234567", "carrier": "pigeon", "link": "https://x"},
            headers=admin_headers,
        )
        assert resp.status_code == 400
        assert resp.json()["error"] == "unknown_carrier"

    async def test_document_notice_validation(self, client) -> None:
        resp = await client.post("/api/documents/notify", json={"documentType": "w4"})
        assert resp.status_code == 400
