"""Gmail and Drive REST calls made with a stored access token."""

from __future__ import annotations

import asyncio
import base64
import binascii
from dataclasses import dataclass
from typing import Any

import httpx
import structlog

from ngoportal.exceptions import UpstreamError

logger = structlog.get_logger(__name__)

GMAIL_API = "https://gmail.googleapis.com/gmail/v1/users/me"
DRIVE_API = "https://www.googleapis.com/drive/v3"
DRIVE_FIELDS = "files(id,name,mimeType,webViewLink,modifiedTime,createdTime)"
SNIPPET_LIMIT = 500


@dataclass(frozen=True, slots=True)
class MailMessage:
    id: str
    thread_id: str
    sender: str
    to: str
    subject: str
    date: str
    snippet: str


def _header(headers: list[dict[str, str]], name: str) -> str:
    for header in headers:
        if header.get("name", "").lower() == name:
            return header.get("value", "")
    return ""


def _plain_text(payload: dict[str, Any]) -> str | None:
    for part in payload.get("parts") or []:
        data = (part.get("body") or {}).get("data")
        if part.get("mimeType") == "text/plain" and data:
            try:
                return base64.urlsafe_b64decode(data + "=" * (-len(data) % 4)).decode(
                    "utf-8", errors="replace"
                )
            except (binascii.Error, ValueError):
                return None
    return None


def parse_message(data: dict[str, Any]) -> MailMessage:
    payload = data.get("payload") or {}
    headers = payload.get("headers") or []
    snippet = _plain_text(payload) or data.get("snippet", "")
    return MailMessage(
        id=data.get("id", ""),
        thread_id=data.get("threadId", ""),
        sender=_header(headers, "from"),
        to=_header(headers, "to"),
        subject=_header(headers, "subject"),
        date=_header(headers, "date"),
        snippet=snippet[:SNIPPET_LIMIT],
    )


class GoogleWorkspaceClient:
    def __init__(
        self,
        http: httpx.AsyncClient,
        *,
        gmail_api: str = GMAIL_API,
        drive_api: str = DRIVE_API,
    ) -> None:
        self._http = http
        self._gmail_api = gmail_api
        self._drive_api = drive_api

    async def _get(
        self, url: str, token: str, params: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        try:
            resp = await self._http.get(
                url, params=params, headers={"Authorization": f"Bearer {token}"}
            )
        except httpx.HTTPError as exc:
            raise UpstreamError("Google API request failed", detail=str(exc)) from exc
        if resp.status_code >= 400:
            try:
                message = resp.json().get("error", {}).get("message", "Unknown error")
            except ValueError:
                message = "Unknown error"
            logger.warning("google_api_error", url=url, status=resp.status_code)
            raise UpstreamError(f"Google API error: {message}")
        body: dict[str, Any] = resp.json()
        return body

    async def _message(self, token: str, message_id: str) -> MailMessage | None:
        try:
            data = await self._get(f"{self._gmail_api}/messages/{message_id}", token)
        except UpstreamError as exc:
            # One unreadable message should not sink the whole search.
            logger.warning("gmail_message_skipped", id=message_id, error=exc.message)
            return None
        return parse_message(data)

    async def search_gmail(self, token: str, query: str, max_results: int) -> list[MailMessage]:
        listing = await self._get(
            f"{self._gmail_api}/messages", token, {"q": query, "maxResults": max_results}
        )
        ids = [m["id"] for m in listing.get("messages") or [] if m.get("id")]
        messages = await asyncio.gather(*(self._message(token, mid) for mid in ids))
        found = [m for m in messages if m is not None]
        logger.info("gmail_searched", listed=len(ids), fetched=len(found))
        return found

    async def search_drive(self, token: str, query: str, max_results: int) -> list[dict[str, Any]]:
        data = await self._get(
            f"{self._drive_api}/files",
            token,
            {"q": query, "pageSize": max_results, "fields": DRIVE_FIELDS},
        )
        files: list[dict[str, Any]] = data.get("files") or []
        return files
