"""Recruitment candidates from a connected mailbox, cross-checked against the roster."""

from __future__ import annotations

import re
from collections.abc import Iterator, Sequence
from typing import TYPE_CHECKING, Any, TypeVar

import structlog

from ngoportal.exceptions import ValidationFailed
from ngoportal.models.domain import Candidate
from ngoportal.types import IntegrationProvider, SearchKind

if TYPE_CHECKING:
    from ngoportal.integrations.credentials import CredentialService
    from ngoportal.integrations.google import GoogleWorkspaceClient, MailMessage
    from ngoportal.storage.repositories.integrations import RosterRepository

logger = structlog.get_logger(__name__)

T = TypeVar("T")

INSTRUMENTS = (
    "violin",
    "viola",
    "cello",
    "bass",
    "flute",
    "oboe",
    "clarinet",
    "bassoon",
    "trumpet",
    "horn",
    "trombone",
    "tuba",
    "percussion",
    "piano",
    "harp",
)
DEFAULT_MAX_RESULTS = 50
MAX_RESULTS_CAP = 500

_FROM_RE = re.compile(r"^(.+?)\s*<(.+?)>$")
_PHONE_RE = re.compile(r"(\(?\d{3}\)?[-.\s]?\d{3}[-.\s]?\d{4}|\d{10})")


def extract_musician_info(message: MailMessage) -> Candidate:
    sender = message.sender.strip()
    match = _FROM_RE.match(sender)
    if match:
        name, email = match.group(1).strip().strip('"'), match.group(2).strip()
    else:
        name, email = sender, sender

    phone = _PHONE_RE.search(message.snippet)
    haystack = f"{message.snippet} {message.subject}".lower()
    instrument = next((i for i in INSTRUMENTS if i in haystack), None)
    return Candidate(
        name=name,
        email=email,
        phone=phone.group(1) if phone else None,
        instrument=instrument.capitalize() if instrument else None,
        notes=f'Found in email: "{message.subject}" - {message.snippet[:200]}',
        email_id=message.id,
        subject=message.subject,
        date=message.date,
        snippet=message.snippet,
    )


def partition(items: Sequence[T], size: int) -> Iterator[Sequence[T]]:
    if size < 1:
        raise ValueError("batch size must be positive")
    for start in range(0, len(items), size):
        yield items[start : start + size]


def clamp_max_results(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        return DEFAULT_MAX_RESULTS
    return min(value, MAX_RESULTS_CAP)


class SearchBridge:
    def __init__(
        self,
        credentials: CredentialService,
        google: GoogleWorkspaceClient,
        roster: RosterRepository,
        *,
        batch_size: int = 10,
        gmail_default_query: str = "",
        drive_default_query: str = "",
    ) -> None:
        self._credentials = credentials
        self._google = google
        self._roster = roster
        self._batch_size = batch_size
        self._default_queries = {
            SearchKind.MAIL: gmail_default_query,
            SearchKind.DRIVE: drive_default_query,
        }

    async def known_emails(self, emails: Sequence[str]) -> set[str]:
        """Roster membership for ``emails``, one IN query per batch."""
        unique = sorted({e.lower() for e in emails if e})
        known: set[str] = set()
        for batch in partition(unique, self._batch_size):
            known |= await self._roster.existing_emails(batch)
        logger.debug("roster_checked", candidates=len(unique), known=len(known))
        return known

    async def search(
        self, kind: SearchKind | str, query: Any = None, max_results: Any = None
    ) -> dict[str, Any]:
        try:
            kind = SearchKind(kind)
        except ValueError as exc:
            raise ValidationFailed(f"Unknown search kind: {kind}") from exc
        text = query.strip() if isinstance(query, str) else ""
        text = text or self._default_queries[kind]
        limit = clamp_max_results(max_results)
        token = await self._credentials.access_token(IntegrationProvider.GOOGLE)

        if kind == SearchKind.DRIVE:
            files = await self._google.search_drive(token, text, limit)
            return {"success": True, "results": files, "total": len(files)}

        messages = await self._google.search_gmail(token, text, limit)
        candidates = [extract_musician_info(m) for m in messages]
        known = await self.known_emails([c.email for c in candidates])
        results = [
            c.model_copy(update={"is_new": c.email.lower() not in known}).to_wire()
            for c in candidates
        ]
        new = sum(1 for r in results if r["isNew"])
        logger.info("mailbox_searched", total=len(results), new=new)
        return {
            "success": True,
            "results": results,
            "total": len(results),
            "new": new,
            "existing": len(results) - new,
        }
