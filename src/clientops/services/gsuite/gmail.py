"""Async Gmail API service for drafts, notifications, and thread scans.

All Google API calls are wrapped in asyncio.to_thread() to avoid blocking the
event loop. Thread scans return decoded plain-text bodies so callers never
touch MIME payloads.
"""

from __future__ import annotations

import asyncio
import base64
import re
from datetime import datetime, timezone
from email.message import EmailMessage as StdlibEmailMessage
from html import unescape
from typing import Any

import structlog

from src.clientops.services.gsuite.auth import GSuiteAuthManager
from src.clientops.services.gsuite.models import (
    DraftResult,
    EmailMessage,
    EmailThread,
    EmailThreadMessage,
    SentEmailResult,
)

logger = structlog.get_logger(__name__)

_TAG_RE = re.compile(r"<[^>]+>")


# ── Payload Decoding ─────────────────────────────────────────────────────────


def _decode_part(data: str) -> str:
    padded = data + "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(padded.encode()).decode("utf-8", errors="replace")


def extract_body_text(payload: dict) -> str:
    """Return the plain-text body of a Gmail message payload.

    Prefers text/plain parts; falls back to tag-stripped text/html.
    """
    plain: list[str] = []
    html: list[str] = []

    def _walk(part: dict) -> None:
        mime = part.get("mimeType", "")
        data = part.get("body", {}).get("data")
        if data and mime == "text/plain":
            plain.append(_decode_part(data))
        elif data and mime == "text/html":
            html.append(_decode_part(data))
        for child in part.get("parts", []) or []:
            _walk(child)

    _walk(payload)
    if plain:
        return "\n".join(plain).strip()
    if html:
        return unescape(_TAG_RE.sub("", "\n".join(html))).strip()
    return ""


def _parse_message(msg: dict) -> EmailThreadMessage:
    payload = msg.get("payload", {})
    headers = {
        h["name"].lower(): h["value"]
        for h in payload.get("headers", [])
    }
    internal_ms = int(msg.get("internalDate", "0") or 0)
    return EmailThreadMessage(
        message_id=msg.get("id", ""),
        thread_id=msg.get("threadId", ""),
        sender=headers.get("from", ""),
        to=headers.get("to", ""),
        subject=headers.get("subject", ""),
        date=datetime.fromtimestamp(internal_ms / 1000, tz=timezone.utc),
        body_text=extract_body_text(payload) or msg.get("snippet", ""),
        label_ids=msg.get("labelIds", []),
    )


class GmailService:
    """Async wrapper around Gmail API for the operator mailbox."""

    def __init__(
        self,
        auth_manager: GSuiteAuthManager,
        default_user_email: str,
    ) -> None:
        self._auth = auth_manager
        self._default_user_email = default_user_email
        self._label_ids: dict[str, str] = {}

    def _service(self) -> Any:
        return self._auth.get_gmail_service(self._default_user_email)

    @staticmethod
    def _build_mime_message(email: EmailMessage) -> str:
        """Build an RFC 2822 message, base64url-encoded for the Gmail API."""
        msg = StdlibEmailMessage()
        msg["To"] = ", ".join(email.to)
        msg["Subject"] = email.subject
        if email.cc:
            msg["Cc"] = ", ".join(email.cc)

        msg.set_content(email.body_text)
        if email.body_html:
            msg.add_alternative(email.body_html, subtype="html")

        return base64.urlsafe_b64encode(msg.as_bytes()).decode()

    # ── Sending ──────────────────────────────────────────────────────────

    async def send_email(self, email: EmailMessage) -> SentEmailResult:
        """Send an email from the operator mailbox."""
        service = self._service()
        body: dict[str, Any] = {"raw": self._build_mime_message(email)}
        if email.thread_id:
            body["threadId"] = email.thread_id

        def _send() -> dict:
            return (
                service.users()
                .messages()
                .send(userId="me", body=body)
                .execute()
            )

        logger.info("sending_email", to=email.to, subject=email.subject)
        result = await asyncio.to_thread(_send)

        return SentEmailResult(
            message_id=result.get("id", ""),
            thread_id=result.get("threadId", ""),
            label_ids=result.get("labelIds", []),
        )

    async def create_draft(self, email: EmailMessage) -> DraftResult:
        """Save a draft in the operator mailbox for human review."""
        service = self._service()
        body = {"message": {"raw": self._build_mime_message(email)}}

        def _create() -> dict:
            return (
                service.users()
                .drafts()
                .create(userId="me", body=body)
                .execute()
            )

        logger.info("creating_draft", to=email.to, subject=email.subject)
        result = await asyncio.to_thread(_create)
        message = result.get("message", {})

        return DraftResult(
            draft_id=result.get("id", ""),
            message_id=message.get("id", ""),
            thread_id=message.get("threadId", ""),
        )

    # ── Labels ───────────────────────────────────────────────────────────

    async def ensure_label(self, name: str) -> str:
        """Return the id of label ``name``, creating it if needed."""
        if name in self._label_ids:
            return self._label_ids[name]

        service = self._service()

        def _list() -> dict:
            return service.users().labels().list(userId="me").execute()

        result = await asyncio.to_thread(_list)
        for label in result.get("labels", []):
            self._label_ids[label.get("name", "")] = label.get("id", "")

        if name not in self._label_ids:
            def _create() -> dict:
                return (
                    service.users()
                    .labels()
                    .create(
                        userId="me",
                        body={
                            "name": name,
                            "labelListVisibility": "labelShow",
                            "messageListVisibility": "show",
                        },
                    )
                    .execute()
                )

            created = await asyncio.to_thread(_create)
            self._label_ids[name] = created.get("id", "")
            logger.info("gmail_label_created", label=name)

        return self._label_ids[name]

    async def apply_label(self, thread_id: str, label_name: str) -> None:
        """Apply ``label_name`` to every message in a thread."""
        label_id = await self.ensure_label(label_name)
        service = self._service()

        def _modify() -> dict:
            return (
                service.users()
                .threads()
                .modify(userId="me", id=thread_id, body={"addLabelIds": [label_id]})
                .execute()
            )

        await asyncio.to_thread(_modify)
        logger.info("gmail_label_applied", thread_id=thread_id, label=label_name)

    # ── Reading ──────────────────────────────────────────────────────────

    async def get_thread(self, thread_id: str) -> EmailThread:
        """Retrieve a thread with decoded message bodies, oldest first."""
        service = self._service()

        def _get() -> dict:
            return (
                service.users()
                .threads()
                .get(userId="me", id=thread_id, format="full")
                .execute()
            )

        result = await asyncio.to_thread(_get)
        messages = sorted(
            (_parse_message(m) for m in result.get("messages", [])),
            key=lambda m: m.date,
        )
        subject = messages[0].subject if messages else ""
        return EmailThread(thread_id=thread_id, subject=subject, messages=messages)

    async def _list_thread_ids(
        self,
        query: str,
        max_results: int,
        label_ids: list[str] | None = None,
    ) -> list[str]:
        service = self._service()
        kwargs: dict[str, Any] = {"userId": "me", "q": query, "maxResults": max_results}
        if label_ids:
            kwargs["labelIds"] = label_ids

        def _list() -> dict:
            return service.users().threads().list(**kwargs).execute()

        logger.info("listing_threads", query=query, max_results=max_results)
        result = await asyncio.to_thread(_list)
        return [t.get("id", "") for t in result.get("threads", []) if t.get("id")]

    async def list_labelled_threads(
        self,
        label_name: str,
        since: datetime,
        max_results: int = 100,
    ) -> list[EmailThread]:
        """List threads carrying ``label_name`` with activity after ``since``."""
        label_id = await self.ensure_label(label_name)
        query = f"after:{int(since.timestamp())}"
        thread_ids = await self._list_thread_ids(query, max_results, [label_id])
        return [await self.get_thread(thread_id) for thread_id in thread_ids]

    async def search_threads(self, query: str, max_results: int) -> list[EmailThread]:
        """List threads matching a Gmail search query with decoded bodies."""
        thread_ids = await self._list_thread_ids(query, max_results)
        return [await self.get_thread(thread_id) for thread_id in thread_ids]
