"""Async Google Docs service for each client's running notes document.

Only three operations are needed: create a document, append a paragraph at
the end of the body, and read the full text.
"""

from __future__ import annotations

import asyncio

import structlog

from src.clientops.services.gsuite.auth import GSuiteAuthManager

logger = structlog.get_logger(__name__)


class DocsService:
    """Async wrapper around the Docs API v1."""

    def __init__(self, auth_manager: GSuiteAuthManager) -> None:
        self._auth = auth_manager

    async def create_document(self, title: str) -> str:
        """Create an empty document and return its id."""
        service = self._auth.get_docs_service()

        def _create() -> dict:
            return service.documents().create(body={"title": title}).execute()

        result = await asyncio.to_thread(_create)
        document_id = result.get("documentId", "")
        logger.info("document_created", document_id=document_id, title=title)
        return document_id

    async def append_paragraph(self, document_id: str, text: str) -> None:
        """Append ``text`` as new paragraph(s) at the end of the document."""
        service = self._auth.get_docs_service()
        content = text if text.endswith("\n") else text + "\n"
        requests = [
            {
                "insertText": {
                    "endOfSegmentLocation": {},
                    "text": content,
                }
            }
        ]

        def _append() -> dict:
            return (
                service.documents()
                .batchUpdate(documentId=document_id, body={"requests": requests})
                .execute()
            )

        await asyncio.to_thread(_append)
        logger.info("document_appended", document_id=document_id, chars=len(content))

    async def read_all_text(self, document_id: str) -> str:
        """Return the concatenated text of every paragraph in the body."""
        service = self._auth.get_docs_service()

        def _get() -> dict:
            return service.documents().get(documentId=document_id).execute()

        document = await asyncio.to_thread(_get)
        chunks: list[str] = []
        for element in document.get("body", {}).get("content", []):
            paragraph = element.get("paragraph")
            if not paragraph:
                continue
            for run in paragraph.get("elements", []):
                text_run = run.get("textRun")
                if text_run:
                    chunks.append(text_run.get("content", ""))
        return "".join(chunks)
