"""Correlation markers, notes blocks, and action-item parsing.

A correlation marker ``[ref:<client_id>|<YYYY-MM-DD>|<event_id>]`` is
embedded in every follow-up draft so later steps recover identity without
re-matching participants or parsing prose.

Notes are filed in the client's running document as delimited blocks::

    === Meeting Notes | 2026-10-19 | Quarterly review ===
    Ref: rec_3f9a0c1d2e4b5a6c
    ...
    === End Meeting Notes ===

Action items are bullet lines under an ``Action Items:`` heading, each
optionally ending in ``(Assignee, due <when>)``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

# ── Correlation Marker ───────────────────────────────────────────────────────

_MARKER_RE = re.compile(
    r"\[ref:(?P<client_id>[^|\]\s]+)\|(?P<date>\d{4}-\d{2}-\d{2})\|(?P<event_id>[^\]\s]+)\]"
)


@dataclass(frozen=True)
class CorrelationMarker:
    client_id: str
    meeting_date: str
    event_id: str

    def render(self) -> str:
        return f"[ref:{self.client_id}|{self.meeting_date}|{self.event_id}]"


def parse_marker(text: str) -> CorrelationMarker | None:
    """Return the last marker found in ``text``, if any."""
    matches = list(_MARKER_RE.finditer(text or ""))
    if not matches:
        return None
    m = matches[-1]
    return CorrelationMarker(
        client_id=m.group("client_id"),
        meeting_date=m.group("date"),
        event_id=m.group("event_id"),
    )


def strip_marker(text: str) -> str:
    return _MARKER_RE.sub("", text or "").rstrip()


# ── Notes Blocks ─────────────────────────────────────────────────────────────

NOTES_FOOTER = "=== End Meeting Notes ==="
_HEADER_RE = re.compile(
    r"^=== Meeting Notes \| (?P<date>\d{4}-\d{2}-\d{2}) \| (?P<title>.*?) ===\s*$",
    re.MULTILINE,
)
_REF_RE = re.compile(r"^Ref:\s*(?P<ref>\S+)\s*$", re.MULTILINE)


@dataclass(frozen=True)
class NotesBlock:
    meeting_date: str
    title: str
    ref: str | None
    body: str


def format_notes_block(meeting_date: str, title: str, event_id: str, body: str) -> str:
    return (
        f"=== Meeting Notes | {meeting_date} | {title} ===\n"
        f"Ref: {event_id}\n\n"
        f"{body.strip()}\n\n"
        f"{NOTES_FOOTER}\n"
    )


def notes_blocks(document_text: str) -> list[NotesBlock]:
    """Every notes block in the document, oldest first."""
    text = document_text or ""
    headers = list(_HEADER_RE.finditer(text))
    blocks: list[NotesBlock] = []
    for index, header in enumerate(headers):
        stop = headers[index + 1].start() if index + 1 < len(headers) else len(text)
        rest = text[header.end():stop]
        footer_at = rest.find(NOTES_FOOTER)
        content = rest if footer_at == -1 else rest[:footer_at]

        ref_match = _REF_RE.search(content)
        ref = ref_match.group("ref") if ref_match else None
        if ref_match:
            content = content[:ref_match.start()] + content[ref_match.end():]

        blocks.append(
            NotesBlock(
                meeting_date=header.group("date"),
                title=header.group("title"),
                ref=ref,
                body=content.strip(),
            )
        )
    return blocks


def latest_notes_block(document_text: str) -> NotesBlock | None:
    """Return only the most recent notes block in a document."""
    blocks = notes_blocks(document_text)
    return blocks[-1] if blocks else None


def notes_already_filed(document_text: str, event_id: str, meeting_date: str) -> bool:
    """True if any block in the document belongs to this event.

    Blocks carrying a ref are compared by event id; older blocks without one
    fall back to the meeting date.
    """
    for block in notes_blocks(document_text):
        if block.ref is not None:
            if block.ref == event_id:
                return True
        elif block.meeting_date == meeting_date:
            return True
    return False


# ── Action Items ─────────────────────────────────────────────────────────────

_HEADING_RE = re.compile(r"^\s*action items\s*:?\s*$", re.IGNORECASE)
_BULLET_RE = re.compile(r"^\s*(?:[-*•]|\d+[.)])\s+(?P<text>.+?)\s*$")
_TRAILER_RE = re.compile(r"\((?P<inner>[^()]*)\)\s*$")
_MENTION_RE = re.compile(r"(?:^|\s)@(?P<name>[A-Za-z][\w.-]*)")


@dataclass(frozen=True)
class ParsedActionItem:
    description: str
    assignee: str | None = None
    due: str | None = None


def _parse_item(text: str) -> ParsedActionItem:
    assignee: str | None = None
    due: str | None = None
    description = text

    trailer = _TRAILER_RE.search(text)
    if trailer:
        description = text[:trailer.start()].strip()
        for part in trailer.group("inner").split(","):
            part = part.strip()
            if not part:
                continue
            if part.lower().startswith("due"):
                due = part[3:].lstrip(" :").strip() or None
            elif assignee is None:
                assignee = part

    if assignee is None:
        mention = _MENTION_RE.search(description)
        if mention:
            assignee = mention.group("name")

    return ParsedActionItem(description=description, assignee=assignee, due=due)


def parse_action_items(text: str) -> list[ParsedActionItem]:
    """Extract bullet items following the first ``Action Items`` heading."""
    items: list[ParsedActionItem] = []
    in_section = False

    for line in (text or "").splitlines():
        if not in_section:
            in_section = bool(_HEADING_RE.match(line))
            continue
        if not line.strip():
            if items:
                break
            continue
        bullet = _BULLET_RE.match(line)
        if bullet is None:
            break
        items.append(_parse_item(bullet.group("text")))

    return items


def format_action_items(items: list[tuple[str, str | None, str | None]]) -> str:
    """Render (description, assignee, due) tuples as parseable bullets."""
    if not items:
        return "(none recorded)"
    lines = []
    for description, assignee, due in items:
        extras = [p for p in (assignee, f"due {due}" if due else None) if p]
        suffix = f" ({', '.join(extras)})" if extras else ""
        lines.append(f"- {description}{suffix}")
    return "\n".join(lines)
