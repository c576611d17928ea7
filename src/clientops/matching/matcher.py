"""ClientMatcher -- resolves a set of email addresses to one client.

Rules are applied in strict order and the first hit wins; there is no
scoring and no tie-breaking beyond registry order:

1. Normalize to lower case; empty input is rejected.
2. Exact contact address on an active, non-internal record.
3. Address domain on an active, non-internal record.
4. Internal-only record whose contact set contains *every* address.
5. Otherwise no match (None). Recording the unmatched item is the
   caller's job; the matcher never writes anywhere.

When two records share a contact or domain, registry insertion order
decides. That ambiguity is kept on purpose; see DESIGN.md.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence

import structlog

from src.clientops.core.errors import MatchFailure, ValidationFailure
from src.clientops.registry.schemas import ClientRecord

logger = structlog.get_logger(__name__)


def normalize_addresses(addresses: Iterable[str]) -> set[str]:
    """Lower-case and trim addresses, dropping blanks."""
    return {a.strip().lower() for a in addresses if a and a.strip()}


def domain_of(address: str) -> str:
    _, _, domain = address.rpartition("@")
    return domain


def exclude_operator(addresses: Iterable[str], operator_email: str) -> set[str]:
    """Normalized addresses minus the operator mailbox, unless only it remains."""
    normalized = normalize_addresses(addresses)
    without_operator = normalized - {operator_email.strip().lower()}
    return without_operator or normalized


class ClientMatcher:
    """First-match-wins resolver over an ordered registry snapshot.

    Args:
        records: Client records in registry insertion order.
    """

    def __init__(self, records: Sequence[ClientRecord]) -> None:
        self._records = list(records)

    def resolve(self, addresses: Iterable[str]) -> ClientRecord | None:
        """Return the matching client, or None when nothing matches.

        Raises:
            ValidationFailure: If no non-blank address was given.
        """
        normalized = normalize_addresses(addresses)
        if not normalized:
            raise ValidationFailure("no participant addresses to match")

        external = [r for r in self._records if r.active and not r.internal_only]

        for record in external:
            contacts = set(record.contact_emails)
            if normalized & contacts:
                logger.debug("client_matched", rule="contact", client_id=record.client_id)
                return record

        domains = {domain_of(a) for a in normalized}
        for record in external:
            if domains & set(record.domains):
                logger.debug("client_matched", rule="domain", client_id=record.client_id)
                return record

        for record in self._records:
            if not record.internal_only or not record.active:
                continue
            if normalized <= set(record.contact_emails):
                logger.debug("client_matched", rule="internal", client_id=record.client_id)
                return record

        logger.info("client_not_matched", addresses=sorted(normalized))
        return None

    def resolve_or_raise(self, addresses: Iterable[str]) -> ClientRecord:
        """Like resolve, but raises MatchFailure instead of returning None."""
        addresses = list(addresses)
        record = self.resolve(addresses)
        if record is None:
            raise MatchFailure(normalize_addresses(addresses))
        return record
