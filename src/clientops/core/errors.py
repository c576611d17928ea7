"""Error taxonomy for client resolution, validation, and external calls.

- MatchFailure: no client resolved; routes the item to the unmatched queue.
- ValidationFailure: malformed input, bad signature, unresolved template.
- ExternalServiceFailure: a collaborator call failed terminally or exhausted
  its retries; the last underlying error is attached.
- PersistenceFailure: a row store read or write failed; the step is aborted.
"""

from __future__ import annotations


class ClientOpsError(Exception):
    """Base class for all domain errors."""


class MatchFailure(ClientOpsError):
    """No client record matched the given addresses."""

    def __init__(self, addresses: list[str] | set[str]) -> None:
        self.addresses = sorted(addresses)
        super().__init__(f"No client matched addresses: {', '.join(self.addresses)}")


class ValidationFailure(ClientOpsError):
    """Input rejected before any side effect."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(reason)


class TemplateError(ValidationFailure):
    """Template rendered with placeholders that have no value."""

    def __init__(self, missing: list[str]) -> None:
        self.missing = missing
        super().__init__(f"Unresolved template variables: {', '.join(missing)}")


class ExternalServiceFailure(ClientOpsError):
    """External call failed after the Retry Gate gave up."""

    def __init__(
        self,
        operation: str,
        cause: BaseException,
        attempts: int,
        retryable: bool,
    ) -> None:
        self.operation = operation
        self.cause = cause
        self.attempts = attempts
        self.retryable = retryable
        kind = "exhausted retries" if retryable else "terminal error"
        super().__init__(
            f"{operation} failed ({kind} after {attempts} attempt(s)): {cause!r}"
        )


class PersistenceFailure(ClientOpsError):
    """Row store operation failed; never assume the write happened."""

    def __init__(self, table: str, operation: str, cause: BaseException | None = None) -> None:
        self.table = table
        self.operation = operation
        self.cause = cause
        detail = f": {cause!r}" if cause is not None else ""
        super().__init__(f"{operation} on table {table} failed{detail}")


class InvalidTransition(ClientOpsError):
    """Meeting event state change not permitted by the lifecycle."""

    def __init__(self, event_id: str, from_state: str, to_state: str) -> None:
        self.event_id = event_id
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(f"Event {event_id}: cannot move {from_state} -> {to_state}")
