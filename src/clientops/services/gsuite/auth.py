"""GSuite authentication manager with service account and domain-wide delegation.

Handles credential creation and service instance caching to avoid
redundant credential builds per API request. Every API is accessed as the
operator mailbox (the delegated user) unless a different user is given.
"""

from __future__ import annotations

from typing import Any

import structlog
from google.oauth2 import service_account
from googleapiclient.discovery import build

logger = structlog.get_logger(__name__)

GMAIL_SCOPES = [
    "https://www.googleapis.com/auth/gmail.compose",
    "https://www.googleapis.com/auth/gmail.modify",
    "https://www.googleapis.com/auth/gmail.readonly",
    "https://www.googleapis.com/auth/gmail.send",
]

DOCS_SCOPES = [
    "https://www.googleapis.com/auth/documents",
]

SHEETS_SCOPES = [
    "https://www.googleapis.com/auth/spreadsheets",
]

CALENDAR_SCOPES = [
    "https://www.googleapis.com/auth/calendar.readonly",
    "https://www.googleapis.com/auth/calendar.events.readonly",
]


class GSuiteAuthManager:
    """Manages Google API authentication with service account credentials.

    Caches service instances per (api, user_email) to avoid repeated
    credential builds and HTTP connection overhead.
    """

    def __init__(
        self,
        service_account_file: str,
        delegated_user_email: str,
    ) -> None:
        self._service_account_file = service_account_file
        self._delegated_user_email = delegated_user_email
        self._service_cache: dict[str, Any] = {}

    @property
    def delegated_user_email(self) -> str:
        return self._delegated_user_email

    def _build_credentials(
        self,
        user_email: str | None,
        scopes: list[str],
    ) -> service_account.Credentials:
        """Create service account credentials with optional user delegation.

        Args:
            user_email: If provided, applies domain-wide delegation via
                with_subject() so the service account impersonates this user.
            scopes: OAuth2 scopes for the credentials.

        Returns:
            Service account credentials, optionally delegated.
        """
        credentials = service_account.Credentials.from_service_account_file(
            self._service_account_file,
            scopes=scopes,
        )
        if user_email:
            credentials = credentials.with_subject(user_email)
        return credentials

    def _get_service(
        self,
        api: str,
        version: str,
        scopes: list[str],
        user_email: str | None,
    ) -> Any:
        email = user_email or self._delegated_user_email
        cache_key = f"{api}:{email}"

        if cache_key not in self._service_cache:
            logger.info(
                "building_google_service",
                api=api,
                user_email=email,
            )
            credentials = self._build_credentials(email, scopes)
            service = build(api, version, credentials=credentials, cache_discovery=False)
            self._service_cache[cache_key] = service

        return self._service_cache[cache_key]

    def get_gmail_service(self, user_email: str | None = None) -> Any:
        """Get a cached Gmail API v1 service for the delegated user."""
        return self._get_service("gmail", "v1", GMAIL_SCOPES, user_email)

    def get_docs_service(self, user_email: str | None = None) -> Any:
        """Get a cached Docs API v1 service for the delegated user."""
        return self._get_service("docs", "v1", DOCS_SCOPES, user_email)

    def get_sheets_service(self, user_email: str | None = None) -> Any:
        """Get a cached Sheets API v4 service for the delegated user."""
        return self._get_service("sheets", "v4", SHEETS_SCOPES, user_email)

    def get_calendar_service(self, user_email: str | None = None) -> Any:
        """Get a cached Calendar API v3 service for the delegated user."""
        return self._get_service("calendar", "v3", CALENDAR_SCOPES, user_email)
