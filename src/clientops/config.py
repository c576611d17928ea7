"""Application configuration via Pydantic BaseSettings.

Settings holds environment-derived values (credentials, identifiers,
timeouts). WorkflowConfig is the immutable value passed into every
component at construction; components never read process state directly.
"""

from __future__ import annotations

from enum import Enum
from functools import lru_cache

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from src.clientops.meetings import prompts


class Environment(str, Enum):
    development = "development"
    staging = "staging"
    production = "production"


class BusinessHours(BaseModel):
    """Window in which the agenda sweep may be triggered."""

    model_config = ConfigDict(frozen=True)

    start_hour: int = Field(default=8, ge=0, le=23)
    end_hour: int = Field(default=18, ge=1, le=24)
    weekdays: tuple[int, ...] = (0, 1, 2, 3, 4)
    timezone: str = "UTC"


class WorkflowConfig(BaseModel):
    """Immutable workflow configuration shared by all components."""

    model_config = ConfigDict(frozen=True)

    operator_email: str = ""
    business_hours: BusinessHours = Field(default_factory=BusinessHours)

    # Gmail labels
    followup_label: str = "ClientOps/Follow-up"
    processed_label: str = "ClientOps/Processed"

    # Windows and bounds
    sent_window_hours: int = 24
    completion_lease_seconds: int = 600
    agenda_lookahead_hours: int = 24
    outlook_window_days: int = 7
    correspondence_window_days: int = 7
    correspondence_max_threads: int = 20
    body_excerpt_chars: int = 500

    # Retry Gate
    retry_max_attempts: int = 4
    retry_base_delay: float = 1.0
    retry_max_delay: float = 30.0

    # AI synthesis
    agenda_model_tier: str = "reasoning"
    agenda_max_tokens: int = 1500

    # Task assignment (lower-cased name -> task service user id)
    assignee_map: dict[str, str] = Field(default_factory=dict)

    # Templates
    followup_subject_template: str = prompts.FOLLOWUP_SUBJECT_TEMPLATE
    followup_body_template: str = prompts.FOLLOWUP_BODY_TEMPLATE
    agenda_prompt_template: str = prompts.AGENDA_PROMPT_TEMPLATE
    agenda_subject_template: str = prompts.AGENDA_SUBJECT_TEMPLATE
    agenda_body_template: str = prompts.AGENDA_BODY_TEMPLATE
    outlook_subject_template: str = prompts.OUTLOOK_SUBJECT_TEMPLATE
    outlook_body_template: str = prompts.OUTLOOK_BODY_TEMPLATE


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # Environment
    ENVIRONMENT: Environment = Environment.development

    # Logging
    LOG_LEVEL: str = "INFO"

    # Webhook HMAC-SHA256 shared secret (empty disables verification)
    WEBHOOK_SECRET: str = ""
    WEBHOOK_SIGNATURE_HEADER: str = "X-Signature"

    # Google Workspace
    GOOGLE_SERVICE_ACCOUNT_FILE: str = ""  # Path to service account JSON key file
    GOOGLE_SERVICE_ACCOUNT_JSON_B64: str = ""  # Base64 JSON for containerized deployments
    GOOGLE_DELEGATED_USER_EMAIL: str = ""  # Operator mailbox for domain-wide delegation
    REGISTRY_SPREADSHEET_ID: str = ""

    # Task service
    TODOIST_API_TOKEN: str = ""
    TASK_ASSIGNEES: dict[str, str] = Field(default_factory=dict)

    # LLM Providers
    ANTHROPIC_API_KEY: str = ""
    OPENAI_API_KEY: str = ""
    LLM_TIMEOUT: int = 60

    # Monitoring
    SENTRY_DSN: str = ""

    # Workflow
    BUSINESS_HOURS_START: int = 8
    BUSINESS_HOURS_END: int = 18
    BUSINESS_TIMEZONE: str = "UTC"
    FOLLOWUP_LABEL: str = "ClientOps/Follow-up"
    PROCESSED_LABEL: str = "ClientOps/Processed"
    SENT_WINDOW_HOURS: int = 24
    COMPLETION_LEASE_SECONDS: int = 600
    AGENDA_LOOKAHEAD_HOURS: int = 24
    RETRY_MAX_ATTEMPTS: int = 4

    def get_service_account_path(self) -> str | None:
        """Return path to Google service account JSON file.

        Prefers GOOGLE_SERVICE_ACCOUNT_FILE (direct path) if set.
        Falls back to decoding GOOGLE_SERVICE_ACCOUNT_JSON_B64 into a temp file
        for containerized deployments where mounting a file is impractical.
        Returns None if neither is configured.
        """
        if self.GOOGLE_SERVICE_ACCOUNT_FILE:
            return self.GOOGLE_SERVICE_ACCOUNT_FILE
        if self.GOOGLE_SERVICE_ACCOUNT_JSON_B64:
            import base64
            import os
            import tempfile

            decoded = base64.b64decode(self.GOOGLE_SERVICE_ACCOUNT_JSON_B64)
            tmp_path = os.path.join(tempfile.gettempdir(), "gcp-service-account.json")
            with open(tmp_path, "wb") as f:
                f.write(decoded)
            return tmp_path
        return None

    def workflow_config(self) -> WorkflowConfig:
        """Build the immutable workflow configuration from these settings."""
        return WorkflowConfig(
            operator_email=self.GOOGLE_DELEGATED_USER_EMAIL,
            business_hours=BusinessHours(
                start_hour=self.BUSINESS_HOURS_START,
                end_hour=self.BUSINESS_HOURS_END,
                timezone=self.BUSINESS_TIMEZONE,
            ),
            followup_label=self.FOLLOWUP_LABEL,
            processed_label=self.PROCESSED_LABEL,
            sent_window_hours=self.SENT_WINDOW_HOURS,
            completion_lease_seconds=self.COMPLETION_LEASE_SECONDS,
            agenda_lookahead_hours=self.AGENDA_LOOKAHEAD_HOURS,
            retry_max_attempts=self.RETRY_MAX_ATTEMPTS,
            assignee_map={k.lower(): v for k, v in self.TASK_ASSIGNEES.items()},
        )


@lru_cache
def get_settings() -> Settings:
    """Singleton settings instance."""
    return Settings()
