"""Meeting-recording webhook receiver.

The raw body is verified against the HMAC-SHA256 signature header before it
is parsed. A rejected request (bad signature or malformed body) creates no
meeting event and writes exactly one ``validation_failure`` audit record.
"""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel, ValidationError

from src.clientops.api.deps import get_app_settings, get_ledger, get_orchestrator
from src.clientops.config import Settings
from src.clientops.core.errors import ClientOpsError, ValidationFailure
from src.clientops.core.security import verify_webhook_signature
from src.clientops.ledger import ActionType, AuditStatus
from src.clientops.meetings.schemas import WebhookPayload

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


class WebhookAccepted(BaseModel):
    event_id: str
    state: str
    client_id: str | None = None


@router.post("/meeting", response_model=WebhookAccepted)
async def receive_meeting_webhook(
    request: Request,
    settings: Settings = Depends(get_app_settings),
    ledger: Any = Depends(get_ledger),
    orchestrator: Any = Depends(get_orchestrator),
) -> WebhookAccepted:
    """Ingest one recorded meeting.

    Returns 401 on a missing or mismatched signature, 422 on a malformed
    body, and 503 when a persistence or external failure prevents the event
    from being recorded (the provider may safely redeliver).
    """
    raw_body = await request.body()

    try:
        verify_webhook_signature(
            raw_body,
            request.headers.get(settings.WEBHOOK_SIGNATURE_HEADER),
            settings.WEBHOOK_SECRET,
        )
    except ValidationFailure as exc:
        logger.warning("webhook.signature_rejected", reason=exc.reason)
        await ledger.audit(ActionType.VALIDATION_FAILURE, AuditStatus.ERROR, exc.reason)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=exc.reason)

    try:
        payload = WebhookPayload.model_validate_json(raw_body)
    except ValidationError as exc:
        reason = f"malformed webhook body: {exc.error_count()} error(s)"
        logger.warning("webhook.body_rejected", errors=exc.errors(include_url=False))
        await ledger.audit(ActionType.VALIDATION_FAILURE, AuditStatus.ERROR, reason)
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=reason)

    try:
        event = await orchestrator.ingest_webhook(payload)
    except ClientOpsError as exc:
        logger.error("webhook.ingest_failed", error=str(exc), exc_info=True)
        await ledger.audit(ActionType.TRANSITION_ERROR, AuditStatus.ERROR, str(exc))
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))

    return WebhookAccepted(
        event_id=event.event_id,
        state=event.state.value,
        client_id=event.client_id,
    )
