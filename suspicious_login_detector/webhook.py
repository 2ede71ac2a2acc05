from __future__ import annotations

import logging
from typing import Any, Mapping, MutableMapping, Optional

import httpx
from fastapi.encoders import jsonable_encoder

from .models import LoginAttempt, RiskAssessment
from .schemas import assessment_to_wire

logger = logging.getLogger(__name__)

LOGIN_ANALYZED_EVENT = "login_analyzed"


def build_assessment_payload(
    *,
    attempt: LoginAttempt,
    assessment: RiskAssessment,
    task_id: Optional[str] = None,
    source: str = "sync",
) -> MutableMapping[str, Any]:
    """Create the JSON body pushed to subscribers for one analyzed login."""
    payload: MutableMapping[str, Any] = {
        "event": LOGIN_ANALYZED_EVENT,
        "taskId": task_id,
        "source": source,
        **assessment_to_wire(assessment),
        "ipAddress": attempt.ip_address,
        "success": attempt.success,
    }
    return jsonable_encoder(payload)


def deliver_webhook(
    webhook_url: Optional[str],
    payload: Mapping[str, Any],
    client: Optional[httpx.Client] = None,
) -> bool:
    """Send the payload to the configured webhook endpoint if present."""
    if not webhook_url:
        return False

    try:
        if client is not None:
            response = client.post(str(webhook_url), json=payload)
            response.raise_for_status()
        else:
            with httpx.Client(timeout=5.0) as owned:
                response = owned.post(str(webhook_url), json=payload)
                response.raise_for_status()
    except httpx.HTTPError as exc:
        logger.warning("Failed to deliver assessment webhook to %s: %s", webhook_url, exc)
        return False
    return True


class WebhookSink:
    """Pushes every assessment to a subscriber URL."""

    def __init__(self, url: str, source: str = "sync", client: Optional[httpx.Client] = None):
        self.url = url
        self.source = source
        self.client = client

    def publish(self, attempt: LoginAttempt, assessment: RiskAssessment) -> None:
        payload = build_assessment_payload(attempt=attempt, assessment=assessment, source=self.source)
        deliver_webhook(self.url, payload, client=self.client)
