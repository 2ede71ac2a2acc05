from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional
from uuid import uuid4

from celery import Celery

from .config import ServiceSettings
from .locks import UserLocks
from .persistence import AssessmentSink, MongoAssessmentRepository
from .risk_engine import SuspiciousLoginDetector
from .schemas import LoginAttemptPayload, assessment_to_wire
from .webhook import WebhookSink

_SETTINGS = ServiceSettings.from_env()

celery_app = Celery(
    "suspicious_login_detector",
    broker=_SETTINGS.celery_broker_url,
    backend=_SETTINGS.celery_result_backend or _SETTINGS.celery_broker_url,
)
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
)

_DETECTOR: Optional[SuspiciousLoginDetector] = None
_REPOSITORY: Optional[MongoAssessmentRepository] = None
_USER_LOCKS = UserLocks()


def _get_repository() -> MongoAssessmentRepository:
    global _REPOSITORY
    if _REPOSITORY is None:
        _REPOSITORY = MongoAssessmentRepository(_SETTINGS.mongodb_uri, _SETTINGS.mongodb_database)
    return _REPOSITORY


def _get_detector() -> SuspiciousLoginDetector:
    global _DETECTOR
    if _DETECTOR is None:
        # the task stores the assessment itself, keyed by task id
        sinks: List[AssessmentSink] = []
        if _SETTINGS.webhook_url:
            sinks.append(WebhookSink(_SETTINGS.webhook_url, source="async"))
        _DETECTOR = SuspiciousLoginDetector.from_settings(_SETTINGS, sinks=sinks)
    return _DETECTOR


@celery_app.task(name="suspicious_login_detector.analyze_login")
def analyze_login_task(task_id: str, attempt_payload: Mapping[str, Any]) -> Dict[str, Any]:
    attempt = LoginAttemptPayload.model_validate(dict(attempt_payload)).to_attempt()
    detector = _get_detector()
    with _USER_LOCKS.hold(attempt.user_id):
        assessment = detector.analyze_login(attempt)
    _get_repository().save_assessment(attempt, assessment, task_id=task_id)
    return assessment_to_wire(assessment)


def enqueue_login_analysis(attempt_payload: Mapping[str, Any]) -> str:
    task_id = str(uuid4())
    analyze_login_task.apply_async(args=[task_id, dict(attempt_payload)], task_id=task_id)
    return task_id
