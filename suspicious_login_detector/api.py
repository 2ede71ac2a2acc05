from __future__ import annotations

import logging
from typing import Dict, List, Optional, Union

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse

from .config import ServiceSettings
from .locks import UserLocks
from .models import LoginAttempt, RiskAssessment, UserProfile
from .persistence import (
    AssessmentSink,
    InMemoryAssessmentRepository,
    MongoAssessmentRepository,
    StorageUnavailable,
)
from .risk_engine import SuspiciousLoginDetector
from .schemas import (
    AssessmentListResponse,
    AssessmentPayload,
    BatchRequest,
    BatchResponse,
    GeoLocationPayload,
    LoginAttemptPayload,
    RiskProfileResponse,
    TaskEnqueueResponse,
    TaskStatusResponse,
    UserHistoryResponse,
)
from .tasks import enqueue_login_analysis
from .webhook import WebhookSink

logger = logging.getLogger(__name__)

AssessmentRepository = Union[InMemoryAssessmentRepository, MongoAssessmentRepository]


def _serialize_assessment(assessment: RiskAssessment) -> AssessmentPayload:
    return AssessmentPayload.from_assessment(assessment)


def _serialize_attempt(attempt: Optional[LoginAttempt]) -> Optional[LoginAttemptPayload]:
    if attempt is None:
        return None
    return LoginAttemptPayload.from_attempt(attempt)


def _require_profile(detector: SuspiciousLoginDetector, user_id: str) -> UserProfile:
    profile = detector.user_profile(user_id)
    if profile is None:
        raise HTTPException(status_code=404, detail=f"No login history found for user: {user_id}")
    return profile


def create_app(
    detector: SuspiciousLoginDetector | None = None,
    repository: AssessmentRepository | None = None,
    settings: ServiceSettings | None = None,
) -> FastAPI:
    settings = settings or ServiceSettings.from_env()
    repository = repository or MongoAssessmentRepository(settings.mongodb_uri, settings.mongodb_database)
    if detector is None:
        sinks: List[AssessmentSink] = [repository]
        if settings.webhook_url:
            sinks.append(WebhookSink(settings.webhook_url))
        detector = SuspiciousLoginDetector.from_settings(settings, sinks=sinks)

    app = FastAPI(title="Suspicious Login Detector API", version="1.0.0")
    app.state.detector = detector
    app.state.repository = repository
    app.state.user_locks = UserLocks()

    @app.exception_handler(StorageUnavailable)
    def storage_unavailable(request: Request, exc: StorageUnavailable) -> JSONResponse:
        logger.error("Storage unavailable while serving %s: %s", request.url.path, exc)
        return JSONResponse(status_code=503, content={"error": "Storage unavailable"})

    def analyze(attempt: LoginAttempt) -> RiskAssessment:
        with app.state.user_locks.hold(attempt.user_id):
            return app.state.detector.analyze_login(attempt)

    @app.get("/health")
    def health() -> Dict[str, str]:
        return {"status": "ok", "message": "Suspicious Login Detector API is running"}

    @app.post("/api/login/check", response_model=AssessmentPayload)
    def check_login(payload: LoginAttemptPayload) -> AssessmentPayload:
        return _serialize_assessment(analyze(payload.to_attempt()))

    @app.post("/api/login/batch", response_model=BatchResponse)
    def check_batch(request: BatchRequest) -> BatchResponse:
        attempts = sorted((item.to_attempt() for item in request.attempts), key=lambda a: a.timestamp)
        results = [_serialize_assessment(analyze(attempt)) for attempt in attempts]
        return BatchResponse(results=results, total=len(results))

    @app.post("/api/login/check/async", response_model=TaskEnqueueResponse, status_code=202)
    def queue_login_check(payload: LoginAttemptPayload) -> TaskEnqueueResponse:
        task_id = enqueue_login_analysis(payload.model_dump(mode="json", by_alias=True))
        return TaskEnqueueResponse(task_id=task_id, status="queued")

    @app.get("/api/tasks/{task_id}", response_model=TaskStatusResponse)
    def task_status(task_id: str) -> TaskStatusResponse:
        assessment = app.state.repository.get_by_task(task_id)
        if assessment is None:
            return TaskStatusResponse(task_id=task_id, status="pending")
        return TaskStatusResponse(task_id=task_id, status="completed", assessment=_serialize_assessment(assessment))

    @app.get("/api/user/{user_id}/history", response_model=UserHistoryResponse)
    def user_history(user_id: str) -> UserHistoryResponse:
        profile = _require_profile(app.state.detector, user_id)
        history = profile.login_history
        return UserHistoryResponse(
            user_id=profile.user_id,
            total_logins=len(history),
            successful_logins=sum(1 for attempt in history if attempt.success),
            failed_logins=len(profile.failed_attempts),
            history=[LoginAttemptPayload.from_attempt(attempt) for attempt in history],
            last_successful_login=_serialize_attempt(profile.last_successful_login),
        )

    @app.get("/api/user/{user_id}/risk-profile", response_model=RiskProfileResponse)
    def risk_profile(user_id: str) -> RiskProfileResponse:
        profile = _require_profile(app.state.detector, user_id)
        return RiskProfileResponse(
            user_id=profile.user_id,
            total_logins=len(profile.login_history),
            failed_attempts=len(profile.failed_attempts),
            typical_locations=[GeoLocationPayload.from_location(loc) for loc in profile.typical_locations],
            typical_login_hours=sorted(profile.typical_login_hours),
            last_successful_login=_serialize_attempt(profile.last_successful_login),
        )

    @app.get("/api/stats")
    def stats() -> Dict[str, object]:
        return app.state.repository.dashboard_stats()

    @app.get("/api/risk-assessments", response_model=AssessmentListResponse)
    def recent_assessments(
        limit: int = Query(default=50, ge=1, le=1000),
        user_id: Optional[str] = Query(default=None, alias="userId"),
    ) -> AssessmentListResponse:
        assessments = [_serialize_assessment(a) for a in app.state.repository.recent(limit, user_id=user_id)]
        return AssessmentListResponse(assessments=assessments, total=len(assessments))

    return app


app = create_app()
