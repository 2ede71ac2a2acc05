from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .models import GeoLocation, LoginAttempt, RiskAssessment, RiskFactors, RiskLevel


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class LoginAttemptPayload(WireModel):
    user_id: str = Field(
        min_length=1,
        validation_alias=AliasChoices("userId", "user_id"),
        serialization_alias="userId",
    )
    timestamp: datetime = Field(default_factory=_utcnow)
    ip_address: str = Field(
        min_length=1,
        validation_alias=AliasChoices("ipAddress", "ip_address", "ip"),
        serialization_alias="ipAddress",
    )
    success: bool = True
    user_agent: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("userAgent", "user_agent"),
        serialization_alias="userAgent",
    )
    session_id: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("sessionId", "session_id"),
        serialization_alias="sessionId",
    )

    def to_attempt(self) -> LoginAttempt:
        return LoginAttempt(
            user_id=self.user_id,
            timestamp=self.timestamp,
            ip_address=self.ip_address,
            success=self.success,
            user_agent=self.user_agent,
            session_id=self.session_id,
        )

    @classmethod
    def from_attempt(cls, attempt: LoginAttempt) -> "LoginAttemptPayload":
        return cls(
            user_id=attempt.user_id,
            timestamp=attempt.timestamp,
            ip_address=attempt.ip_address,
            success=attempt.success,
            user_agent=attempt.user_agent,
            session_id=attempt.session_id,
        )


class BatchRequest(WireModel):
    attempts: List[LoginAttemptPayload]


class GeoLocationPayload(WireModel):
    country: str
    region: str
    city: str
    latitude: float
    longitude: float

    @classmethod
    def from_location(cls, location: GeoLocation) -> "GeoLocationPayload":
        return cls(
            country=location.country,
            region=location.region,
            city=location.city,
            latitude=location.latitude,
            longitude=location.longitude,
        )

    def to_location(self) -> GeoLocation:
        return GeoLocation(**self.model_dump())


class RiskFactorsPayload(WireModel):
    location_change: int = Field(ge=0, le=100)
    impossible_travel: int = Field(ge=0, le=100)
    brute_force: int = Field(ge=0, le=100)
    unusual_time: int = Field(ge=0, le=100)


class AssessmentPayload(WireModel):
    user_id: str
    timestamp: datetime
    overall_risk: int = Field(ge=0, le=100)
    risk_level: RiskLevel
    factors: RiskFactorsPayload
    recommendations: List[str]
    details: List[str]

    @classmethod
    def from_assessment(cls, assessment: RiskAssessment) -> "AssessmentPayload":
        factors = assessment.factors
        return cls(
            user_id=assessment.user_id,
            timestamp=assessment.timestamp,
            overall_risk=assessment.overall_risk,
            risk_level=assessment.risk_level,
            factors=RiskFactorsPayload(
                location_change=factors.location_change,
                impossible_travel=factors.impossible_travel,
                brute_force=factors.brute_force,
                unusual_time=factors.unusual_time,
            ),
            recommendations=list(assessment.recommendations),
            details=list(assessment.details),
        )

    def to_assessment(self) -> RiskAssessment:
        return RiskAssessment(
            user_id=self.user_id,
            timestamp=self.timestamp,
            overall_risk=self.overall_risk,
            risk_level=self.risk_level,
            factors=RiskFactors(**self.factors.model_dump()),
            recommendations=tuple(self.recommendations),
            details=tuple(self.details),
        )


def assessment_to_wire(assessment: RiskAssessment) -> Dict[str, Any]:
    return AssessmentPayload.from_assessment(assessment).model_dump(mode="json", by_alias=True)


class BatchResponse(WireModel):
    results: List[AssessmentPayload]
    total: int


class AssessmentListResponse(WireModel):
    assessments: List[AssessmentPayload]
    total: int


class TaskEnqueueResponse(WireModel):
    task_id: str
    status: str


class TaskStatusResponse(WireModel):
    task_id: str
    status: str
    assessment: Optional[AssessmentPayload] = None


class UserHistoryResponse(WireModel):
    user_id: str
    total_logins: int
    successful_logins: int
    failed_logins: int
    history: List[LoginAttemptPayload]
    last_successful_login: Optional[LoginAttemptPayload] = None


class RiskProfileResponse(WireModel):
    user_id: str
    total_logins: int
    failed_attempts: int
    typical_locations: List[GeoLocationPayload]
    typical_login_hours: List[int]
    last_successful_login: Optional[LoginAttemptPayload] = None
