from __future__ import annotations

import copy
import logging
import threading
from dataclasses import asdict
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, MutableMapping, Optional, Protocol

from pymongo import DESCENDING, MongoClient
from pymongo.errors import DuplicateKeyError, PyMongoError

from .models import RISK_LEVELS, GeoLocation, LoginAttempt, RiskAssessment, UserProfile
from .schemas import AssessmentPayload, LoginAttemptPayload

logger = logging.getLogger(__name__)

SUSPICIOUS_LEVELS = ["high", "critical"]
RECENT_HIGH_RISK_LIMIT = 10


class StorageUnavailable(RuntimeError):
    """The persistence backend could not be reached."""


class ProfileConflict(StorageUnavailable):
    """The stored profile changed since it was loaded."""


class ProfileStore(Protocol):
    def load(self, user_id: str) -> Optional[UserProfile]:
        ...

    def save(self, profile: UserProfile) -> None:
        ...


class AssessmentSink(Protocol):
    def publish(self, attempt: LoginAttempt, assessment: RiskAssessment) -> None:
        ...


class InMemoryProfileStore:
    """Process-local profile store. Profiles are copied in and out."""

    def __init__(self, max_history: Optional[int] = None) -> None:
        self.max_history = max_history
        self._profiles: Dict[str, UserProfile] = {}
        self._lock = threading.Lock()

    def load(self, user_id: str) -> Optional[UserProfile]:
        with self._lock:
            profile = self._profiles.get(user_id)
            return copy.deepcopy(profile) if profile is not None else None

    def save(self, profile: UserProfile) -> None:
        stored = copy.deepcopy(profile)
        if self.max_history is not None:
            stored.trim_history(self.max_history)
        with self._lock:
            current = self._profiles.get(profile.user_id)
            current_version = current.version if current is not None else 0
            if current_version != profile.version:
                raise ProfileConflict(
                    f"profile for {profile.user_id} is at version {current_version}, not {profile.version}"
                )
            stored.version = profile.version + 1
            self._profiles[profile.user_id] = stored
        profile.version = stored.version

    def user_ids(self) -> List[str]:
        with self._lock:
            return list(self._profiles)


def attempt_to_document(attempt: LoginAttempt) -> Dict[str, Any]:
    return LoginAttemptPayload.from_attempt(attempt).model_dump()


def attempt_from_document(document: Mapping[str, Any]) -> LoginAttempt:
    return LoginAttemptPayload.model_validate(dict(document)).to_attempt()


def profile_to_document(profile: UserProfile) -> Dict[str, Any]:
    last = profile.last_successful_login
    return {
        "user_id": profile.user_id,
        "login_history": [attempt_to_document(attempt) for attempt in profile.login_history],
        "typical_locations": [asdict(location) for location in profile.typical_locations],
        "typical_login_hours": sorted(profile.typical_login_hours),
        "last_successful_login": attempt_to_document(last) if last is not None else None,
        "version": profile.version,
        "updated_at": datetime.now(timezone.utc),
    }


def profile_from_document(document: Mapping[str, Any]) -> UserProfile:
    history = [attempt_from_document(item) for item in document.get("login_history", [])]
    last_document = document.get("last_successful_login")
    return UserProfile(
        user_id=str(document["user_id"]),
        login_history=history,
        typical_locations=[GeoLocation(**item) for item in document.get("typical_locations", [])],
        typical_login_hours={int(hour) for hour in document.get("typical_login_hours", [])},
        last_successful_login=attempt_from_document(last_document) if last_document else None,
        failed_attempts=[attempt for attempt in history if not attempt.success],
        version=int(document.get("version", 0)),
    )


class MongoProfileStore:
    """MongoDB-backed profile store, one document per user."""

    def __init__(
        self,
        uri: str,
        database: str = "suspicious_logins",
        max_history: Optional[int] = None,
        client: Optional[MongoClient] = None,
    ) -> None:
        self.client = client or MongoClient(uri, tz_aware=True)
        self.profiles = self.client[database]["user_profiles"]
        self.max_history = max_history
        self._indexed = False

    def _ensure_index(self) -> None:
        if not self._indexed:
            self.profiles.create_index("user_id", unique=True)
            self._indexed = True

    def load(self, user_id: str) -> Optional[UserProfile]:
        try:
            document = self.profiles.find_one({"user_id": user_id})
        except PyMongoError as exc:
            raise StorageUnavailable(f"could not load profile for {user_id}") from exc
        if document is None:
            return None
        return profile_from_document(document)

    def save(self, profile: UserProfile) -> None:
        """Write ``profile`` only if nobody saved it since it was loaded.

        Raises ``ProfileConflict`` when the stored version moved on.
        """
        stored = profile
        if self.max_history is not None:
            stored = copy.deepcopy(profile)
            stored.trim_history(self.max_history)
        document = profile_to_document(stored)
        document["version"] = profile.version + 1
        try:
            self._ensure_index()
            if profile.version == 0:
                self.profiles.insert_one(document)
                matched = True
            else:
                result = self.profiles.replace_one({"user_id": profile.user_id, "version": profile.version}, document)
                matched = result.matched_count == 1
        except DuplicateKeyError as exc:
            raise ProfileConflict(f"profile for {profile.user_id} was created concurrently") from exc
        except PyMongoError as exc:
            raise StorageUnavailable(f"could not save profile for {profile.user_id}") from exc
        if not matched:
            raise ProfileConflict(f"profile for {profile.user_id} changed since version {profile.version}")
        profile.version += 1


def assessment_to_document(
    attempt: LoginAttempt,
    assessment: RiskAssessment,
    task_id: Optional[str] = None,
) -> Dict[str, Any]:
    document: MutableMapping[str, Any] = AssessmentPayload.from_assessment(assessment).model_dump()
    document.update(
        {
            "ip_address": attempt.ip_address,
            "success": attempt.success,
            "created_at": datetime.now(timezone.utc),
        }
    )
    if task_id is not None:
        document["task_id"] = task_id
    return dict(document)


def assessment_from_document(document: Mapping[str, Any]) -> RiskAssessment:
    return AssessmentPayload.model_validate(dict(document)).to_assessment()


def _high_risk_entry(document: Mapping[str, Any]) -> Dict[str, Any]:
    return {
        "userId": document["user_id"],
        "timestamp": document["timestamp"],
        "riskLevel": document["risk_level"],
        "overallRisk": document["overall_risk"],
        "ipAddress": document.get("ip_address"),
    }


class InMemoryAssessmentRepository:
    """Keeps assessment documents in insertion order."""

    def __init__(self) -> None:
        self._documents: List[Dict[str, Any]] = []
        self._lock = threading.Lock()

    def publish(self, attempt: LoginAttempt, assessment: RiskAssessment) -> None:
        self.save_assessment(attempt, assessment)

    def save_assessment(
        self,
        attempt: LoginAttempt,
        assessment: RiskAssessment,
        task_id: Optional[str] = None,
    ) -> None:
        document = assessment_to_document(attempt, assessment, task_id)
        with self._lock:
            if task_id is not None:
                self._documents = [doc for doc in self._documents if doc.get("task_id") != task_id]
            self._documents.append(document)

    def _newest_first(self) -> List[Dict[str, Any]]:
        with self._lock:
            documents = list(self._documents)
        # stable sort keeps later inserts ahead on equal timestamps
        return sorted(reversed(documents), key=lambda doc: doc["timestamp"], reverse=True)

    def recent(self, limit: int = 50, user_id: Optional[str] = None) -> List[RiskAssessment]:
        documents = [doc for doc in self._newest_first() if user_id is None or doc["user_id"] == user_id]
        return [assessment_from_document(doc) for doc in documents[:limit]]

    def get_by_task(self, task_id: str) -> Optional[RiskAssessment]:
        with self._lock:
            for document in self._documents:
                if document.get("task_id") == task_id:
                    return assessment_from_document(document)
        return None

    def dashboard_stats(self) -> Dict[str, Any]:
        documents = self._newest_first()
        breakdown: Dict[str, int] = {}
        for document in documents:
            breakdown[document["risk_level"]] = breakdown.get(document["risk_level"], 0) + 1
        high_risk = [doc for doc in documents if doc["risk_level"] in SUSPICIOUS_LEVELS]
        return {
            "totalLogins": len(documents),
            "suspiciousLogins": len(high_risk),
            "uniqueUsers": len({doc["user_id"] for doc in documents}),
            "recentHighRisk": [_high_risk_entry(doc) for doc in high_risk[:RECENT_HIGH_RISK_LIMIT]],
            "riskBreakdown": {level: breakdown[level] for level in RISK_LEVELS if level in breakdown},
        }


class MongoAssessmentRepository:
    """MongoDB-backed repository for assessment results."""

    def __init__(
        self,
        uri: str,
        database: str = "suspicious_logins",
        client: Optional[MongoClient] = None,
    ) -> None:
        self.client = client or MongoClient(uri, tz_aware=True)
        self.assessments = self.client[database]["risk_assessments"]
        self._indexed = False

    def _ensure_indexes(self) -> None:
        if self._indexed:
            return
        self.assessments.create_index("task_id", unique=True, sparse=True)
        self.assessments.create_index([("user_id", 1), ("timestamp", DESCENDING)])
        self.assessments.create_index([("timestamp", DESCENDING)])
        self._indexed = True

    def publish(self, attempt: LoginAttempt, assessment: RiskAssessment) -> None:
        self.save_assessment(attempt, assessment)

    def save_assessment(
        self,
        attempt: LoginAttempt,
        assessment: RiskAssessment,
        task_id: Optional[str] = None,
    ) -> None:
        document = assessment_to_document(attempt, assessment, task_id)
        try:
            self._ensure_indexes()
            if task_id is not None:
                self.assessments.replace_one({"task_id": task_id}, document, upsert=True)
            else:
                self.assessments.insert_one(document)
        except PyMongoError as exc:
            raise StorageUnavailable("could not store risk assessment") from exc

    def recent(self, limit: int = 50, user_id: Optional[str] = None) -> List[RiskAssessment]:
        query: Dict[str, Any] = {} if user_id is None else {"user_id": user_id}
        try:
            cursor = self.assessments.find(query).sort("timestamp", DESCENDING).limit(limit)
            return [assessment_from_document(doc) for doc in cursor]
        except PyMongoError as exc:
            raise StorageUnavailable("could not read risk assessments") from exc

    def get_by_task(self, task_id: str) -> Optional[RiskAssessment]:
        try:
            document = self.assessments.find_one({"task_id": task_id})
        except PyMongoError as exc:
            raise StorageUnavailable("could not read risk assessment") from exc
        if document is None:
            return None
        return assessment_from_document(document)

    def dashboard_stats(self) -> Dict[str, Any]:
        suspicious = {"risk_level": {"$in": SUSPICIOUS_LEVELS}}
        try:
            recent = self.assessments.find(suspicious).sort("timestamp", DESCENDING).limit(RECENT_HIGH_RISK_LIMIT)
            breakdown = {
                row["_id"]: row["count"]
                for row in self.assessments.aggregate([{"$group": {"_id": "$risk_level", "count": {"$sum": 1}}}])
            }
            return {
                "totalLogins": self.assessments.count_documents({}),
                "suspiciousLogins": self.assessments.count_documents(suspicious),
                "uniqueUsers": len(self.assessments.distinct("user_id")),
                "recentHighRisk": [_high_risk_entry(doc) for doc in recent],
                "riskBreakdown": {level: breakdown[level] for level in RISK_LEVELS if level in breakdown},
            }
        except PyMongoError as exc:
            raise StorageUnavailable("could not compute dashboard statistics") from exc
