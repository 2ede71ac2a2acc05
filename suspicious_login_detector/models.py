from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Literal, Optional, Set, Tuple

RiskLevel = Literal["low", "medium", "high", "critical"]
RISK_LEVELS: Tuple[RiskLevel, ...] = ("low", "medium", "high", "critical")


def as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass(slots=True, frozen=True)
class LoginAttempt:
    user_id: str
    timestamp: datetime
    ip_address: str
    success: bool
    user_agent: Optional[str] = None
    session_id: Optional[str] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "timestamp", as_utc(self.timestamp))


@dataclass(slots=True, frozen=True)
class GeoLocation:
    country: str
    region: str
    city: str
    latitude: float
    longitude: float

    @property
    def key(self) -> Tuple[str, str]:
        return (self.country, self.city)

    def same_place(self, other: "GeoLocation") -> bool:
        return self.key == other.key

    def label(self) -> str:
        return f"{self.city}, {self.country}"


@dataclass(slots=True, frozen=True)
class RiskSignal:
    name: str
    score: int
    details: Tuple[str, ...] = ()


@dataclass(slots=True, frozen=True)
class RiskFactors:
    location_change: int = 0
    impossible_travel: int = 0
    brute_force: int = 0
    unusual_time: int = 0


@dataclass(slots=True, frozen=True)
class RiskAssessment:
    user_id: str
    timestamp: datetime
    overall_risk: int
    risk_level: RiskLevel
    factors: RiskFactors
    recommendations: Tuple[str, ...]
    details: Tuple[str, ...]

    @property
    def is_suspicious(self) -> bool:
        return self.risk_level in ("high", "critical")


@dataclass(slots=True)
class UserProfile:
    user_id: str
    login_history: List[LoginAttempt] = field(default_factory=list)
    typical_locations: List[GeoLocation] = field(default_factory=list)
    typical_login_hours: Set[int] = field(default_factory=set)
    last_successful_login: Optional[LoginAttempt] = None
    failed_attempts: List[LoginAttempt] = field(default_factory=list)
    # bumped by the store on every successful save
    version: int = 0

    def record(self, attempt: LoginAttempt) -> None:
        self.login_history.append(attempt)
        if not attempt.success:
            self.failed_attempts.append(attempt)

    def successful_logins(self) -> List[LoginAttempt]:
        return [attempt for attempt in self.login_history if attempt.success]

    def is_typical_location(self, location: GeoLocation) -> bool:
        return any(known.same_place(location) for known in self.typical_locations)

    def add_typical_location(self, location: GeoLocation) -> bool:
        if self.is_typical_location(location):
            return False
        self.typical_locations.append(location)
        return True

    def trim_history(self, max_entries: int) -> None:
        """Keep only the most recent ``max_entries`` attempts."""
        if max_entries < 0 or len(self.login_history) <= max_entries:
            return
        self.login_history = self.login_history[len(self.login_history) - max_entries :]
        kept = {id(attempt) for attempt in self.login_history}
        self.failed_attempts = [attempt for attempt in self.failed_attempts if id(attempt) in kept]
