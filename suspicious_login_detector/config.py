from __future__ import annotations

import math
import os
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Optional

from .models import RiskLevel


class ConfigError(ValueError):
    """Raised when detector configuration is inconsistent."""


@dataclass(slots=True, frozen=True)
class RiskThresholds:
    low: int = 30
    medium: int = 50
    high: int = 70
    critical: int = 85


@dataclass(slots=True, frozen=True)
class RiskWeights:
    location_change: float = 0.2
    impossible_travel: float = 0.4
    brute_force: float = 0.3
    unusual_time: float = 0.1

    def total(self) -> float:
        return self.location_change + self.impossible_travel + self.brute_force + self.unusual_time


@dataclass(slots=True)
class DetectorConfig:
    """Configuration for the detector heuristics and risk buckets."""

    max_travel_speed: float = 900.0  # km/h, commercial flight
    brute_force_window: int = 30  # minutes
    brute_force_threshold: int = 5
    location_change_threshold: float = 100.0  # km, reserved
    risk_thresholds: RiskThresholds = field(default_factory=RiskThresholds)
    weights: RiskWeights = field(default_factory=RiskWeights)

    def __post_init__(self) -> None:
        if self.max_travel_speed <= 0:
            raise ConfigError("max_travel_speed must be positive")
        if self.brute_force_window <= 0:
            raise ConfigError("brute_force_window must be positive")
        if self.brute_force_threshold <= 0:
            raise ConfigError("brute_force_threshold must be positive")

        thresholds = self.risk_thresholds
        ordered = [thresholds.low, thresholds.medium, thresholds.high, thresholds.critical]
        if any(value < 0 or value > 100 for value in ordered):
            raise ConfigError(f"risk thresholds must lie in [0, 100], got {ordered}")
        if any(lower >= upper for lower, upper in zip(ordered, ordered[1:])):
            raise ConfigError(f"risk thresholds must be strictly increasing, got {ordered}")

        if not math.isclose(self.weights.total(), 1.0, abs_tol=1e-9):
            raise ConfigError(f"risk weights must sum to 1.0, got {self.weights.total():.4f}")

    @property
    def brute_force_timedelta(self) -> timedelta:
        return timedelta(minutes=self.brute_force_window)

    def classify(self, risk_score: int) -> RiskLevel:
        thresholds = self.risk_thresholds
        if risk_score >= thresholds.critical:
            return "critical"
        if risk_score >= thresholds.high:
            return "high"
        if risk_score >= thresholds.medium:
            return "medium"
        return "low"


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    try:
        return float(value)
    except ValueError as exc:
        raise ConfigError(f"{name} must be a number, got {value!r}") from exc


def _env_int(name: str, default: Optional[int]) -> Optional[int]:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    try:
        return int(value)
    except ValueError as exc:
        raise ConfigError(f"{name} must be an integer, got {value!r}") from exc


@dataclass(slots=True)
class ServiceSettings:
    """Deployment wiring read from the environment."""

    mongodb_uri: str = "mongodb://mongo:27017/"
    mongodb_database: str = "suspicious_logins"
    geoip_database_path: Optional[str] = None
    webhook_url: Optional[str] = None
    celery_broker_url: str = "redis://redis:6379/0"
    celery_result_backend: Optional[str] = None
    profile_history_limit: Optional[int] = None
    detector: DetectorConfig = field(default_factory=DetectorConfig)

    @classmethod
    def from_env(cls) -> "ServiceSettings":
        defaults = DetectorConfig()
        broker = os.getenv("CELERY_BROKER_URL", "redis://redis:6379/0")
        return cls(
            mongodb_uri=os.getenv("MONGODB_URI", "mongodb://mongo:27017/"),
            mongodb_database=os.getenv("MONGODB_DATABASE", "suspicious_logins"),
            geoip_database_path=os.getenv("GEOIP_DATABASE_PATH") or None,
            webhook_url=os.getenv("ASSESSMENT_WEBHOOK_URL") or None,
            celery_broker_url=broker,
            celery_result_backend=os.getenv("CELERY_RESULT_BACKEND", broker),
            profile_history_limit=_env_int("PROFILE_HISTORY_LIMIT", None),
            detector=DetectorConfig(
                max_travel_speed=_env_float("DETECTOR_MAX_TRAVEL_SPEED", defaults.max_travel_speed),
                brute_force_window=_env_int("DETECTOR_BRUTE_FORCE_WINDOW", defaults.brute_force_window),
                brute_force_threshold=_env_int("DETECTOR_BRUTE_FORCE_THRESHOLD", defaults.brute_force_threshold),
            ),
        )
