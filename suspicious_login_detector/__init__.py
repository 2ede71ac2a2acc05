"""Suspicious Login Detection Engine."""

from .config import ConfigError, DetectorConfig, RiskThresholds, RiskWeights, ServiceSettings
from .geo import GeoResolver, MaxMindGeoResolver, StaticGeoResolver
from .models import GeoLocation, LoginAttempt, RiskAssessment, RiskFactors, UserProfile
from .persistence import (
    InMemoryAssessmentRepository,
    InMemoryProfileStore,
    MongoAssessmentRepository,
    MongoProfileStore,
    ProfileConflict,
    StorageUnavailable,
)
from .risk_engine import SuspiciousLoginDetector

__all__ = [
    "ConfigError",
    "DetectorConfig",
    "RiskThresholds",
    "RiskWeights",
    "ServiceSettings",
    "GeoResolver",
    "MaxMindGeoResolver",
    "StaticGeoResolver",
    "GeoLocation",
    "LoginAttempt",
    "RiskAssessment",
    "RiskFactors",
    "UserProfile",
    "InMemoryAssessmentRepository",
    "InMemoryProfileStore",
    "MongoAssessmentRepository",
    "MongoProfileStore",
    "ProfileConflict",
    "StorageUnavailable",
    "SuspiciousLoginDetector",
]
