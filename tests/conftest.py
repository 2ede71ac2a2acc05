from datetime import datetime, timedelta, timezone

import pytest

from suspicious_login_detector import (
    GeoLocation,
    InMemoryProfileStore,
    LoginAttempt,
    StaticGeoResolver,
    SuspiciousLoginDetector,
)

NEW_YORK = GeoLocation("US", "NY", "New York", 40.7128, -74.0060)
TOKYO = GeoLocation("JP", "13", "Tokyo", 35.6762, 139.6503)
LONDON = GeoLocation("GB", "ENG", "London", 51.5074, -0.1278)
BOSTON = GeoLocation("US", "MA", "Boston", 42.3601, -71.0589)

NY_IP = "198.51.100.1"
NY_OTHER_IP = "198.51.100.5"
TOKYO_IP = "198.51.100.2"
LONDON_IP = "198.51.100.3"
BOSTON_IP = "198.51.100.4"
UNKNOWN_IP = "192.0.2.99"

BASE_TIME = datetime(2024, 1, 1, 10, 0, tzinfo=timezone.utc)


def build_resolver() -> StaticGeoResolver:
    return StaticGeoResolver(
        {
            NY_IP: NEW_YORK,
            NY_OTHER_IP: NEW_YORK,
            TOKYO_IP: TOKYO,
            LONDON_IP: LONDON,
            BOSTON_IP: BOSTON,
        }
    )


def make_attempt(
    user: str = "alice",
    at: datetime = BASE_TIME,
    ip: str = NY_IP,
    success: bool = True,
) -> LoginAttempt:
    return LoginAttempt(user_id=user, timestamp=at, ip_address=ip, success=success)


def minutes(value: float) -> timedelta:
    return timedelta(minutes=value)


@pytest.fixture
def resolver() -> StaticGeoResolver:
    return build_resolver()


@pytest.fixture
def store() -> InMemoryProfileStore:
    return InMemoryProfileStore()


@pytest.fixture
def detector(resolver, store) -> SuspiciousLoginDetector:
    return SuspiciousLoginDetector(profile_store=store, geo_resolver=resolver)
