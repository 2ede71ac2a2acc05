from __future__ import annotations

import math
from typing import List

from .config import DetectorConfig
from .geo import GeoResolver, distance_between, travel_speed
from .models import LoginAttempt, RiskSignal, UserProfile
from .time_analysis import (
    failed_attempts_in_window,
    hour_of_day,
    hours_between,
    is_unusual_login_time,
    typical_login_hours,
)

NEW_LOCATION_SCORE = 40
FAST_TRAVEL_SCORE = 30
NEAR_BRUTE_FORCE_SCORE = 40
UNUSUAL_TIME_SCORE = 35
MIN_SUCCESSFUL_LOGINS = 10


def to_score(value: float) -> int:
    """Round half up and clamp into the 0-100 range."""
    if math.isnan(value):
        return 0
    return max(0, min(100, int(math.floor(min(value, 100.0) + 0.5))))


class LocationChangeFactor:
    name = "location_change"

    def __init__(self, resolver: GeoResolver):
        self.resolver = resolver

    def assess(self, attempt: LoginAttempt, profile: UserProfile) -> RiskSignal:
        location = self.resolver.lookup(attempt.ip_address)
        if location is None:
            return RiskSignal(self.name, 0)

        # history holds only the attempt being scored
        if len(profile.login_history) <= 1:
            profile.add_typical_location(location)
            return RiskSignal(self.name, 0)

        if not profile.add_typical_location(location):
            return RiskSignal(self.name, 0)

        return RiskSignal(
            self.name,
            NEW_LOCATION_SCORE,
            (f"New location detected: {location.label()} (Risk: {NEW_LOCATION_SCORE})",),
        )


class ImpossibleTravelFactor:
    name = "impossible_travel"

    def __init__(self, resolver: GeoResolver, max_travel_speed: float):
        self.resolver = resolver
        self.max_travel_speed = max_travel_speed

    def assess(self, attempt: LoginAttempt, profile: UserProfile) -> RiskSignal:
        previous = profile.last_successful_login
        if previous is None:
            return RiskSignal(self.name, 0)

        current_location = self.resolver.lookup(attempt.ip_address)
        previous_location = self.resolver.lookup(previous.ip_address)
        if current_location is None or previous_location is None:
            return RiskSignal(self.name, 0)
        if current_location.same_place(previous_location):
            return RiskSignal(self.name, 0)

        elapsed = hours_between(previous.timestamp, attempt.timestamp)
        speed = travel_speed(previous_location, current_location, elapsed)

        if speed > self.max_travel_speed:
            ratio = speed / self.max_travel_speed
            score = to_score(60 + (ratio - 1) * 40)
        elif speed > self.max_travel_speed * 0.7:
            score = FAST_TRAVEL_SCORE
        else:
            return RiskSignal(self.name, 0)

        distance = distance_between(previous_location, current_location)
        speed_text = "instantaneous" if math.isinf(speed) else f"{speed:.0f} km/h"
        return RiskSignal(
            self.name,
            score,
            (
                f"Impossible travel detected (Risk: {score})",
                f"Previous login from: {previous_location.label()}",
                f"Required travel speed {speed_text} over {distance:.0f} km in {elapsed:.2f} h",
            ),
        )


class BruteForceFactor:
    name = "brute_force"

    def __init__(self, config: DetectorConfig):
        self.window = config.brute_force_timedelta
        self.window_minutes = config.brute_force_window
        self.threshold = config.brute_force_threshold

    def assess(self, attempt: LoginAttempt, profile: UserProfile) -> RiskSignal:
        failures = failed_attempts_in_window(profile.failed_attempts, attempt.timestamp, self.window)
        count = len(failures)

        if count >= self.threshold:
            ratio = count / self.threshold
            score = to_score(70 + (ratio - 1) * 30)
        elif count >= self.threshold * 0.7:
            score = NEAR_BRUTE_FORCE_SCORE
        else:
            return RiskSignal(self.name, 0)

        return RiskSignal(
            self.name,
            score,
            (f"{count} failed login attempts in last {self.window_minutes} minutes (Risk: {score})",),
        )


class UnusualTimeFactor:
    name = "unusual_time"

    def assess(self, attempt: LoginAttempt, profile: UserProfile) -> RiskSignal:
        successful = profile.successful_logins()
        if len(successful) < MIN_SUCCESSFUL_LOGINS:
            return RiskSignal(self.name, 0)

        profile.typical_login_hours = typical_login_hours(successful)
        if not is_unusual_login_time(attempt.timestamp, profile.typical_login_hours):
            return RiskSignal(self.name, 0)

        hours: List[str] = [f"{hour:02d}:00" for hour in sorted(profile.typical_login_hours)]
        return RiskSignal(
            self.name,
            UNUSUAL_TIME_SCORE,
            (
                f"Login at unusual time (Risk: {UNUSUAL_TIME_SCORE})",
                f"Hour {hour_of_day(attempt.timestamp):02d}:00 UTC outside typical hours {', '.join(hours)}",
            ),
        )
