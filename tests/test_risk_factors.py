from datetime import timedelta

import pytest

from conftest import BASE_TIME, BOSTON_IP, LONDON_IP, NY_IP, TOKYO_IP, UNKNOWN_IP, build_resolver, make_attempt, minutes
from suspicious_login_detector import DetectorConfig, UserProfile
from suspicious_login_detector.risk_factors import (
    BruteForceFactor,
    ImpossibleTravelFactor,
    LocationChangeFactor,
    UnusualTimeFactor,
    to_score,
)


def profile_with(*attempts, user="u"):
    profile = UserProfile(user_id=user)
    for attempt in attempts:
        profile.record(attempt)
    return profile


def test_to_score_rounds_half_up_and_clamps():
    assert to_score(61.5) == 62
    assert to_score(61.49) == 61
    assert to_score(float("inf")) == 100
    assert to_score(-3) == 0


def test_location_cold_start_records_typical_location():
    factor = LocationChangeFactor(build_resolver())
    attempt = make_attempt(ip=NY_IP)
    profile = profile_with(attempt)

    signal = factor.assess(attempt, profile)

    assert signal.score == 0
    assert [loc.city for loc in profile.typical_locations] == ["New York"]


def test_location_change_adds_new_place_and_dedupes():
    factor = LocationChangeFactor(build_resolver())
    profile = profile_with(make_attempt(ip=NY_IP))
    factor.assess(profile.login_history[0], profile)

    london = make_attempt(at=BASE_TIME + timedelta(days=1), ip=LONDON_IP)
    profile.record(london)
    assert factor.assess(london, profile).score == 40

    again = make_attempt(at=BASE_TIME + timedelta(days=2), ip=LONDON_IP)
    profile.record(again)
    assert factor.assess(again, profile).score == 0
    assert [loc.key for loc in profile.typical_locations] == [("US", "New York"), ("GB", "London")]


def test_location_unresolved_address_leaves_profile_untouched():
    factor = LocationChangeFactor(build_resolver())
    attempt = make_attempt(ip=UNKNOWN_IP)
    profile = profile_with(attempt)

    assert factor.assess(attempt, profile).score == 0
    assert profile.typical_locations == []


def travel_profile(previous_ip, previous_at=BASE_TIME):
    profile = UserProfile(user_id="u")
    profile.last_successful_login = make_attempt(at=previous_at, ip=previous_ip)
    return profile


@pytest.fixture
def travel():
    return ImpossibleTravelFactor(build_resolver(), DetectorConfig().max_travel_speed)


def test_impossible_travel_requires_previous_success(travel):
    assert travel.assess(make_attempt(ip=TOKYO_IP), UserProfile(user_id="u")).score == 0


def test_impossible_travel_ignores_same_city(travel):
    assert travel.assess(make_attempt(at=BASE_TIME + minutes(1), ip=NY_IP), travel_profile(NY_IP)).score == 0


def test_impossible_travel_ignores_unresolved_previous_location(travel):
    assert travel.assess(make_attempt(ip=TOKYO_IP), travel_profile(UNKNOWN_IP)).score == 0


def test_impossible_travel_scales_with_speed_ratio(travel):
    # New York to London is roughly 5570 km, 6 hours needs ~928 km/h
    signal = travel.assess(make_attempt(at=BASE_TIME + timedelta(hours=6), ip=LONDON_IP), travel_profile(NY_IP))
    assert 60 < signal.score < 65
    assert "Previous login from: New York, US" in signal.details


def test_impossible_travel_flags_fast_but_possible_trip(travel):
    signal = travel.assess(make_attempt(at=BASE_TIME + timedelta(hours=7), ip=LONDON_IP), travel_profile(NY_IP))
    assert signal.score == 30


def test_impossible_travel_accepts_realistic_trip(travel):
    signal = travel.assess(make_attempt(at=BASE_TIME + timedelta(hours=10), ip=LONDON_IP), travel_profile(NY_IP))
    assert signal.score == 0


def test_impossible_travel_uses_absolute_elapsed_time(travel):
    earlier = make_attempt(at=BASE_TIME - minutes(30), ip=TOKYO_IP)
    assert travel.assess(earlier, travel_profile(NY_IP)).score == 100


def test_simultaneous_relocation_scores_maximum(travel):
    signal = travel.assess(make_attempt(at=BASE_TIME, ip=BOSTON_IP), travel_profile(NY_IP))
    assert signal.score == 100
    assert any("instantaneous" in detail for detail in signal.details)


def test_brute_force_tiers():
    factor = BruteForceFactor(DetectorConfig())
    failures = [make_attempt(at=BASE_TIME + minutes(i), success=False) for i in range(10)]

    def score_after(count):
        profile = profile_with(*failures[:count])
        return factor.assess(failures[count - 1], profile).score

    assert score_after(3) == 0
    assert score_after(4) == 40
    assert score_after(5) == 70
    assert score_after(10) == 100


def test_brute_force_ignores_failures_outside_window():
    factor = BruteForceFactor(DetectorConfig())
    old = [make_attempt(at=BASE_TIME + minutes(i), success=False) for i in range(5)]
    current = make_attempt(at=BASE_TIME + minutes(45))
    profile = profile_with(*old, current)

    assert factor.assess(current, profile).score == 0


def test_unusual_time_needs_ten_successes():
    factor = UnusualTimeFactor()
    logins = [make_attempt(at=BASE_TIME + timedelta(days=d)) for d in range(9)]
    late = make_attempt(at=BASE_TIME.replace(hour=2) + timedelta(days=9))
    profile = profile_with(*logins, late)

    # nine at 10:00 plus the current one: ten successes, 02:00 holds 10%
    assert factor.assess(late, profile).score == 0
    assert profile.typical_login_hours == {2, 10}


def test_unusual_time_ignores_failures_when_learning():
    factor = UnusualTimeFactor()
    failures = [make_attempt(at=BASE_TIME.replace(hour=4), success=False) for _ in range(20)]
    profile = profile_with(*failures, make_attempt())

    assert factor.assess(profile.login_history[-1], profile).score == 0
    assert profile.typical_login_hours == set()
