import math
from types import SimpleNamespace

import geoip2.database
import geoip2.errors
import pytest

from conftest import LONDON, NEW_YORK, TOKYO
from suspicious_login_detector.geo import (
    MaxMindGeoResolver,
    StaticGeoResolver,
    build_geo_resolver,
    distance_between,
    haversine_km,
    is_public_address,
    travel_speed,
)


def test_haversine_known_city_pairs():
    assert distance_between(NEW_YORK, TOKYO) == pytest.approx(10850, rel=0.01)
    assert distance_between(NEW_YORK, LONDON) == pytest.approx(5570, rel=0.01)
    assert haversine_km(0, 0, 0, 0) == 0


def test_haversine_is_symmetric():
    assert distance_between(TOKYO, LONDON) == pytest.approx(distance_between(LONDON, TOKYO))


def test_travel_speed_divides_distance_by_hours():
    assert travel_speed(NEW_YORK, TOKYO, 0.5) == pytest.approx(21700, rel=0.01)


def test_travel_speed_without_elapsed_time_is_infinite():
    assert math.isinf(travel_speed(NEW_YORK, LONDON, 0))


def test_static_resolver_returns_none_for_unknown_addresses():
    resolver = StaticGeoResolver({"198.51.100.1": NEW_YORK})
    resolver.register("198.51.100.2", TOKYO)

    assert resolver.lookup("198.51.100.1") is NEW_YORK
    assert resolver.lookup("198.51.100.2") is TOKYO
    assert resolver.lookup("198.51.100.3") is None


@pytest.mark.parametrize(
    "address, expected",
    [("8.8.8.8", True), ("10.0.0.1", False), ("127.0.0.1", False), ("not-an-ip", False)],
)
def test_public_address_detection(address, expected):
    assert is_public_address(address) is expected


class FakeReader:
    calls = []

    def __init__(self, path):
        self.path = path
        self.closed = False

    def city(self, address):
        FakeReader.calls.append(address)
        if address == "1.1.1.1":
            raise geoip2.errors.AddressNotFoundError("not found")
        if address == "9.9.9.9":
            return SimpleNamespace(
                country=SimpleNamespace(iso_code="CH"),
                subdivisions=SimpleNamespace(most_specific=SimpleNamespace(iso_code=None)),
                city=SimpleNamespace(name=None),
                location=SimpleNamespace(latitude=47.0, longitude=8.0),
            )
        return SimpleNamespace(
            country=SimpleNamespace(iso_code="US"),
            subdivisions=SimpleNamespace(most_specific=SimpleNamespace(iso_code="CA")),
            city=SimpleNamespace(name="Mountain View"),
            location=SimpleNamespace(latitude=37.386, longitude=-122.0838),
        )

    def close(self):
        self.closed = True


@pytest.fixture
def maxmind(monkeypatch):
    FakeReader.calls = []
    monkeypatch.setattr(geoip2.database, "Reader", FakeReader)
    return MaxMindGeoResolver("/tmp/GeoLite2-City.mmdb")


def test_maxmind_resolver_maps_city_response(maxmind):
    location = maxmind.lookup("8.8.8.8")

    assert location.country == "US"
    assert location.region == "CA"
    assert location.city == "Mountain View"
    assert location.latitude == pytest.approx(37.386)


def test_maxmind_resolver_uses_unknown_city_placeholder(maxmind):
    assert maxmind.lookup("9.9.9.9").city == "Unknown"
    assert maxmind.lookup("9.9.9.9").region == ""


def test_maxmind_resolver_skips_private_and_missing_addresses(maxmind):
    assert maxmind.lookup("192.168.1.10") is None
    assert maxmind.lookup("1.1.1.1") is None
    assert FakeReader.calls == ["1.1.1.1"]


def test_maxmind_resolver_caches_lookups(maxmind):
    maxmind.lookup("8.8.8.8")
    maxmind.lookup("8.8.8.8")
    assert FakeReader.calls == ["8.8.8.8"]


def test_maxmind_resolver_closes_reader(maxmind):
    with maxmind as resolver:
        resolver.lookup("8.8.8.8")
    assert maxmind._reader.closed


def test_build_geo_resolver_without_database_falls_back_to_empty_table():
    resolver = build_geo_resolver(None)
    assert isinstance(resolver, StaticGeoResolver)
    assert resolver.lookup("8.8.8.8") is None
