"""Geodesy helpers and IP geolocation resolvers."""

from __future__ import annotations

import ipaddress
import logging
from functools import lru_cache
from math import atan2, cos, inf, radians, sin, sqrt
from typing import Mapping, Optional, Protocol

import geoip2.database
import geoip2.errors

from .models import GeoLocation

logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371.0


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance between two points in kilometers."""
    lat1, lon1, lat2, lon2 = map(radians, [lat1, lon1, lat2, lon2])
    dlat = lat2 - lat1
    dlon = lon2 - lon1
    a = sin(dlat / 2) ** 2 + cos(lat1) * cos(lat2) * sin(dlon / 2) ** 2
    c = 2 * atan2(sqrt(a), sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def distance_between(origin: GeoLocation, destination: GeoLocation) -> float:
    return haversine_km(origin.latitude, origin.longitude, destination.latitude, destination.longitude)


def travel_speed(origin: GeoLocation, destination: GeoLocation, hours: float) -> float:
    """Speed in km/h needed to cover the distance; ``inf`` when no time elapsed."""
    if hours == 0:
        return inf
    return distance_between(origin, destination) / hours


def is_public_address(address: str) -> bool:
    try:
        ip = ipaddress.ip_address(address)
    except ValueError:
        return False
    return ip.is_global


class GeoResolver(Protocol):
    def lookup(self, address: str) -> Optional[GeoLocation]:
        ...


class StaticGeoResolver:
    """Resolver backed by a fixed address table, handy for replays and tests."""

    def __init__(self, table: Optional[Mapping[str, GeoLocation]] = None):
        self.table = dict(table or {})

    def register(self, address: str, location: GeoLocation) -> None:
        self.table[address] = location

    def lookup(self, address: str) -> Optional[GeoLocation]:
        return self.table.get(address)


class MaxMindGeoResolver:
    """Resolver reading a MaxMind GeoLite2/GeoIP2 City database."""

    def __init__(self, database_path: str, cache_size: int = 5000):
        self.database_path = database_path
        self._reader = geoip2.database.Reader(database_path)
        self._cached_lookup = lru_cache(maxsize=cache_size)(self._lookup)

    def lookup(self, address: str) -> Optional[GeoLocation]:
        if not is_public_address(address):
            return None
        return self._cached_lookup(address)

    def _lookup(self, address: str) -> Optional[GeoLocation]:
        try:
            response = self._reader.city(address)
        except (geoip2.errors.AddressNotFoundError, ValueError):
            return None

        location = response.location
        if location.latitude is None or location.longitude is None:
            return None
        subdivision = response.subdivisions.most_specific
        return GeoLocation(
            country=response.country.iso_code or "",
            region=subdivision.iso_code or "",
            city=response.city.name or "Unknown",
            latitude=float(location.latitude),
            longitude=float(location.longitude),
        )

    def close(self) -> None:
        self._reader.close()

    def __enter__(self) -> "MaxMindGeoResolver":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


def build_geo_resolver(database_path: Optional[str]) -> GeoResolver:
    if database_path:
        return MaxMindGeoResolver(database_path)
    logger.warning("No GeoIP database configured; location-based factors will score 0")
    return StaticGeoResolver()
