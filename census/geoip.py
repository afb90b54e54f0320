"""Geolocation: MaxMind GeoLite2-City reader behind a ``lookup(ip)`` interface."""

import logging
from typing import Protocol

import geoip2.database
import geoip2.errors

from census.models import GeoLocation

logger = logging.getLogger(__name__)


class GeoLookupError(Exception):
    """Raised when an IP address cannot be geolocated."""


class Geolocator(Protocol):
    """Anything that can resolve an IP address to a ``GeoLocation``."""

    def lookup(self, ip: str) -> GeoLocation:
        """Return the location of *ip* or raise ``GeoLookupError``."""


class GeoIPReader:
    """Wrapper around a MaxMind GeoLite2-City database reader.

    Every failed lookup raises ``GeoLookupError``.

    Args:
        city_db_path: Path to ``GeoLite2-City.mmdb``.

    Raises:
        GeoLookupError: If the database file cannot be opened.
    """

    def __init__(self, city_db_path: str) -> None:
        try:
            self._reader = geoip2.database.Reader(city_db_path)
        except (FileNotFoundError, ValueError) as exc:
            raise GeoLookupError(
                f"Cannot open GeoLite2-City DB at {city_db_path}: {exc}"
            ) from exc
        logger.debug("Opened GeoLite2-City DB: %s", city_db_path)

    def __enter__(self) -> "GeoIPReader":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        """Close the underlying database reader."""
        self._reader.close()

    def lookup(self, ip: str) -> GeoLocation:
        """Look up country/city/coordinates for an IP address.

        Args:
            ip: IPv4 or IPv6 address string.

        Returns:
            The ``GeoLocation`` of *ip*.

        Raises:
            GeoLookupError: If the address is unknown or malformed.
        """
        try:
            resp = self._reader.city(ip)
        except (geoip2.errors.AddressNotFoundError, ValueError) as exc:
            raise GeoLookupError(f"City lookup failed for {ip}: {exc}") from exc

        return GeoLocation(
            country=resp.country.name,
            city=resp.city.name,
            latitude=resp.location.latitude,
            longitude=resp.location.longitude,
        )
