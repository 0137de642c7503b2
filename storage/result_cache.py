"""Spatio-temporal cache of the last successful search."""
import logging
import threading
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from finder.geo import drift_km
from processor.models import Coordinate, Meeting, ResultCache

logger = logging.getLogger(__name__)

CACHE_DURATION = timedelta(hours=24)
MAX_DRIFT_KM = 5.0
MAX_RADIUS_DELTA_KM = 10.0


def as_utc(value: datetime) -> datetime:
    """Aware UTC copy of value; naive datetimes are taken as local time."""
    return value.astimezone(timezone.utc)


def store(
    meetings: List[Meeting],
    origin: Coordinate,
    radius_km: float,
    now: datetime
) -> ResultCache:
    """
    Wrap search results in a new cache entry valid for 24 hours.

    Args:
        meetings: Meetings returned by the search
        origin: Search center
        radius_km: Search radius in kilometers
        now: Current time

    Returns:
        New ResultCache
    """
    now = as_utc(now)
    return ResultCache(
        meetings=list(meetings),
        cached_at=now,
        expires_at=now + CACHE_DURATION,
        origin=origin,
        radius_km=radius_km
    )


def is_valid(cache: Optional[ResultCache], now: datetime) -> bool:
    if cache is None:
        return False
    return as_utc(now) < as_utc(cache.expires_at)


def lookup(
    cache: Optional[ResultCache],
    origin: Coordinate,
    radius_km: float,
    now: datetime,
    max_drift_km: float = MAX_DRIFT_KM,
    max_radius_delta_km: float = MAX_RADIUS_DELTA_KM
) -> Optional[List[Meeting]]:
    """
    Return cached meetings if the cache still fits the query.

    The cache fits when it has not expired, the origin has not drifted more
    than max_drift_km, and the radius differs by at most max_radius_delta_km.
    Cached meetings are returned unfiltered.

    Args:
        cache: Cache entry (may be None)
        origin: Current search center
        radius_km: Current search radius
        now: Current time
        max_drift_km: Maximum origin drift
        max_radius_delta_km: Maximum radius difference

    Returns:
        Cached meetings, or None if there is no usable cache
    """
    if not is_valid(cache, now):
        return None

    drift = drift_km(cache.origin, origin)
    if drift > max_drift_km:
        logger.info(f"Cache rejected: origin drifted {drift:.1f} km")
        return None

    if abs(cache.radius_km - radius_km) > max_radius_delta_km:
        logger.info(
            f"Cache rejected: radius changed from {cache.radius_km} to {radius_km} km"
        )
        return None

    return cache.meetings


class CacheSlot:
    """Single cache slot; writes replace the whole entry and the last write wins."""

    def __init__(self, cache: Optional[ResultCache] = None):
        self._cache = cache
        self._lock = threading.Lock()

    def get(self) -> Optional[ResultCache]:
        with self._lock:
            return self._cache

    def put(self, cache: Optional[ResultCache]) -> None:
        with self._lock:
            self._cache = cache

    def clear(self) -> None:
        self.put(None)
