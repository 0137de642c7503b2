"""Meeting search with retries and cache fallback."""
import logging
import math
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from finder.backoff import BackoffExecutor
from finder.bmlt_client import BMLTDirectoryClient
from finder.errors import (
    ConfigurationError,
    InvalidInputError,
    MeetingSearchError,
    OfflineNoDataError,
    SearchCancelledError,
    UpstreamError,
)
from processor.meeting_filters import apply_filters, sort_by_distance
from processor.models import (
    Coordinate,
    DirectoryConfig,
    Meeting,
    ResultCache,
    SearchFilters,
)
from processor.record_translator import RecordTranslator
from storage import result_cache
from storage.result_cache import CacheSlot

logger = logging.getLogger(__name__)

MAX_RADIUS_KM = 100.0


@dataclass
class SearchResult:
    """Outcome of a search: data, the cache to keep, and any error."""
    meetings: List[Meeting]
    new_cache: Optional[ResultCache]
    source: str
    error: Optional[MeetingSearchError] = None
    fallback: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None

    def raise_for_error(self) -> None:
        """Raise the error unless cached data was served in place of the network."""
        if self.error is not None and not self.fallback:
            raise self.error

    def to_dict(self) -> Dict[str, Any]:
        return {
            'meetings': [meeting.to_dict() for meeting in self.meetings],
            'source': self.source,
            'stale': self.fallback,
            'error': self.error.to_dict() if self.error else None,
        }


class MeetingSearchOrchestrator:
    """Runs searches against the directory and falls back to cached results."""

    def __init__(
        self,
        directory_client: Optional[BMLTDirectoryClient] = None,
        executor: Optional[BackoffExecutor] = None,
        translator: Optional[RecordTranslator] = None
    ):
        self.directory_client = directory_client or BMLTDirectoryClient()
        self.executor = executor or BackoffExecutor()
        self.translator = translator or RecordTranslator()

    def search(
        self,
        config: Optional[DirectoryConfig],
        origin: Coordinate,
        radius_km: float,
        filters: Optional[SearchFilters] = None,
        online: bool = True,
        cache: Optional[ResultCache] = None,
        now: Optional[datetime] = None,
        cancel_event: Optional[threading.Event] = None
    ) -> SearchResult:
        """
        Search for meetings near origin.

        Errors are returned in SearchResult.error rather than raised. When the
        network fails and a usable cache exists, cached meetings are returned
        with source='cache' and the network error attached.

        Args:
            config: Directory connection settings
            origin: Search center
            radius_km: Search radius in kilometers, in (0, 100]
            filters: Optional filters
            online: Whether the network may be used
            cache: Current cache entry, if any
            now: Current time (naive values are taken as local time;
                defaults to now)
            cancel_event: Optional event to cancel the search

        Returns:
            SearchResult with meetings, the cache to keep, source and error

        Raises:
            SearchCancelledError: If cancel_event is set during the search
        """
        now = result_cache.as_utc(now or datetime.now(timezone.utc))
        filters = filters or SearchFilters()

        try:
            self._validate(config, origin, radius_km)
        except MeetingSearchError as e:
            logger.warning(f"Search rejected: {e}", extra={'error_type': e.kind.value})
            return SearchResult(meetings=[], new_cache=cache, source='network', error=e)

        if not online:
            return self._search_offline(origin, radius_km, filters, cache, now)

        params = self.translator.encode_query(filters, origin, radius_km, config.api_key)

        try:
            payload = self.executor.execute(
                lambda: self.directory_client.fetch_records(config, params),
                cancel_event=cancel_event
            )
            meetings = self.translator.decode_records(payload, origin)
        except SearchCancelledError:
            raise
        except MeetingSearchError as e:
            return self._fall_back_to_cache(e, origin, radius_km, filters, cache, now)
        except Exception as e:
            error = UpstreamError(f"Directory request failed: {e}")
            error.__cause__ = e
            return self._fall_back_to_cache(error, origin, radius_km, filters, cache, now)

        # Cache everything decoded so later fallbacks can apply different filters
        ordered = sort_by_distance(meetings)
        new_cache = result_cache.store(ordered, origin, radius_km, now)
        filtered = apply_filters(ordered, filters, self._local_time(now))

        logger.info(
            f"Found {len(filtered)} meetings",
            extra={'source': 'network', 'decoded': len(meetings), 'radius_km': radius_km}
        )
        return SearchResult(meetings=filtered, new_cache=new_cache, source='network')

    def _search_offline(
        self,
        origin: Coordinate,
        radius_km: float,
        filters: SearchFilters,
        cache: Optional[ResultCache],
        now: datetime
    ) -> SearchResult:
        cached = result_cache.lookup(cache, origin, radius_km, now)
        if cached is None:
            logger.warning("Offline with no usable cached meetings")
            return SearchResult(
                meetings=[],
                new_cache=cache,
                source='cache',
                error=OfflineNoDataError(
                    "You are offline and no cached meetings are available for this location."
                )
            )

        meetings = sort_by_distance(apply_filters(cached, filters, self._local_time(now)))
        logger.info(f"Serving {len(meetings)} cached meetings while offline")
        return SearchResult(meetings=meetings, new_cache=cache, source='cache')

    def _fall_back_to_cache(
        self,
        error: MeetingSearchError,
        origin: Coordinate,
        radius_km: float,
        filters: SearchFilters,
        cache: Optional[ResultCache],
        now: datetime
    ) -> SearchResult:
        cached = result_cache.lookup(cache, origin, radius_km, now)
        if cached is None:
            logger.error(
                f"Meeting search failed with no cached fallback: {error}",
                extra={'error_type': error.kind.value}
            )
            return SearchResult(meetings=[], new_cache=cache, source='network', error=error)

        meetings = sort_by_distance(apply_filters(cached, filters, self._local_time(now)))
        logger.warning(
            f"Meeting search failed, serving {len(meetings)} cached meetings: {error}",
            extra={'error_type': error.kind.value}
        )
        return SearchResult(
            meetings=meetings,
            new_cache=cache,
            source='cache',
            error=error,
            fallback=True
        )

    def _validate(
        self,
        config: Optional[DirectoryConfig],
        origin: Coordinate,
        radius_km: float
    ) -> None:
        if config is None or not config.api_root or not config.api_root.strip():
            raise ConfigurationError(
                "Directory API root not configured. Set the directory URL in settings."
            )

        lat, lng = getattr(origin, 'lat', None), getattr(origin, 'lng', None)
        if not self._is_finite_number(lat) or not self._is_finite_number(lng):
            raise InvalidInputError("Invalid location coordinates")
        if not -90 <= lat <= 90 or not -180 <= lng <= 180:
            raise InvalidInputError(f"Coordinates out of range: {lat}, {lng}")

        if not self._is_finite_number(radius_km) or not 0 < radius_km <= MAX_RADIUS_KM:
            raise InvalidInputError(
                f"Search radius must be greater than 0 and at most {MAX_RADIUS_KM:g} km"
            )

    def _is_finite_number(self, value: Any) -> bool:
        return (
            isinstance(value, (int, float))
            and not isinstance(value, bool)
            and math.isfinite(value)
        )

    def _local_time(self, now: datetime) -> datetime:
        """Starts-soon compares against the caller's wall clock."""
        return now.astimezone()


class MeetingFinder:
    """Owns one cache slot and runs searches through the orchestrator."""

    def __init__(
        self,
        config: DirectoryConfig,
        orchestrator: Optional[MeetingSearchOrchestrator] = None,
        cache_slot: Optional[CacheSlot] = None
    ):
        self.config = config
        self.orchestrator = orchestrator or MeetingSearchOrchestrator()
        self.cache_slot = cache_slot or CacheSlot()

    def search(
        self,
        origin: Coordinate,
        radius_km: float = 25,
        filters: Optional[SearchFilters] = None,
        online: bool = True,
        now: Optional[datetime] = None,
        cancel_event: Optional[threading.Event] = None
    ) -> SearchResult:
        result = self.orchestrator.search(
            self.config,
            origin,
            radius_km,
            filters=filters,
            online=online,
            cache=self.cache_slot.get(),
            now=now,
            cancel_event=cancel_event
        )
        if result.source == 'network' and result.error is None:
            self.cache_slot.put(result.new_cache)
        return result
