"""Local filtering and ordering of meeting results."""
import logging
from datetime import datetime, timedelta
from typing import List, Optional

from processor.models import Meeting, SearchFilters
from processor.record_translator import PROGRAM

logger = logging.getLogger(__name__)

STARTS_SOON_WINDOW = timedelta(minutes=60)


def apply_filters(
    meetings: List[Meeting],
    filters: Optional[SearchFilters],
    now: Optional[datetime] = None
) -> List[Meeting]:
    """
    Apply the search filters locally.

    Runs identically on fresh and cached results, so filters already sent
    to the directory still hold for meetings served from the cache. Times
    are compared as zero-padded HH:MM strings, which order the same way as
    the times do.

    Args:
        meetings: Decoded meetings
        filters: Search filters (None means no filtering)
        now: Caller's local time for the starts-soon filter

    Returns:
        New list containing the meetings that pass every filter
    """
    if not filters:
        return list(meetings)

    if filters.program and filters.program != PROGRAM:
        logger.info(f"Program {filters.program} is not served by this directory")
        return []

    filtered = list(meetings)

    if filters.day_of_week:
        filtered = [m for m in filtered if m.day_of_week in filters.day_of_week]

    if filters.time_range:
        start, end = filters.time_range.start, filters.time_range.end
        filtered = [m for m in filtered if start <= m.time <= end]

    if filters.type:
        filtered = [m for m in filtered if m.type in filters.type]

    if filters.format:
        filtered = [m for m in filtered if m.format in filters.format]

    if filters.max_distance_km is not None:
        filtered = [
            m for m in filtered
            if m.distance_km is None or m.distance_km <= filters.max_distance_km
        ]

    if filters.starts_soon:
        filtered = _filter_starts_soon(filtered, now or datetime.now())

    return filtered


def _filter_starts_soon(meetings: List[Meeting], now: datetime) -> List[Meeting]:
    # Python weekdays start on Monday; meetings count from Sunday
    today = (now.weekday() + 1) % 7
    current_time = now.strftime('%H:%M')
    later_time = (now + STARTS_SOON_WINDOW).strftime('%H:%M')

    if later_time < current_time:
        # Window runs past midnight: keep the rest of today
        return [m for m in meetings if m.day_of_week == today and m.time >= current_time]

    return [
        m for m in meetings
        if m.day_of_week == today and current_time <= m.time <= later_time
    ]


def sort_by_distance(meetings: List[Meeting]) -> List[Meeting]:
    """Nearest first; meetings without a distance go last in their original order."""
    return sorted(
        meetings,
        key=lambda m: (m.distance_km is None, m.distance_km or 0.0)
    )
