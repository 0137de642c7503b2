"""Translation between directory records and meeting models."""
import logging
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Any, List, Mapping, Optional, Tuple

from finder.errors import MalformedResponseError
from finder.geo import distance_km
from processor.models import (
    Coordinate,
    Meeting,
    MeetingLocation,
    OnlineDetails,
    SearchFilters,
)

logger = logging.getLogger(__name__)

SOURCE = 'bmlt'
PROGRAM = 'NA'
DEFAULT_NAME = 'NA Meeting'
DEFAULT_TIME = '00:00'
DEFAULT_COUNTRY = 'US'

# Directory format ids
FORMAT_IN_PERSON = 4
FORMAT_ONLINE = 7
FORMAT_HYBRID = 8

FORMAT_IDS = {
    'in-person': FORMAT_IN_PERSON,
    'online': FORMAT_ONLINE,
    'hybrid': FORMAT_HYBRID,
}

# First match wins
TYPE_PRIORITY = (
    (21, 'step-study'),
    (19, 'speaker'),
    (20, 'discussion'),
    (18, 'closed'),
    (17, 'open'),
)


def _text(value: Any) -> Optional[str]:
    """Return a stripped string, or None for blank and non-scalar values."""
    if value is None or isinstance(value, (dict, list)):
        return None
    text = str(value).strip()
    return text or None


@dataclass
class RemoteRecord:
    """Directory record with every field optional."""
    id_bigint: Optional[str] = None
    meeting_name: Optional[str] = None
    weekday_tinyint: Optional[str] = None
    start_time: Optional[str] = None
    duration_time: Optional[str] = None
    location_text: Optional[str] = None
    location_street: Optional[str] = None
    location_municipality: Optional[str] = None
    location_province: Optional[str] = None
    location_postal_code_1: Optional[str] = None
    location_nation: Optional[str] = None
    latitude: Optional[str] = None
    longitude: Optional[str] = None
    format_shared_id_list: Optional[str] = None
    comments: Optional[str] = None
    virtual_meeting_link: Optional[str] = None
    phone_meeting_number: Optional[str] = None
    virtual_meeting_additional_info: Optional[str] = None

    @classmethod
    def from_mapping(cls, data: Any) -> 'RemoteRecord':
        """Pick known fields out of a raw JSON object, ignoring anything else."""
        if not isinstance(data, Mapping):
            return cls()

        values = {}
        for name in cls.__dataclass_fields__:
            raw = data.get(name)
            if name == 'format_shared_id_list' and isinstance(raw, list):
                raw = ','.join(str(item) for item in raw)
            values[name] = _text(raw)
        return cls(**values)


class RecordTranslator:
    """Maps search filters to directory queries and directory records to meetings."""

    def encode_query(
        self,
        filters: Optional[SearchFilters],
        origin: Coordinate,
        radius_km: float,
        api_key: Optional[str] = None
    ) -> List[Tuple[str, str]]:
        """
        Build directory query parameters.

        Only location, radius and format are understood upstream; every other
        filter is applied locally once results come back.

        Args:
            filters: Search filters (may be None)
            origin: Search center
            radius_km: Search radius in kilometers
            api_key: Optional credential, sent as the ``key`` parameter

        Returns:
            List of (name, value) pairs, repeated names allowed
        """
        params = [
            ('switcher', 'GetSearchResults'),
            ('lat_val', str(origin.lat)),
            ('long_val', str(origin.lng)),
            ('geo_width_km', str(radius_km)),
        ]

        if filters and filters.format:
            for meeting_format in filters.format:
                format_id = FORMAT_IDS.get(meeting_format)
                if format_id is None:
                    logger.warning(f"Ignoring unknown format filter: {meeting_format}")
                    continue
                params.append(('formats[]', str(format_id)))

        if api_key:
            params.append(('key', api_key))

        return params

    def decode_records(
        self,
        payload: Any,
        origin: Optional[Coordinate] = None
    ) -> List[Meeting]:
        """
        Decode a directory response into meetings.

        Args:
            payload: Parsed JSON body
            origin: Search center used for distances, if any

        Returns:
            One Meeting per record, in response order

        Raises:
            MalformedResponseError: If the payload is not a list
        """
        if not isinstance(payload, list):
            raise MalformedResponseError(
                f"Invalid directory response format: expected a list, "
                f"got {type(payload).__name__}"
            )

        meetings = [self.decode_record(record, origin) for record in payload]
        logger.info(f"Decoded {len(meetings)} meetings from directory response")
        return meetings

    def decode_record(self, record: Any, origin: Optional[Coordinate] = None) -> Meeting:
        """
        Decode a single directory record. Never raises.

        Args:
            record: Raw record mapping or RemoteRecord
            origin: Search center used for distances, if any

        Returns:
            Meeting with safe defaults for any malformed field
        """
        if not isinstance(record, RemoteRecord):
            record = RemoteRecord.from_mapping(record)

        format_ids = self._parse_format_ids(record.format_shared_id_list)
        meeting_format = self.map_format(format_ids)
        source_id = record.id_bigint or ''

        location = self._build_location(record)
        distance = None
        if location is not None and origin is not None:
            distance = distance_km(origin, Coordinate(lat=location.lat, lng=location.lng))

        online_details = None
        if meeting_format in ('online', 'hybrid'):
            online_details = OnlineDetails(
                link=record.virtual_meeting_link,
                phone=record.phone_meeting_number,
                access_code=record.virtual_meeting_additional_info
            )

        return Meeting(
            id=f"{SOURCE}_{source_id}",
            name=record.meeting_name or DEFAULT_NAME,
            day_of_week=self.map_weekday(record.weekday_tinyint),
            time=self._normalize_time(record.start_time) or DEFAULT_TIME,
            format=meeting_format,
            type=self.map_type(format_ids),
            program=PROGRAM,
            source=SOURCE,
            source_id=source_id,
            location=location,
            distance_km=distance,
            online_details=online_details,
            duration=self._normalize_time(record.duration_time),
            notes=record.comments
        )

    def map_weekday(self, value: Optional[str]) -> int:
        """
        Convert a directory weekday (1-7, Sunday=1) to 0-6 with Sunday=0.

        Unparseable or out-of-range values fall back to 0.
        """
        try:
            day = int(str(value).strip())
        except (TypeError, ValueError):
            logger.warning(f"Invalid weekday in directory record: {value!r}")
            return 0

        if not 1 <= day <= 7:
            logger.warning(f"Weekday out of range in directory record: {day}")
            return 0

        return 0 if day == 7 else day

    def map_format(self, format_ids: List[int]) -> str:
        """Hybrid wins over online, online over in-person."""
        if FORMAT_HYBRID in format_ids:
            return 'hybrid'
        if FORMAT_ONLINE in format_ids:
            return 'online'
        return 'in-person'

    def map_type(self, format_ids: List[int]) -> str:
        for format_id, meeting_type in TYPE_PRIORITY:
            if format_id in format_ids:
                return meeting_type
        return 'other'

    def _parse_format_ids(self, value: Optional[str]) -> List[int]:
        if not value:
            return []

        format_ids = []
        for part in value.split(','):
            try:
                format_ids.append(int(part.strip()))
            except ValueError:
                continue
        return format_ids

    def _build_location(self, record: RemoteRecord) -> Optional[MeetingLocation]:
        lat = self._parse_coordinate(record.latitude)
        lng = self._parse_coordinate(record.longitude)
        if lat is None or lng is None:
            return None

        return MeetingLocation(
            name=record.location_text or '',
            address=record.location_street or '',
            city=record.location_municipality or '',
            country=record.location_nation or DEFAULT_COUNTRY,
            lat=lat,
            lng=lng,
            state=record.location_province,
            zip=record.location_postal_code_1
        )

    def _parse_coordinate(self, value: Optional[str]) -> Optional[float]:
        if value is None:
            return None
        try:
            number = float(value)
        except ValueError:
            return None
        return number if math.isfinite(number) else None

    def _normalize_time(self, time_str: Optional[str]) -> Optional[str]:
        """
        Normalize a directory time to zero-padded 24-hour HH:MM.

        Args:
            time_str: Time such as "19:00:00" or "7:30"

        Returns:
            HH:MM string or None if parsing fails
        """
        if not time_str:
            return None

        time_formats = [
            '%H:%M:%S',      # directory default
            '%H:%M',         # 24-hour format
            '%I:%M %p',      # 12-hour format with AM/PM
        ]

        for fmt in time_formats:
            try:
                time_obj = datetime.strptime(time_str, fmt)
                return time_obj.strftime('%H:%M')
            except ValueError:
                continue

        return None
