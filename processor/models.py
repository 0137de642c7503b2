"""Data models for meeting search."""
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

MEETING_FORMATS = ('in-person', 'online', 'hybrid')
MEETING_TYPES = ('open', 'closed', 'discussion', 'speaker', 'step-study', 'other')


@dataclass(frozen=True)
class Coordinate:
    """WGS84 coordinate in decimal degrees."""
    lat: float
    lng: float

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Coordinate':
        return cls(lat=float(data['lat']), lng=float(data['lng']))


@dataclass(frozen=True)
class MeetingLocation:
    """Physical venue of a meeting."""
    name: str
    address: str
    city: str
    country: str
    lat: float
    lng: float
    state: Optional[str] = None
    zip: Optional[str] = None


@dataclass(frozen=True)
class OnlineDetails:
    """Connection details for online and hybrid meetings."""
    link: Optional[str] = None
    phone: Optional[str] = None
    access_code: Optional[str] = None


@dataclass(frozen=True)
class Meeting:
    """Meeting discovered through the directory service."""
    id: str
    name: str
    day_of_week: int
    time: str
    format: str
    type: str
    program: str
    source: str
    source_id: str
    location: Optional[MeetingLocation] = None
    distance_km: Optional[float] = None
    online_details: Optional[OnlineDetails] = None
    duration: Optional[str] = None
    notes: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert the meeting to a JSON-serialisable dict."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Meeting':
        """Rebuild a meeting from the output of to_dict."""
        location = data.get('location')
        online_details = data.get('online_details')
        return cls(
            id=data['id'],
            name=data['name'],
            day_of_week=int(data['day_of_week']),
            time=data['time'],
            format=data['format'],
            type=data['type'],
            program=data['program'],
            source=data['source'],
            source_id=data['source_id'],
            location=MeetingLocation(**location) if location else None,
            distance_km=data.get('distance_km'),
            online_details=OnlineDetails(**online_details) if online_details else None,
            duration=data.get('duration'),
            notes=data.get('notes')
        )


@dataclass(frozen=True)
class TimeRange:
    """Inclusive HH:MM time window."""
    start: str
    end: str


@dataclass(frozen=True)
class SearchFilters:
    """Optional search constraints; None means no constraint."""
    program: Optional[str] = None
    day_of_week: Optional[List[int]] = None
    time_range: Optional[TimeRange] = None
    type: Optional[List[str]] = None
    format: Optional[List[str]] = None
    max_distance_km: Optional[float] = None
    starts_soon: bool = False

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> 'SearchFilters':
        """
        Build filters from a loosely-typed request payload.

        Raises:
            ValueError: If data or one of its fields has the wrong shape
        """
        if data is None:
            return cls()
        if not isinstance(data, Mapping):
            raise ValueError(f"filters must be an object, got {type(data).__name__}")

        time_range = data.get('time_range')
        if time_range and not isinstance(time_range, Mapping):
            raise ValueError("time_range must be an object with start and end")

        max_distance = data.get('max_distance_km')
        day_of_week = _list_field(data, 'day_of_week')
        return cls(
            program=data.get('program'),
            day_of_week=[int(day) for day in day_of_week] if day_of_week else None,
            time_range=TimeRange(start=time_range['start'], end=time_range['end']) if time_range else None,
            type=_list_field(data, 'type') or None,
            format=_list_field(data, 'format') or None,
            max_distance_km=float(max_distance) if max_distance is not None else None,
            starts_soon=bool(data.get('starts_soon', False))
        )


def _list_field(data: Mapping[str, Any], name: str) -> Optional[List[Any]]:
    value = data.get(name)
    if value is None:
        return None
    if not isinstance(value, (list, tuple)):
        raise ValueError(f"{name} must be a list, got {type(value).__name__}")
    return list(value)


@dataclass(frozen=True)
class ResultCache:
    """Snapshot of the last successful search; replaced wholesale, never mutated."""
    meetings: List[Meeting]
    cached_at: datetime
    expires_at: datetime
    origin: Coordinate
    radius_km: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            'meetings': [meeting.to_dict() for meeting in self.meetings],
            'cached_at': self.cached_at.isoformat(),
            'expires_at': self.expires_at.isoformat(),
            'origin': asdict(self.origin),
            'radius_km': self.radius_km
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ResultCache':
        return cls(
            meetings=[Meeting.from_dict(item) for item in data['meetings']],
            cached_at=datetime.fromisoformat(data['cached_at']),
            expires_at=datetime.fromisoformat(data['expires_at']),
            origin=Coordinate.from_dict(data['origin']),
            radius_km=float(data['radius_km'])
        )


@dataclass(frozen=True)
class DirectoryConfig:
    """Connection settings for the meeting directory service."""
    api_root: Optional[str]
    api_key: Optional[str] = None
    timeout: float = 10
    user_agent: str = 'meeting-finder/1.0'
