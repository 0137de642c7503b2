"""Error taxonomy for meeting searches."""
from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """Structured error kinds surfaced to callers."""
    CONFIGURATION = 'ConfigurationError'
    INVALID_INPUT = 'InvalidInputError'
    AUTHENTICATION = 'AuthenticationError'
    ENDPOINT_NOT_FOUND = 'EndpointNotFoundError'
    TIMEOUT = 'TimeoutError'
    UPSTREAM = 'UpstreamError'
    MALFORMED_RESPONSE = 'MalformedResponseError'
    OFFLINE_NO_DATA = 'OfflineNoDataError'
    CANCELLED = 'CancelledError'


class MeetingSearchError(Exception):
    """Base class for all search failures."""

    kind: ErrorKind = ErrorKind.UPSTREAM
    retryable: bool = False

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    def to_dict(self) -> dict:
        data = {'kind': self.kind.value, 'message': self.message}
        if self.status_code is not None:
            data['status_code'] = self.status_code
        return data


class ConfigurationError(MeetingSearchError):
    kind = ErrorKind.CONFIGURATION


class InvalidInputError(MeetingSearchError):
    kind = ErrorKind.INVALID_INPUT


class AuthenticationError(MeetingSearchError):
    kind = ErrorKind.AUTHENTICATION


class EndpointNotFoundError(MeetingSearchError):
    kind = ErrorKind.ENDPOINT_NOT_FOUND


class RequestTimeoutError(MeetingSearchError):
    kind = ErrorKind.TIMEOUT
    retryable = True


class UpstreamError(MeetingSearchError):
    kind = ErrorKind.UPSTREAM
    retryable = True


class MalformedResponseError(MeetingSearchError):
    kind = ErrorKind.MALFORMED_RESPONSE


class OfflineNoDataError(MeetingSearchError):
    kind = ErrorKind.OFFLINE_NO_DATA


class SearchCancelledError(MeetingSearchError):
    kind = ErrorKind.CANCELLED
