"""AWS Lambda handler for nearby meeting search."""
import json
import logging
import os
import time
from typing import Dict, Any, Tuple

from finder.backoff import BackoffExecutor
from finder.bmlt_client import BMLTDirectoryClient
from finder.errors import ErrorKind
from finder.search_orchestrator import MeetingSearchOrchestrator
from processor.models import Coordinate, DirectoryConfig, SearchFilters
from storage.dynamodb_cache_store import DynamoDBCacheStore


# Configure JSON logging
class JsonFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging."""

    RESERVED_ATTRS = set(vars(logging.makeLogRecord({})).keys()) | {'message', 'asctime'}

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON, including any extra fields."""
        log_data = {
            'timestamp': self.formatTime(record),
            'level': record.levelname,
            'message': record.getMessage(),
            'logger': record.name
        }

        for key, value in vars(record).items():
            if key not in self.RESERVED_ATTRS:
                log_data[key] = value

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def setup_logging(log_level: str = 'INFO') -> None:
    """
    Configure logging with JSON formatter.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
    """
    root_logger = logging.getLogger()

    # Remove existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    root_logger.addHandler(handler)

    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))


STATUS_BY_KIND = {
    ErrorKind.CONFIGURATION: 500,
    ErrorKind.INVALID_INPUT: 400,
    ErrorKind.OFFLINE_NO_DATA: 503,
}


def parse_search_event(event: Dict[str, Any]) -> Tuple[Coordinate, float, SearchFilters, bool, str]:
    """
    Extract search arguments from the invocation payload.

    Args:
        event: Payload with lat, lng and optional radius_km, online,
            client_id and filters

    Returns:
        Tuple of (origin, radius_km, filters, online, client_id)

    Raises:
        ValueError: If a field is missing or has the wrong type
    """
    try:
        origin = Coordinate(lat=float(event['lat']), lng=float(event['lng']))
        radius_km = float(event.get('radius_km', 25))
        filters = SearchFilters.from_dict(event.get('filters'))
    except (KeyError, TypeError, AttributeError) as e:
        raise ValueError(f"Invalid search request: {e}") from e

    online = event.get('online', True)
    if isinstance(online, str):
        online = online.lower() not in ('false', '0', 'no')

    client_id = str(event.get('client_id') or 'default')
    return origin, radius_km, filters, bool(online), client_id


def _response(status_code: int, body: Dict[str, Any]) -> Dict[str, Any]:
    return {'statusCode': status_code, 'body': json.dumps(body)}


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Main Lambda handler function for meeting search.

    Args:
        event: Search request payload
        context: Lambda context object

    Returns:
        Response dict with statusCode and JSON body
    """
    # Read configuration from environment variables
    api_root = os.environ.get('BMLT_ROOT_URL')
    api_key = os.environ.get('BMLT_API_KEY') or None
    table_name = os.environ.get('CACHE_TABLE_NAME', 'meeting-finder-cache')
    log_level = os.environ.get('LOG_LEVEL', 'INFO')
    timeout_seconds = float(os.environ.get('TIMEOUT_SECONDS', '10'))
    max_retries = int(os.environ.get('MAX_RETRIES', '3'))

    setup_logging(log_level)
    logger = logging.getLogger(__name__)

    start_time = time.time()

    try:
        origin, radius_km, filters, online, client_id = parse_search_event(event)
    except ValueError as e:
        logger.warning(f"Rejected search request: {e}")
        return _response(400, {
            'message': 'Invalid search request',
            'error': {'kind': ErrorKind.INVALID_INPUT.value, 'message': str(e)}
        })

    logger.info(
        "Meeting search started",
        extra={
            'client_id': client_id,
            'radius_km': radius_km,
            'online': online,
            'timeout_seconds': timeout_seconds
        }
    )

    try:
        config = DirectoryConfig(api_root=api_root, api_key=api_key, timeout=timeout_seconds)
        orchestrator = MeetingSearchOrchestrator(
            directory_client=BMLTDirectoryClient(),
            executor=BackoffExecutor(max_retries=max_retries)
        )
        cache_store = DynamoDBCacheStore(table_name=table_name)

        # Cache persistence problems never block a search
        try:
            cache = cache_store.load(client_id)
        except Exception as e:
            logger.error(
                f"Failed to load cached meetings: {str(e)}",
                extra={'error_type': type(e).__name__},
                exc_info=True
            )
            cache = None

        result = orchestrator.search(
            config,
            origin,
            radius_km,
            filters=filters,
            online=online,
            cache=cache
        )

        if result.source == 'network' and result.ok and result.new_cache is not None:
            try:
                cache_store.save(client_id, result.new_cache)
            except Exception as e:
                logger.error(
                    f"Failed to store cached meetings: {str(e)}",
                    extra={'error_type': type(e).__name__},
                    exc_info=True
                )

        duration = time.time() - start_time
        body = result.to_dict()
        body['count'] = len(result.meetings)
        body['duration_seconds'] = round(duration, 2)

        if result.error is None or result.fallback:
            logger.info(
                "Meeting search completed",
                extra={
                    'duration_seconds': round(duration, 2),
                    'source': result.source,
                    'count': len(result.meetings),
                    'stale': result.fallback
                }
            )
            return _response(200, body)

        status_code = STATUS_BY_KIND.get(result.error.kind, 502)
        logger.error(
            f"Meeting search failed: {result.error}",
            extra={
                'duration_seconds': round(duration, 2),
                'error_type': result.error.kind.value
            }
        )
        body['message'] = 'Meeting search failed'
        return _response(status_code, body)

    except Exception as e:
        duration = time.time() - start_time

        logger.error(
            f"Lambda execution failed: {str(e)}",
            extra={
                'duration_seconds': round(duration, 2),
                'error_type': type(e).__name__
            },
            exc_info=True
        )

        return _response(500, {
            'message': 'Meeting search failed',
            'error': {'kind': type(e).__name__, 'message': str(e)},
            'duration_seconds': round(duration, 2)
        })
