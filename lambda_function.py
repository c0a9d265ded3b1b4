"""AWS Lambda handler for the Where's The Megaskip service."""
import json
import logging
import os
from datetime import timedelta
from typing import Any, Dict, Optional, Tuple
from urllib.parse import unquote

from processor.calendar_builder import build_feed
from processor.errors import GeocodeError, ScrapeError, ValidationError
from processor.location_service import LocationService
from processor.postcode import is_valid_postcode, normalize_postcode
from scraper.council_scraper import CouncilScraper
from scraper.geocoder import NominatimGeocoder
from storage.cache import Cache
from storage.dynamodb_cache import DynamoDBCache
from storage.memory_cache import MemoryCache
from storage.upstash_cache import UpstashCache

logger = logging.getLogger(__name__)

SECURITY_HEADERS = {
    'X-Content-Type-Options': 'nosniff',
    'X-Frame-Options': 'DENY',
    'Referrer-Policy': 'strict-origin-when-cross-origin'
}
CALENDAR_FILENAME = 'wandsworth-megaskip.ics'

# Built once per warm container
_location_service: Optional[LocationService] = None
_geocoder: Optional[NominatimGeocoder] = None


# Configure JSON logging
class JsonFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            'timestamp': self.formatTime(record),
            'level': record.levelname,
            'message': record.getMessage(),
            'logger': record.name
        }

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data)


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


def cache_ttl_from_env() -> timedelta:
    """Read CACHE_TTL_MINUTES, falling back to the 3 hour default."""
    raw_ttl = os.environ.get('CACHE_TTL_MINUTES')
    if raw_ttl:
        try:
            minutes = int(raw_ttl)
        except ValueError:
            minutes = 0
        if minutes > 0:
            logger.info(f"Cache TTL set to {minutes} minutes")
            return timedelta(minutes=minutes)
        logger.warning(f"Ignoring invalid CACHE_TTL_MINUTES: {raw_ttl!r}")
    return LocationService.DEFAULT_TTL


def create_cache(timeout: int = 10) -> Cache:
    """
    Select the cache backend from CACHE_TYPE.

    Remote backends missing their settings fall back to memory.

    Args:
        timeout: HTTP timeout for the Upstash backend

    Returns:
        Cache instance
    """
    cache_type = os.environ.get('CACHE_TYPE', 'memory').lower()

    if cache_type == 'redis':
        redis_url = os.environ.get('UPSTASH_REDIS_REST_URL')
        redis_token = os.environ.get('UPSTASH_REDIS_REST_TOKEN')
        if redis_url and redis_token:
            logger.info("Using Redis cache (Upstash)")
            return UpstashCache(redis_url, redis_token, timeout=timeout)
        logger.warning("CACHE_TYPE=redis without Upstash credentials")

    elif cache_type == 'dynamodb':
        table_name = os.environ.get('CACHE_TABLE_NAME')
        if table_name:
            logger.info("Using DynamoDB cache")
            return DynamoDBCache(table_name)
        logger.warning("CACHE_TYPE=dynamodb without CACHE_TABLE_NAME")

    logger.info("Using in-memory cache")
    return MemoryCache()


def build_components() -> Tuple[LocationService, NominatimGeocoder]:
    """
    Construct the service graph from environment configuration.

    Returns:
        Tuple of (location service, geocoder for user postcodes)
    """
    timeout = int(os.environ.get('TIMEOUT_SECONDS', '10'))
    geocode_delay = int(os.environ.get('GEOCODE_DELAY_MS', '200')) / 1000

    geocoder = NominatimGeocoder(timeout=timeout)
    scraper = CouncilScraper(
        geocoder=geocoder,
        url=os.environ.get('COUNCIL_URL', CouncilScraper.DEFAULT_URL),
        timeout=timeout,
        geocode_delay=geocode_delay
    )
    service = LocationService(
        cache=create_cache(timeout=timeout),
        scraper=scraper,
        ttl=cache_ttl_from_env()
    )
    return service, geocoder


def _response(status_code: int, body: str, content_type: str,
              extra_headers: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
    headers = {'Content-Type': content_type, **SECURITY_HEADERS}
    if extra_headers:
        headers.update(extra_headers)
    return {'statusCode': status_code, 'headers': headers, 'body': body}


def _json_response(status_code: int, payload: Any) -> Dict[str, Any]:
    return _response(status_code, json.dumps(payload), 'application/json')


def _text_response(status_code: int, message: str) -> Dict[str, Any]:
    return _response(status_code, message, 'text/plain; charset=utf-8')


def _calendar_response(feed: str) -> Dict[str, Any]:
    return _response(
        200,
        feed,
        'text/calendar; charset=utf-8',
        {'Content-Disposition': f'attachment; filename="{CALENDAR_FILENAME}"'}
    )


def postcode_from_path(path: str) -> str:
    """
    Extract and validate the postcode from /calendar/{postcode}.ics.

    Args:
        path: Request path

    Returns:
        Normalized postcode

    Raises:
        ValidationError: If the path or postcode is malformed
    """
    prefix, suffix = '/calendar/', '.ics'
    if not path.startswith(prefix) or not path.endswith(suffix):
        raise ValidationError("Invalid path")

    postcode = unquote(path[len(prefix):-len(suffix)].replace('+', ' '))
    if not is_valid_postcode(postcode):
        raise ValidationError("Invalid postcode format")
    return normalize_postcode(postcode)


def handle_skips(service: LocationService) -> Dict[str, Any]:
    """GET /api/skips"""
    try:
        locations = service.get_locations()
    except ScrapeError as e:
        logger.error(f"Error getting skip locations: {e}")
        return _json_response(500, {'error': 'Failed to fetch skip locations'})

    return _json_response(200, [location.to_dict() for location in locations])


def handle_calendar(service: LocationService) -> Dict[str, Any]:
    """GET /calendar.ics"""
    try:
        locations = service.get_locations()
    except ScrapeError as e:
        logger.error(f"Error generating calendar: {e}")
        return _text_response(500, 'Failed to generate calendar')

    return _calendar_response(build_feed(locations))


def handle_postcode_calendar(path: str, service: LocationService,
                             geocoder: NominatimGeocoder) -> Dict[str, Any]:
    """GET /calendar/{postcode}.ics"""
    try:
        postcode = postcode_from_path(path)
    except ValidationError as e:
        return _text_response(400, str(e))

    try:
        user_coordinate = geocoder.geocode(postcode)
    except GeocodeError as e:
        logger.warning(f"Could not geocode user postcode {postcode}: {e}")
        return _text_response(400, 'Could not find postcode location')

    try:
        locations = service.get_locations()
    except ScrapeError as e:
        logger.error(f"Error generating calendar: {e}")
        return _text_response(500, 'Failed to generate calendar')

    return _calendar_response(build_feed(locations, user_coordinate))


def route_request(event: Dict[str, Any], service: LocationService,
                  geocoder: NominatimGeocoder) -> Dict[str, Any]:
    """
    Dispatch an API Gateway proxy event (HTTP API v2 or REST v1).

    Args:
        event: Proxy event payload
        service: Location service
        geocoder: Geocoder for personalized feeds

    Returns:
        Proxy response dict
    """
    path = event.get('rawPath') or event.get('path') or '/'
    method = (
        event.get('requestContext', {}).get('http', {}).get('method')
        or event.get('httpMethod')
        or 'GET'
    ).upper()

    if method != 'GET':
        return _json_response(405, {'error': 'Method not allowed'})

    if path == '/api/skips':
        return handle_skips(service)
    if path == '/calendar.ics':
        return handle_calendar(service)
    if path.startswith('/calendar/'):
        return handle_postcode_calendar(path, service, geocoder)

    return _json_response(404, {'error': 'Not found'})


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Main Lambda handler function.

    Args:
        event: API Gateway proxy event
        context: Lambda context object

    Returns:
        Proxy response dict with statusCode, headers and body
    """
    global _location_service, _geocoder

    setup_logging(os.environ.get('LOG_LEVEL', 'INFO'))

    if _location_service is None:
        _location_service, _geocoder = build_components()

    try:
        return route_request(event, _location_service, _geocoder)
    except Exception as e:
        logger.error(
            f"Request failed: {e}",
            extra={'error_type': type(e).__name__},
            exc_info=True
        )
        return _json_response(500, {'error': 'Internal server error'})
