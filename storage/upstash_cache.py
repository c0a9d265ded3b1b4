"""Remote cache backend using the Upstash Redis REST API."""
import logging
from datetime import timedelta
from typing import List, Optional

import requests

from processor.errors import CacheError
from processor.models import SkipLocation
from storage.cache import Cache, deserialize_locations, serialize_locations

logger = logging.getLogger(__name__)


class UpstashCache(Cache):
    """Cache stored in Upstash Redis, accessed over REST."""

    def __init__(self, rest_url: str, rest_token: str, timeout: int = 10):
        """
        Initialize the REST client.

        Args:
            rest_url: Upstash REST endpoint
            rest_token: Upstash REST token
            timeout: HTTP request timeout in seconds (default: 10)
        """
        self.rest_url = rest_url.rstrip('/')
        self.timeout = timeout
        self.session = requests.Session()
        self.session.headers['Authorization'] = f"Bearer {rest_token}"
        logger.info(f"Initialized UpstashCache for {self.rest_url}")

    def get(self, key: str) -> Optional[List[SkipLocation]]:
        try:
            response = self.session.get(
                f"{self.rest_url}/get/{key}",
                timeout=self.timeout
            )
            response.raise_for_status()
            result = response.json()['result']
        except (requests.RequestException, KeyError, TypeError, ValueError) as e:
            raise CacheError(f"Upstash get failed: {e}") from e

        if result is None:
            return None
        return deserialize_locations(result)

    def set(self, key: str, locations: List[SkipLocation], ttl: timedelta) -> None:
        ttl_seconds = int(ttl.total_seconds())
        try:
            response = self.session.post(
                f"{self.rest_url}/setex/{key}/{ttl_seconds}",
                data=serialize_locations(locations).encode('utf-8'),
                headers={'Content-Type': 'application/json'},
                timeout=self.timeout
            )
            response.raise_for_status()
        except requests.RequestException as e:
            raise CacheError(f"Upstash setex failed: {e}") from e
