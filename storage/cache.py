"""Cache interface shared by all storage backends."""
import json
from abc import ABC, abstractmethod
from datetime import timedelta
from typing import List, Optional

from processor.errors import CacheError
from processor.models import SkipLocation


class Cache(ABC):
    """Key to skip-location-list store with per-entry TTL."""

    @abstractmethod
    def get(self, key: str) -> Optional[List[SkipLocation]]:
        """
        Read a cached location list.

        Args:
            key: Cache key

        Returns:
            The cached list (possibly empty) or None on a miss

        Raises:
            CacheError: If the backend is unavailable
        """

    @abstractmethod
    def set(self, key: str, locations: List[SkipLocation], ttl: timedelta) -> None:
        """
        Store a location list, replacing any previous entry.

        Args:
            key: Cache key
            locations: Complete current location list
            ttl: Time to live

        Raises:
            CacheError: If the backend is unavailable
        """


def serialize_locations(locations: List[SkipLocation]) -> str:
    """Encode locations as the JSON wire format."""
    return json.dumps([location.to_dict() for location in locations])


def deserialize_locations(payload: str) -> List[SkipLocation]:
    """
    Decode locations from the JSON wire format.

    Raises:
        CacheError: If the payload is not a valid location list
    """
    try:
        return [SkipLocation.from_dict(item) for item in json.loads(payload)]
    except (KeyError, TypeError, ValueError) as e:
        raise CacheError(f"Failed to decode cached locations: {e}") from e
