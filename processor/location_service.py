"""Read-through access to the current skip locations."""
import logging
import threading
from datetime import timedelta
from typing import List, Optional

from processor.errors import CacheError, MegaskipError, ScrapeError
from processor.models import SkipLocation
from scraper.council_scraper import CouncilScraper
from storage.cache import Cache

logger = logging.getLogger(__name__)


class LocationService:
    """
    Serves skip locations from the cache, scraping on a miss.

    Cache misses are handled inside a single lock, so at most one scrape
    runs at a time; callers queued behind it re-read the cache once the
    lock is released.
    """

    CACHE_KEY = 'skip_locations'
    DEFAULT_TTL = timedelta(hours=3)

    def __init__(self, cache: Cache, scraper: CouncilScraper, ttl: timedelta = DEFAULT_TTL):
        """
        Initialize the service.

        Args:
            cache: Cache backend
            scraper: Council scraper used on a miss
            ttl: Lifetime of a cached scrape (default: 3 hours)
        """
        self.cache = cache
        self.scraper = scraper
        self.ttl = ttl
        self._refresh_lock = threading.Lock()

    def get_locations(self) -> List[SkipLocation]:
        """
        Get the current upcoming skip locations.

        Returns:
            Complete list of upcoming locations

        Raises:
            ScrapeError: If the cache misses and the scrape fails
        """
        locations = self._read_cache()
        if locations is not None:
            logger.info("Serving from cache")
            return locations

        with self._refresh_lock:
            # Another caller may have refreshed while we waited
            locations = self._read_cache()
            if locations is not None:
                return locations

            logger.info("Fetching fresh data from council website")
            try:
                locations = self.scraper.fetch()
            except MegaskipError as e:
                logger.error(
                    f"Scraping failed: {e}",
                    extra={'error_type': type(e).__name__}
                )
                raise ScrapeError(f"Scraping failed: {e}") from e

            try:
                self.cache.set(self.CACHE_KEY, locations, self.ttl)
            except CacheError as e:
                logger.error(f"Cache set error: {e}")

            return locations

    def _read_cache(self) -> Optional[List[SkipLocation]]:
        """
        Read the cache, treating backend errors as a miss.

        Returns:
            Cached locations or None
        """
        try:
            return self.cache.get(self.CACHE_KEY)
        except CacheError as e:
            logger.warning(f"Cache get error: {e}")
            return None
