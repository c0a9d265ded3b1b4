"""Unit tests for LocationService."""
import threading
import time
from datetime import date, timedelta
from unittest.mock import Mock

import pytest

from processor.errors import CacheError, FetchError, ScrapeError
from processor.location_service import LocationService
from processor.models import SkipLocation
from storage.memory_cache import MemoryCache


@pytest.fixture
def sample_locations():
    """Create sample skip locations."""
    return [
        SkipLocation(
            address='Pountney Road',
            postcode='SW11 5TU',
            date=date(2025, 3, 22),
            date_str='Saturday 22 March',
            latitude=51.47,
            longitude=-0.16
        )
    ]


@pytest.fixture
def mock_scraper(sample_locations):
    """Scraper returning the sample locations."""
    scraper = Mock()
    scraper.fetch.return_value = sample_locations
    return scraper


class TestLocationService:
    """Test cases for the read-through cache."""

    def test_miss_scrapes_and_populates_cache(self, mock_scraper, sample_locations):
        """Test that a miss scrapes once and stores the result."""
        cache = MemoryCache()
        service = LocationService(cache, mock_scraper, ttl=timedelta(hours=3))

        assert service.get_locations() == sample_locations
        assert cache.get(LocationService.CACHE_KEY) == sample_locations
        mock_scraper.fetch.assert_called_once()

    def test_second_call_is_served_from_cache(self, mock_scraper):
        """Test that a miss followed by a second call scrapes exactly once."""
        service = LocationService(MemoryCache(), mock_scraper, ttl=timedelta(hours=3))

        service.get_locations()
        service.get_locations()

        mock_scraper.fetch.assert_called_once()

    def test_hit_does_not_touch_scraper(self, mock_scraper, sample_locations):
        """Test that a warm cache never calls the scraper."""
        cache = MemoryCache()
        cache.set(LocationService.CACHE_KEY, sample_locations, timedelta(hours=1))
        service = LocationService(cache, mock_scraper)

        assert service.get_locations() == sample_locations
        mock_scraper.fetch.assert_not_called()

    def test_empty_cached_list_is_a_hit(self, mock_scraper):
        """Test that an empty cached list is returned as-is."""
        cache = MemoryCache()
        cache.set(LocationService.CACHE_KEY, [], timedelta(hours=1))

        assert LocationService(cache, mock_scraper).get_locations() == []
        mock_scraper.fetch.assert_not_called()

    def test_expired_entry_triggers_refresh(self, mock_scraper, sample_locations):
        """Test that an expired entry is treated as a miss."""
        now = [1000.0]
        cache = MemoryCache(clock=lambda: now[0])
        service = LocationService(cache, mock_scraper, ttl=timedelta(minutes=1))

        service.get_locations()
        now[0] += 61
        service.get_locations()

        assert mock_scraper.fetch.call_count == 2

    def test_scrape_failure_raises(self, mock_scraper):
        """Test that scraper failures surface as ScrapeError."""
        mock_scraper.fetch.side_effect = FetchError('bad status code: 503')
        cache = MemoryCache()
        service = LocationService(cache, mock_scraper)

        with pytest.raises(ScrapeError):
            service.get_locations()

        assert cache.get(LocationService.CACHE_KEY) is None

    def test_cache_read_error_falls_back_to_scrape(self, mock_scraper, sample_locations):
        """Test that an unavailable cache degrades to scraping."""
        cache = Mock()
        cache.get.side_effect = CacheError('connection refused')

        assert LocationService(cache, mock_scraper).get_locations() == sample_locations
        mock_scraper.fetch.assert_called_once()
        cache.set.assert_called_once()

    def test_cache_write_error_is_not_propagated(self, mock_scraper, sample_locations):
        """Test that a failed cache write still returns fresh data."""
        cache = Mock()
        cache.get.return_value = None
        cache.set.side_effect = CacheError('read only')

        assert LocationService(cache, mock_scraper).get_locations() == sample_locations

    def test_concurrent_misses_scrape_once(self, sample_locations):
        """Test that concurrent callers share a single scrape."""
        scrape_started = threading.Event()

        def slow_fetch():
            scrape_started.set()
            time.sleep(0.2)
            return sample_locations

        scraper = Mock()
        scraper.fetch.side_effect = slow_fetch
        service = LocationService(MemoryCache(), scraper)

        results = []
        threads = [
            threading.Thread(target=lambda: results.append(service.get_locations()))
            for _ in range(5)
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert scrape_started.is_set()
        assert scraper.fetch.call_count == 1
        assert results == [sample_locations] * 5
