"""Unit tests for CouncilScraper."""
from datetime import date
from unittest.mock import Mock, patch

import pytest
import responses
from requests.exceptions import Timeout

from processor.errors import FetchError, GeocodeError
from scraper.council_scraper import CouncilScraper

COUNCIL_URL = "https://www.wandsworth.gov.uk/mega-skip-days"

MOCK_HTML = """
<html>
    <body>
        <h3>Saturday 1 March</h3>
        <ul><li>Old Road, SW11 1AA</li></ul>
        <h3>Saturday 15 March</h3>
        <ul>
            <li>Pountney Road, SW11 5TU</li>
            <li>Garratt Lane, SW18 4EQ</li>
        </ul>
        <h3>Saturday 22 March</h3>
        <ul><li>Tooting Bec Road, SW17 8BS</li></ul>
    </body>
</html>
"""


@pytest.fixture
def geocoder():
    """Geocoder returning fixed coordinates per postcode."""
    coordinates = {
        'SW11 5TU': (51.4700, -0.1600),
        'SW18 4EQ': (51.4500, -0.1900),
        'SW17 8BS': (51.4300, -0.1500),
    }
    mock_geocoder = Mock()
    mock_geocoder.geocode.side_effect = lambda postcode: coordinates[postcode]
    return mock_geocoder


@pytest.fixture(autouse=True)
def no_sleep():
    """Skip real delays between retries and geocode calls."""
    with patch('scraper.council_scraper.time.sleep') as mock_sleep:
        yield mock_sleep


class TestCouncilScraper:
    """Test cases for CouncilScraper class."""

    @responses.activate
    def test_fetch_filters_past_dates_and_geocodes(self, geocoder):
        """Test that only today-or-later locations are kept and geocoded."""
        responses.add(responses.GET, COUNCIL_URL, body=MOCK_HTML, status=200)

        scraper = CouncilScraper(geocoder=geocoder)
        locations = scraper.fetch(today=date(2025, 3, 15))

        assert [loc.address for loc in locations] == [
            "Pountney Road", "Garratt Lane", "Tooting Bec Road"
        ]
        assert locations[0].date == date(2025, 3, 15)
        assert (locations[0].latitude, locations[0].longitude) == (51.4700, -0.1600)
        assert geocoder.geocode.call_count == 3

    @responses.activate
    def test_geocode_calls_are_spaced(self, geocoder, no_sleep):
        """Test the fixed delay between consecutive geocode calls."""
        responses.add(responses.GET, COUNCIL_URL, body=MOCK_HTML, status=200)

        scraper = CouncilScraper(geocoder=geocoder, geocode_delay=0.5)
        scraper.fetch(today=date(2025, 3, 15))

        # Three geocodes, two gaps
        assert [c.args[0] for c in no_sleep.call_args_list] == [0.5, 0.5]

    def test_geocode_delay_has_a_floor(self, geocoder):
        """Test that the delay can never go below 200ms."""
        scraper = CouncilScraper(geocoder=geocoder, geocode_delay=0.01)

        assert scraper.geocode_delay == 0.2

    @responses.activate
    def test_geocode_failure_keeps_location(self, geocoder):
        """Test that a failed geocode leaves (0, 0) but keeps the location."""
        responses.add(responses.GET, COUNCIL_URL, body=MOCK_HTML, status=200)
        geocoder.geocode.side_effect = [
            GeocodeError("no results"),
            (51.45, -0.19),
            (51.43, -0.15),
        ]

        locations = CouncilScraper(geocoder=geocoder).fetch(today=date(2025, 3, 15))

        assert len(locations) == 3
        assert locations[0].is_geocoded is False
        assert (locations[0].latitude, locations[0].longitude) == (0.0, 0.0)
        assert locations[1].is_geocoded is True

    @responses.activate
    def test_no_upcoming_locations(self, geocoder):
        """Test that a page with only past dates yields an empty list."""
        responses.add(responses.GET, COUNCIL_URL, body=MOCK_HTML, status=200)

        locations = CouncilScraper(geocoder=geocoder).fetch(today=date(2025, 4, 1))

        assert locations == []
        geocoder.geocode.assert_not_called()

    @responses.activate
    def test_fetch_with_retry_success(self, geocoder):
        """Test retry logic succeeds after initial failures."""
        responses.add(responses.GET, COUNCIL_URL, body="Server Error", status=500)
        responses.add(responses.GET, COUNCIL_URL, body="Server Error", status=500)
        responses.add(responses.GET, COUNCIL_URL, body=MOCK_HTML, status=200)

        locations = CouncilScraper(geocoder=geocoder).fetch(today=date(2025, 3, 22))

        assert len(locations) == 1
        assert len(responses.calls) == 3

    @responses.activate
    def test_fetch_all_retries_fail(self, geocoder):
        """Test that FetchError is raised when all retries fail."""
        for _ in range(3):
            responses.add(responses.GET, COUNCIL_URL, body="Server Error", status=500)

        with pytest.raises(FetchError):
            CouncilScraper(geocoder=geocoder).fetch(today=date(2025, 3, 15))

        assert len(responses.calls) == 3
        geocoder.geocode.assert_not_called()

    @responses.activate
    def test_fetch_timeout(self, geocoder):
        """Test timeout handling."""
        for _ in range(3):
            responses.add(responses.GET, COUNCIL_URL, body=Timeout("Request timed out"))

        with pytest.raises(FetchError) as exc_info:
            CouncilScraper(geocoder=geocoder).fetch(today=date(2025, 3, 15))

        assert isinstance(exc_info.value.__cause__, Timeout)

    @responses.activate
    def test_custom_url(self, geocoder):
        """Test that the configured URL is fetched."""
        responses.add(responses.GET, "https://example.com/skips", body="<html></html>", status=200)

        locations = CouncilScraper(geocoder=geocoder, url="https://example.com/skips").fetch(
            today=date(2025, 3, 15)
        )

        assert locations == []
