"""Scraper for the Wandsworth Council mega skip days page."""
import logging
import time
from datetime import date, datetime
from typing import List, Optional
from zoneinfo import ZoneInfo

import requests

from processor.errors import FetchError, GeocodeError
from processor.models import SkipLocation
from scraper.geocoder import NominatimGeocoder
from scraper.page_parser import PageParser

logger = logging.getLogger(__name__)

LONDON = ZoneInfo('Europe/London')


class CouncilScraper:
    """Fetches, filters and geocodes upcoming megaskip locations."""

    DEFAULT_URL = "https://www.wandsworth.gov.uk/mega-skip-days"
    MIN_GEOCODE_DELAY = 0.2  # seconds between Nominatim calls

    def __init__(
        self,
        geocoder: NominatimGeocoder,
        url: str = DEFAULT_URL,
        timeout: int = 10,
        geocode_delay: float = MIN_GEOCODE_DELAY,
        parser: Optional[PageParser] = None
    ):
        """
        Initialize the council scraper.

        Args:
            geocoder: Geocoder used for each surviving location
            url: Council page URL
            timeout: HTTP request timeout in seconds (default: 10)
            geocode_delay: Seconds to wait between geocode calls, never
                below MIN_GEOCODE_DELAY
            parser: Page parser (default: PageParser())
        """
        self.geocoder = geocoder
        self.url = url
        self.timeout = timeout
        self.geocode_delay = max(geocode_delay, self.MIN_GEOCODE_DELAY)
        self.parser = parser or PageParser()

    def fetch(self, today: Optional[date] = None) -> List[SkipLocation]:
        """
        Fetch the current set of upcoming skip locations.

        Args:
            today: Reference day in Europe/London (default: current day)

        Returns:
            Locations dated today or later, geocoded where possible

        Raises:
            FetchError: If the council page cannot be retrieved
            ParseError: If the page cannot be parsed as markup
        """
        if today is None:
            today = datetime.now(LONDON).date()

        html_content = self._fetch_page_html()
        locations = self.parser.parse(html_content, today.year)

        upcoming = [location for location in locations if location.date >= today]
        logger.info(
            f"Kept {len(upcoming)} upcoming locations out of {len(locations)}"
        )

        self._geocode_locations(upcoming)
        return upcoming

    def _fetch_page_html(self) -> str:
        """
        Fetch the council page with retry logic.

        Returns:
            HTML content as string

        Raises:
            FetchError: If all retry attempts fail
        """
        max_retries = 3
        base_delay = 1  # seconds

        for attempt in range(max_retries):
            try:
                logger.info(f"Fetching council page (attempt {attempt + 1}/{max_retries})")
                response = requests.get(self.url, timeout=self.timeout)
                response.raise_for_status()
                return response.text

            except requests.RequestException as e:
                if attempt < max_retries - 1:
                    delay = base_delay * (2 ** attempt)
                    logger.warning(
                        f"Request failed (attempt {attempt + 1}/{max_retries}): {e}. "
                        f"Retrying in {delay} seconds..."
                    )
                    time.sleep(delay)
                else:
                    logger.error(
                        f"All {max_retries} retry attempts failed. Last error: {e}"
                    )
                    raise FetchError(f"Failed to fetch {self.url}: {e}") from e

    def _geocode_locations(self, locations: List[SkipLocation]) -> None:
        """
        Geocode locations in place, one call at a time.

        A failed lookup leaves the location at (0, 0) and keeps it.

        Args:
            locations: Locations to geocode
        """
        logger.info(f"Geocoding {len(locations)} locations...")

        for index, location in enumerate(locations):
            if index > 0:
                time.sleep(self.geocode_delay)

            try:
                location.latitude, location.longitude = self.geocoder.geocode(
                    location.postcode
                )
            except GeocodeError as e:
                logger.warning(f"Failed to geocode {location.postcode}: {e}")
                continue

            logger.info(
                f"Geocoded {location.postcode}: "
                f"{location.latitude:.4f}, {location.longitude:.4f}"
            )

        logger.info("Geocoding complete")
