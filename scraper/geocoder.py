"""Postcode geocoding against the Nominatim search API."""
import logging
from typing import Tuple

import requests

from processor.errors import GeocodeError

logger = logging.getLogger(__name__)


class NominatimGeocoder:
    """Looks up latitude/longitude for UK postcodes."""

    BASE_URL = "https://nominatim.openstreetmap.org/search"
    USER_AGENT = "WhereMegaSkip/1.0 (https://github.com/JosephSalisbury/wheremegaskip)"

    def __init__(self, timeout: int = 10):
        """
        Initialize the geocoder.

        Args:
            timeout: HTTP request timeout in seconds (default: 10)
        """
        self.timeout = timeout
        self.session = requests.Session()
        self.session.headers['User-Agent'] = self.USER_AGENT

    def geocode(self, postcode: str) -> Tuple[float, float]:
        """
        Geocode a postcode.

        Args:
            postcode: UK postcode

        Returns:
            Tuple of (latitude, longitude)

        Raises:
            GeocodeError: If the lookup fails or finds nothing
        """
        params = {
            'q': f"{postcode} London UK",
            'format': 'json',
            'limit': 1,
            'countrycodes': 'gb'
        }

        try:
            response = self.session.get(
                self.BASE_URL,
                params=params,
                timeout=self.timeout
            )
        except requests.RequestException as e:
            raise GeocodeError(f"Failed to fetch geocode for {postcode}: {e}") from e

        if response.status_code != 200:
            raise GeocodeError(f"Geocode API returned status {response.status_code}")

        try:
            results = response.json()
        except ValueError as e:
            raise GeocodeError(f"Failed to decode geocode response: {e}") from e

        if not results:
            raise GeocodeError(f"No geocode results for postcode {postcode}")

        try:
            return float(results[0]['lat']), float(results[0]['lon'])
        except (KeyError, TypeError, ValueError) as e:
            raise GeocodeError(f"Failed to parse coordinates for {postcode}: {e}") from e
