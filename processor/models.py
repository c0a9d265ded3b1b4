"""Data models for skip locations and calendar events."""
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict

WIRE_DATE_FORMAT = '%Y-%m-%dT00:00:00Z'


@dataclass
class SkipLocation:
    """One advertised megaskip at one site on one day."""
    address: str
    postcode: str
    date: date
    date_str: str
    latitude: float = 0.0
    longitude: float = 0.0

    @property
    def is_geocoded(self) -> bool:
        """(0, 0) means the location has not been geocoded."""
        return not (self.latitude == 0 and self.longitude == 0)

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert to the camel-case wire format used by the API and caches.

        Returns:
            JSON-serializable dictionary
        """
        return {
            'address': self.address,
            'postcode': self.postcode,
            'date': self.date.strftime(WIRE_DATE_FORMAT),
            'dateStr': self.date_str,
            'lat': self.latitude,
            'lng': self.longitude
        }

    @classmethod
    def from_dict(cls, item: Dict[str, Any]) -> 'SkipLocation':
        """
        Build a SkipLocation from its wire format.

        Args:
            item: Dictionary produced by to_dict

        Returns:
            SkipLocation object

        Raises:
            KeyError, ValueError: If the dictionary is malformed
        """
        return cls(
            address=item['address'],
            postcode=item['postcode'],
            date=datetime.strptime(item['date'][:10], '%Y-%m-%d').date(),
            date_str=item.get('dateStr', ''),
            latitude=float(item.get('lat', 0.0)),
            longitude=float(item.get('lng', 0.0))
        )


@dataclass
class CalendarEvent:
    """One feed entry per distinct skip date."""
    date: date
    title: str
    description: str
    location: str = field(default='')
