"""iCalendar feed generation for megaskip days."""
import hashlib
import logging
import math
import re
from datetime import date, datetime, time, timedelta, timezone
from typing import Dict, List, Optional, Tuple
from zoneinfo import ZoneInfo

from icalendar import Calendar, Event, Timezone, TimezoneDaylight, TimezoneStandard, vText

from processor.models import CalendarEvent, SkipLocation

logger = logging.getLogger(__name__)

LONDON = ZoneInfo('Europe/London')
EARTH_RADIUS_KM = 6371

EVENT_TITLE = "Wandsworth Megaskip"
EVENT_DESCRIPTION = "Opens 9am, closes at 12 noon or when full.\nhttps://wheremegaskip.com"
EVENT_START = time(9, 0)
EVENT_END = time(12, 0)
UID_DOMAIN = "wheremegaskip.com"

_ESCAPED_CHAR = re.compile(r'\\([\\;,nN])')


def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Great-circle distance between two points.

    Returns:
        Distance in kilometres
    """
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)

    a = (math.sin(d_lat / 2) ** 2 +
         math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) *
         math.sin(d_lon / 2) ** 2)

    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def group_by_date(locations: List[SkipLocation]) -> Dict[date, List[SkipLocation]]:
    """Group locations by day, keeping input order within each day."""
    groups: Dict[date, List[SkipLocation]] = {}
    for location in locations:
        groups.setdefault(location.date, []).append(location)
    return groups


def find_nearest_for_date(
    locations: List[SkipLocation],
    target_date: date,
    user_lat: float,
    user_lng: float
) -> Optional[SkipLocation]:
    """
    Find the geocoded location on a date closest to the user.

    Ties go to the earliest location in the list.

    Returns:
        Nearest location, or None if no geocoded location shares the date
    """
    nearest = None
    min_distance = math.inf

    for location in locations:
        if location.date != target_date or not location.is_geocoded:
            continue

        distance = haversine_distance(
            user_lat, user_lng, location.latitude, location.longitude
        )
        if distance < min_distance:
            min_distance = distance
            nearest = location

    return nearest


def escape_ical_text(text: str) -> str:
    """Escape a TEXT value (backslash, semicolon, comma, newline)."""
    return (text.replace('\\', '\\\\')
                .replace(';', '\\;')
                .replace(',', '\\,')
                .replace('\r\n', '\\n')
                .replace('\n', '\\n'))


def unescape_ical_text(text: str) -> str:
    """Reverse escape_ical_text."""
    return _ESCAPED_CHAR.sub(
        lambda match: '\n' if match.group(1) in 'nN' else match.group(1),
        text
    )


class _EscapedText(vText):
    """TEXT property value rendered with escape_ical_text."""

    def to_ical(self) -> bytes:
        return escape_ical_text(str(self)).encode(self.encoding)


def generate_uid(event_date: date) -> str:
    """Stable event UID derived from the date alone."""
    digest = hashlib.sha256(event_date.isoformat().encode('utf-8')).hexdigest()
    return f"{digest[:16]}@{UID_DOMAIN}"


def build_events(
    locations: List[SkipLocation],
    user_coordinate: Optional[Tuple[float, float]] = None
) -> List[CalendarEvent]:
    """
    Build one calendar event per distinct skip date.

    Args:
        locations: Current skip locations
        user_coordinate: Optional (latitude, longitude) for a personalized
            feed; each event then names the nearest skip on that day

    Returns:
        Events sorted by date
    """
    events = []

    for event_date, day_locations in group_by_date(locations).items():
        location_text = ''
        if user_coordinate is not None:
            nearest = find_nearest_for_date(
                day_locations, event_date, user_coordinate[0], user_coordinate[1]
            )
            if nearest:
                location_text = f"{nearest.address}, {nearest.postcode}, London, UK"

        events.append(CalendarEvent(
            date=event_date,
            title=EVENT_TITLE,
            description=EVENT_DESCRIPTION,
            location=location_text
        ))

    events.sort(key=lambda event: event.date)
    return events


def _london_timezone() -> Timezone:
    """VTIMEZONE for Europe/London with the standard EU DST rules."""
    tz = Timezone()
    tz.add('tzid', 'Europe/London')

    daylight = TimezoneDaylight()
    daylight.add('tzoffsetfrom', timedelta(0))
    daylight.add('tzoffsetto', timedelta(hours=1))
    daylight.add('tzname', 'BST')
    daylight.add('dtstart', datetime(1970, 3, 29, 1, 0, 0))
    daylight.add('rrule', {'FREQ': 'YEARLY', 'BYMONTH': 3, 'BYDAY': '-1SU'})
    tz.add_component(daylight)

    standard = TimezoneStandard()
    standard.add('tzoffsetfrom', timedelta(hours=1))
    standard.add('tzoffsetto', timedelta(0))
    standard.add('tzname', 'GMT')
    standard.add('dtstart', datetime(1970, 10, 25, 2, 0, 0))
    standard.add('rrule', {'FREQ': 'YEARLY', 'BYMONTH': 10, 'BYDAY': '-1SU'})
    tz.add_component(standard)

    return tz


def render_feed(events: List[CalendarEvent], now: Optional[datetime] = None) -> str:
    """
    Render events as an RFC 5545 document.

    Args:
        events: Events in the order they should appear
        now: DTSTAMP for every event (default: current UTC time)

    Returns:
        Serialized VCALENDAR
    """
    dtstamp = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)

    calendar = Calendar()
    calendar.add('prodid', '-//WhereMegaSkip//Calendar//EN')
    calendar.add('version', '2.0')
    calendar.add('calscale', 'GREGORIAN')
    calendar.add('method', 'PUBLISH')
    calendar.add('x-wr-calname', EVENT_TITLE)
    calendar.add('x-wr-timezone', 'Europe/London')
    calendar.add_component(_london_timezone())

    for event in events:
        vevent = Event()
        vevent.add('uid', generate_uid(event.date))
        vevent.add('dtstamp', dtstamp)
        vevent.add('dtstart', datetime.combine(event.date, EVENT_START, tzinfo=LONDON))
        vevent.add('dtend', datetime.combine(event.date, EVENT_END, tzinfo=LONDON))
        vevent.add('summary', _EscapedText(event.title))
        vevent.add('description', _EscapedText(event.description))
        if event.location:
            vevent.add('location', _EscapedText(event.location))
        calendar.add_component(vevent)

    return calendar.to_ical().decode('utf-8')


def build_feed(
    locations: List[SkipLocation],
    user_coordinate: Optional[Tuple[float, float]] = None,
    now: Optional[datetime] = None
) -> str:
    """
    Build the megaskip calendar feed.

    Args:
        locations: Current skip locations
        user_coordinate: Optional (latitude, longitude) for a personalized feed
        now: DTSTAMP override

    Returns:
        Serialized VCALENDAR
    """
    events = build_events(locations, user_coordinate)
    logger.info(
        f"Rendering calendar with {len(events)} events",
        extra={'personalized': user_coordinate is not None}
    )
    return render_feed(events, now)
