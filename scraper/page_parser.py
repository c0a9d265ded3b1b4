"""Parser that turns the council megaskip page into skip locations."""
import logging
from datetime import date, datetime
from typing import List, Optional

from bs4 import BeautifulSoup
from bs4.builder import ParserRejectedMarkup
from bs4.element import Comment, NavigableString, Tag

from processor.errors import ParseError
from processor.models import SkipLocation
from processor.postcode import is_valid_postcode, normalize_postcode

logger = logging.getLogger(__name__)

HEADING_TAGS = ['h1', 'h2', 'h3', 'h4', 'h5', 'h6']
LIST_TAGS = ('ul', 'ol')
BULLET_GLYPHS = ('•', '-', '*')

# "Saturday 31 January" and "Saturday 01 February"; %d accepts both
DATE_HEADING_FORMATS = ['%A %d %B %Y']


def parse_skip_date(heading_text: str, year: int) -> Optional[date]:
    """
    Parse a heading such as "Saturday 31 January" into a date.

    Args:
        heading_text: Heading text from the page
        year: Year to attach, since headings omit it

    Returns:
        Parsed date or None if the heading is not a date
    """
    text = f"{' '.join(heading_text.split())} {year}"

    for fmt in DATE_HEADING_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue

    return None


def parse_location_line(line: str, skip_date: date, date_str: str) -> Optional[SkipLocation]:
    """
    Parse a single "Address, POSTCODE" line.

    Args:
        line: Candidate text, possibly with a leading bullet glyph
        skip_date: Date of the section the line belongs to
        date_str: Original heading text

    Returns:
        SkipLocation without coordinates, or None if the line is unusable
    """
    line = line.strip()
    for glyph in BULLET_GLYPHS:
        if line.startswith(glyph):
            line = line[len(glyph):].strip()

    if ',' not in line:
        return None

    address, remainder = line.split(',', 1)
    address = ' '.join(address.split())
    remainder = remainder.strip()

    if not address:
        return None

    postcode = remainder
    if not is_valid_postcode(postcode):
        # Postcode may trail other text, e.g. "Battersea, SW11 5TU"
        words = remainder.split()
        if len(words) < 2 or not is_valid_postcode(' '.join(words[-2:])):
            logger.debug(f"Discarding line without a valid postcode: {line!r}")
            return None
        postcode = ' '.join(words[-2:])

    return SkipLocation(
        address=address,
        postcode=normalize_postcode(postcode),
        date=skip_date,
        date_str=date_str
    )


class PageParser:
    """Extracts dated skip locations from council page markup."""

    def parse(self, html_content: str, year: int) -> List[SkipLocation]:
        """
        Parse skip locations from page HTML.

        Args:
            html_content: Raw page markup
            year: Year to attach to "<weekday> <day> <month>" headings

        Returns:
            Locations in page order, without coordinates

        Raises:
            ParseError: If the content cannot be parsed as markup at all
        """
        try:
            soup = BeautifulSoup(html_content, 'html.parser')
        except (ParserRejectedMarkup, TypeError) as e:
            raise ParseError(f"Failed to parse HTML: {e}") from e

        locations = []

        for heading in soup.find_all(HEADING_TAGS):
            date_str = heading.get_text(' ', strip=True)
            skip_date = parse_skip_date(date_str, year)
            if skip_date is None:
                continue

            for element in self._section_elements(heading):
                locations.extend(
                    self._parse_element(element, skip_date, date_str)
                )

        logger.info(f"Parsed {len(locations)} locations from page")
        return locations

    def _section_elements(self, heading: Tag) -> List[Tag]:
        """
        Collect the siblings that belong to a date heading.

        Stops at the first empty element or at the next heading of the
        same or a higher level.

        Args:
            heading: Date heading element

        Returns:
            Sibling elements in document order
        """
        level = HEADING_TAGS.index(heading.name)
        stop_tags = HEADING_TAGS[:level + 1]
        elements = []

        for sibling in heading.find_next_siblings():
            if sibling.name in stop_tags:
                break
            if not sibling.get_text(strip=True):
                break
            elements.append(sibling)

        return elements

    def _parse_element(self, element: Tag, skip_date: date, date_str: str) -> List[SkipLocation]:
        """
        Parse the locations held by one section element.

        List items are parsed one per line; an element without list items
        is parsed as a single line.

        Args:
            element: Sibling element under a date heading
            skip_date: Section date
            date_str: Original heading text

        Returns:
            Locations found in the element
        """
        items = element.find_all('li')
        if element.name == 'li':
            items = [element]

        lines = [self._own_text(item) for item in items]
        if not items:
            lines = [element.get_text(' ', strip=True)]

        locations = []
        for line in lines:
            location = parse_location_line(line, skip_date, date_str)
            if location:
                locations.append(location)

        return locations

    def _own_text(self, item: Tag) -> str:
        """
        Text of a list item, leaving out any nested lists.

        Nested items are parsed on their own, so their postcodes must not
        leak into the parent line.

        Args:
            item: List item element

        Returns:
            Whitespace-joined text
        """
        parts = []
        for child in item.children:
            if isinstance(child, Tag):
                if child.name in LIST_TAGS:
                    continue
                parts.append(child.get_text(' ', strip=True))
            elif isinstance(child, NavigableString) and not isinstance(child, Comment):
                parts.append(child.strip())
        return ' '.join(part for part in parts if part)
