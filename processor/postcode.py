"""UK postcode grammar helpers."""
import re

POSTCODE_PATTERN = re.compile(r'^[A-Z]{1,2}\d{1,2}[A-Z]?\s?\d[A-Z]{2}$')


def normalize_postcode(postcode: str) -> str:
    """Trim and uppercase a postcode; internal spacing is preserved."""
    return postcode.strip().upper()


def is_valid_postcode(postcode: str) -> bool:
    """
    Check a postcode against the UK postcode grammar.

    The check is case-insensitive: the value is normalized first.
    """
    return bool(POSTCODE_PATTERN.match(normalize_postcode(postcode)))
