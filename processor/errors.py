"""Error taxonomy for the megaskip service."""


class MegaskipError(Exception):
    """Base class for all service errors."""


class FetchError(MegaskipError):
    """Council page unreachable or returned a non-200 status."""


class ParseError(MegaskipError):
    """Council page could not be parsed as markup."""


class GeocodeError(MegaskipError):
    """A postcode could not be turned into coordinates."""


class CacheError(MegaskipError):
    """Cache backend unavailable or returned undecodable data."""


class ScrapeError(MegaskipError):
    """Refreshing skip locations from the council site failed."""


class ValidationError(MegaskipError):
    """Malformed client input (postcode or request path)."""
