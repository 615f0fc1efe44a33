"""Exceptions raised by pkgstats."""


class StatsError(Exception):
    """Base class for pkgstats errors."""


class BadRequestError(StatsError, ValueError):
    """Client input that cannot be used to compute stats."""


class NotFoundError(StatsError, LookupError):
    """The requested package, version or stat row does not exist."""
