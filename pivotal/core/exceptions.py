"""
pivotal custom exceptions.
"""


class PivotalError(Exception):
    """Base exception for pivotal."""

    pass


class PivotalConfigError(PivotalError):
    """Invalid configuration, raised before any simulation starts."""

    pass


class PivotalDataError(PivotalError):
    """Malformed bar data or candidate input."""

    pass
