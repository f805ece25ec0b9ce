"""
Error types for the Findings Dashboard Backend.

Every error a view can surface derives from DashboardError and carries the
HTTP status code it maps to at the view boundary.
"""


class DashboardError(Exception):
    """Base class for errors raised while building a view."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class SourceUnavailable(DashboardError):
    """The tracker or spreadsheet service could not be reached or answered with an error."""


class FetchIncomplete(DashboardError):
    """Pagination stopped before the reported total was retrieved."""


class MissingParameter(DashboardError):
    """A required query parameter was not supplied."""

    status_code = 400


class MalformedAttribute(DashboardError):
    """An attribute value had a shape that cannot be decoded.

    Never reaches a client: the decoder catches it and falls back.
    """
