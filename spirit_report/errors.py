"""Error taxonomy shared by the analysis pipeline and the HTTP layer."""

from __future__ import annotations


class ReportError(Exception):
    """Base error carrying a user-facing message and an HTTP status."""

    status_code = 500

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = int(status_code)


class InputValidationError(ReportError):
    """No location selected, or malformed date/time fields."""

    status_code = 400


class UpstreamError(ReportError):
    """Placement or geocoding service returned a failure or an unreadable body."""

    status_code = 502


class GenerationError(ReportError):
    status_code = 502


class EmptyResultError(ReportError):
    status_code = 400

    def __init__(self, message: str = "No data available"):
        super().__init__(message)


class ConfigurationError(ReportError):
    status_code = 500


class SnapshotUnavailableError(ReportError):
    status_code = 503


class LayoutError(ReportError):
    status_code = 500
