"""
Error taxonomy for the sales submission pipeline.

ConfigurationError   - missing/malformed static config or secrets (500, generic message)
RetailerNotFoundError - user-supplied retailer key not in the registry (400)
ValidationError      - malformed input record, carries field + 1-based position (400)
TransportError       - network failure or unusable (non-JSON / wrong shape) response (502)
ExternalRejection    - JSON response reporting overall failure (mirrors upstream status)
"""
from typing import Optional


class PortalError(Exception):
    """Base class for all errors raised by the portal."""


class ConfigurationError(PortalError):
    """Static configuration or secret is missing or malformed."""

    public_message = "Internal server configuration issue."


class RetailerNotFoundError(PortalError):
    """Retailer key does not exist in the registry."""

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"Invalid retailer key: {key}")


class ValidationError(PortalError):
    """A single input record is malformed."""

    def __init__(self, message: str, field: Optional[str] = None, position: Optional[int] = None):
        self.field = field
        self.position = position
        self.message = message
        super().__init__(self._format())

    def _format(self) -> str:
        if self.position is not None:
            return f"Row {self.position}: {self.message}"
        return self.message


class TransportError(PortalError):
    """The external API could not be reached or returned an unusable body."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class ExternalRejection(PortalError):
    """The external API answered with JSON reporting an overall failure."""

    def __init__(self, message: str, status_code: int, result_code: Optional[str] = None):
        self.message = message
        self.status_code = status_code
        self.result_code = result_code
        super().__init__(message)
