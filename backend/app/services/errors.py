"""
Errors raised while resolving share links.

Every error carries the HTTP status the API boundary should answer with and a
client-safe ``message``. Diagnostic details stay server-side.
"""
from typing import Optional

from backend.app.models.schemas import ServiceName


class LinkResolutionError(Exception):
    status_code = 500

    def __init__(self, message: str):
        self.message = message
        super().__init__(self.message)


class UnsupportedLinkError(LinkResolutionError):
    """Raised when no strategy handles the link, or the link is malformed for its platform"""
    status_code = 400

    def __init__(self, message: str = "Unsupported link"):
        super().__init__(message)


class ServiceAvailabilityError(LinkResolutionError):
    """
    Raised when a platform is unreachable or answers in an unexpected shape
    (redirect missing, expected script tag absent, empty download table).
    """

    def __init__(
        self,
        service: ServiceName,
        message: str,
        detail: Optional[str] = None,
        status_code: int = 503,
    ):
        self.service = service
        self.detail = detail
        self.status_code = status_code
        super().__init__(message)


class ResolutionError(LinkResolutionError):
    """Generic failure while running a strategy"""
    status_code = 500

    def __init__(self, message: str = "Failed to resolve link", service: Optional[ServiceName] = None):
        self.service = service
        super().__init__(message)
