"""
Base class for platform resolvers
"""
from abc import ABC, abstractmethod
from typing import Optional
from urllib.parse import ParseResult
import logging

import httpx

from backend.app.core.config import settings
from backend.app.models.schemas import ResolveResult, ServiceName
from backend.app.services.utils import safe_urlparse

logger = logging.getLogger(__name__)


class BaseResolver(ABC):
    """
    Turns a platform share link into a ResolveResult.

    Resolvers keep no per-request state; one instance serves every request.
    """

    service: ServiceName

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None, timeout: Optional[float] = None):
        """
        Args:
            transport: Optional httpx transport, used to fake upstream sites in tests
            timeout: Upstream request timeout in seconds
        """
        self.transport = transport
        self.timeout = timeout or settings.HTTP_TIMEOUT
        self.ua = settings.USER_AGENT

    def is_applicable(self, url: str) -> bool:
        parsed = safe_urlparse(url)
        if parsed is None:
            return False
        try:
            return self._matches(parsed)
        except (ValueError, TypeError, AttributeError):
            logger.debug("%s predicate failed for %r", self.service.value, url)
            return False

    @abstractmethod
    def _matches(self, parsed: ParseResult) -> bool:
        """Host/path predicate; only ever called with a parseable URL"""

    @abstractmethod
    async def resolve(self, url: str) -> ResolveResult:
        """
        Resolve the share link into downloadable media

        Raises:
            LinkResolutionError subclasses, or any exception the dispatcher
            will report as a generic failure
        """

    def _client(self, **kwargs) -> httpx.AsyncClient:
        kwargs.setdefault("timeout", self.timeout)
        kwargs.setdefault("headers", {"User-Agent": self.ua})
        if self.transport is not None:
            kwargs["transport"] = self.transport
        return httpx.AsyncClient(**kwargs)

    @staticmethod
    def _host(parsed: ParseResult) -> str:
        return (parsed.hostname or "").lower()
