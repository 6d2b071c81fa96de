import time
from typing import Callable, Dict, Optional

from backend.app.models.schemas import StoredLinkData

ELLIPSIS = "…"


class ResolvedLinkStore:
    """
    Short-lived memory of recently resolved links, keyed by link hash.

    Lets later requests (keyword lookup, product suggestions) reach the
    caption of a resolved link without the client sending it again. Entries
    expire a fixed time after they were written; reads never refresh them.
    Expired entries are purged lazily on every access.
    """

    def __init__(self, ttl_seconds: float = 300, text_limit: int = 600, clock: Callable[[], float] = time.time):
        self.ttl_seconds = ttl_seconds
        self.text_limit = text_limit
        self._clock = clock
        self._entries: Dict[str, StoredLinkData] = {}

    def remember(
        self,
        link_hash: str,
        link: str,
        service: Optional[str] = None,
        caption: Optional[str] = None,
        description: Optional[str] = None,
        title: Optional[str] = None,
    ) -> None:
        if not link_hash or not link:
            return
        self._purge_expired()
        self._entries[link_hash] = StoredLinkData(
            link=link,
            service=service,
            caption=self._truncate(caption),
            description=self._truncate(description),
            title=self._truncate(title),
            resolved_at=self._clock(),
        )

    def get(self, link_hash: str) -> Optional[StoredLinkData]:
        if not link_hash:
            return None
        self._purge_expired()
        return self._entries.get(link_hash)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def _purge_expired(self) -> None:
        now = self._clock()
        for key in [k for k, entry in self._entries.items() if entry.resolved_at + self.ttl_seconds < now]:
            del self._entries[key]

    def _truncate(self, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        trimmed = str(value).strip()
        if not trimmed:
            return None
        if len(trimmed) <= self.text_limit:
            return trimmed
        return trimmed[:self.text_limit] + ELLIPSIS
