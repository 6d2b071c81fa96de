import logging
from typing import Any, Dict, List, Optional, Sequence

import httpx

from backend.app.models.schemas import ResolveResult, StoredLinkData
from backend.app.services.duration import extract_media_duration_seconds
from backend.app.services.errors import (
    LinkResolutionError,
    ResolutionError,
    ServiceAvailabilityError,
    UnsupportedLinkError,
)
from backend.app.services.link_store import ResolvedLinkStore
from backend.app.services.resolvers.base import BaseResolver
from backend.app.services.resolvers.meta import MetaResolver
from backend.app.services.resolvers.pinterest import PinterestResolver
from backend.app.services.resolvers.shopee import ShopeeResolver
from backend.app.services.resolvers.tiktok import TiktokResolver
from backend.app.services.resolvers.youtube import YoutubeResolver
from backend.app.services.utils import extract_first_url, hash_link

logger = logging.getLogger(__name__)


def default_resolvers(transport: Optional[httpx.AsyncBaseTransport] = None) -> List[BaseResolver]:
    # Order matters: Shopee's universal-link path marker can appear on any host
    return [
        ShopeeResolver(transport=transport),
        PinterestResolver(transport=transport),
        TiktokResolver(transport=transport),
        YoutubeResolver(transport=transport),
        MetaResolver(transport=transport),
    ]


def derive_caption(result: ResolveResult) -> Optional[str]:
    """description, then the caption fields buried in pageProps, then title."""
    if result.description and result.description.strip():
        return result.description
    page_props: Dict[str, Any] = result.page_props or {}
    media_info = page_props.get('mediaInfo') or {}
    video_info = media_info.get('video') or {}
    for candidate in (video_info.get('caption'), media_info.get('caption'), page_props.get('caption')):
        if isinstance(candidate, str) and candidate.strip():
            return candidate
    return result.title


class LinkResolver:
    """Picks the strategy for a link, runs it and remembers the outcome."""

    def __init__(self, resolvers: Sequence[BaseResolver], store: ResolvedLinkStore):
        self.resolvers = list(resolvers)
        self.store = store

    def select(self, link: str) -> Optional[BaseResolver]:
        return next((r for r in self.resolvers if r.is_applicable(link)), None)

    async def resolve(self, text: str) -> ResolveResult:
        link = extract_first_url(text)
        if not link:
            raise UnsupportedLinkError("No link provided")

        resolver = self.select(link)
        if resolver is None:
            logger.info("No resolver accepts %s", link)
            raise UnsupportedLinkError("Unsupported link")

        service = resolver.service
        logger.info("Resolving %s with %s", link, service.value)
        try:
            result = await resolver.resolve(link)
        except ServiceAvailabilityError as exc:
            logger.warning(
                "%s unavailable (%s): %s | detail=%s", exc.service.value, exc.status_code, exc.message, exc.detail
            )
            raise
        except UnsupportedLinkError as exc:
            logger.info("%s rejected %s: %s", service.value, link, exc.message)
            raise
        except LinkResolutionError as exc:
            logger.error("%s failed for %s: %s", service.value, link, exc.message, exc_info=exc)
            raise ResolutionError(service=service) from exc
        except Exception as exc:
            logger.exception("Unexpected error while resolving %s with %s", link, service.value)
            raise ResolutionError(service=service) from exc

        link_hash = hash_link(link)
        self._annotate_duration(result)
        self.store.remember(
            link_hash,
            link,
            service=service.value,
            caption=derive_caption(result),
            description=result.description,
            title=result.title,
        )
        return result.model_copy(update={'link_hash': link_hash})

    def get_resolved_link(self, link_hash: str) -> Optional[StoredLinkData]:
        return self.store.get(link_hash)

    @staticmethod
    def _annotate_duration(result: ResolveResult) -> None:
        if 'durationSeconds' in result.extras:
            return
        try:
            seconds = extract_media_duration_seconds(result.model_dump(by_alias=True, mode='json'))
        except Exception:
            # The duration is optional; a resolved link is still returned
            logger.warning("Could not derive a duration for %s", result.service.value, exc_info=True)
            return
        if seconds:
            result.extras['durationSeconds'] = seconds
