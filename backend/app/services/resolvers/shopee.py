import json
import logging
import re
from typing import Any, Dict, Optional
from urllib.parse import ParseResult, parse_qs, unquote, urlparse

import httpx

from backend.app.core.config import settings
from backend.app.models.schemas import MediaSelection, ResolveResult, ServiceName
from backend.app.services.errors import ResolutionError, ServiceAvailabilityError, UnsupportedLinkError
from backend.app.services.resolvers.base import BaseResolver
from backend.app.services.utils import safe_urlparse, sanitize_base_name

logger = logging.getLogger(__name__)

SHORT_LINK_SUFFIX = "shp.ee"
UNIVERSAL_LINK_MARKER = "/universal-link"
NEXT_DATA_PATTERN = re.compile(
    r'<script id="__NEXT_DATA__" type="application/json">(.*?)</script>', re.DOTALL
)
# The CDN names watermarked renditions "<name>.<n>.<n>.mp4"; the bare "<name>.mp4" is clean.
WATERMARK_SUFFIX = re.compile(r'\.[0-9]+\.[0-9]+(?=\.mp4$)')


def strip_watermark_suffix(url: str) -> str:
    return WATERMARK_SUFFIX.sub('', url, count=1)


class ShopeeResolver(BaseResolver):
    service = ServiceName.SHOPEE

    def _matches(self, parsed: ParseResult) -> bool:
        return self._host(parsed).endswith(SHORT_LINK_SUFFIX) or UNIVERSAL_LINK_MARKER in parsed.path

    async def resolve(self, url: str) -> ResolveResult:
        parsed = safe_urlparse(url)
        if parsed is None:
            raise UnsupportedLinkError("Invalid link")

        if self._host(parsed).endswith(SHORT_LINK_SUFFIX):
            universal_link = await self._follow_short_link(url)
        elif UNIVERSAL_LINK_MARKER in parsed.path:
            universal_link = url
        else:
            raise UnsupportedLinkError("Unsupported Shopee link type")

        share_url = self._share_url(universal_link)
        page_props = await self._fetch_page_props(share_url)

        video_info = (page_props.get("mediaInfo") or {}).get("video")
        if not isinstance(video_info, dict):
            raise ServiceAvailabilityError(
                self.service, "Shopee video is unavailable", detail=f"mediaInfo.video missing for {share_url}"
            )

        watermark_url = video_info.get("watermarkVideoUrl")
        if not watermark_url:
            raise ServiceAvailabilityError(
                self.service, "Shopee video is unavailable", detail=f"watermarkVideoUrl missing for {share_url}"
            )
        direct_url = strip_watermark_suffix(watermark_url)
        video_info["directVideoUrl"] = direct_url

        title = video_info.get("caption")
        return ResolveResult(
            service=self.service,
            title=title,
            thumbnail=video_info.get("coverUrl"),
            share_url=share_url,
            video=MediaSelection(
                url=direct_url,
                fallback_urls=[watermark_url],
                file_name=f"{sanitize_base_name(title, 'shopee-video')}.mp4",
                content_type="video/mp4",
            ),
            page_props=page_props,
            extras={
                "universalLink": universal_link,
                "videoId": video_info.get("videoId") or video_info.get("id"),
            },
        )

    async def _follow_short_link(self, short_url: str) -> str:
        """Short links always answer with a redirect to the universal link."""
        try:
            async with self._client(follow_redirects=False, timeout=settings.SHORT_LINK_TIMEOUT) as client:
                resp = await client.get(short_url)
        except httpx.HTTPError as exc:
            raise ResolutionError(f"Shopee short link request failed: {exc}", self.service) from exc

        location = resp.headers.get("location")
        if resp.status_code not in (301, 302) or not location:
            raise ServiceAvailabilityError(
                self.service,
                "Shopee did not return a redirect for the short link",
                detail=f"status={resp.status_code} url={short_url}",
                status_code=502,
            )
        return location

    def _share_url(self, universal_link: str) -> str:
        try:
            query = parse_qs(urlparse(universal_link).query)
        except ValueError as exc:
            raise UnsupportedLinkError("Invalid universal link") from exc
        redir = query.get("redir")
        if not redir or not redir[0]:
            raise UnsupportedLinkError("Universal link has no redir parameter")
        # parse_qs already decoded once; upstream sometimes double-encodes
        share_url = unquote(redir[0])
        if safe_urlparse(share_url) is None:
            raise UnsupportedLinkError("Universal link points to an invalid share page")
        return share_url

    async def _fetch_page_props(self, share_url: str) -> Dict[str, Any]:
        try:
            async with self._client(follow_redirects=True) as client:
                resp = await client.get(share_url)
                resp.raise_for_status()
        except httpx.HTTPError as exc:
            raise ResolutionError(f"Shopee share page request failed: {exc}", self.service) from exc

        match = NEXT_DATA_PATTERN.search(resp.text)
        if not match:
            raise ServiceAvailabilityError(
                self.service, "Shopee share page has changed", detail=f"__NEXT_DATA__ not found in {share_url}"
            )

        try:
            next_data = json.loads(match.group(1))
        except json.JSONDecodeError as exc:
            raise ServiceAvailabilityError(
                self.service, "Shopee share page has changed", detail=f"__NEXT_DATA__ is not JSON: {exc}"
            ) from exc

        page_props: Optional[Dict[str, Any]] = ((next_data or {}).get("props") or {}).get("pageProps")
        if not isinstance(page_props, dict):
            raise ServiceAvailabilityError(
                self.service, "Shopee share page has changed", detail="pageProps missing in Next.js payload"
            )
        logger.debug("Fetched Shopee pageProps for %s", share_url)
        return page_props
