import logging
import re
from typing import Dict, List, Optional
from urllib.parse import ParseResult, quote, unquote

import httpx
from bs4 import BeautifulSoup

from backend.app.core.config import settings
from backend.app.models.schemas import ResolveResult, ServiceName
from backend.app.services.errors import ResolutionError, ServiceAvailabilityError
from backend.app.services.ranking import build_selection, rank
from backend.app.services.resolvers.base import BaseResolver
from backend.app.services.utils import file_name_from_url, is_http_url, safe_hostname, sanitize_base_name

logger = logging.getLogger(__name__)

SHORT_LINK_HOST = "pin.it"
CONVERTER_URL = "https://www.savepin.app/download.php?url={url}&lang=en&type=redirect"
MAX_SHORT_LINK_REDIRECTS = 5

_RESOLUTION_P = re.compile(r'(\d{3,4})p', re.IGNORECASE)
_RESOLUTION_DIGITS = re.compile(r'(\d{3,4})')

CONVERTER_HEADERS = {
    'accept': 'text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,image/apng,*/*;q=0.8',
    'accept-language': 'en-US,en;q=0.9',
    'sec-fetch-dest': 'document',
    'sec-fetch-mode': 'navigate',
    'sec-fetch-site': 'same-origin',
    'upgrade-insecure-requests': '1',
    'Referer': 'https://www.savepin.app/',
}


def extract_resolution(label: Optional[str]) -> Optional[int]:
    if not label:
        return None
    match = _RESOLUTION_P.search(label) or _RESOLUTION_DIGITS.search(label)
    return int(match.group(1)) if match else None


def sort_by_quality(rows: List[Dict[str, str]]) -> List[Dict[str, str]]:
    """Keeps MP4 rows only, best resolution first."""
    mp4_rows = [row for row in rows if 'mp4' in (row.get('format') or '').lower()]
    return rank(mp4_rows, lambda row: extract_resolution(row.get('quality')) or 0)


class PinterestResolver(BaseResolver):
    service = ServiceName.PINTEREST

    def _matches(self, parsed: ParseResult) -> bool:
        host = self._host(parsed)
        return 'pinterest.' in host or host == SHORT_LINK_HOST or host.endswith('.' + SHORT_LINK_HOST)

    async def resolve(self, url: str) -> ResolveResult:
        canonical_url = await self._canonical_url(url)
        source = CONVERTER_URL.format(url=quote(canonical_url, safe=''))

        try:
            async with self._client(follow_redirects=True) as client:
                resp = await client.get(source, headers={**CONVERTER_HEADERS, 'User-Agent': self.ua})
                resp.raise_for_status()
        except httpx.HTTPError as exc:
            raise ResolutionError(f"Failed to scrape Pinterest media: {exc}", self.service) from exc

        soup = BeautifulSoup(resp.text, 'html.parser')
        heading = soup.find('h1')
        title = heading.get_text(strip=True) if heading else None
        image = soup.select_one('.image-container img')
        thumbnail = image.get('src') if image else None

        rows = self._parse_rows(soup)
        ordered = sort_by_quality(rows)
        if not ordered:
            raise ServiceAvailabilityError(
                self.service,
                "No downloadable Pinterest video was found",
                detail=f"{len(rows)} rows, none MP4, for {canonical_url}",
            )

        primary = ordered[0]
        video = build_selection(
            [row['url'] for row in ordered],
            file_name=file_name_from_url(primary['url'], f"{sanitize_base_name(title)}.mp4"),
            content_type='video/mp4',
            quality_label=primary['quality'] or primary['format'],
        )
        return ResolveResult(
            service=self.service,
            title=title or None,
            thumbnail=thumbnail,
            share_url=canonical_url,
            video=video,
            extras={
                'rawDownloads': rows,
                'source': source,
            },
        )

    def _parse_rows(self, soup: BeautifulSoup) -> List[Dict[str, str]]:
        rows = []
        for tr in soup.select('tbody tr'):
            quality_cell = tr.select_one('.video-quality')
            cells = tr.find_all('td')
            anchor = tr.find('a', href=True)
            quality = quality_cell.get_text(strip=True) if quality_cell else ''
            fmt = cells[1].get_text(strip=True) if len(cells) > 1 else ''
            href = anchor['href'] if anchor else ''
            direct_url = unquote(href.split('url=', 1)[1]) if 'url=' in href else ''
            if quality and fmt and is_http_url(direct_url):
                rows.append({'quality': quality, 'format': fmt, 'url': direct_url})
        return rows

    async def _canonical_url(self, url: str) -> str:
        """Expands pin.it short links; any failure falls back to the original URL."""
        host = safe_hostname(url) or ''
        if host != SHORT_LINK_HOST and not host.endswith('.' + SHORT_LINK_HOST):
            return url
        try:
            async with self._client(
                follow_redirects=True,
                max_redirects=MAX_SHORT_LINK_REDIRECTS,
                timeout=settings.SHORT_LINK_TIMEOUT,
            ) as client:
                resp = await client.get(url)
        except httpx.HTTPError as exc:
            logger.warning("Could not expand Pinterest short link %s: %s", url, exc)
            return url

        final_url = str(resp.url)
        if final_url != url and is_http_url(final_url):
            return final_url
        location = resp.headers.get('location')
        if location and is_http_url(location):
            return location
        return url
