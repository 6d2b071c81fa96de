import logging
import re
from typing import Dict, List
from urllib.parse import ParseResult

import httpx
from bs4 import BeautifulSoup

from backend.app.models.schemas import ResolveResult, ServiceName
from backend.app.services.errors import ResolutionError, ServiceAvailabilityError
from backend.app.services.ranking import build_selection, rank
from backend.app.services.resolvers.base import BaseResolver
from backend.app.services.utils import is_http_url, sanitize_base_name

logger = logging.getLogger(__name__)

ENDPOINT = "https://tikdownloader.io/api/ajaxSearch"
HEADERS = {
    'accept': '*/*',
    'content-type': 'application/x-www-form-urlencoded; charset=UTF-8',
    'x-requested-with': 'XMLHttpRequest',
    'Referer': 'https://tikdownloader.io/en',
}

_NO_WATERMARK = re.compile(r'no[\s-]*watermark|without\s+watermark', re.IGNORECASE)
_RESOLUTION = re.compile(r'(\d{3,4})p', re.IGNORECASE)
_HD = re.compile(r'\bhd\b', re.IGNORECASE)
_AUDIO = re.compile(r'\bmp3\b|\baudio\b', re.IGNORECASE)


def score_option(label: str) -> int:
    """
    Rank a download option by its button label.

    Any unwatermarked option beats every watermarked one; resolution and an
    HD tag only break ties inside each group.
    """
    label = label or ''
    score = 0
    if _NO_WATERMARK.search(label):
        score += 1000
    match = _RESOLUTION.search(label)
    if match:
        score += int(match.group(1))
    if _HD.search(label):
        score += 50
    return score


class TiktokResolver(BaseResolver):
    service = ServiceName.TIKTOK

    def _matches(self, parsed: ParseResult) -> bool:
        host = self._host(parsed)
        return host == 'tiktok.com' or host.endswith('.tiktok.com')

    async def resolve(self, url: str) -> ResolveResult:
        try:
            async with self._client(follow_redirects=True) as client:
                resp = await client.post(
                    ENDPOINT,
                    data={'q': url, 'lang': 'en'},
                    headers={**HEADERS, 'User-Agent': self.ua},
                )
                resp.raise_for_status()
                payload = resp.json()
        except httpx.HTTPError as exc:
            raise ResolutionError(f"TikDownloader request failed: {exc}", self.service) from exc
        except ValueError as exc:
            raise ServiceAvailabilityError(
                self.service, "TikTok downloader answered unexpectedly", detail=f"non-JSON body: {exc}"
            ) from exc

        fragment = payload.get('data') if isinstance(payload, dict) else None
        if not fragment or not isinstance(fragment, str):
            raise ServiceAvailabilityError(
                self.service,
                "TikTok downloader answered unexpectedly",
                detail=f"status={payload.get('status') if isinstance(payload, dict) else None}",
            )

        soup = BeautifulSoup(fragment, 'html.parser')
        image = soup.select_one('.thumbnail img')
        heading = soup.select_one('.thumbnail h3')
        thumbnail = image.get('src') if image else None
        title = heading.get_text(strip=True) if heading else None

        downloads = self._parse_downloads(soup)
        video_options = [d for d in downloads if not _AUDIO.search(d['text'])]
        audio_options = [d for d in downloads if _AUDIO.search(d['text'])]
        if not video_options and not audio_options:
            raise ServiceAvailabilityError(
                self.service, "No downloadable TikTok video was found", detail=f"no .dl-action links for {url}"
            )

        base_name = sanitize_base_name(title, 'tiktok-video')
        ranked = rank(video_options, lambda d: score_option(d['text']))
        video = build_selection(
            [d['url'] for d in ranked],
            file_name=f"{base_name}.mp4",
            content_type='video/mp4',
            quality_label=ranked[0]['text'] if ranked else None,
        )
        audio = build_selection(
            [d['url'] for d in audio_options],
            file_name=f"{base_name}.mp3",
            content_type='audio/mpeg',
            quality_label=audio_options[0]['text'] if audio_options else None,
        )

        return ResolveResult(
            service=self.service,
            title=title,
            thumbnail=thumbnail,
            share_url=url,
            video=video,
            audio=audio,
            extras={'downloads': downloads, 'source': ENDPOINT},
        )

    @staticmethod
    def _parse_downloads(soup: BeautifulSoup) -> List[Dict[str, str]]:
        downloads = []
        for anchor in soup.select('.dl-action a'):
            href = (anchor.get('href') or '').strip()
            if is_http_url(href):
                downloads.append({'text': anchor.get_text(' ', strip=True), 'url': href})
        return downloads
