import asyncio
import logging
from typing import Any, Dict, Optional, Tuple
from urllib.parse import ParseResult

import yt_dlp
from yt_dlp.extractor import get_info_extractor

from backend.app.models.schemas import MediaSelection, ResolveResult, ServiceName
from backend.app.services import ytdlp
from backend.app.services.errors import ResolutionError
from backend.app.services.resolvers.base import BaseResolver
from backend.app.services.utils import file_name_from_url, is_http_url, safe_hostname, sanitize_base_name

logger = logging.getLogger(__name__)


def is_facebook_host(host: str) -> bool:
    return 'facebook.com' in host or 'fb.watch' in host


def default_title(host: str) -> str:
    if 'instagram' in host:
        return 'Instagram video'
    if is_facebook_host(host):
        return 'Facebook video'
    return 'Meta video'


def select_entry(info: Dict[str, Any]) -> Dict[str, Any]:
    """First entry of a playlist result, or the result itself."""
    if info.get('entries'):
        return next((e for e in info['entries'] if isinstance(e, dict)), info)
    return info


def pinned_extractor(url: str, host: str) -> Optional[str]:
    """The Facebook or Instagram extractor key when it accepts ``url``, else None."""
    ie_key = 'Facebook' if is_facebook_host(host) else 'Instagram'
    return ie_key if get_info_extractor(ie_key).suitable(url) else None


def pick_media(info: Dict[str, Any]) -> Tuple[Optional[str], Optional[str]]:
    """Returns (direct url, quality note) from a yt-dlp info dict."""
    info = select_entry(info)
    if is_http_url(info.get('url')):
        return info['url'], info.get('format_note') or info.get('format')

    # Prefer formats carrying both audio and video, then the tallest
    best = None
    best_key = None
    for f in info.get('formats') or []:
        if not isinstance(f, dict) or not is_http_url(f.get('url')):
            continue
        if f.get('vcodec') == 'none':
            continue
        combined = f.get('acodec') not in (None, 'none')
        key = (combined, f.get('height') or 0, f.get('tbr') or 0)
        if best_key is None or key > best_key:
            best, best_key = f, key
    if best is None:
        return None, None
    label = f"{best['height']}p" if best.get('height') else best.get('format_note')
    return best['url'], label


class MetaResolver(BaseResolver):
    """Instagram and Facebook. yt_dlp's extractors first, the yt-dlp CLI as a fallback."""
    service = ServiceName.META

    def _matches(self, parsed: ParseResult) -> bool:
        host = self._host(parsed)
        return 'instagram.com' in host or is_facebook_host(host)

    async def resolve(self, url: str) -> ResolveResult:
        host = safe_hostname(url) or ''
        source = 'yt_dlp'
        try:
            info = select_entry(await self._extract_with_library(url, host))
            video_url, quality = pick_media(info)
            if not video_url:
                raise ValueError('no direct media url in extractor output')
        except Exception as exc:
            logger.warning("Meta extractor failed for %s (%s), falling back to yt-dlp CLI", url, exc)
            source = 'yt-dlp-cli'
            try:
                info = select_entry(await ytdlp.dump_json(url, timeout=self.timeout))
            except ytdlp.YtDlpError as cli_exc:
                raise ResolutionError(f"Could not extract Meta media: {cli_exc}", self.service) from cli_exc
            video_url, quality = pick_media(info)
            if not video_url:
                raise ResolutionError("Could not locate a downloadable file", self.service)

        title = info.get('title') or default_title(host)
        return ResolveResult(
            service=self.service,
            title=title,
            description=info.get('description'),
            thumbnail=info.get('thumbnail'),
            share_url=info.get('webpage_url') or url,
            video=MediaSelection(
                url=video_url,
                file_name=file_name_from_url(video_url, f"{sanitize_base_name(title)}.mp4"),
                content_type='video/mp4',
                quality_label=quality,
            ),
            extras={
                'id': info.get('id'),
                'duration': info.get('duration'),
                'source': source,
            },
        )

    async def _extract_with_library(self, url: str, host: str) -> Dict[str, Any]:
        ie_key = pinned_extractor(url, host)
        opts = {
            'quiet': True, 'no_warnings': True, 'skip_download': True,
            'noplaylist': True, 'socket_timeout': self.timeout,
            'user_agent': self.ua,
        }
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._extract_sync, url, opts, ie_key)

    @staticmethod
    def _extract_sync(url: str, opts: dict, ie_key: Optional[str]) -> Dict[str, Any]:
        with yt_dlp.YoutubeDL(opts) as ydl:
            info = ydl.extract_info(url, download=False, ie_key=ie_key)
            return ydl.sanitize_info(info) if info else {}
