import logging
from typing import Any, Dict, List, Optional
from urllib.parse import ParseResult

from backend.app.models.schemas import MediaSelection, ResolveResult, ServiceName
from backend.app.services import ytdlp
from backend.app.services.errors import ResolutionError, ServiceAvailabilityError
from backend.app.services.ranking import build_selection, rank
from backend.app.services.resolvers.base import BaseResolver
from backend.app.services.utils import guess_content_type, is_http_url, sanitize_base_name

logger = logging.getLogger(__name__)

AUDIO_CONTAINERS = ('m4a', 'mp4', 'webm', 'mp3', 'opus', 'ogg', 'aac')
AUDIO_CONTENT_TYPES = {'webm': 'audio/webm', 'aac': 'audio/aac'}


def _number(value: Any) -> float:
    try:
        return float(value) if value is not None else 0.0
    except (TypeError, ValueError):
        return 0.0


def _has(codec: Optional[str]) -> bool:
    return bool(codec) and codec != 'none'


def video_score(fmt: Dict[str, Any]) -> float:
    """Height, else total bitrate, else frame rate x10, else zero."""
    height = _number(fmt.get('height'))
    if height > 0:
        return height
    bitrate = _number(fmt.get('tbr'))
    if bitrate > 0:
        return bitrate
    return _number(fmt.get('fps')) * 10


def audio_score(fmt: Dict[str, Any]) -> float:
    return _number(fmt.get('abr')) or _number(fmt.get('tbr'))


def progressive_mp4_formats(formats: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [
        f for f in formats
        if is_http_url(f.get('url'))
        and _has(f.get('vcodec')) and _has(f.get('acodec'))
        and (f.get('ext') or '').lower() == 'mp4'
    ]


def audio_only_formats(formats: List[Dict[str, Any]], exclude_url: Optional[str] = None) -> List[Dict[str, Any]]:
    selected = []
    for f in formats:
        url = f.get('url')
        if not is_http_url(url) or url == exclude_url:
            continue
        if _has(f.get('vcodec')) or not _has(f.get('acodec')):
            continue
        container = (f.get('audio_ext') if _has(f.get('audio_ext')) else f.get('ext')) or ''
        if container.lower() in AUDIO_CONTAINERS:
            selected.append(f)
    return selected


def pick_thumbnail(info: Dict[str, Any]) -> Optional[str]:
    thumbnails = [t for t in info.get('thumbnails') or [] if isinstance(t, dict) and t.get('url')]
    if thumbnails:
        return max(thumbnails, key=lambda t: _number(t.get('width')))['url']
    return info.get('thumbnail')


def _video_label(fmt: Dict[str, Any]) -> Optional[str]:
    if fmt.get('height'):
        return f"{int(_number(fmt['height']))}p"
    return fmt.get('format_note') or fmt.get('format_id')


def _audio_label(fmt: Dict[str, Any]) -> Optional[str]:
    bitrate = audio_score(fmt)
    if bitrate > 0:
        return f"{round(bitrate)}kbps"
    return fmt.get('format_note') or fmt.get('format_id')


class YoutubeResolver(BaseResolver):
    service = ServiceName.YOUTUBE

    def _matches(self, parsed: ParseResult) -> bool:
        host = self._host(parsed)
        return (
            host in ('youtube.com', 'youtu.be')
            or host.endswith('.youtube.com')
            or host.endswith('.youtu.be')
        )

    async def resolve(self, url: str) -> ResolveResult:
        try:
            info = await ytdlp.dump_json(url)
        except ytdlp.YtDlpError as exc:
            raise ResolutionError(f"YouTube metadata extraction failed: {exc}", self.service) from exc

        formats = [f for f in info.get('formats') or [] if isinstance(f, dict)]
        title = info.get('title')
        base_name = sanitize_base_name(title, 'youtube-video')

        video = self._select_video(formats, base_name)
        audio = self._select_audio(formats, base_name, exclude_url=video.url if video else None)
        if video is None and audio is None:
            raise ServiceAvailabilityError(
                self.service,
                "No downloadable YouTube format was found",
                detail=f"{len(formats)} formats, none progressive MP4 or audio-only, for {url}",
            )

        return ResolveResult(
            service=self.service,
            title=title,
            description=info.get('description'),
            thumbnail=pick_thumbnail(info),
            share_url=info.get('webpage_url') or url,
            video=video,
            audio=audio,
            extras={
                'id': info.get('id'),
                'duration': info.get('duration'),
                'uploader': info.get('uploader'),
                'formatCount': len(formats),
            },
        )

    def _select_video(self, formats: List[Dict[str, Any]], base_name: str) -> Optional[MediaSelection]:
        ranked = rank(progressive_mp4_formats(formats), video_score)
        if not ranked:
            return None
        return build_selection(
            [f['url'] for f in ranked],
            file_name=f"{base_name}.mp4",
            content_type='video/mp4',
            quality_label=_video_label(ranked[0]),
        )

    def _select_audio(
        self, formats: List[Dict[str, Any]], base_name: str, exclude_url: Optional[str]
    ) -> Optional[MediaSelection]:
        ranked = rank(audio_only_formats(formats, exclude_url), audio_score)
        if not ranked:
            return None
        best = ranked[0]
        ext = (best.get('audio_ext') if _has(best.get('audio_ext')) else best.get('ext')) or 'm4a'
        if ext == 'mp4':
            ext = 'm4a'
        return build_selection(
            [f['url'] for f in ranked],
            file_name=f"{base_name}.{ext}",
            content_type=AUDIO_CONTENT_TYPES.get(ext) or guess_content_type(ext, 'audio/mp4'),
            quality_label=_audio_label(best),
        )
