import hashlib
import mimetypes
import re
import unicodedata
from typing import Optional
from urllib.parse import urlparse, ParseResult

URL_PATTERN = re.compile(r'https?://\S+', re.IGNORECASE)

_CONTENT_TYPES = {
    'mp4': 'video/mp4',
    'webm': 'video/webm',
    'm4a': 'audio/mp4',
    'mp3': 'audio/mpeg',
    'opus': 'audio/ogg',
    'ogg': 'audio/ogg',
}


def extract_first_url(text: str) -> str:
    """Returns the first http(s) URL found in free text, or the stripped text itself."""
    text = (text or '').strip()
    match = URL_PATTERN.search(text)
    return match.group(0) if match else text


def safe_urlparse(url: str) -> Optional[ParseResult]:
    try:
        parsed = urlparse(url)
        # Accessing .port/.hostname is where malformed netlocs blow up
        _ = parsed.port
        return parsed if parsed.hostname else None
    except (ValueError, TypeError, AttributeError):
        return None


def safe_hostname(url: str) -> Optional[str]:
    parsed = safe_urlparse(url)
    return parsed.hostname.lower() if parsed else None


def is_http_url(value: str) -> bool:
    if not value or not isinstance(value, str):
        return False
    parsed = safe_urlparse(value)
    return bool(parsed and parsed.scheme.lower() in ('http', 'https'))


def hash_link(link: str) -> str:
    return hashlib.sha256(link.encode('utf-8')).hexdigest()


def file_name_from_url(url: str, fallback: str) -> str:
    parsed = safe_urlparse(url)
    if not parsed:
        return fallback
    segments = [s for s in parsed.path.split('/') if s]
    return segments[-1] if segments else fallback


def sanitize_base_name(name: Optional[str], fallback: str = 'video') -> str:
    """Slugifies a title so it can be used as a download file name."""
    if not name:
        return fallback
    value = unicodedata.normalize('NFKD', name.strip())
    value = re.sub(r'[^\w\s-]', '', value)
    value = re.sub(r'[\s_-]+', '-', value)
    value = value.strip('-').lower()
    return value or fallback


def guess_content_type(name_or_ext: Optional[str], default: str = 'application/octet-stream') -> str:
    if not name_or_ext:
        return default
    ext = name_or_ext.rsplit('.', 1)[-1].lower()
    if ext in _CONTENT_TYPES:
        return _CONTENT_TYPES[ext]
    guessed, _ = mimetypes.guess_type(f'file.{ext}')
    return guessed or default
