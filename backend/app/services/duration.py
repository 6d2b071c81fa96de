"""
Media duration normalization.

Platforms report durations in seconds, milliseconds or microseconds, as
numbers or strings ("95", "1:35", "PT1M35S"), and rarely say which. Values
flagged "auto" are classified by magnitude: anything above 48 hours of
seconds is assumed to be milliseconds, and above 48 hours of milliseconds to
be microseconds. This is a heuristic; a 50-hour stream reported in seconds
will be misread. Durations that still exceed 48 hours are discarded.
"""
import math
import re
from typing import Any, Dict, Optional, Union

MAX_DURATION_SECONDS = 48 * 60 * 60
MAX_DURATION_MILLISECONDS = MAX_DURATION_SECONDS * 1000
MAX_DURATION_MICROSECONDS = MAX_DURATION_MILLISECONDS * 1000

SECOND_PRIORITY_FIELDS = ('durationVideo', 'durationAudio', 'durationSeconds')
MILLISECOND_FIELDS = ('durationMs', 'durationMilliseconds')

SECONDS = 'seconds'
MILLISECONDS = 'milliseconds'
AUTO = 'auto'

_COLON = re.compile(r'^\d{1,2}:\d{2}(:\d{2})?$')
_ISO = re.compile(r'PT(?:(\d+)H)?(?:(\d+)M)?(?:(\d+(?:\.\d+)?)S)?', re.IGNORECASE)

Number = Union[int, float]


def _clamp(seconds: float) -> Optional[float]:
    if not math.isfinite(seconds) or seconds <= 0 or seconds > MAX_DURATION_SECONDS:
        return None
    return seconds


def _normalize_number(value: Number, unit: str) -> Optional[float]:
    try:
        value = float(value)
    except OverflowError:
        # Integers past the float range
        return None
    if not math.isfinite(value) or value <= 0:
        return None
    if unit == MILLISECONDS:
        return _clamp(value / 1000)
    if unit == AUTO:
        if MAX_DURATION_SECONDS < value <= MAX_DURATION_MILLISECONDS:
            return _clamp(value / 1000)
        if MAX_DURATION_MILLISECONDS < value <= MAX_DURATION_MICROSECONDS:
            return _clamp(value / 1_000_000)
    return _clamp(value)


def _to_float(value: str) -> Optional[float]:
    try:
        return float(value.replace(',', '.'))
    except (ValueError, OverflowError):
        return None


def parse_colon_duration(value: str) -> Optional[float]:
    try:
        parts = [int(p) for p in value.split(':')]
    except ValueError:
        return None
    if len(parts) == 2:
        return float(parts[0] * 60 + parts[1])
    if len(parts) == 3:
        return float(parts[0] * 3600 + parts[1] * 60 + parts[2])
    return None


def parse_iso_duration(value: str) -> Optional[float]:
    match = _ISO.search(value)
    if not match:
        return None
    hours, minutes, seconds = (float(g or 0) for g in match.groups())
    return _clamp(hours * 3600 + minutes * 60 + seconds)


def parse_duration_to_seconds(value: Union[str, Number]) -> Optional[float]:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return _normalize_number(value, AUTO)
    trimmed = str(value).strip()
    if not trimmed:
        return None
    numeric = _to_float(trimmed)
    if numeric is not None and math.isfinite(numeric) and numeric > 0:
        if numeric <= MAX_DURATION_SECONDS:
            return numeric
        if numeric <= MAX_DURATION_MILLISECONDS:
            return _clamp(numeric / 1000)
    if _COLON.match(trimmed):
        return parse_colon_duration(trimmed)
    if trimmed.upper().startswith('PT'):
        return parse_iso_duration(trimmed)
    return None


def normalize_duration(value: Any, unit: str = AUTO) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return _normalize_number(value, unit)
    if isinstance(value, str):
        trimmed = value.strip()
        if not trimmed:
            return None
        if unit == MILLISECONDS:
            parsed = _to_float(trimmed)
            return _clamp(parsed / 1000) if parsed is not None else None
        return parse_duration_to_seconds(trimmed)
    return None


def extract_media_duration_seconds(result: Dict[str, Any], media_type: str = 'video') -> Optional[float]:
    """
    Best-effort duration of a resolved link, in seconds.

    ``result`` is a serialized ResolveResult (camelCase keys). Shopee page
    props report lengths in milliseconds, other platforms are auto-detected.
    """
    if not result:
        return None
    service = str(result.get('service') or '').lower()
    extras = result.get('extras') or {}
    page_props = result.get('pageProps') or {}
    media_info = page_props.get('mediaInfo') or {}
    video_info = media_info.get('video') or {}
    page_unit = MILLISECONDS if service == 'shopee' else AUTO

    specific_key = 'durationAudio' if media_type == 'audio' else 'durationVideo'
    candidates = [
        (extras.get(specific_key), SECONDS),
        (extras.get('duration'), SECONDS),
        *((extras.get(key), SECONDS) for key in SECOND_PRIORITY_FIELDS),
        *((extras.get(key), MILLISECONDS) for key in MILLISECOND_FIELDS),
        (video_info.get('lengthSeconds'), SECONDS),
        (video_info.get('durationSeconds'), SECONDS),
        (video_info.get('durationMs'), MILLISECONDS),
        (video_info.get('lengthMs'), MILLISECONDS),
        (video_info.get('duration'), page_unit),
        (video_info.get('length'), page_unit),
        (media_info.get('duration'), page_unit),
        (page_props.get('duration'), page_unit),
        (result.get('duration'), AUTO),
    ]
    for value, unit in candidates:
        seconds = normalize_duration(value, unit)
        if seconds:
            return seconds
    return None
