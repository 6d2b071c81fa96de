from typing import Callable, Iterable, List, Optional, TypeVar

from backend.app.models.schemas import MediaSelection

T = TypeVar("T")


def rank(items: Iterable[T], score: Callable[[T], float]) -> List[T]:
    """Sorts candidates by descending score; ties keep their upstream order."""
    return sorted(items, key=score, reverse=True)


def build_selection(
    urls: List[str],
    file_name: Optional[str] = None,
    content_type: Optional[str] = None,
    quality_label: Optional[str] = None,
) -> Optional[MediaSelection]:
    """Best URL becomes the primary, the rest (already ranked) become fallbacks."""
    if not urls:
        return None
    return MediaSelection(
        url=urls[0],
        fallback_urls=urls[1:],
        file_name=file_name,
        content_type=content_type,
        quality_label=quality_label,
    )
