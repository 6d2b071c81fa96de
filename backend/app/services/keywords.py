import re
from typing import List, Optional

# Captions are mostly Brazilian Portuguese, with some English mixed in
STOP_WORDS = frozenset({
    'de', 'da', 'do', 'das', 'dos', 'para', 'pra', 'com', 'sem', 'um', 'uma', 'uns', 'umas',
    'no', 'na', 'nos', 'nas', 'que', 'por', 'em', 'a', 'o', 'e', 'ou', 'se', 'the', 'and',
    'for', 'with', 'this', 'that', 'from', 'your', 'you', 'are', 'our', 'sobre', 'mais',
    'tem', 'como', 'ser', 'vai', 'nosso', 'sua', 'seu', 'são',
})

_URLS = re.compile(r'https?://\S+')
_HASHTAGS = re.compile(r'#[\w-]+')
_NON_WORD = re.compile(r'[^a-z0-9áéíóúâêôãõç\s]')


def build_keywords(text: Optional[str], max_keywords: int = 8) -> List[str]:
    """Distinct, meaningful words of a caption, in order of first appearance."""
    if not text:
        return []
    normalized = text.lower()
    normalized = _URLS.sub(' ', normalized)
    normalized = _HASHTAGS.sub(' ', normalized)
    normalized = _NON_WORD.sub(' ', normalized)

    keywords: List[str] = []
    for token in normalized.split():
        if len(token) <= 2 or token in STOP_WORDS or token in keywords:
            continue
        keywords.append(token)
        if len(keywords) >= max_keywords:
            break
    return keywords


def caption_snippet(text: Optional[str], limit: int = 320) -> str:
    return (text or '').strip()[:limit]
