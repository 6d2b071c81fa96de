"""Resolve share links from the command line without starting the API.

    python diag.py "https://www.tiktok.com/@user/video/123" [more links...]
"""
import asyncio
import json
import sys

from backend.app.core.logging_config import setup_logging
from backend.app.services.errors import LinkResolutionError
from backend.app.services.link_resolver import LinkResolver, default_resolvers
from backend.app.services.link_store import ResolvedLinkStore

DEFAULT_LINKS = [
    "https://www.youtube.com/watch?v=dQw4w9WgXcQ"
]


async def diagnose(links):
    resolver = LinkResolver(default_resolvers(), ResolvedLinkStore())
    failures = 0
    for link in links:
        print(f"\n--- Testing: {link} ---")
        try:
            res = await resolver.resolve(link)
        except LinkResolutionError as e:
            failures += 1
            print(f"FAILED ({e.status_code}): {e.message}")
            continue
        print(f"SUCCESS: {res.title} ({res.service.value})")
        print(json.dumps(res.model_dump(by_alias=True, exclude_none=True, mode="json"), indent=2)[:2000])
    return failures


if __name__ == "__main__":
    setup_logging()
    sys.exit(1 if asyncio.run(diagnose(sys.argv[1:] or DEFAULT_LINKS)) else 0)
