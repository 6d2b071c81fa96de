from fastapi import APIRouter, Depends, HTTPException, Header, Query, Request
from backend.app.models.schemas import (
    ErrorResponse,
    KeywordResponse,
    ResolveRequest,
    ResolveResult,
    StoredLinkData,
)
from backend.app.services.keywords import build_keywords, caption_snippet
from backend.app.services.link_resolver import LinkResolver
from backend.app.services.streamer import StreamProxy
import httpx
import logging
from typing import Optional

logger = logging.getLogger(__name__)

router = APIRouter()

KEYWORD_SERVICES = {'shopee', 'tiktok', 'pinterest'}


def get_link_resolver(request: Request) -> LinkResolver:
    return request.app.state.link_resolver


def get_stream_proxy(request: Request) -> StreamProxy:
    return request.app.state.stream_proxy


@router.post(
    "/resolve",
    response_model=ResolveResult,
    response_model_exclude_none=True,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
)
async def resolve_link(payload: ResolveRequest, resolver: LinkResolver = Depends(get_link_resolver)):
    # LinkResolutionError subclasses are turned into {"error": ...} by the app's exception handler
    return await resolver.resolve(payload.link)


@router.get("/links/{link_hash}", response_model=StoredLinkData, responses={404: {"model": ErrorResponse}})
async def get_resolved_link(link_hash: str, resolver: LinkResolver = Depends(get_link_resolver)):
    stored = resolver.get_resolved_link(link_hash.strip())
    if stored is None:
        raise HTTPException(status_code=404, detail="Link not found or expired")
    return stored


@router.get(
    "/links/{link_hash}/keywords",
    response_model=KeywordResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def get_link_keywords(link_hash: str, resolver: LinkResolver = Depends(get_link_resolver)):
    link_hash = link_hash.strip()
    stored = resolver.get_resolved_link(link_hash)
    if stored is None:
        raise HTTPException(status_code=404, detail="Link not found or expired")
    if (stored.service or '').lower() not in KEYWORD_SERVICES:
        raise HTTPException(status_code=400, detail="Keywords are only available for Shopee, TikTok or Pinterest videos")

    caption = (stored.caption or stored.description or stored.title or '').strip()
    return KeywordResponse(
        link_hash=link_hash,
        service=stored.service,
        keywords=build_keywords(caption),
        caption_snippet=caption_snippet(caption),
    )


@router.get("/download")
async def download_media(
    url: str = Query(...),
    filename: Optional[str] = Query(None),
    fallback: Optional[str] = Query(None),
    range: Optional[str] = Header(None),
    stream_proxy: StreamProxy = Depends(get_stream_proxy),
):
    try:
        return await stream_proxy.proxy_stream(url, range, filename, fallback)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except httpx.HTTPError as e:
        logger.warning("Download proxy failed for %s: %s", url, e)
        raise HTTPException(status_code=502, detail="Could not reach the media server")
