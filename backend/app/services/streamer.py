import logging
import httpx
from fastapi.responses import StreamingResponse
from starlette.background import BackgroundTask
from typing import AsyncGenerator, Optional, Tuple

from backend.app.core.config import settings
from backend.app.services.utils import file_name_from_url, is_http_url, sanitize_base_name

logger = logging.getLogger(__name__)

PASSTHROUGH_HEADERS = ("Content-Type", "Content-Length", "Content-Range", "Accept-Ranges")


def attachment_name(url: str, filename: Optional[str] = None) -> str:
    """Safe download name; keeps the extension of the requested or upstream name."""
    raw = filename or file_name_from_url(url, "video.mp4")
    stem, dot, ext = raw.rpartition(".")
    if not dot:
        stem, ext = raw, "mp4"
    ext = sanitize_base_name(ext, "mp4")[:8]
    return f"{sanitize_base_name(stem)}.{ext}"


class StreamProxy:
    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.transport = transport

    async def proxy_stream(
        self, url: str, range_header: str = None, filename: str = None, fallback: str = None
    ) -> StreamingResponse:
        if not is_http_url(url):
            raise ValueError("Only http(s) URLs can be proxied")
        if fallback and not is_http_url(fallback):
            logger.warning("Ignoring invalid fallback URL for %s", url)
            fallback = None

        headers = {'User-Agent': settings.USER_AGENT}
        if range_header:
            headers['Range'] = range_header

        client = httpx.AsyncClient(follow_redirects=True, timeout=30, transport=self.transport)
        try:
            upstream, source_url = await self._open_with_fallback(client, url, fallback, headers)
        except httpx.HTTPError:
            await client.aclose()
            raise

        async def stream_generator() -> AsyncGenerator[bytes, None]:
            try:
                async for chunk in upstream.aiter_bytes(chunk_size=settings.STREAM_CHUNK_SIZE):
                    yield chunk
            except httpx.HTTPError as e:
                # Headers are already sent; the client sees a truncated body
                logger.warning("Streaming error for %s: %s", source_url, e)

        async def close() -> None:
            await upstream.aclose()
            await client.aclose()

        res_headers = {name: upstream.headers.get(name, "") for name in PASSTHROUGH_HEADERS}
        if upstream.headers.get("Content-Encoding"):
            # Body is decoded while streaming, so the upstream length no longer applies
            res_headers["Content-Length"] = ""
        res_headers["Content-Type"] = res_headers["Content-Type"] or "video/mp4"
        res_headers["Accept-Ranges"] = res_headers["Accept-Ranges"] or "bytes"
        res_headers["Access-Control-Allow-Origin"] = "*"
        res_headers["Content-Disposition"] = f'attachment; filename="{attachment_name(source_url, filename)}"'

        # Remove empty values
        res_headers = {k: v for k, v in res_headers.items() if v}

        return StreamingResponse(
            stream_generator(),
            status_code=upstream.status_code,
            headers=res_headers,
            background=BackgroundTask(close),
        )

    async def _open_with_fallback(
        self, client: httpx.AsyncClient, url: str, fallback: Optional[str], headers: dict
    ) -> Tuple[httpx.Response, str]:
        try:
            return await self._open(client, url, headers), url
        except httpx.HTTPError as e:
            if not fallback:
                raise
            logger.warning("Primary download failed for %s (%s), trying fallback", url, e)
        upstream = await self._open(client, fallback, headers)
        logger.info("Serving %s from fallback %s", url, fallback)
        return upstream, fallback

    @staticmethod
    async def _open(client: httpx.AsyncClient, url: str, headers: dict) -> httpx.Response:
        upstream = await client.send(client.build_request("GET", url, headers=headers), stream=True)
        try:
            # Error pages must not reach the client as a file
            upstream.raise_for_status()
        except httpx.HTTPStatusError:
            await upstream.aclose()
            raise
        return upstream
