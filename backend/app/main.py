from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from backend.app.api.endpoints import router as api_router
from backend.app.core.config import settings
from backend.app.core.logging_config import setup_logging
from backend.app.services.errors import LinkResolutionError
from backend.app.services.link_resolver import LinkResolver, default_resolvers
from backend.app.services.link_store import ResolvedLinkStore
from backend.app.services.streamer import StreamProxy

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Builds the per-process resolver, cache and proxy; dropped on shutdown."""
    setup_logging()
    store = ResolvedLinkStore(
        ttl_seconds=settings.LINK_CACHE_TTL_SECONDS,
        text_limit=settings.LINK_CACHE_TEXT_LIMIT,
    )
    app.state.link_store = store
    app.state.link_resolver = LinkResolver(default_resolvers(), store)
    app.state.stream_proxy = StreamProxy()
    logger.info("%s started", settings.PROJECT_NAME)

    yield

    store.clear()
    logger.info("%s stopped", settings.PROJECT_NAME)


app = FastAPI(title=settings.PROJECT_NAME, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(LinkResolutionError)
async def link_resolution_error_handler(request: Request, exc: LinkResolutionError):
    # Only the message crosses the boundary; details were logged by the resolver
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(HTTPException)
async def http_error_handler(request: Request, exc: HTTPException):
    return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(part for part in first.get("loc", ()) if isinstance(part, str) and part not in ("body", "query", "header"))
    message = f"Invalid {field}: {first.get('msg')}" if field else "Invalid request"
    return JSONResponse(status_code=400, content={"error": message})


app.include_router(api_router, prefix=settings.API_V1_STR)


@app.get("/api/health")
async def health():
    return {"status": "online", "project": settings.PROJECT_NAME}
