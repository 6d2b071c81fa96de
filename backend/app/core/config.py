from pydantic_settings import BaseSettings
from typing import Optional

class Settings(BaseSettings):
    PROJECT_NAME: str = "MediaFlow Resolver"
    API_V1_STR: str = "/api/v1"
    CORS_ORIGINS: list[str] = ["*"]

    LOG_LEVEL: str = "INFO"

    # Upstream settings (seconds)
    HTTP_TIMEOUT: float = 15.0
    SHORT_LINK_TIMEOUT: float = 5.0
    YT_DLP_TIMEOUT: float = 60.0
    USER_AGENT: str = 'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/121.0.0.0 Safari/537.36'

    # yt-dlp binary and optional cookies file
    YT_DLP_BINARY: Optional[str] = None
    YT_DLP_COOKIES_PATH: Optional[str] = None

    # Resolved-link cache
    LINK_CACHE_TTL_SECONDS: int = 300
    LINK_CACHE_TEXT_LIMIT: int = 600

    # Download proxy
    STREAM_CHUNK_SIZE: int = 1024 * 128

    class Config:
        case_sensitive = True

settings = Settings()
