"""
Thin async wrapper around the yt-dlp command line tool.

Only metadata is ever requested: yt-dlp prints one JSON document describing
the media and its formats, nothing is downloaded.
"""
import asyncio
import contextlib
import json
import logging
import os
from typing import Any, Dict, List, Optional

from backend.app.core.config import settings

logger = logging.getLogger(__name__)

BINARY_ENV_VARS = ("YT_DLP_BINARY", "YT_DLP_PATH", "YTDLP_PATH")
COOKIE_ENV_VARS = ("YT_DLP_COOKIES_PATH", "YT_DLP_COOKIES_FILE", "YTDLP_COOKIES_PATH")


class YtDlpError(Exception):
    pass


def _binary_candidates() -> List[Optional[str]]:
    cwd = os.getcwd()
    return [
        settings.YT_DLP_BINARY,
        *(os.environ.get(name) for name in BINARY_ENV_VARS),
        os.path.join(cwd, "bin", "yt-dlp"),
        os.path.join(cwd, "bin", "yt-dlp.exe"),
        "yt-dlp",
    ]


def find_binary() -> str:
    for candidate in _binary_candidates():
        if not candidate:
            continue
        # Bare names are left for the OS to look up on PATH
        if "/" not in candidate and "\\" not in candidate:
            return candidate
        if os.access(candidate, os.X_OK):
            return candidate
    raise YtDlpError("yt-dlp not found. Set YT_DLP_BINARY or place the executable at ./bin/yt-dlp.")


def cookie_args() -> List[str]:
    cookie_path = settings.YT_DLP_COOKIES_PATH or next(
        (os.environ[name] for name in COOKIE_ENV_VARS if os.environ.get(name)), None
    )
    if not cookie_path:
        return []
    if not os.access(cookie_path, os.R_OK):
        raise YtDlpError(f"yt-dlp cookies file is not readable: {cookie_path}")
    return ["--cookies", cookie_path]


def build_command(url: str) -> List[str]:
    return [
        find_binary(),
        "--dump-single-json",
        "--skip-download",
        "--no-warnings",
        "--no-playlist",
        *cookie_args(),
        url,
    ]


async def dump_json(url: str, timeout: Optional[float] = None) -> Dict[str, Any]:
    """Runs yt-dlp for ``url`` and returns its parsed JSON document."""
    timeout = timeout or settings.YT_DLP_TIMEOUT
    command = build_command(url)
    logger.debug("Running %s", " ".join(command[:-1]))

    try:
        process = await asyncio.create_subprocess_exec(
            *command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as exc:
        raise YtDlpError(f"Could not start yt-dlp: {exc}") from exc

    try:
        stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
    except asyncio.TimeoutError as exc:
        raise YtDlpError(f"yt-dlp timed out after {timeout:.0f}s") from exc
    finally:
        # Timed out or the caller was cancelled
        if process.returncode is None:
            with contextlib.suppress(ProcessLookupError):
                process.kill()
            await process.wait()

    if process.returncode != 0:
        message = stderr.decode("utf-8", errors="replace").strip().splitlines()
        raise YtDlpError(f"yt-dlp exited with code {process.returncode}: {message[-1] if message else 'no output'}")

    try:
        data = json.loads(stdout.decode("utf-8", errors="replace"))
    except json.JSONDecodeError as exc:
        raise YtDlpError("yt-dlp returned invalid JSON") from exc
    if not isinstance(data, dict):
        raise YtDlpError("yt-dlp returned an unexpected document")
    return data
