"""MusicBrainz WS2 client: paced, retrying, JSON only."""

from __future__ import annotations

import asyncio
import time
from typing import Any, Dict

import aiohttp

from cratedig import logger
from cratedig.__version__ import __version__
from cratedig.catalog.parsers import (
    parse_artist_search,
    parse_release_browse,
    parse_release_details,
    parse_release_group_browse,
)
from cratedig.catalog.types import Artist, Release, ReleaseDetails, ReleaseGroup
from cratedig.config import CatalogConfig
from cratedig.exceptions import CatalogError
from cratedig.rate_limits import (
    CATALOG_WAIT_LOG_THRESHOLD_SECONDS,
    RequestPacer,
    backoff_delays,
)
from cratedig.resilience import run_with_retries

DEFAULT_USER_AGENT = f"Cratedig/{__version__} (https://github.com/cratedig/cratedig)"
SERVICE_NAME = "MUSICBRAINZ"


def describe_http_error(exc: BaseException) -> str:
    if isinstance(exc, aiohttp.ClientResponseError):
        detail = f": {exc.message}" if exc.message else ""
        return f"status {exc.status}{detail}"
    if isinstance(exc, asyncio.TimeoutError):
        return "request timed out"
    return str(exc) or type(exc).__name__


class MusicBrainzClient:
    """Catalog client used by the acquisition flow."""

    def __init__(self, config: CatalogConfig | None = None, pacer: RequestPacer | None = None):
        self.config = config or CatalogConfig()
        self.base_url = self.config.base_url.rstrip("/")
        self.pacer = pacer or RequestPacer(self.config.min_interval_seconds)
        self._delays = backoff_delays(
            self.config.max_retries,
            self.config.initial_backoff_seconds,
            self.config.max_backoff_seconds,
        )
        self._session: aiohttp.ClientSession | None = None
        self._session_lock = asyncio.Lock()

    async def search_artists(self, query: str) -> list[Artist]:
        """Free-text artist search."""
        data = await self._request("artist", {"query": query, "limit": self.config.search_limit})
        return parse_artist_search(data)

    async def get_artist_release_groups(self, artist_id: str) -> list[ReleaseGroup]:
        """Browse every release group credited to an artist, newest first."""
        data = await self._request("release-group", {"artist": artist_id, "limit": self.config.browse_limit})
        return parse_release_group_browse(data)

    async def get_release_group_releases(self, release_group_id: str) -> list[Release]:
        """Browse the releases (editions) of a release group, with media for track counts."""
        params = {"release-group": release_group_id, "inc": "media", "limit": self.config.browse_limit}
        data = await self._request("release", params)
        return parse_release_browse(data)

    async def get_release(self, release_id: str) -> ReleaseDetails:
        """Full release including its track list."""
        params = {"inc": "recordings+artist-credits+labels+release-groups"}
        data = await self._request(f"release/{release_id}", params)
        return parse_release_details(data)

    async def _request(self, path: str, params: Dict[str, Any]) -> Any:
        url = f"{self.base_url}/{path}"
        query = {key: str(value) for key, value in params.items()}
        query["fmt"] = "json"
        log = logger.get_logger()
        log.api_request("GET", url, query)
        request_start = time.time()
        session = await self._ensure_session()

        async def _attempt() -> tuple[int, Any]:
            async with session.get(url, params=query) as response:
                if response.status >= 400:
                    text = await response.text()
                    raise aiohttp.ClientResponseError(
                        request_info=response.request_info,
                        history=response.history,
                        status=response.status,
                        message=text,
                        headers=response.headers,
                    )
                return response.status, await response.json(content_type=None)

        def _on_retry(attempt: int, max_attempts: int, delay: float, exc: Exception) -> None:
            log.debug(f"{SERVICE_NAME} {path} failed ({describe_http_error(exc)})")
            log.api_retry(SERVICE_NAME, attempt, max_attempts, delay)

        try:
            status, data = await run_with_retries(
                _attempt,
                delays=self._delays,
                before_attempt=self._enforce_interval,
                on_retry=_on_retry,
            )
        except aiohttp.ClientResponseError as exc:
            if exc.status >= 500:
                log.api_failed(SERVICE_NAME, len(self._delays) + 1)
            raise CatalogError(f"MusicBrainz {describe_http_error(exc)}", status=exc.status) from exc
        except (asyncio.TimeoutError, aiohttp.ClientError) as exc:
            log.api_failed(SERVICE_NAME, len(self._delays) + 1)
            raise CatalogError(f"MusicBrainz request failed: {describe_http_error(exc)}") from exc

        elapsed_ms = (time.time() - request_start) * 1000
        log.api_response(status, data, elapsed_ms)
        return data

    async def _enforce_interval(self) -> None:
        wait = await self.pacer.wait()
        log = logger.get_logger()
        log.api_wait_debug(SERVICE_NAME, wait)
        if wait > CATALOG_WAIT_LOG_THRESHOLD_SECONDS:
            log.api_wait(SERVICE_NAME, wait)

    async def _ensure_session(self) -> aiohttp.ClientSession:
        session = self._session
        if session is not None and not session.closed:
            return session

        async with self._session_lock:
            session = self._session
            if session is None or session.closed:
                timeout = aiohttp.ClientTimeout(total=self.config.timeout_seconds)
                self._session = aiohttp.ClientSession(
                    headers={
                        "User-Agent": self.config.user_agent or DEFAULT_USER_AGENT,
                        "Accept": "application/json",
                    },
                    timeout=timeout,
                )
            return self._session

    async def close(self) -> None:
        """Close any open connections."""
        async with self._session_lock:
            session = self._session
            self._session = None
        if session is not None and not session.closed:
            await session.close()
