"""slskd daemon client (Soulseek search and transfer queueing)."""

from __future__ import annotations

import asyncio
import time
from typing import Any, Iterable, Optional
from urllib.parse import quote

import aiohttp

from cratedig import logger
from cratedig.config import SourceConfig
from cratedig.exceptions import SourceError
from cratedig.resilience import expect_dict, expect_list
from cratedig.source.types import (
    PeerFile,
    PeerResponse,
    SearchStatus,
    parse_peer_response,
    parse_search_status,
)

API_PREFIX = "/api/v0"
SERVICE_NAME = "SLSKD"


class SlskdClient:
    """Thin async wrapper over the slskd REST API. No retries: the poller owns those."""

    def __init__(self, config: SourceConfig):
        self.config = config
        self.base_url = config.url.rstrip("/")
        self._session: aiohttp.ClientSession | None = None
        self._session_lock = asyncio.Lock()

    async def start_search(self, query: str) -> str:
        """Start a network-wide search and return its id."""
        data = await self._request("POST", "/searches", json_body={"searchText": query}, ok=(200, 201))
        search_id = expect_dict(data, "search start payload").get("id")
        if not isinstance(search_id, str) or not search_id:
            raise SourceError("slskd did not return a search id")
        return search_id

    async def get_search_status(self, search_id: str) -> SearchStatus:
        data = await self._request("GET", f"/searches/{quote(search_id, safe='')}")
        return parse_search_status(data, search_id)

    async def get_search_responses(self, search_id: str) -> list[PeerResponse]:
        data = await self._request("GET", f"/searches/{quote(search_id, safe='')}/responses")
        rows = expect_list(data or [], "search responses payload")
        return [parse_peer_response(expect_dict(row, f"search responses[{idx}]")) for idx, row in enumerate(rows)]

    async def queue_download(self, username: str, files: Iterable[PeerFile]) -> None:
        """Queue every file from one peer in a single request."""
        body = [{"filename": f.filename, "size": f.size} for f in files]
        await self._request(
            "POST",
            f"/transfers/downloads/{quote(username, safe='')}",
            json_body=body,
            ok=(200, 201),
        )

    async def delete_search(self, search_id: str) -> None:
        await self._request("DELETE", f"/searches/{quote(search_id, safe='')}", ok=(200, 204))

    async def _request(
        self,
        method: str,
        path: str,
        json_body: Any = None,
        ok: tuple[int, ...] = (200,),
    ) -> Any:
        url = f"{self.base_url}{API_PREFIX}{path}"
        log = logger.get_logger()
        log.api_request(method, url, {"body": json_body} if json_body is not None else None)
        request_start = time.time()
        session = await self._ensure_session()

        try:
            async with session.request(method, url, json=json_body) as response:
                if response.status not in ok:
                    text = await response.text()
                    detail = f": {text.strip()}" if text.strip() else ""
                    raise SourceError(f"slskd returned status {response.status}{detail}", status=response.status)
                status = response.status
                data: Optional[Any] = None
                if status != 204:
                    data = await response.json(content_type=None)
        except asyncio.TimeoutError as exc:
            raise SourceError(f"slskd {method} {path} timed out") from exc
        except aiohttp.ClientError as exc:
            raise SourceError(f"slskd {method} {path} failed: {exc}") from exc

        elapsed_ms = (time.time() - request_start) * 1000
        log.api_response(status, data, elapsed_ms)
        return data

    async def _ensure_session(self) -> aiohttp.ClientSession:
        session = self._session
        if session is not None and not session.closed:
            return session

        async with self._session_lock:
            session = self._session
            if session is None or session.closed:
                timeout = aiohttp.ClientTimeout(total=self.config.timeout_seconds)
                self._session = aiohttp.ClientSession(
                    headers={"X-API-Key": self.config.api_key, "Accept": "application/json"},
                    timeout=timeout,
                )
            return self._session

    async def close(self) -> None:
        async with self._session_lock:
            session = self._session
            self._session = None
        if session is not None and not session.closed:
            await session.close()
