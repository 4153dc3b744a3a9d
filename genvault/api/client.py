"""
Async HTTP client for the remote catalog's JSON and download endpoints.
"""

import asyncio
import logging
import time
from pathlib import Path
from typing import Any, Optional

import aiohttp

from genvault.core.capabilities import ArtifactHandle
from genvault.exceptions import (
    AuthorizationError,
    PayloadIntegrityError,
    RemoteRequestError,
)
from genvault.media import Downloader, FileIntegrityChecker

log = logging.getLogger(__name__)

AUTH_STATUSES = (401, 403)


def _raise_for_status(status: int, url: str, body: str = "") -> None:
    if 200 <= status < 300:
        return
    detail = f"HTTP {status}"
    if body:
        detail += f": {body[:200]}"
    if status in AUTH_STATUSES:
        raise AuthorizationError(detail, status=status)
    raise RemoteRequestError(detail, status=status)


class CatalogClient:
    """
    Thin async client over aiohttp.

    Features:
    - One pooled session, strictly one request in flight (the caller is serial)
    - Session cookies from the signed-in browser attached to every request
    - Error classification into authorization vs. other remote failures
    - Streamed, validated binary downloads
    """

    def __init__(
        self,
        base_uri: str,
        file_extension: str = ".wav",
        min_payload_bytes: int = 10_000,
        request_timeout: float = 60.0,
        downloader: Optional[Downloader] = None,
    ):
        """
        Initializes the client.

        Args:
            base_uri: Root of the remote service, without a trailing slash.
            file_extension: Extension of the requested artifact format.
            min_payload_bytes: Payloads at or below this size are rejected.
            request_timeout: Total timeout of one request, in seconds.
            downloader: Writer for binary bodies.
        """
        self.base_uri = base_uri.rstrip("/")
        self.file_extension = file_extension
        self.min_payload_bytes = min_payload_bytes
        self.request_timeout = request_timeout
        self.downloader = downloader or Downloader()
        self._cookies: dict[str, str] = {}
        self._session: Optional[aiohttp.ClientSession] = None

    def download_url(self, item_id: str) -> str:
        audio_format = self.file_extension.lstrip(".")
        return f"{self.base_uri}/__api/{item_id}/download?format={audio_format}"

    def set_cookies(self, cookies: list[dict[str, Any]]) -> None:
        """Attaches browser session cookies to all subsequent requests."""
        self._cookies = {
            str(c["name"]): str(c.get("value", "")) for c in cookies if c.get("name")
        }
        if self._session and not self._session.closed:
            self._session.cookie_jar.update_cookies(self._cookies)

    async def _initialize_session(self) -> aiohttp.ClientSession:
        """Ensures an active aiohttp session is available."""
        if self._session is None or self._session.closed:
            connector = aiohttp.TCPConnector(
                limit=2,
                limit_per_host=1,
                ttl_dns_cache=300,
                enable_cleanup_closed=True,
            )
            self._session = aiohttp.ClientSession(
                connector=connector,
                cookies=self._cookies,
                headers={
                    "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/124.0 Safari/537.36",
                    "Accept-Encoding": "gzip, deflate, br",
                },
                timeout=aiohttp.ClientTimeout(
                    total=self.request_timeout, connect=15, sock_read=30
                ),
            )
        return self._session

    async def close(self) -> None:
        """Gracefully closes the aiohttp session."""
        if self._session and not self._session.closed:
            await self._session.close()

    @staticmethod
    def _headers(bearer: Optional[str]) -> dict[str, str]:
        return {"Authorization": f"Bearer {bearer}"} if bearer else {}

    async def request_json(
        self,
        url: str,
        *,
        method: str = "GET",
        payload: Optional[dict[str, Any]] = None,
        bearer: Optional[str] = None,
    ) -> Any:
        """
        Performs a JSON request and returns the decoded body.

        Raises:
            AuthorizationError: On 401/403.
            RemoteRequestError: On other non-2xx statuses, transport errors,
            timeouts or undecodable bodies.
        """
        session = await self._initialize_session()
        start_time = time.monotonic()
        try:
            async with session.request(
                method, url, json=payload, headers=self._headers(bearer)
            ) as r:
                duration_ms = (time.monotonic() - start_time) * 1000
                log.debug(f"{method} {url} -> {r.status} ({duration_ms:.0f} ms)")
                if r.status >= 300:
                    _raise_for_status(r.status, url)
                return await r.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise RemoteRequestError(f"{method} {url} failed: {e}") from e

    async def download_payload(
        self, item_id: str, destination: Path, *, bearer: str
    ) -> ArtifactHandle:
        """
        Downloads an item's audio payload directly from the download endpoint.

        The response must be 2xx, declare an audio or binary content type and be
        larger than the plausibility threshold. An undersized file is removed
        before the error is raised.

        Raises:
            AuthorizationError, RemoteRequestError, PayloadIntegrityError
        """
        session = await self._initialize_session()
        url = self.download_url(item_id)
        try:
            async with session.get(
                url, headers={**self._headers(bearer), "Cache-Control": "no-store"}
            ) as r:
                if r.status >= 300:
                    body = await r.text(errors="replace")
                    _raise_for_status(r.status, url, body)

                content_type = r.headers.get("Content-Type", "")
                if not FileIntegrityChecker.is_audio_content_type(content_type):
                    snippet = await r.text(errors="replace")
                    FileIntegrityChecker.check_content_type(content_type, snippet)

                size = await self.downloader.save_response(r, destination)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            destination.unlink(missing_ok=True)
            raise RemoteRequestError(f"Download of {item_id} failed: {e}") from e

        try:
            FileIntegrityChecker.check_size(size, self.min_payload_bytes)
        except PayloadIntegrityError:
            destination.unlink(missing_ok=True)
            raise

        return ArtifactHandle(
            path=destination, size_bytes=size, content_type=content_type
        )
