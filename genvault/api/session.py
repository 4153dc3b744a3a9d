"""
Production implementation of the `RemoteSession` capability interface.
"""

import logging
from pathlib import Path
from typing import Any, Optional

from genvault.api.auth import StorageStateCredentialSource, extract_credentials
from genvault.api.client import CatalogClient
from genvault.browser import PlaywrightDriver
from genvault.core.capabilities import ArtifactHandle, Credentials
from genvault.exceptions import CredentialError, InteractiveDownloadError
from genvault.models.config import SyncConfig

log = logging.getLogger(__name__)


class ProducerSession:
    """
    Composes the HTTP client, the credential source and the optional browser
    driver into the single object the sync core talks to.
    """

    def __init__(
        self,
        client: CatalogClient,
        credential_source: StorageStateCredentialSource,
        driver: Optional[PlaywrightDriver] = None,
    ):
        self.client = client
        self.credential_source = credential_source
        self.driver = driver

    @classmethod
    def from_config(cls, config: SyncConfig, use_browser: bool = True) -> "ProducerSession":
        client = CatalogClient(
            base_uri=config.remote_base_uri,
            file_extension=config.file_extension,
            min_payload_bytes=config.min_payload_bytes,
            request_timeout=config.direct_timeout,
        )
        source = StorageStateCredentialSource(
            config.session_state_path, config.remote_base_uri
        )
        driver = None
        if use_browser:
            driver = PlaywrightDriver(
                state_path=config.session_state_path,
                file_extension=config.file_extension,
                headless=config.headless,
                download_timeout=config.interactive_timeout,
            )
        return cls(client, source, driver)

    async def __aenter__(self) -> "ProducerSession":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self) -> None:
        await self.client.close()
        if self.driver is not None:
            await self.driver.close()

    async def request_json(
        self,
        url: str,
        *,
        method: str = "GET",
        payload: Optional[dict[str, Any]] = None,
        bearer: Optional[str] = None,
    ) -> Any:
        return await self.client.request_json(
            url, method=method, payload=payload, bearer=bearer
        )

    async def request_binary(
        self, item_id: str, destination: Path, *, bearer: str
    ) -> ArtifactHandle:
        return await self.client.download_payload(item_id, destination, bearer=bearer)

    async def drive_interactive_download(
        self, item_uri: str, destination: Path
    ) -> ArtifactHandle:
        if self.driver is None:
            raise InteractiveDownloadError("Interactive download is disabled")
        return await self.driver.download(item_uri, destination)

    async def read_credentials(self) -> Credentials:
        credentials = await self.credential_source.read()
        self.client.set_cookies(self.credential_source.cookies)
        return credentials

    async def refresh_credentials(self) -> Credentials:
        """
        Prefers the live browser's cookies (the browser rotates tokens on its
        own) and falls back to re-reading the state file.
        """
        if self.driver is not None:
            live_cookies = await self.driver.cookies()
            if live_cookies:
                try:
                    credentials = extract_credentials(
                        live_cookies, self.credential_source.base_uri
                    )
                except CredentialError as e:
                    log.debug(f"Live browser cookies unusable: {e}")
                else:
                    self.client.set_cookies(live_cookies)
                    log.debug("Refreshed bearer token from live browser session")
                    return credentials
        credentials = await self.read_credentials()
        log.debug("Refreshed bearer token from session state file")
        return credentials
