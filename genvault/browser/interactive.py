"""
Interactive download strategy: drives the item page in a real browser.

Requires the optional `browser` extra (Playwright). The browser context is
created from the same storage-state file the HTTP client reads its cookies
from, so both strategies act as the same signed-in user.
"""

import asyncio
import logging
import random
from pathlib import Path
from typing import Any, Optional

from genvault.core.capabilities import ArtifactHandle
from genvault.exceptions import InteractiveDownloadError

log = logging.getLogger(__name__)

CHALLENGE_TITLES = ("just a moment", "attention required", "cloudflare")

BROWSER_ARGS = [
    "--disable-blink-features=AutomationControlled",
    "--disable-infobars",
    "--no-first-run",
    "--no-default-browser-check",
    "--window-size=1920,1080",
]


class PlaywrightDriver:
    """
    Owns one Chromium browser and page, started on first use.

    The download flow mirrors what a user does on the item page: open the
    overflow menu, choose "Download", then pick the audio format.
    """

    def __init__(
        self,
        state_path: str,
        file_extension: str = ".wav",
        headless: bool = False,
        download_timeout: float = 120.0,
        navigation_timeout: float = 30.0,
    ):
        self.state_path = state_path
        self.format_label = file_extension.lstrip(".").upper()
        self.headless = headless
        self.download_timeout = download_timeout
        self.navigation_timeout = navigation_timeout
        self._playwright: Any = None
        self._browser: Any = None
        self._context: Any = None
        self._page: Any = None

    async def _ensure_page(self) -> Any:
        if self._page is not None:
            return self._page

        try:
            from playwright.async_api import Error as PlaywrightError
            from playwright.async_api import async_playwright
        except ImportError as e:
            raise InteractiveDownloadError(
                "Playwright is not installed. Install the 'browser' extra."
            ) from e

        log.info("Launching browser for interactive downloads...")
        try:
            self._playwright = await async_playwright().start()
            self._browser = await self._playwright.chromium.launch(
                headless=self.headless, args=BROWSER_ARGS
            )
            storage_state = self.state_path if Path(self.state_path).is_file() else None
            self._context = await self._browser.new_context(
                storage_state=storage_state,
                viewport={"width": 1920, "height": 1080},
                locale="en-US",
                accept_downloads=True,
            )
            self._page = await self._context.new_page()
        except PlaywrightError as e:
            await self._teardown()
            raise InteractiveDownloadError(f"Browser launch failed: {e}") from e
        return self._page

    @staticmethod
    async def _pause(low: float, high: float) -> None:
        await asyncio.sleep(random.uniform(low, high))

    async def _wait_for_challenge(self, page: Any) -> None:
        from playwright.async_api import Error as PlaywrightError

        title = (await page.title()).lower()
        if not any(marker in title for marker in CHALLENGE_TITLES):
            return
        log.debug("  Waiting for browser challenge to clear...")
        condition = " && ".join(
            f"!document.title.toLowerCase().includes('{marker}')"
            for marker in CHALLENGE_TITLES
        )
        try:
            await page.wait_for_function(
                f"() => {condition}", timeout=self.navigation_timeout * 1000
            )
        except PlaywrightError as e:
            # Still challenged; the menu lookup below reports the failure.
            log.warning(f"[yellow]Challenge wait timed out: {e}[/yellow]")
        await self._pause(2.0, 3.0)

    async def download(self, item_uri: str, destination: Path) -> ArtifactHandle:
        """
        Opens `item_uri` and saves the file the page offers to `destination`.

        Raises:
            InteractiveDownloadError: If the browser cannot be launched, a menu
            entry is missing or no download event arrives within the timeout.
        """
        page = await self._ensure_page()
        from playwright.async_api import Error as PlaywrightError

        try:
            await page.goto(
                item_uri,
                wait_until="domcontentloaded",
                timeout=self.navigation_timeout * 1000,
            )
            await self._pause(2.0, 4.0)
            await self._wait_for_challenge(page)

            menu = page.locator("button:has(svg.lucide-ellipsis)").first
            if await menu.count() == 0:
                raise InteractiveDownloadError("No item menu button found")
            await menu.click(force=True, timeout=5000)
            await self._pause(1.0, 1.5)

            entry = page.get_by_text("Download", exact=True)
            if await entry.count() == 0:
                raise InteractiveDownloadError("No 'Download' menu entry found")
            await entry.first.click()
            await self._pause(1.0, 1.5)

            option = page.get_by_text(self.format_label, exact=True)
            if await option.count() == 0:
                raise InteractiveDownloadError(
                    f"No '{self.format_label}' format option found"
                )

            async with page.expect_download(
                timeout=self.download_timeout * 1000
            ) as download_info:
                await option.first.click()
            download = await download_info.value
            destination.parent.mkdir(parents=True, exist_ok=True)
            await download.save_as(str(destination))
        except PlaywrightError as e:
            raise InteractiveDownloadError(f"Browser download failed: {e}") from e

        size = destination.stat().st_size if destination.exists() else 0
        return ArtifactHandle(path=destination, size_bytes=size, strategy="interactive")

    async def cookies(self) -> Optional[list[dict[str, Any]]]:
        """Returns the live context's cookies, or None if the browser is not running."""
        if self._context is None:
            return None
        return await self._context.cookies()

    async def save_state(self) -> None:
        """Writes the browser's (possibly rotated) session back to the state file."""
        if self._context is not None:
            await self._context.storage_state(path=self.state_path)

    async def close(self) -> None:
        if self._context is not None:
            await self.save_state()
        await self._teardown()

    async def _teardown(self) -> None:
        if self._browser is not None:
            await self._browser.close()
        if self._playwright is not None:
            await self._playwright.stop()
        self._playwright = self._browser = self._context = self._page = None
