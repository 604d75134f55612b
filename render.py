"""
Renderer service for capturing browser screenshots.
Manages headless browser automation to render the status page as PNG.
"""
import asyncio
import io
import logging
from typing import Any, Dict, Optional

from PIL import Image
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import async_playwright

from clock import Clock
from config import BROWSER_TIMEOUT, RENDER_WAIT, WATERMARK_WAIT, CaptureConfig
from errors import CaptureError, NavigationError, ScreenshotServiceError, SessionError, SessionTimeoutError

CHROMIUM_ARGS = [
    "--disable-gpu",
    "--no-sandbox",
    "--disable-dev-shm-usage",
]

READY_SELECTOR = "body"

# Big centred stamp plus a faint tiled pattern behind it.
WATERMARK_JS = """
(text) => {
    const watermark = document.createElement('div');
    watermark.style.cssText = 'position: fixed; top: 50%; left: 50%; transform: translate(-50%, -50%) rotate(-45deg); font-size: 72px; font-family: Arial, sans-serif; color: rgba(0, 0, 0, 0.15); white-space: nowrap; pointer-events: none; user-select: none; z-index: 9999; letter-spacing: 2px;';
    watermark.innerText = text;
    document.body.appendChild(watermark);

    const pattern = document.createElement('div');
    pattern.style.cssText = 'position: fixed; top: 0; left: 0; width: 100%; height: 100%; display: flex; flex-wrap: wrap; justify-content: center; align-items: center; gap: 100px; transform: rotate(-45deg); pointer-events: none; z-index: 9998;';
    for (let i = 0; i < 9; i++) {
        const mark = document.createElement('div');
        mark.style.cssText = 'color: rgba(0, 0, 0, 0.075); font-size: 36px; font-family: Arial, sans-serif; white-space: nowrap; letter-spacing: 1px;';
        mark.innerText = text;
        pattern.appendChild(mark);
    }
    document.body.appendChild(pattern);
}
"""


class BrowserSession:
    """One headless Chromium instance, alive for a single capture attempt.

    Use as an async context manager. The timeout covers the whole lifetime
    of the session: launching plus everything awaited through `run()`.
    """

    def __init__(self, config: CaptureConfig, timeout: float = BROWSER_TIMEOUT,
                 logger: Optional[logging.Logger] = None):
        self.config = config
        self.timeout = timeout
        self.logger = logger or logging.getLogger(__name__)
        self._deadline: Optional[float] = None
        self._playwright = None
        self._browser = None
        self._page = None

    async def __aenter__(self) -> "BrowserSession":
        self._deadline = asyncio.get_running_loop().time() + self.timeout
        try:
            await self.run(self._launch())
        except BaseException:
            await self.close()
            raise
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def _launch(self):
        self.logger.info(f"Launching headless browser ({self.config.width}x{self.config.height})")
        try:
            self._playwright = await async_playwright().start()
            self._browser = await self._playwright.chromium.launch(headless=True, args=CHROMIUM_ARGS)
            self._page = await self._browser.new_page(
                viewport={"width": self.config.width, "height": self.config.height}
            )
        except PlaywrightError as e:
            raise SessionError(f"Failed to launch browser: {e}") from e

    async def run(self, coro):
        """Await `coro`, cancelling it if the session deadline passes."""
        remaining = self._deadline - asyncio.get_running_loop().time()
        if remaining <= 0:
            coro.close()
            raise SessionTimeoutError(f"Browser session exceeded {self.timeout:.0f}s")
        try:
            return await asyncio.wait_for(coro, timeout=remaining)
        except asyncio.TimeoutError as e:
            raise SessionTimeoutError(f"Browser session exceeded {self.timeout:.0f}s") from e

    async def close(self):
        """Tear down the browser and the Playwright driver. Safe to call twice."""
        browser, self._browser = self._browser, None
        playwright, self._playwright = self._playwright, None
        self._page = None
        if browser is not None:
            try:
                await browser.close()
            except PlaywrightError as e:
                self.logger.warning(f"Failed to close browser cleanly: {e}")
        if playwright is not None:
            try:
                await playwright.stop()
            except PlaywrightError as e:
                self.logger.warning(f"Failed to stop Playwright cleanly: {e}")
        self.logger.debug("Browser session released")

    @property
    def page(self):
        if self._page is None:
            raise SessionError("Browser session is not open")
        return self._page

    async def set_headers(self, headers: Dict[str, str]):
        await self.page.set_extra_http_headers(headers)

    async def navigate(self, url: str):
        await self.page.goto(url, wait_until="load")

    async def wait_visible(self, selector: str):
        await self.page.wait_for_selector(selector, state="visible")

    async def evaluate(self, script: str, arg: Any = None):
        return await self.page.evaluate(script, arg)

    async def capture_full_page(self) -> bytes:
        # PNG is lossless, so this is already maximum quality.
        return await self.page.screenshot(full_page=True, type="png")


class Capturer:
    """Drives a session through navigate, wait, watermark and capture."""

    def __init__(self, config: CaptureConfig, clock: Optional[Clock] = None,
                 render_wait: float = RENDER_WAIT, watermark_wait: float = WATERMARK_WAIT,
                 verify_image: bool = True, logger: Optional[logging.Logger] = None):
        self.config = config
        self.clock = clock or Clock()
        self.render_wait = render_wait
        self.watermark_wait = watermark_wait
        self.verify_image = verify_image
        self.logger = logger or logging.getLogger(__name__)

    async def capture(self, session, target_url: Optional[str] = None) -> bytes:
        """
        Render the target page in `session` and return full-page PNG bytes.

        Args:
            session: An open BrowserSession (or anything with the same methods)
            target_url: Page to load; defaults to the configured target

        Returns:
            Raw image bytes

        Raises:
            NavigationError: the page did not load or never became visible
            CaptureError: any other step failed
            SessionError: the session itself failed or timed out
        """
        url = target_url or self.config.target_url

        await self._step("Setting request headers", session.set_headers({"User-Agent": self.config.user_agent}))

        self.logger.info(f"Loading {url}...")
        await self._step(f"Navigating to {url}", session.navigate(url), NavigationError)
        await self._step(f"Waiting for '{READY_SELECTOR}'", session.wait_visible(READY_SELECTOR), NavigationError)

        self.logger.info("Page loaded, waiting for content to render...")
        await self.clock.sleep(self.render_wait)

        if self.config.watermark_text:
            await self._step("Injecting watermark", session.evaluate(WATERMARK_JS, self.config.watermark_text))
            await self.clock.sleep(self.watermark_wait)

        data = await self._step("Capturing screenshot", session.capture_full_page())
        if not data:
            raise CaptureError("Browser returned an empty screenshot")
        if self.verify_image:
            self._verify(data)

        self.logger.info(f"Captured {len(data)} bytes")
        return data

    async def _step(self, description: str, awaitable, error_cls=CaptureError):
        try:
            return await awaitable
        except ScreenshotServiceError:
            raise
        except Exception as e:
            raise error_cls(f"{description} failed: {e}") from e

    @staticmethod
    def _verify(data: bytes):
        try:
            with Image.open(io.BytesIO(data)) as img:
                img.verify()
        except Exception as e:
            raise CaptureError(f"Screenshot is not a valid image: {e}") from e


__all__ = ["BrowserSession", "Capturer", "CHROMIUM_ARGS", "READY_SELECTOR", "WATERMARK_JS"]
