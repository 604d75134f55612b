import io
import logging

from PIL import Image, ImageDraw

from config import CaptureConfig

logger = logging.getLogger(__name__)


class EmulatedSession:
    """Stand-in for BrowserSession when DISPLAY_ENVIRONMENT=development."""

    def __init__(self, config: CaptureConfig):
        self.config = config
        self.url = None
        self.overlays = []

    async def __aenter__(self):
        logger.info("(EMULATED) Launching browser")
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        logger.info("(EMULATED) Closing browser")

    async def run(self, coro):
        return await coro

    async def set_headers(self, headers):
        logger.debug("(EMULATED) Setting headers: %s", headers)

    async def navigate(self, url):
        logger.info("(EMULATED) Navigating to %s", url)
        self.url = url

    async def wait_visible(self, selector):
        logger.debug("(EMULATED) Waiting for %s", selector)

    async def evaluate(self, script, arg=None):
        logger.info("(EMULATED) Evaluating script")
        if arg:
            self.overlays.append(arg)

    async def capture_full_page(self) -> bytes:
        logger.info("(EMULATED) Capturing full page")
        img = Image.new("RGB", (self.config.width, self.config.height), (255, 255, 255))
        draw = ImageDraw.Draw(img)
        draw.text((20, 20), f"{self.url}", fill=(0, 0, 0))
        for i, text in enumerate(self.overlays, start=1):
            draw.text((20, 20 + 20 * i), text, fill=(160, 160, 160))
        buf = io.BytesIO()
        img.save(buf, format="PNG")
        return buf.getvalue()


class EmulatedApplier:
    """Logs instead of touching the desktop."""

    def __init__(self):
        self.applied = []

    async def apply(self, image_path):
        logger.info("(EMULATED) Setting background to %s", image_path)
        self.applied.append(image_path)
