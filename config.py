import argparse
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

from errors import ConfigError

DEFAULT_WIDTH = 3440
DEFAULT_HEIGHT = 1440
DEFAULT_SLEEP_MINUTES = 10
DEFAULT_TARGET_URL = "https://isbaileybutlerintheoffice.today"
DEFAULT_USER_AGENT = "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36"

MAX_RETRIES = 3
RETRY_DELAY = 30.0
BROWSER_TIMEOUT = 3 * 60.0
RENDER_WAIT = 5.0
WATERMARK_WAIT = 0.5

OUTPUT_DIR_MODE = 0o755


class Config:
    """
    Lightweight .env loader.

    - Parses KEY=VALUE pairs from a .env file
    - Ignores empty lines and comments starting with '#'
    - Supports optional quotes around values (single or double)
    - Falls back to os.environ if a key is not present in the file
    """

    def __init__(self, env_file: str = ".env", encoding: str = "utf-8") -> None:
        self.env_file = env_file
        self.encoding = encoding
        self._values: Dict[str, str] = {}
        self.load()

    def load(self) -> None:
        """(Re)load values from the .env file into memory."""
        values: Dict[str, str] = {}
        try:
            with open(self.env_file, "r", encoding=self.encoding) as f:
                for raw_line in f:
                    line = raw_line.strip()
                    if not line or line.startswith("#"):
                        continue

                    if line.startswith("export "):
                        line = line[len("export ") :].strip()

                    if "=" not in line:
                        continue

                    key, value = line.split("=", 1)
                    key = key.strip()
                    value = value.strip()

                    if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
                        value = value[1:-1]
                    elif " #" in value:
                        value = value.split(" #", 1)[0].strip()

                    if key:
                        values[key] = value
        except FileNotFoundError:
            values = {}

        self._values = values

    def get(self, key: str, default: Optional[Any] = None) -> Optional[str]:
        """
        Get a value for `key` from the loaded .env values, falling
        back to process environment variables, or `default` if not found.
        """
        if key in self._values:
            return self._values[key]
        return os.environ.get(key, default)  # type: ignore[return-value]

    def get_int(self, key: str, default: int) -> int:
        raw = self.get(key)
        if raw is None or raw == "":
            return default
        try:
            return int(raw)
        except ValueError:
            raise ConfigError(f"{key} must be an integer, got {raw!r}")

    @property
    def development(self) -> bool:
        return self.get("DISPLAY_ENVIRONMENT") == "development"


@dataclass(frozen=True)
class CaptureConfig:
    """Startup settings for the capture loop. Immutable once built."""

    width: int = DEFAULT_WIDTH
    height: int = DEFAULT_HEIGHT
    interval: float = DEFAULT_SLEEP_MINUTES * 60.0
    target_url: str = DEFAULT_TARGET_URL
    watermark_text: str = ""
    user_agent: str = DEFAULT_USER_AGENT

    def __post_init__(self):
        if self.width <= 0 or self.height <= 0:
            raise ConfigError(f"Screenshot size must be positive, got {self.width}x{self.height}")
        if self.interval <= 0:
            raise ConfigError(f"Sleep interval must be positive, got {self.interval}s")
        if not self.target_url:
            raise ConfigError("Target URL must not be empty")


def build_parser(env: Config) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Periodically screenshot a web page and set it as the desktop/lock screen background"
    )
    parser.add_argument(
        "--width", "-width", type=int,
        default=env.get_int("SCREENSHOT_WIDTH", DEFAULT_WIDTH),
        help="Width of the screenshot/window (default: %(default)s)",
    )
    parser.add_argument(
        "--height", "-height", type=int,
        default=env.get_int("SCREENSHOT_HEIGHT", DEFAULT_HEIGHT),
        help="Height of the screenshot/window (default: %(default)s)",
    )
    parser.add_argument(
        "--sleep", "-sleep", type=int,
        default=env.get_int("SCREENSHOT_SLEEP_MINUTES", DEFAULT_SLEEP_MINUTES),
        help="Sleep time in minutes between screenshots (default: %(default)s)",
    )
    parser.add_argument(
        "--url", default=env.get("TARGET_URL", DEFAULT_TARGET_URL),
        help="Page to capture (default: %(default)s)",
    )
    parser.add_argument(
        "--output-dir", default=env.get("SCREENSHOT_DIR"),
        help="Where screenshots are stored (default: ~/Screenshots)",
    )
    watermark = parser.add_mutually_exclusive_group()
    watermark.add_argument(
        "--watermark", default=env.get("WATERMARK_TEXT"),
        help="Overlay text stamped on every screenshot (default: the target host name)",
    )
    watermark.add_argument(
        "--no-watermark", action="store_true",
        help="Capture the page without the overlay",
    )
    return parser


def parse_args(argv: Optional[List[str]] = None, env: Optional[Config] = None):
    """Parse command line flags into a CaptureConfig and an optional output directory override."""
    if env is None:
        env = Config()
    args = build_parser(env).parse_args(argv)

    if args.no_watermark:
        watermark_text = ""
    elif args.watermark is not None:
        watermark_text = args.watermark
    else:
        watermark_text = urlparse(args.url).netloc or args.url

    capture_config = CaptureConfig(
        width=args.width,
        height=args.height,
        interval=args.sleep * 60.0,
        target_url=args.url,
        watermark_text=watermark_text,
    )
    output_dir = Path(args.output_dir).expanduser() if args.output_dir else None
    return capture_config, output_dir


def setup_output_directory(output_dir: Optional[Path] = None) -> Path:
    """Resolve and create the screenshot directory.

    Raises ConfigError when the home directory cannot be resolved or the
    directory cannot be created; callers treat both as fatal.
    """
    if output_dir is None:
        try:
            home = Path.home()
        except (KeyError, RuntimeError) as e:
            raise ConfigError(f"Failed to get user home directory: {e}") from e
        output_dir = home / "Screenshots"

    try:
        output_dir.mkdir(mode=OUTPUT_DIR_MODE, parents=True, exist_ok=True)
    except OSError as e:
        raise ConfigError(f"Failed to create screenshots directory {output_dir}: {e}") from e
    return output_dir


__all__ = ["Config", "CaptureConfig", "build_parser", "parse_args", "setup_output_directory"]
