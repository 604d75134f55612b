"""
macOS background setter - applies an image as desktop and lock screen picture via osascript
"""
import asyncio
import logging
from pathlib import Path
from typing import Awaitable, Callable, List, Optional, Tuple

from errors import ApplyError

CommandRunner = Callable[[List[str]], Awaitable[Tuple[int, str, str]]]

LOCK_SCREEN_SCRIPT = """
tell application "System Events"
    tell every desktop
        set pictures folder to "{folder}"
        set picture to "{picture}"
    end tell
end tell
"""

DESKTOP_SCRIPT = """
tell application "Finder"
    set desktop picture to POSIX file "{picture}"
end tell
"""


def _quote(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


async def run_command(args: List[str]) -> Tuple[int, str, str]:
    """Run `args` and return (returncode, stdout, stderr)."""
    proc = await asyncio.create_subprocess_exec(
        *args,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    stdout, stderr = await proc.communicate()
    return proc.returncode, stdout.decode(errors="replace"), stderr.decode(errors="replace")


class BackgroundApplier:
    """Sets an image as the background for every desktop of the current user.

    The primary script points System Events at the image's folder and picks
    the image, which also drives the lock screen. If that fails the Finder
    desktop picture is set instead, and only when both fail is ApplyError
    raised.
    """

    def __init__(self, runner: Optional[CommandRunner] = None, use_fallback: bool = True,
                 logger: Optional[logging.Logger] = None):
        self.runner = runner or run_command
        self.use_fallback = use_fallback
        self.logger = logger or logging.getLogger(__name__)

    async def apply(self, image_path) -> None:
        path = Path(image_path).absolute()
        if not path.exists():
            raise ApplyError(f"Wallpaper file not found: {path}")

        primary = LOCK_SCREEN_SCRIPT.format(folder=_quote(str(path.parent)), picture=_quote(str(path)))
        try:
            await self._osascript(primary)
            self.logger.info(f"Background set to {path}")
            return
        except ApplyError as e:
            if not self.use_fallback:
                raise
            primary_error = e
            self.logger.warning(f"Failed to set lock screen, falling back to desktop picture: {e}")

        fallback = DESKTOP_SCRIPT.format(picture=_quote(str(path)))
        try:
            await self._osascript(fallback)
        except ApplyError as e:
            raise ApplyError(
                "Failed to set lock screen and desktop picture",
                f"{primary_error.output}; fallback: {e.output}",
            ) from e
        self.logger.info(f"Desktop picture set to {path} (lock screen unchanged)")

    async def _osascript(self, script: str) -> None:
        try:
            returncode, stdout, stderr = await self.runner(["osascript", "-e", script])
        except OSError as e:
            raise ApplyError("Failed to run osascript", str(e)) from e

        output = (stderr or stdout).strip()
        if returncode != 0:
            raise ApplyError(f"osascript exited with status {returncode}", output)
        if stderr.strip():
            raise ApplyError("osascript reported an error", stderr.strip())


__all__ = ["BackgroundApplier", "run_command", "LOCK_SCREEN_SCRIPT", "DESKTOP_SCRIPT"]
