class ScreenshotServiceError(Exception):
    """Base class for every error raised by the screenshot service."""


class ConfigError(ScreenshotServiceError):
    """Invalid startup configuration."""


class SessionError(ScreenshotServiceError):
    """The browser failed to launch or died underneath us."""


class SessionTimeoutError(SessionError, TimeoutError):
    """The browser session outlived its wall-clock budget."""


class CaptureError(ScreenshotServiceError):
    """A capture step failed; no image was produced."""


class NavigationError(CaptureError):
    """The page never became ready."""


class PersistError(ScreenshotServiceError):
    """The screenshot could not be written to disk."""


class ApplyError(ScreenshotServiceError):
    """The OS refused to set the background image."""

    def __init__(self, message: str, output: str = ""):
        super().__init__(f"{message} (output: {output})" if output else message)
        self.output = output


__all__ = [
    "ScreenshotServiceError",
    "ConfigError",
    "SessionError",
    "SessionTimeoutError",
    "CaptureError",
    "NavigationError",
    "PersistError",
    "ApplyError",
]
