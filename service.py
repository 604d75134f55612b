import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Callable, List, Optional

from clock import Clock
from config import MAX_RETRIES, RETRY_DELAY, CaptureConfig
from errors import PersistError

FILENAME_FORMAT = "status_%Y%m%d_%H%M%S.png"


@dataclass
class CaptureAttempt:
    timestamp: datetime
    number: int
    path: Optional[Path] = None
    error: Optional[BaseException] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None


@dataclass
class CycleResult:
    attempts: List[CaptureAttempt] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return bool(self.attempts) and self.attempts[-1].succeeded

    @property
    def path(self) -> Optional[Path]:
        return self.attempts[-1].path if self.attempts else None

    @property
    def error(self) -> Optional[BaseException]:
        return self.attempts[-1].error if self.attempts else None


def write_artifact(path: Path, data: bytes) -> None:
    """Write `data` to a new file at `path`; never overwrites, never leaves a partial file."""
    try:
        with open(path, "xb") as f:
            f.write(data)
    except FileExistsError as e:
        raise PersistError(f"Refusing to overwrite existing screenshot {path}") from e
    except OSError as e:
        try:
            path.unlink()
        except FileNotFoundError:
            pass
        raise PersistError(f"Failed to save screenshot {path}: {e}") from e


class RetryingAttempt:
    """One cycle: capture, save and apply, retried with a fixed backoff."""

    def __init__(self, config: CaptureConfig, output_dir: Path, session_factory: Callable,
                 capturer, applier, clock: Optional[Clock] = None,
                 max_retries: int = MAX_RETRIES, retry_delay: float = RETRY_DELAY,
                 logger: Optional[logging.Logger] = None):
        self.config = config
        self.output_dir = Path(output_dir)
        self.session_factory = session_factory
        self.capturer = capturer
        self.applier = applier
        self.clock = clock or Clock()
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.logger = logger or logging.getLogger(__name__)

    async def run_once(self) -> CycleResult:
        result = CycleResult()
        for number in range(1, self.max_retries + 1):
            if number > 1:
                self.logger.info(f"Retry attempt {number}/{self.max_retries} in {self.retry_delay:.0f} seconds...")
                await self.clock.sleep(self.retry_delay)

            attempt = CaptureAttempt(timestamp=self.clock.now(), number=number)
            result.attempts.append(attempt)
            try:
                attempt.path = await self._attempt()
            except Exception as e:
                attempt.error = e
                self.logger.warning(f"Attempt {number}/{self.max_retries} failed: {e}")
                continue

            self.logger.info(f"Successfully updated screenshot: {attempt.path}")
            return result

        return result

    async def _attempt(self) -> Path:
        # Fresh browser per attempt; a crashed renderer must not leak into the retry.
        async with self.session_factory(self.config) as session:
            data = await session.run(self.capturer.capture(session, self.config.target_url))

        path = self.output_dir / self.clock.now().strftime(FILENAME_FORMAT)
        write_artifact(path, data)
        self.logger.info(f"Screenshot saved to {path}")

        await self.applier.apply(path)
        return path


class SchedulerLoop:
    """Runs a RetryingAttempt forever, sleeping a fixed interval between cycles."""

    def __init__(self, config: CaptureConfig, attempt: RetryingAttempt, clock: Optional[Clock] = None,
                 logger: Optional[logging.Logger] = None):
        self.config = config
        self.attempt = attempt
        self.clock = clock or Clock()
        self.logger = logger or logging.getLogger(__name__)

    async def run(self):
        self.logger.info("Starting screenshot service...")
        while True:
            result = await self.attempt.run_once()
            if result.succeeded:
                self.logger.info(f"Cycle complete after {len(result.attempts)} attempt(s)")
            else:
                self.logger.error(f"All screenshot attempts failed: {result.error}")

            self.logger.info(f"Waiting {self.config.interval / 60:g} minutes before next update...")
            await self.clock.sleep(self.config.interval)


__all__ = ["CaptureAttempt", "CycleResult", "RetryingAttempt", "SchedulerLoop", "write_artifact"]
