import asyncio
import logging
import sys

from clock import Clock
from config import Config, parse_args, setup_output_directory
from emulator import EmulatedApplier, EmulatedSession
from errors import ConfigError
from render import BrowserSession, Capturer
from service import RetryingAttempt, SchedulerLoop
from wallpaper import BackgroundApplier

logger = logging.getLogger("Main")


def setup_logging(env: Config):
    logging.basicConfig(
        level=getattr(logging, str(env.get("LOG_LEVEL", "INFO")).upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(sys.stdout)
        ]
    )


def build_service(config, output_dir, env: Config) -> SchedulerLoop:
    clock = Clock()
    if env.development:
        logger.info("Browser and background setter are being emulated in development mode.")
        session_factory = EmulatedSession
        applier = EmulatedApplier()
    else:
        session_factory = BrowserSession
        applier = BackgroundApplier()

    attempt = RetryingAttempt(
        config,
        output_dir,
        session_factory=session_factory,
        capturer=Capturer(config, clock=clock),
        applier=applier,
        clock=clock,
    )
    return SchedulerLoop(config, attempt, clock=clock)


def main(argv=None):
    env = Config()
    setup_logging(env)

    try:
        config, output_dir = parse_args(argv, env)
        output_dir = setup_output_directory(output_dir)
    except ConfigError as e:
        logger.critical(str(e))
        sys.exit(1)

    logger.info(f"Capturing {config.target_url} at {config.width}x{config.height} into {output_dir}")
    service = build_service(config, output_dir, env)
    try:
        asyncio.run(service.run())
    except KeyboardInterrupt:
        logger.info("Exiting...")


if __name__ == "__main__":
    main()
