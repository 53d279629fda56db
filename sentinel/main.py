"""
Sentinel Entry Point

Runs the sentinel as a standalone process.
Usage: python -m sentinel.main  (or the cgroup-sentinel console script)
"""

import asyncio
import signal
import sys

from docker.errors import DockerException
from dotenv import load_dotenv

from sentinel.agent_base import EventPublisher
from sentinel.config import SentinelConfig
from sentinel.exceptions import SentinelError
from sentinel.logger import SentinelLogger
from sentinel.orchestrator import Sentinel
from sentinel.platform_utils import get_platform_display
from sentinel.sentinel_responder import ContainerResponder


async def serve(config: SentinelConfig, responder: ContainerResponder) -> None:
    """
    Run the sentinel until SIGINT/SIGTERM.

    Args:
        config: Loaded configuration
        responder: Connected container responder
    """
    publisher = None
    if config.publish_events:
        publisher = EventPublisher(
            config.redis, retry_max=config.retry_max, retry_delay=config.retry_delay
        )
        try:
            await publisher.connect()
        except SentinelError:
            await publisher.close()
            raise

    sentinel = Sentinel(config, responder, publisher)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, sentinel.stop)

    await sentinel.run()


def main() -> None:
    """
    Main entry point for the sentinel.

    Loads configuration, connects to Docker and runs the monitors. Exits non-zero when
    startup fails.
    """
    load_dotenv()

    SentinelLogger.configure_root_logger()
    logger = SentinelLogger.get_logger("sentinel")

    logger.info("=" * 60)
    logger.info(f"Cgroup Sentinel Starting on {get_platform_display()}")
    logger.info("=" * 60)

    responder = None
    try:
        config = SentinelConfig.from_env(dotenv=False)
        logger.info(
            f"Watching {config.cgroup_root} for '{config.unit_prefix}*' units "
            f"every {config.poll_interval}s"
        )

        responder = ContainerResponder.connect(
            retry_max=config.retry_max,
            retry_delay=config.retry_delay,
            stop_timeout=config.stop_timeout,
            call_timeout=config.remediation_timeout,
        )
        asyncio.run(serve(config, responder))
    except KeyboardInterrupt:
        logger.info("Sentinel interrupted by user (SIGINT)")
    except SentinelError as e:
        logger.error(f"Startup failed: {e}")
        sys.exit(1)
    except DockerException as e:
        logger.error(f"Docker connection failed: {e}")
        sys.exit(1)
    except Exception as e:
        logger.error(f"Unexpected error: {e}", exc_info=True)
        sys.exit(1)
    finally:
        if responder:
            responder.close()
        logger.info("=" * 60)
        logger.info("Cgroup Sentinel Stopped")
        logger.info("=" * 60)


if __name__ == "__main__":
    main()
