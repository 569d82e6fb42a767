"""Service entry point for the synchronization engine.

Builds a SyncEngine from environment settings, starts its background
learning, and runs until SIGTERM or SIGINT. Shutdown flushes buffered
observations within SHUTDOWN_TIMEOUT_SECONDS.
"""

import asyncio
import logging
import signal

from playback_sync.config import Settings
from playback_sync.engine import SyncEngine, build_engine
from playback_sync.observability.logger import setup_logging

logger = logging.getLogger(__name__)

SHUTDOWN_TIMEOUT_SECONDS = 10


async def _run(engine: SyncEngine) -> None:
    """Start the engine and block until a shutdown signal arrives."""
    await engine.start()

    loop = asyncio.get_running_loop()
    stop_event = asyncio.Event()

    def _shutdown() -> None:
        logger.info("Received shutdown signal")
        stop_event.set()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, _shutdown)

    await stop_event.wait()
    try:
        await asyncio.wait_for(engine.stop(), timeout=SHUTDOWN_TIMEOUT_SECONDS)
    except TimeoutError:
        logger.warning(
            "Engine did not stop within %ss, abandoning pending writes",
            SHUTDOWN_TIMEOUT_SECONDS,
            extra={"component": "main", "operation": "stop"},
        )


def main() -> None:
    """Run the synchronization engine service."""
    settings = Settings.from_env()
    setup_logging(settings.log_level)
    logger.info("Playback sync starting")

    engine = build_engine(settings)
    asyncio.run(_run(engine))


if __name__ == "__main__":
    main()
