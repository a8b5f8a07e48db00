import asyncio
import signal

import structlog

from transfer_service.config import settings
from transfer_service.container import Container
from transfer_service.logging import configure_logging


logger = structlog.get_logger()


async def main() -> None:
    configure_logging(
        level=settings.log_level,
        log_format=settings.log_format,
    )

    logger.info(
        "starting_transfer_service",
        log_level=settings.log_level,
        mailer_backend=settings.mailer_backend,
        rate_limit_backend=settings.rate_limit_backend,
    )

    container = await Container.from_settings(settings)

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, stop.set)

    # transports embed the container; standalone it only keeps workers alive
    await stop.wait()

    logger.info("shutting_down", pending_tasks=container.supervisor.pending_count)
    await container.close()


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
