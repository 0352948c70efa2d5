"""Main entry point with service factory and lifespan management."""

from __future__ import annotations

import asyncio
import signal
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from biaswatch.core.config import Settings, settings
from biaswatch.core.logging import get_logger, setup_logging
from biaswatch.database.connection import close_database, init_database
from biaswatch.repositories.base import Storage
from biaswatch.repositories.memory import InMemoryStorage
from biaswatch.repositories.storage_orm import SqlAlchemyStorage
from biaswatch.services.bias_service import BiasService
from biaswatch.sources.http import HttpJsonDataSource


logger = get_logger("main")


async def create_storage(config: Settings) -> Storage:
    """In-memory storage when configured, otherwise the database."""
    if config.use_memory_storage:
        logger.info("Using in-memory storage")
        return InMemoryStorage()
    session_factory = await init_database(config.database_url)
    logger.info("Database initialized")
    return SqlAlchemyStorage(session_factory)


@asynccontextmanager
async def lifespan(config: Settings | None = None) -> AsyncIterator[BiasService]:
    """Build, start and finally stop the bias service."""
    config = config or settings
    setup_logging()
    logger.info(f"Starting {config.app_name} v{config.app_version}")
    logger.info(f"Environment: {config.environment}")

    storage = await create_storage(config)
    service = BiasService(storage, HttpJsonDataSource(timeout=config.fetch_timeout), config=config)
    await service.start()
    try:
        yield service
    finally:
        logger.info("Shutting down...")
        await service.stop()
        await close_database()
        logger.info("Shutdown complete")


async def run(config: Settings | None = None) -> None:
    """Run until SIGINT or SIGTERM."""
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:
            pass  # Windows

    async with lifespan(config):
        await stop.wait()


def main() -> None:
    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
