"""
Application lifecycle management using modern FastAPI lifespan pattern.

This module follows SRP by handling only application startup/shutdown logic:
logging, Redis, the dependency container and the waitlist expiry sweep.
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import redis.asyncio as aioredis
from fastapi import FastAPI

from practice_scheduling.config.settings import Settings, get_settings
from practice_scheduling.core.container import SchedulingContainer
from practice_scheduling.core.domain.exceptions import UpstreamServiceException
from practice_scheduling.core.shared.logger import configure_logging
from practice_scheduling.domains.scheduling.infrastructure.scheduler import WaitlistExpiryScheduler
from practice_scheduling.repositories.async_redis_repository import create_redis_client, wait_for_redis

logger = logging.getLogger(__name__)


class LifecycleManager:
    """
    Manages application lifecycle events.

    Handles startup initialization and graceful shutdown.
    A container already present on app.state is used as is.
    """

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings or get_settings()
        self._redis_client: aioredis.Redis | None = None
        self._container: SchedulingContainer | None = None
        self._scheduler: WaitlistExpiryScheduler | None = None
        self._owns_container = False
        self._initialized = False

    async def startup(self, app: FastAPI) -> None:
        """Execute startup tasks."""
        if self._initialized:
            logger.warning("Lifecycle already initialized, skipping startup")
            return

        configure_logging(self._settings.LOG_LEVEL, self._settings.LOG_FORMAT, self._settings.LOG_FILE)
        logger.info("Starting application lifecycle...")

        container = getattr(app.state, "container", None)
        if container is None:
            self._redis_client = create_redis_client(self._settings)
            await self._verify_redis(self._redis_client)
            container = SchedulingContainer.from_settings(self._settings, self._redis_client)
            app.state.container = container
            self._owns_container = True
            await self._verify_openemr(container)
        self._container = container

        self._scheduler = container.create_expiry_scheduler()
        await self._scheduler.start()

        self._initialized = True
        logger.info("Application lifecycle startup completed")

    async def shutdown(self) -> None:
        """Execute shutdown tasks."""
        if not self._initialized:
            logger.warning("Lifecycle not initialized, skipping shutdown")
            return

        logger.info("Stopping application lifecycle...")

        if self._scheduler is not None:
            await self._scheduler.stop()
        if self._owns_container and self._container is not None:
            await self._container.close()
        if self._redis_client is not None:
            await self._redis_client.aclose()
            self._redis_client = None

        self._initialized = False
        logger.info("Application lifecycle shutdown completed")

    async def _verify_redis(self, client: aioredis.Redis) -> None:
        try:
            await wait_for_redis(client)
        except UpstreamServiceException as e:
            logger.error(f"Redis unavailable at startup, requests will fail until it recovers: {e.message}")

    async def _verify_openemr(self, container: SchedulingContainer) -> None:
        """Verify OpenEMR is reachable (CapabilityStatement)."""
        if container.openemr_client is None:
            return
        response = await container.openemr_client.test_connection()
        if response.success:
            logger.info("OpenEMR connectivity verified")
        else:
            logger.warning(f"OpenEMR connectivity failed: {response.error_code} {response.error_message}")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    FastAPI lifespan context manager.

    Usage:
        app = FastAPI(lifespan=lifespan)
    """
    lifecycle = LifecycleManager(getattr(app.state, "settings", None))

    await lifecycle.startup(app)

    yield

    await lifecycle.shutdown()
