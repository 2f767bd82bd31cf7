"""
FastAPI application assembly.

Builds the app from Settings: middleware, the error envelope handlers, the
versioned scheduling router and the liveness endpoint. Resources are opened
by core.lifecycle at startup unless a container is passed in.
"""

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from practice_scheduling.api.exception_handlers import register_exception_handlers
from practice_scheduling.api.middleware import RequestLoggingMiddleware
from practice_scheduling.config.settings import Settings, get_settings
from practice_scheduling.core.container import SchedulingContainer
from practice_scheduling.core.lifecycle import lifespan
from practice_scheduling.domains.scheduling.api.routes import router as scheduling_router

logger = logging.getLogger(__name__)


class AppFactory:
    """Assembles the scheduling API."""

    def __init__(self, settings: Settings | None = None, container: SchedulingContainer | None = None) -> None:
        """
        Args:
            settings: Settings to build from; the cached settings when omitted
            container: Ready dependency container, used by tests to skip startup wiring
        """
        self._settings = settings or get_settings()
        self._container = container

    def create_app(self) -> FastAPI:
        docs_enabled = self._settings.is_development
        app = FastAPI(
            title=self._settings.PROJECT_NAME,
            description=self._settings.PROJECT_DESCRIPTION,
            version=self._settings.VERSION,
            docs_url=f"{self._settings.API_V1_STR}/docs" if docs_enabled else None,
            redoc_url=f"{self._settings.API_V1_STR}/redoc" if docs_enabled else None,
            lifespan=lifespan,
        )
        app.state.settings = self._settings
        if self._container is not None:
            app.state.container = self._container

        self._add_middleware(app)
        register_exception_handlers(app)
        app.include_router(scheduling_router, prefix=self._settings.API_V1_STR)
        self._add_liveness(app)

        logger.info(f"{self._settings.PROJECT_NAME} app assembled for {self._settings.ENVIRONMENT}")
        return app

    def _add_middleware(self, app: FastAPI) -> None:
        # Added last runs first: request logging sees every response, CORS preflights included.
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"] if self._settings.is_development else [],
            allow_credentials=False,
            allow_methods=["*"],
            allow_headers=["*"],
        )
        app.add_middleware(RequestLoggingMiddleware)

    def _add_liveness(self, app: FastAPI) -> None:
        environment = self._settings.ENVIRONMENT

        @app.get("/health", tags=["health"])
        async def health_check() -> dict[str, str]:
            return {"status": "ok", "environment": environment}


def create_app(settings: Settings | None = None, container: SchedulingContainer | None = None) -> FastAPI:
    """Build the scheduling API; see AppFactory."""
    return AppFactory(settings, container).create_app()
