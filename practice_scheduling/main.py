"""
ASGI entry point: ``uvicorn practice_scheduling.main:app``.

Sentry is initialised here, before the app is built, so startup errors are
reported too. Everything else lives in core.app_factory and core.lifecycle.
"""

import logging

import sentry_sdk

from practice_scheduling.config.settings import get_settings
from practice_scheduling.core.app_factory import create_app

logger = logging.getLogger(__name__)
settings = get_settings()

if settings.SENTRY_DSN:
    sentry_sdk.init(dsn=settings.SENTRY_DSN, environment=settings.ENVIRONMENT, send_default_pii=False)

app = create_app(settings)

if __name__ == "__main__":
    import uvicorn

    logger.info(f"Serving scheduling API ({settings.ENVIRONMENT})")
    uvicorn.run("practice_scheduling.main:app", host="0.0.0.0", port=8001, reload=settings.DEBUG)
