"""RDAM API service entry point.

This module provides the application instance for ASGI servers (uvicorn)
and a run() function for direct execution.

The app is created using the factory pattern from rdam.api.create_app().
"""

import logging

from rdam.api import create_app
from rdam.api.middleware import RequestIdLogFilter

logger = logging.getLogger(__name__)

# This is what uvicorn references: rdam.api.main:app
app = create_app()


def run() -> None:
    """Run the API server using uvicorn.

    This function is called by the rdam-api console script
    defined in pyproject.toml.
    """
    import uvicorn

    from rdam.core.settings import get_settings

    settings = get_settings()
    app.state.settings = settings

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s [%(request_id)s]: %(message)s",
    )
    for handler in logging.getLogger().handlers:
        handler.addFilter(RequestIdLogFilter())

    logger.info("Starting RDAM API on %s:%d", settings.api_host, settings.api_port)

    uvicorn.run(
        app,
        host=settings.api_host,
        port=settings.api_port,
        log_config=None,
    )


if __name__ == "__main__":
    run()
