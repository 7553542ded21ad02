"""FileNest API service entry point.

This module provides the application instance for ASGI servers (uvicorn)
and a run() function for the ``filenest-api`` console script.
"""

import logging
import os

from filenest.api import create_app

logger = logging.getLogger(__name__)

# What uvicorn references: filenest.api.main:app
app = create_app()


def run() -> None:
    """Run the API server using uvicorn."""
    import uvicorn

    from filenest.core.settings import get_settings

    log_level = os.environ.get("FILENEST_LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    settings = get_settings()
    logger.info("Starting FileNest API on %s:%d", settings.api_host, settings.api_port)

    uvicorn.run(
        "filenest.api.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=False,
    )


if __name__ == "__main__":
    run()
