"""Module executed when running ``python -m seentrack``."""

from __future__ import annotations

import logging

import uvicorn

from app.config import settings

logger = logging.getLogger(__name__)


def main() -> None:
    """Serve the tracker API with uvicorn using the configured settings."""

    logging.basicConfig(level=logging.INFO)
    logger.info(
        "Starting %s against catalog %s", settings.app_name, settings.catalog_api_url
    )
    uvicorn.run(
        "app.main:app",
        host=settings.server_host,
        port=settings.server_port,
        reload=settings.environment == "development",
        log_level="info",
    )


if __name__ == "__main__":  # pragma: no cover - runtime entrypoint
    main()
